"""Custom exceptions for application-specific error handling."""

from __future__ import annotations

from typing import Optional, Dict, Any


class TicketImporterException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class NotFoundError(TicketImporterException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "not_found", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="NOT_FOUND", details=details, status_code=404)


class BadRequestError(TicketImporterException):
    """Raised when request is invalid."""

    def __init__(self, message: str = "bad_request", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="BAD_REQUEST", details=details, status_code=400)


# ===== IMPORT BATCH EXCEPTIONS =====
# Raised before or during row iteration; each one ends the whole batch.


class ImportException(TicketImporterException):
    """Base exception for batch-level import errors."""


class InvalidImportConfigurationError(ImportException):
    """Raised when the column mapping or the options cannot drive a batch."""

    def __init__(self, message: str, *, setting: Optional[str] = None):
        details = {"setting": setting} if setting else {}
        super().__init__(message, error_code="INVALID_IMPORT_CONFIG", details=details, status_code=422)


class InvalidEncodingError(ImportException):
    """Raised when the uploaded bytes are not valid in the declared encoding."""

    def __init__(self, encoding: str):
        super().__init__(
            f"The file is not valid {encoding} text",
            error_code="INVALID_ENCODING",
            details={"encoding": encoding},
            status_code=422,
        )


class EmptyTableError(ImportException):
    """Raised when the table has no data row below its header."""

    def __init__(self, message: str = "The file has no data rows"):
        super().__init__(message, error_code="EMPTY_TABLE", status_code=422)


class MissingHeaderColumnsError(ImportException):
    """Raised when one or more header cells are blank."""

    def __init__(self, positions: list[int], *, header_size: int, header_line: str):
        super().__init__(
            "Header is missing column names at positions " + ", ".join(str(p) for p in positions),
            error_code="MISSING_HEADER_COLUMNS",
            details={"positions": positions, "header_size": header_size, "header": header_line},
            status_code=422,
        )


class MalformedTableError(ImportException):
    """Raised when the table structure cannot be parsed (e.g. unbalanced quoting)."""

    def __init__(self, message: str, *, line: Optional[int] = None, context: Optional[str] = None):
        details: Dict[str, Any] = {}
        if line is not None:
            details["line"] = line
        if context:
            details["context"] = context
        super().__init__(message, error_code="MALFORMED_TABLE", details=details, status_code=422)


class ImportSessionMissingError(ImportException):
    """Raised when the acting user has no staged import."""

    def __init__(self, user_label: str):
        super().__init__(
            f"No import is currently in progress for {user_label}",
            error_code="IMPORT_SESSION_MISSING",
            status_code=404,
        )


class ImportSessionMismatchError(ImportException):
    """Raised when the echoed token does not match the staged import."""

    def __init__(self) -> None:
        super().__init__(
            "Another import was started in the meantime; upload the file again",
            error_code="IMPORT_SESSION_MISMATCH",
            status_code=409,
        )


class AmbiguousRelationTargetError(ImportException):
    """Raised when a relation column matches several tickets; stops the batch."""

    def __init__(self, field: str, value: str):
        super().__init__(
            f"Unique field {field} with value '{value}' matches more than one ticket",
            error_code="AMBIGUOUS_RELATION_TARGET",
            details={"field": field, "value": value},
            status_code=409,
        )


# ===== ROW-LEVEL SIGNALS =====
# Caught at the row boundary by the import engine; never reach the API.


class RowLevelError(Exception):
    """Base class for recoverable, single-row failures."""


class ReferenceNotFoundError(RowLevelError):
    """Raised when a name/login cannot be resolved for a reference kind."""

    def __init__(self, kind: str, key: str | None):
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} found for '{key}'")


class RecordNotFoundError(RowLevelError):
    """Raised when no ticket matches a unique-field value."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"No ticket with {field} of '{value}' found")


class AmbiguousRecordError(RowLevelError):
    """Raised when two or more tickets match a unique-field value."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Unique field {field} with value '{value}' has duplicate records")


class TicketValidationError(RowLevelError):
    """Raised by the store when a ticket fails attribute validation."""

    def __init__(self, errors: Dict[str, list[str]]):
        self.errors = errors
        super().__init__("; ".join(f"{attr} {msg}" for attr, msgs in errors.items() for msg in msgs))


class CustomValueError(RowLevelError):
    """Raised when a keyword cannot be converted for a custom field."""


# ===== AUTHENTICATION/AUTHORIZATION EXCEPTIONS =====


class AuthenticationException(TicketImporterException):
    """Base exception for authentication errors."""


class ExpiredTokenError(AuthenticationException):
    """Raised when token has expired."""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, error_code="EXPIRED_TOKEN", status_code=401)


class InsufficientPermissionsError(AuthenticationException):
    """Raised when user lacks required permissions."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, error_code="INSUFFICIENT_PERMISSIONS", status_code=403)

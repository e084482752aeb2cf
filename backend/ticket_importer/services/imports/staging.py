"""Staged uploads awaiting their column mapping, one per user."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ticket_importer.core.config import settings
from ticket_importer.core.exceptions import (
    BadRequestError,
    ImportSessionMismatchError,
    ImportSessionMissingError,
    InvalidEncodingError,
    InvalidImportConfigurationError,
)
from ticket_importer.models.import_session import ImportSession
from ticket_importer.models.project import Project
from ticket_importer.models.user import User
from ticket_importer.services.imports.fields import FieldChoice, field_choices, match_column
from ticket_importer.services.imports.table import decode_payload, inspect_table
from ticket_importer.services.tickets import available_custom_fields

logger = logging.getLogger(__name__)

TOKEN_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def session_token(staged: ImportSession) -> str:
    """Token the client echoes back; derived from the creation timestamp."""
    return _as_utc(staged.created_at).strftime(TOKEN_FORMAT)


@dataclass(frozen=True)
class ImportPreview:
    token: str
    filename: str | None
    headers: list[str]
    samples: list[list[str]]
    choices: list[FieldChoice] = field(default_factory=list)
    suggested: dict[str, str | None] = field(default_factory=dict)


def _check_single_char(value: str, setting: str) -> None:
    if len(value or "") != 1:
        raise InvalidImportConfigurationError(f"{setting} must be a single character", setting=setting)


def stage_upload(
    db: Session,
    user: User,
    project: Project,
    *,
    payload: bytes,
    encoding: str | None = None,
    delimiter: str | None = None,
    quote_char: str | None = None,
    filename: str | None = None,
    now: dt.datetime | None = None,
) -> ImportPreview:
    encoding = encoding or settings.IMPORT_DEFAULT_ENCODING
    delimiter = delimiter or settings.IMPORT_DEFAULT_DELIMITER
    quote_char = quote_char or settings.IMPORT_DEFAULT_QUOTE_CHAR
    _check_single_char(delimiter, "delimiter")
    _check_single_char(quote_char, "quote_char")
    if len(payload) > settings.IMPORT_MAX_UPLOAD_BYTES:
        raise BadRequestError("upload_too_large", details={"max_bytes": settings.IMPORT_MAX_UPLOAD_BYTES})

    # A new upload replaces whatever the user had staged before.
    discard_session(db, user)
    staged = ImportSession(
        user_id=user.id,
        project_id=project.id,
        filename=filename,
        encoding=encoding,
        col_sep=delimiter,
        quote_char=quote_char,
        created_at=now or utcnow(),
    )
    try:
        staged.csv_data = decode_payload(payload, encoding)
    except InvalidEncodingError:
        staged.csv_data = ""
        db.add(staged)
        db.commit()
        logger.warning("Staged upload from %s is not valid %s", user.login, encoding)
        raise
    db.add(staged)
    db.commit()
    logger.info("Staged import for %s in project %s (%s bytes)", user.login, project.identifier, len(payload))

    sample = inspect_table(
        staged.csv_data,
        delimiter=delimiter,
        quote_char=quote_char,
        sample_size=settings.IMPORT_SAMPLE_ROWS,
    )
    choices = field_choices(available_custom_fields(db, project.id))
    return ImportPreview(
        token=session_token(staged),
        filename=filename,
        headers=sample.headers,
        samples=sample.rows,
        choices=choices,
        suggested={header: match_column(header, choices) for header in sample.headers},
    )


def load_staged_session(
    db: Session,
    user: User,
    token: str,
    *,
    now: dt.datetime | None = None,
    retention_days: int | None = None,
) -> ImportSession:
    staged = db.execute(select(ImportSession).where(ImportSession.user_id == user.id)).scalar_one_or_none()
    if staged is None:
        raise ImportSessionMissingError(user.name)
    days = settings.IMPORT_RETENTION_DAYS if retention_days is None else retention_days
    if _as_utc(staged.created_at) < _as_utc(now or utcnow()) - dt.timedelta(days=days):
        discard_session(db, user)
        db.commit()
        raise ImportSessionMissingError(user.name)
    if session_token(staged) != (token or "").strip():
        raise ImportSessionMismatchError()
    return staged


def discard_session(db: Session, user: User) -> int:
    result = db.execute(delete(ImportSession).where(ImportSession.user_id == user.id))
    return int(result.rowcount or 0)


def purge_stale_sessions(
    db: Session,
    *,
    now: dt.datetime | None = None,
    retention_days: int | None = None,
) -> int:
    days = settings.IMPORT_RETENTION_DAYS if retention_days is None else retention_days
    cutoff = _as_utc(now or utcnow()) - dt.timedelta(days=days)
    result = db.execute(delete(ImportSession).where(ImportSession.created_at < cutoff))
    purged = int(result.rowcount or 0)
    if purged:
        logger.info("Purged %s stale staged imports", purged)
    return purged

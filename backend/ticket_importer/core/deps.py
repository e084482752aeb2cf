"""Common FastAPI dependencies for authentication and authorization."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ticket_importer.core.config import settings
from ticket_importer.core.exceptions import AuthenticationException, ExpiredTokenError, InsufficientPermissionsError
from ticket_importer.core.rbac import has_permission
from ticket_importer.core.security import ACCESS_TOKEN_TYPE, decode_token
from ticket_importer.db.session import get_db
from ticket_importer.models.user import User


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization", "")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    cleaned = token.strip()
    return cleaned or None


def _invalid_token() -> AuthenticationException:
    return AuthenticationException("invalid_token", error_code="INVALID_TOKEN", status_code=401)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = _extract_bearer_token(request) or request.cookies.get(settings.COOKIE_NAME)
    if not token:
        raise AuthenticationException(
            "not_authenticated",
            error_code="NOT_AUTHENTICATED",
            status_code=401,
        )

    try:
        payload = decode_token(token)
    except ValueError as exc:
        if str(exc) == "expired_token":
            raise ExpiredTokenError("access_token_expired")
        raise _invalid_token()
    token_type = payload.get("type")
    if token_type and token_type != ACCESS_TOKEN_TYPE:
        raise _invalid_token()
    user_id = payload.get("sub")
    if not user_id:
        raise _invalid_token()
    try:
        user_uuid = UUID(str(user_id))
    except ValueError:
        raise _invalid_token()

    user = db.get(User, user_uuid)
    if not user or not user.is_active:
        raise AuthenticationException(
            "user_not_found",
            error_code="USER_NOT_FOUND",
            status_code=401,
        )

    return user


def require_permission(permission: str):
    def _checker(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user, permission):
            raise InsufficientPermissionsError("forbidden")
        return user

    return _checker

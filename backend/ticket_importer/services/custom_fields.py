"""Keyword-to-value conversion for custom fields."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ticket_importer.core.config import settings
from ticket_importer.core.exceptions import CustomValueError
from ticket_importer.core.sanitize import clean_list
from ticket_importer.models.custom_field import CustomField
from ticket_importer.models.enums import CustomFieldFormat, VersionSharing
from ticket_importer.models.project import Version
from ticket_importer.models.ticket import Ticket
from ticket_importer.models.user import User

TRUE_KEYWORDS = {"1", "yes", "true", "y"}
FALSE_KEYWORDS = {"0", "no", "false", "n"}


def _invalid(field: CustomField, keyword: str) -> CustomValueError:
    return CustomValueError(f"{field.name}: '{keyword}' is not a valid value")


def _single_value(db: Session, field: CustomField, keyword: str, ticket: Ticket) -> str:
    fmt = field.field_format
    if fmt in {CustomFieldFormat.list, CustomFieldFormat.enumeration}:
        for candidate in field.possible_values or []:
            if candidate.casefold() == keyword.casefold():
                return candidate
        raise _invalid(field, keyword)
    if fmt == CustomFieldFormat.bool:
        lowered = keyword.lower()
        if lowered in TRUE_KEYWORDS:
            return "1"
        if lowered in FALSE_KEYWORDS:
            return "0"
        raise _invalid(field, keyword)
    if fmt == CustomFieldFormat.int:
        try:
            return str(int(keyword))
        except ValueError as exc:
            raise _invalid(field, keyword) from exc
    if fmt == CustomFieldFormat.float:
        try:
            return str(float(keyword))
        except ValueError as exc:
            raise _invalid(field, keyword) from exc
    if fmt == CustomFieldFormat.date:
        try:
            return dt.datetime.strptime(keyword, settings.IMPORT_DATE_FORMAT).date().isoformat()
        except ValueError as exc:
            raise _invalid(field, keyword) from exc
    if fmt == CustomFieldFormat.user:
        user = db.execute(select(User).where(func.lower(User.login) == keyword.lower())).scalar_one_or_none()
        if user is None:
            raise _invalid(field, keyword)
        return str(user.id)
    if fmt == CustomFieldFormat.version:
        version = db.execute(
            select(Version)
            .where(
                Version.name == keyword,
                or_(Version.project_id == ticket.project_id, Version.sharing == VersionSharing.system),
            )
            .order_by(Version.id)
            .limit(1)
        ).scalar_one_or_none()
        if version is None:
            raise _invalid(field, keyword)
        return str(version.id)
    return keyword


def value_from_keyword(db: Session, field: CustomField, keyword: str, ticket: Ticket) -> list[str]:
    """Convert a cell into stored values; multi-valued fields split on commas."""
    tokens = clean_list(keyword) if field.is_multiple else [keyword.strip()]
    return [_single_value(db, field, token, ticket) for token in tokens if token]

"""Locate tickets by the operator-chosen unique field."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticket_importer.core.exceptions import (
    AmbiguousRecordError,
    InvalidImportConfigurationError,
    RecordNotFoundError,
)
from ticket_importer.models.custom_field import CustomField, CustomValue
from ticket_importer.models.enumerations import TicketStatus
from ticket_importer.models.ticket import Ticket
from ticket_importer.services.imports.cache import UniqueValueCache
from ticket_importer.services.imports.fields import FieldKind
from ticket_importer.services.imports.normalizer import normalize_key


class UniqueKeyResolver:
    """Finds 0, 1 or several tickets for a unique value; only exactly one succeeds."""

    def __init__(
        self,
        db: Session,
        field_key: str,
        *,
        custom_field: CustomField | None = None,
        cache: UniqueValueCache | None = None,
    ) -> None:
        self.db = db
        self.field_key = field_key
        self.custom_field = custom_field
        self.cache = cache if cache is not None else UniqueValueCache()

    @classmethod
    def for_field(
        cls,
        db: Session,
        field_key: str,
        custom_fields: Sequence[CustomField],
        cache: UniqueValueCache | None = None,
    ) -> UniqueKeyResolver:
        key = normalize_key(field_key)
        if key in {FieldKind.id.value, FieldKind.subject.value}:
            return cls(db, key, cache=cache)
        for cf in custom_fields:
            if normalize_key(cf.name) == key:
                return cls(db, key, custom_field=cf, cache=cache)
        raise InvalidImportConfigurationError(
            f"Tickets cannot be identified by '{field_key}'", setting="unique_field"
        )

    @property
    def label(self) -> str:
        return self.custom_field.name if self.custom_field is not None else self.field_key

    def remember(self, value: str, ticket: Ticket) -> Ticket:
        return self.cache.insert_if_absent(value, ticket)

    def locate(self, value: str, *, include_closed: bool = False) -> Ticket:
        cached = self.cache.get(value)
        if cached is not None:
            return cached

        stmt = self._matching(value)
        if stmt is None:
            raise RecordNotFoundError(self.label, value)
        if not include_closed:
            closed_ids = select(TicketStatus.id).where(TicketStatus.is_closed.is_(True))
            stmt = stmt.where(Ticket.status_id.not_in(closed_ids))
        # Two rows are enough to tell "exactly one" from "several".
        matches = list(self.db.execute(stmt.order_by(Ticket.id).limit(2)).scalars().all())
        if len(matches) > 1:
            raise AmbiguousRecordError(self.label, value)
        if not matches:
            raise RecordNotFoundError(self.label, value)
        return matches[0]

    def _matching(self, value: str):
        if self.custom_field is not None:
            owners = select(CustomValue.ticket_id).where(
                CustomValue.custom_field_id == self.custom_field.id,
                CustomValue.value == value,
            )
            return select(Ticket).where(Ticket.id.in_(owners))
        if self.field_key == FieldKind.id.value:
            try:
                ticket_id = int(value.lstrip("#"))
            except ValueError:
                return None
            return select(Ticket).where(Ticket.id == ticket_id)
        return select(Ticket).where(Ticket.subject == value)

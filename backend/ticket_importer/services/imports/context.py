"""State shared by every stage while one batch runs."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ticket_importer.models.project import Project
from ticket_importer.models.user import User
from ticket_importer.services.imports.fields import FieldKind, FieldMap
from ticket_importer.services.imports.normalizer import NormalizedRow, normalize_key
from ticket_importer.services.imports.options import ImportConfiguration
from ticket_importer.services.imports.resolver import ReferenceResolver
from ticket_importer.services.imports.unique_key import UniqueKeyResolver


@dataclass
class BatchContext:
    db: Session
    config: ImportConfiguration
    field_map: FieldMap
    project: Project
    user: User
    references: ReferenceResolver
    unique: UniqueKeyResolver | None = None

    @property
    def notify(self) -> bool:
        return not self.config.suppress_notifications

    def value(self, row: NormalizedRow, kind: FieldKind, *, multiline: bool = False) -> str | None:
        return row.get(self.field_map.column(kind), multiline=multiline)

    def unique_value(self, row: NormalizedRow) -> str | None:
        if not self.config.unique_field:
            return None
        return row.get(normalize_key(self.config.unique_field))

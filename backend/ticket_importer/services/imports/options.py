"""Immutable batch configuration and its validation."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from ticket_importer.core.config import settings
from ticket_importer.core.exceptions import InvalidImportConfigurationError
from ticket_importer.services.imports.fields import FIELD_LABELS, FieldKind, FieldMap


@dataclass(frozen=True)
class ImportConfiguration:
    project_id: int
    fields_map: tuple[tuple[str, str | None], ...] = ()
    # Column (not field) whose value identifies a row's ticket.
    unique_field: str | None = None
    delimiter: str = settings.IMPORT_DEFAULT_DELIMITER
    quote_char: str = settings.IMPORT_DEFAULT_QUOTE_CHAR
    encoding: str = settings.IMPORT_DEFAULT_ENCODING
    update_existing: bool = False
    allow_cross_project_update: bool = False
    allow_closed_update: bool = False
    create_missing_categories: bool = False
    create_missing_versions: bool = False
    use_supplied_id: bool = False
    ignore_missing_references: bool = False
    suppress_notifications: bool = False
    use_anonymous: bool = False
    default_tracker_id: int | None = None
    journal_field: str | None = None
    spent_on: dt.date | None = None

    def validate(self, field_map: FieldMap) -> str | None:
        """Check option consistency; returns the unique field key, if any."""
        if len(self.delimiter or "") != 1:
            raise InvalidImportConfigurationError("Delimiter must be a single character", setting="delimiter")
        if len(self.quote_char or "") != 1:
            raise InvalidImportConfigurationError("Quote character must be a single character", setting="quote_char")

        unique_key = None
        if self.unique_field:
            unique_key = field_map.key_for(self.unique_field)
            if unique_key is None:
                raise InvalidImportConfigurationError(
                    f"Unique field column '{self.unique_field}' is not mapped to any field",
                    setting="unique_field",
                )

        if unique_key is None:
            if self.update_existing:
                raise InvalidImportConfigurationError(
                    "Specify a unique field to update existing tickets", setting="unique_field"
                )
            if field_map.has(FieldKind.parent_issue):
                raise InvalidImportConfigurationError(
                    f"Specify a unique field to import the '{FIELD_LABELS[FieldKind.parent_issue]}' column",
                    setting="unique_field",
                )
            if field_map.relations:
                relation_type = next(iter(field_map.relations))
                raise InvalidImportConfigurationError(
                    f"Specify a unique field to import the '{relation_type.label}' column",
                    setting="unique_field",
                )

        if self.use_supplied_id and not field_map.has(FieldKind.id):
            raise InvalidImportConfigurationError(
                "Map a column to the id field to use supplied ticket ids", setting="use_supplied_id"
            )
        return unique_key

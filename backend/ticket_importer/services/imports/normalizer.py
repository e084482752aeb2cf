"""Cell and key cleanup applied before any lookup."""

from __future__ import annotations

from dataclasses import dataclass, field

from ticket_importer.core.sanitize import clean_list, clean_multiline, clean_single_line
from ticket_importer.services.imports.table import RawRow


def normalize_key(value: str | None) -> str:
    """Canonical form for headers and field keys: lower case, spaces as underscores."""
    return clean_single_line(value).lower().replace(" ", "_")


def normalize_cell(value: str | None, *, multiline: bool = False) -> str | None:
    cleaned = clean_multiline(value) if multiline else clean_single_line(value)
    return cleaned or None


def split_values(value: str | None) -> list[str]:
    return clean_list(value)


@dataclass(frozen=True)
class NormalizedRow:
    position: int
    raw: RawRow
    cells: dict[str, str | None] = field(default_factory=dict)

    def get(self, column: str | None, *, multiline: bool = False) -> str | None:
        if column is None:
            return None
        value = self.cells.get(column)
        if value is None:
            return None
        return normalize_cell(value, multiline=multiline)


def normalize_row(row: RawRow) -> NormalizedRow:
    cells: dict[str, str | None] = {}
    for header, value in row.values.items():
        key = normalize_key(header)
        if key not in cells or cells[key] is None:
            cells[key] = value
    return NormalizedRow(position=row.position, raw=row, cells=cells)

"""Per-row outcomes and the batch accumulator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from ticket_importer.models.ticket import Ticket
from ticket_importer.services.imports.table import RawRow


@dataclass(frozen=True)
class Success:
    ticket: Ticket
    updated: bool = False
    warnings: tuple[str, ...] = ()
    # Missing parent/relation references skipped under ignore-missing.
    ignored: int = 0


@dataclass(frozen=True)
class Skipped:
    reason: str
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class Failed:
    diagnostics: tuple[str, ...]
    # Set when the ticket was persisted before the failure.
    ticket: Ticket | None = None
    warnings: tuple[str, ...] = ()


RowOutcome = Union[Success, Skipped, Failed]


@dataclass
class ImportResult:
    handled: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    messages: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    # failure order (1-based) -> offending row
    failed_rows: dict[int, RawRow] = field(default_factory=dict)
    affected_projects: dict[str, int] = field(default_factory=dict)
    aborted: bool = False

    def record(self, row: RawRow, outcome: RowOutcome) -> None:
        if isinstance(outcome, Success):
            self.messages.extend(outcome.warnings)
            self.handled += 1
            if outcome.updated:
                self.updated += 1
            self.skipped += outcome.ignored
            self._count_project(outcome.ticket)
        elif isinstance(outcome, Skipped):
            self.messages.extend(outcome.warnings)
            self.skipped += 1
            self.messages.append(f"Row {row.position} skipped: {outcome.reason}")
        elif isinstance(outcome, Failed):
            self.messages.extend(outcome.warnings)
            self.failed += 1
            self.failed_rows[self.failed] = row
            self.messages.append(f"Error {self.failed} (row {row.position}):")
            self.messages.extend(f"  {message}" for message in outcome.diagnostics)
            if outcome.ticket is not None:
                self._count_project(outcome.ticket)
        else:
            raise TypeError(f"unknown row outcome: {outcome!r}")

    def _count_project(self, ticket: Ticket) -> None:
        name = ticket.project.name if ticket.project is not None else str(ticket.project_id)
        self.affected_projects[name] = self.affected_projects.get(name, 0) + 1

    def failed_table(self) -> list[list[str | None]]:
        """Failed rows aligned with ``headers``, in failure order."""
        return [
            [self.failed_rows[index].values.get(header) for header in self.headers]
            for index in sorted(self.failed_rows)
        ]

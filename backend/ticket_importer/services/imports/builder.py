"""Create-or-update of one ticket from one row."""

from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy.exc import IntegrityError

from ticket_importer.core.config import settings
from ticket_importer.core.exceptions import (
    AmbiguousRecordError,
    RecordNotFoundError,
    ReferenceNotFoundError,
    TicketValidationError,
)
from ticket_importer.models.enumerations import Tracker
from ticket_importer.models.project import Project
from ticket_importer.models.ticket import Ticket
from ticket_importer.models.user import User
from ticket_importer.services.imports.context import BatchContext
from ticket_importer.services.imports.fields import FIELD_LABELS, FieldKind
from ticket_importer.services.imports.normalizer import NormalizedRow, normalize_key
from ticket_importer.services.imports.resolver import ReferenceKind
from ticket_importer.services.imports.result import Failed, RowOutcome, Skipped, Success
from ticket_importer.services.tickets import default_priority, default_status, default_tracker, save_ticket

logger = logging.getLogger(__name__)


class RowRejected(Exception):
    """Internal: carries a Failed outcome out of a helper."""

    def __init__(self, *diagnostics: str):
        self.diagnostics = diagnostics
        super().__init__("; ".join(diagnostics))


def parse_date(value: str, kind: FieldKind) -> dt.date:
    try:
        return dt.datetime.strptime(value, settings.IMPORT_DATE_FORMAT).date()
    except ValueError as exc:
        raise RowRejected(f"{FIELD_LABELS[kind]}: '{value}' is not a valid date") from exc


def _parse_number(value: str, kind: FieldKind, cast):
    try:
        return cast(value)
    except ValueError as exc:
        raise RowRejected(f"{FIELD_LABELS[kind]}: '{value}' is not a number") from exc


def _enumeration(ctx: BatchContext, row: NormalizedRow, kind: FieldKind, warnings: list[str]):
    """Resolve status/priority/tracker; an unknown name is only a warning."""
    name = ctx.value(row, kind)
    if name is None:
        return None
    try:
        return ctx.references.enumeration(ReferenceKind(kind.value), name)
    except ReferenceNotFoundError:
        warnings.append(f"Row {row.position}: {FIELD_LABELS[kind].lower()} '{name}' not found")
        return None


def _row_project(ctx: BatchContext, row: NormalizedRow) -> Project:
    name = ctx.value(row, FieldKind.project)
    if name is None:
        return ctx.project
    try:
        return ctx.references.project(name)
    except ReferenceNotFoundError:
        return ctx.project


def _actor_or_default(ctx: BatchContext, row: NormalizedRow, kind: FieldKind, default: User | None) -> User | None:
    login = ctx.value(row, kind)
    if login is None:
        return default
    return ctx.references.actor(login)


def _locate_existing(ctx: BatchContext, unique_value: str, warnings: list[str]) -> Ticket | RowOutcome | None:
    try:
        return ctx.unique.locate(unique_value, include_closed=True)
    except RecordNotFoundError:
        if ctx.config.ignore_missing_references:
            return Skipped(f"no ticket matches '{unique_value}'", warnings=tuple(warnings))
        return Failed((f"Could not update: no ticket matches '{unique_value}'",), warnings=tuple(warnings))
    except AmbiguousRecordError:
        return Failed((f"Could not update: several tickets match '{unique_value}'",), warnings=tuple(warnings))


def _new_ticket(ctx: BatchContext, row: NormalizedRow, project: Project) -> Ticket:
    ticket = Ticket(project_id=project.id)
    if ctx.config.use_supplied_id:
        supplied = ctx.value(row, FieldKind.id)
        if supplied is not None:
            ticket.id = _parse_number(supplied.lstrip("#"), FieldKind.id, int)
    return ticket


def _populate(ctx: BatchContext, row: NormalizedRow, ticket: Ticket, refs: dict, created: bool) -> None:
    db = ctx.db
    tracker: Tracker | None = refs["tracker"]
    if tracker is not None:
        ticket.tracker_id = tracker.id
    elif ticket.tracker_id is None:
        fallback_tracker = default_tracker(db)
        ticket.tracker_id = ctx.config.default_tracker_id or (fallback_tracker.id if fallback_tracker else None)

    # Required attributes keep their existing value when the row is blank.
    status = refs["status"]
    if status is not None:
        ticket.status_id = status.id
    elif ticket.status_id is None:
        tracker_obj = db.get(Tracker, ticket.tracker_id) if ticket.tracker_id else None
        fallback = default_status(db, tracker_obj)
        ticket.status_id = fallback.id if fallback else None
    priority = refs["priority"]
    if priority is not None:
        ticket.priority_id = priority.id
    elif ticket.priority_id is None:
        fallback = default_priority(db)
        ticket.priority_id = fallback.id if fallback else None
    subject = ctx.value(row, FieldKind.subject)
    if subject is not None:
        ticket.subject = subject
    if created:
        ticket.author_id = refs["author"].id

    # Optional attributes are only overwritten by non-blank cells.
    description = ctx.value(row, FieldKind.description, multiline=True)
    if description is not None:
        ticket.description = description
    if refs["category"] is not None:
        ticket.category_id = refs["category"].id
    if refs["assignee"] is not None:
        ticket.assigned_to_id = refs["assignee"].id
    if refs["version"] is not None:
        ticket.fixed_version_id = refs["version"].id
    for kind in (FieldKind.start_date, FieldKind.due_date):
        value = ctx.value(row, kind)
        if value is not None:
            setattr(ticket, kind.value, parse_date(value, kind))
    done_ratio = ctx.value(row, FieldKind.done_ratio)
    if done_ratio is not None:
        ticket.done_ratio = _parse_number(done_ratio.rstrip("%"), FieldKind.done_ratio, int)
    estimated = ctx.value(row, FieldKind.estimated_hours)
    if estimated is not None:
        ticket.estimated_hours = _parse_number(estimated, FieldKind.estimated_hours, float)


def _link_parent(ctx: BatchContext, row: NormalizedRow, ticket: Ticket, warnings: list[str]) -> int:
    """Set the parent ticket; returns 1 when a missing parent was ignored."""
    parent_value = ctx.value(row, FieldKind.parent_issue)
    if parent_value is None:
        return 0
    try:
        ticket.parent_id = ctx.unique.locate(parent_value).id
    except RecordNotFoundError:
        if ctx.config.ignore_missing_references:
            warnings.append(f"Row {row.position}: parent '{parent_value}' not found, ignored")
            return 1
        raise RowRejected(f"Could not set parent: no ticket matches '{parent_value}'") from None
    except AmbiguousRecordError:
        raise RowRejected(f"Could not set parent: several tickets match '{parent_value}'") from None
    return 0


def _journal_note(ctx: BatchContext, row: NormalizedRow) -> tuple[str | None, User]:
    if not ctx.config.journal_field:
        return None, ctx.user
    note = row.get(normalize_key(ctx.config.journal_field), multiline=True)
    author = ctx.user
    if note:
        try:
            author = _actor_or_default(ctx, row, FieldKind.user_for_spent_time, ctx.user)
        except ReferenceNotFoundError:
            author = ctx.user
    return note, author


def build_ticket(ctx: BatchContext, row: NormalizedRow) -> RowOutcome:
    """Resolve, locate or create, populate and persist one row's ticket."""
    warnings: list[str] = []
    config = ctx.config
    try:
        project = _row_project(ctx, row)
        refs = {
            "tracker": _enumeration(ctx, row, FieldKind.tracker, warnings),
            "status": _enumeration(ctx, row, FieldKind.status, warnings),
            "priority": _enumeration(ctx, row, FieldKind.priority, warnings),
            "author": _actor_or_default(ctx, row, FieldKind.author, ctx.user),
            "assignee": _actor_or_default(ctx, row, FieldKind.assigned_to, None),
            "category": None,
            "version": None,
        }
        category_name = ctx.value(row, FieldKind.category)
        if category_name is not None:
            try:
                refs["category"] = ctx.references.category(project, category_name)
            except ReferenceNotFoundError:
                warnings.append(f"Row {row.position}: category '{category_name}' not found")
        version_name = ctx.value(row, FieldKind.fixed_version)
        if version_name is not None:
            refs["version"] = ctx.references.version(project, version_name)
    except ReferenceNotFoundError as exc:
        return Failed((str(exc),), warnings=tuple(warnings))

    unique_value = ctx.unique_value(row)
    ticket: Ticket | None = None
    updated = False
    if config.update_existing and unique_value is not None:
        located = _locate_existing(ctx, unique_value, warnings)
        if isinstance(located, (Skipped, Failed)):
            return located
        ticket = located
        status = refs["status"]
        # Guarded against the batch project, whatever the row's Project column says.
        if ticket.project_id != ctx.project.id and not config.allow_cross_project_update:
            return Skipped(f"ticket #{ticket.id} belongs to another project", warnings=tuple(warnings))
        if ticket.is_closed and not config.allow_closed_update and (status is None or status.is_closed):
            return Skipped(f"ticket #{ticket.id} is closed", warnings=tuple(warnings))
        updated = True

    created = ticket is None
    ignored = 0
    try:
        if ticket is None:
            ticket = _new_ticket(ctx, row, project)
        _populate(ctx, row, ticket, refs, created)
        ignored = _link_parent(ctx, row, ticket, warnings)
        note, note_author = _journal_note(ctx, row)
        save_ticket(ctx.db, ticket, actor=ctx.user, notify=ctx.notify, notes=note, notes_author=note_author)
        ctx.db.commit()
    except RowRejected as exc:
        ctx.db.rollback()
        return Failed(exc.diagnostics, warnings=tuple(warnings))
    except TicketValidationError as exc:
        ctx.db.rollback()
        diagnostics = ["Data validation failed"]
        diagnostics.extend(f"{attr} {message}" for attr, messages in exc.errors.items() for message in messages)
        return Failed(tuple(diagnostics), warnings=tuple(warnings))
    except IntegrityError:
        ctx.db.rollback()
        if created and config.use_supplied_id and ticket is not None and ticket.id is not None:
            logger.info("Supplied ticket id %s already exists", ticket.id)
            return Failed((f"Ticket id {ticket.id} already exists",), warnings=tuple(warnings))
        raise

    if unique_value is not None and ctx.unique is not None:
        ctx.unique.remember(unique_value, ticket)
    return Success(ticket, updated=updated, warnings=tuple(warnings), ignored=ignored)

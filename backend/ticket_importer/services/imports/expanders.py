"""Multi-valued columns applied after the ticket itself is persisted.

Each expander commits its own writes, so a failure in a later one never
undoes an earlier one or the ticket attributes.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import replace

from ticket_importer.core.exceptions import (
    AmbiguousRecordError,
    AmbiguousRelationTargetError,
    CustomValueError,
    RecordNotFoundError,
    ReferenceNotFoundError,
    TicketValidationError,
)
from ticket_importer.models.custom_field import CustomField
from ticket_importer.models.enums import CustomFieldFormat
from ticket_importer.models.ticket import Ticket
from ticket_importer.services.custom_fields import value_from_keyword
from ticket_importer.services.imports.context import BatchContext
from ticket_importer.services.imports.fields import FieldKind
from ticket_importer.services.imports.normalizer import NormalizedRow, split_values
from ticket_importer.services.imports.result import Failed, RowOutcome, Success
from ticket_importer.services.tickets import (
    add_relation,
    add_watcher,
    addable_watcher_users,
    available_custom_fields,
    default_activity,
    log_time,
    set_custom_field_values,
)

logger = logging.getLogger(__name__)

TIME_VALUE_RE = re.compile(r"[-+]?[0-9]*\.?[0-9]+")


def _custom_values(ctx: BatchContext, ticket: Ticket, field: CustomField, value: str) -> list[str]:
    project = ticket.project
    if field.is_multiple:
        tokens = split_values(value)
        if field.field_format == CustomFieldFormat.version:
            return [str(ctx.references.version(project, token).id) for token in tokens]
        return value_from_keyword(ctx.db, field, ",".join(tokens), ticket)
    if field.field_format == CustomFieldFormat.version:
        return [str(ctx.references.version(project, value).id)]
    if field.field_format == CustomFieldFormat.user:
        return [str(ctx.references.actor(value).id)]
    return value_from_keyword(ctx.db, field, value, ticket)


def apply_custom_fields(ctx: BatchContext, row: NormalizedRow, ticket: Ticket) -> list[str]:
    if not ctx.field_map.custom:
        return []
    available = {cf.id for cf in available_custom_fields(ctx.db, ticket.project_id)}
    diagnostics: list[str] = []
    for field_id, column in ctx.field_map.custom.items():
        field = ctx.field_map.custom_fields[field_id]
        value = row.get(column, multiline=field.field_format == CustomFieldFormat.text)
        if value is None or field_id not in available:
            continue
        try:
            set_custom_field_values(ctx.db, ticket, field, _custom_values(ctx, ticket, field, value))
        except (ReferenceNotFoundError, CustomValueError) as exc:
            diagnostics.append(f"Could not set {field.name} to '{value}': {exc}")
    ctx.db.commit()
    return diagnostics


def apply_watchers(ctx: BatchContext, row: NormalizedRow, ticket: Ticket) -> list[str]:
    value = ctx.value(row, FieldKind.watchers)
    if value is None:
        return []
    eligible = {user.id for user in addable_watcher_users(ctx.db, ticket)}
    diagnostics: list[str] = []
    for token in split_values(value):
        try:
            user = ctx.references.actor(token)
        except ReferenceNotFoundError:
            diagnostics.append(f"Could not add watcher '{token}'")
            continue
        if user.id in ticket.watcher_user_ids or user.id not in eligible:
            continue
        add_watcher(ctx.db, ticket, user)
    ctx.db.commit()
    return diagnostics


def apply_relations(
    ctx: BatchContext,
    row: NormalizedRow,
    ticket: Ticket,
    warnings: list[str],
) -> tuple[list[str], int]:
    """Link related tickets; returns diagnostics and the count of ignored targets.

    Raises AmbiguousRelationTargetError, which ends the batch.
    """
    diagnostics: list[str] = []
    ignored = 0
    for relation_type, column in ctx.field_map.relations.items():
        # The whole cell is one unique value; subjects may contain commas.
        value = row.get(column)
        if value is None:
            continue
        try:
            target = ctx.unique.locate(value)
        except RecordNotFoundError:
            if ctx.config.ignore_missing_references:
                warnings.append(f"Row {row.position}: {relation_type.label.lower()} '{value}' not found, ignored")
                ignored += 1
            else:
                diagnostics.append(f"Could not add relation '{relation_type.label}': no ticket matches '{value}'")
            continue
        except AmbiguousRecordError as exc:
            ctx.db.commit()
            raise AmbiguousRelationTargetError(ctx.unique.label, value) from exc
        try:
            add_relation(ctx.db, ticket, target, relation_type)
        except TicketValidationError as exc:
            diagnostics.append(f"Could not add relation '{relation_type.label}' to '{value}': {exc}")
    ctx.db.commit()
    return diagnostics, ignored


def apply_time_entry(ctx: BatchContext, row: NormalizedRow, ticket: Ticket, warnings: list[str]) -> list[str]:
    value = ctx.value(row, FieldKind.spent_time)
    if value is None or ticket.id is None:
        return []
    if not TIME_VALUE_RE.fullmatch(value):
        return [f"Invalid spent time '{value}' for ticket #{ticket.id}"]

    activity = None
    activity_name = ctx.value(row, FieldKind.activity)
    if activity_name is not None:
        try:
            activity = ctx.references.activity(activity_name)
        except ReferenceNotFoundError:
            warnings.append(f"Row {row.position}: activity '{activity_name}' not found")
    if activity is None:
        activity = default_activity(ctx.db)

    try:
        user = ctx.references.actor(ctx.value(row, FieldKind.user_for_spent_time))
    except ReferenceNotFoundError:
        user = ticket.assigned_to or ctx.user

    try:
        log_time(
            ctx.db,
            ticket,
            user=user,
            hours=float(value),
            spent_on=ctx.config.spent_on or dt.date.today(),
            activity=activity,
            comments="Imported",
        )
    except TicketValidationError as exc:
        return [f"Could not log {value} hours on ticket #{ticket.id}: {exc}"]
    ctx.db.commit()
    return []


def expand(ctx: BatchContext, row: NormalizedRow, outcome: Success) -> RowOutcome:
    ticket = outcome.ticket
    warnings = list(outcome.warnings)
    diagnostics = apply_custom_fields(ctx, row, ticket)
    diagnostics += apply_watchers(ctx, row, ticket)
    relation_diagnostics, ignored = apply_relations(ctx, row, ticket, warnings)
    diagnostics += relation_diagnostics
    diagnostics += apply_time_entry(ctx, row, ticket, warnings)
    if diagnostics:
        logger.info("Row %s persisted ticket #%s with %s errors", row.position, ticket.id, len(diagnostics))
        return Failed(tuple(diagnostics), ticket=ticket, warnings=tuple(warnings))
    return replace(outcome, warnings=tuple(warnings), ignored=outcome.ignored + ignored)

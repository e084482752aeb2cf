"""Record-store helpers for tickets: validation, persistence and satellites."""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import inspect, or_, select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from ticket_importer.core.exceptions import TicketValidationError
from ticket_importer.models.custom_field import CustomField, CustomValue, custom_field_projects
from ticket_importer.models.enumerations import TicketPriority, TicketStatus, TimeEntryActivity, Tracker
from ticket_importer.models.enums import RelationType
from ticket_importer.models.project import ProjectMember
from ticket_importer.models.ticket import Journal, Ticket, TicketRelation, TicketWatcher, TimeEntry
from ticket_importer.models.user import User
from ticket_importer.services.notifications_service import notify_ticket_saved

logger = logging.getLogger(__name__)

REQUIRED_ATTRIBUTES = ("subject", "tracker_id", "status_id", "priority_id", "author_id")
JOURNALED_ATTRIBUTES = (
    "project_id",
    "tracker_id",
    "status_id",
    "priority_id",
    "assigned_to_id",
    "category_id",
    "fixed_version_id",
    "parent_id",
    "subject",
    "description",
    "start_date",
    "due_date",
    "done_ratio",
    "estimated_hours",
)
# deadlock_detected, serialization_failure, lock_not_available
TRANSIENT_SQLSTATES = {"40P01", "40001", "55P03"}
NOTIFICATION_SOURCE = "import"


def is_transient_write_error(exc: BaseException) -> bool:
    """Return True for lock contention errors worth one more attempt."""
    if not isinstance(exc, (OperationalError, DBAPIError)):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(orig or exc).lower()


def validate_ticket(ticket: Ticket) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}

    def add(attr: str, message: str) -> None:
        errors.setdefault(attr, []).append(message)

    for attr in REQUIRED_ATTRIBUTES:
        value = getattr(ticket, attr)
        if value is None or (isinstance(value, str) and not value.strip()):
            add(attr.removesuffix("_id"), "cannot be blank")
    if ticket.subject and len(ticket.subject) > 255:
        add("subject", "is too long (maximum is 255 characters)")
    if ticket.done_ratio is not None and not 0 <= ticket.done_ratio <= 100:
        add("done_ratio", "must be between 0 and 100")
    if ticket.estimated_hours is not None and ticket.estimated_hours < 0:
        add("estimated_hours", "must be greater than or equal to 0")
    if ticket.start_date and ticket.due_date and ticket.due_date < ticket.start_date:
        add("due_date", "must be greater than start date")
    if ticket.parent_id is not None and ticket.id is not None and ticket.parent_id == ticket.id:
        add("parent", "cannot be the ticket itself")
    return errors


def _journal_value(value: Any) -> Any:
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _pending_changes(ticket: Ticket) -> list[dict[str, Any]]:
    state = inspect(ticket)
    details: list[dict[str, Any]] = []
    for attr in JOURNALED_ATTRIBUTES:
        history = state.attrs[attr].history
        if not history.has_changes():
            continue
        old = history.deleted[0] if history.deleted else None
        new = history.added[0] if history.added else None
        if old == new:
            continue
        details.append({"property": attr, "old": _journal_value(old), "new": _journal_value(new)})
    return details


def _column_snapshot(ticket: Ticket) -> dict[str, Any]:
    # Only assigned values; unset columns must keep their insert defaults.
    assigned = inspect(ticket).dict
    return {attr.key: assigned[attr.key] for attr in inspect(Ticket).column_attrs if attr.key in assigned}


def save_ticket(
    db: Session,
    ticket: Ticket,
    *,
    actor: User | None,
    notify: bool = True,
    notes: str | None = None,
    notes_author: User | None = None,
) -> Ticket:
    """Validate and flush a ticket, journaling changes to an existing one.

    Raises TicketValidationError when attributes are invalid. A transient
    write conflict is retried once; the caller owns commit and rollback.
    """
    errors = validate_ticket(ticket)
    if errors:
        raise TicketValidationError(errors)

    created = not inspect(ticket).persistent
    details = [] if created else _pending_changes(ticket)
    snapshot = _column_snapshot(ticket)

    db.add(ticket)
    try:
        db.flush()
    except (OperationalError, DBAPIError) as exc:
        if not is_transient_write_error(exc):
            raise
        logger.warning("Transient write conflict on ticket %s, retrying once", ticket.id)
        db.rollback()
        for key, value in snapshot.items():
            setattr(ticket, key, value)
        db.add(ticket)
        db.flush()

    if not created:
        record_journal(db, ticket, user=notes_author or actor, notes=notes, details=details)
    if notify:
        notify_ticket_saved(db, ticket, actor=actor, created=created, source=NOTIFICATION_SOURCE)
    return ticket


def record_journal(
    db: Session,
    ticket: Ticket,
    *,
    user: User | None,
    notes: str | None = None,
    details: list[dict[str, Any]] | None = None,
) -> Journal | None:
    notes = (notes or "").strip() or None
    details = details or []
    if notes is None and not details:
        return None
    journal = Journal(ticket_id=ticket.id, user_id=user.id if user else None, notes=notes, details=details)
    db.add(journal)
    db.flush()
    return journal


def default_status(db: Session, tracker: Tracker | None = None) -> TicketStatus | None:
    if tracker is not None and tracker.default_status is not None:
        return tracker.default_status
    return db.execute(select(TicketStatus).order_by(TicketStatus.position, TicketStatus.id).limit(1)).scalar_one_or_none()


def default_tracker(db: Session) -> Tracker | None:
    return db.execute(select(Tracker).order_by(Tracker.position, Tracker.id).limit(1)).scalar_one_or_none()


def default_priority(db: Session) -> TicketPriority | None:
    return db.execute(
        select(TicketPriority).where(TicketPriority.is_default.is_(True)).limit(1)
    ).scalar_one_or_none()


def default_activity(db: Session) -> TimeEntryActivity | None:
    return db.execute(
        select(TimeEntryActivity)
        .where(TimeEntryActivity.is_default.is_(True), TimeEntryActivity.is_active.is_(True))
        .limit(1)
    ).scalar_one_or_none()


def addable_watcher_users(db: Session, ticket: Ticket) -> list[User]:
    """Active, non-anonymous members of the ticket's project."""
    stmt = (
        select(User)
        .join(ProjectMember, ProjectMember.user_id == User.id)
        .where(
            ProjectMember.project_id == ticket.project_id,
            User.is_active.is_(True),
            User.is_anonymous.is_(False),
        )
        .order_by(User.login)
    )
    return list(db.execute(stmt).scalars().all())


def add_watcher(db: Session, ticket: Ticket, user: User) -> bool:
    """Add a watcher; returns False when the user already watches the ticket."""
    if user.id in ticket.watcher_user_ids:
        return False
    ticket.watchers.append(TicketWatcher(user_id=user.id))
    db.flush()
    return True


def _canonical_relation(source: Ticket, target: Ticket, relation_type: RelationType) -> tuple[int, int, RelationType]:
    if relation_type.is_reverse:
        return target.id, source.id, relation_type.forward
    if relation_type == RelationType.relates and source.id > target.id:
        return target.id, source.id, relation_type
    return source.id, target.id, relation_type


def add_relation(db: Session, source: Ticket, target: Ticket, relation_type: RelationType) -> TicketRelation | None:
    """Link two tickets; returns None when the same link already exists."""
    if source.id == target.id:
        raise TicketValidationError({"relation": ["cannot link a ticket to itself"]})
    from_id, to_id, stored_type = _canonical_relation(source, target, relation_type)
    existing = db.execute(
        select(TicketRelation.id).where(
            TicketRelation.ticket_from_id == from_id,
            TicketRelation.ticket_to_id == to_id,
            TicketRelation.relation_type == stored_type,
        )
    ).first()
    if existing is not None:
        return None
    relation = TicketRelation(ticket_from_id=from_id, ticket_to_id=to_id, relation_type=stored_type)
    db.add(relation)
    db.flush()
    return relation


def ticket_relations(db: Session, ticket: Ticket) -> list[TicketRelation]:
    stmt = select(TicketRelation).where(
        or_(TicketRelation.ticket_from_id == ticket.id, TicketRelation.ticket_to_id == ticket.id)
    )
    return list(db.execute(stmt.order_by(TicketRelation.id)).scalars().all())


def available_custom_fields(db: Session, project_id: int | None) -> list[CustomField]:
    stmt = select(CustomField).order_by(CustomField.position, CustomField.id)
    if project_id is not None:
        linked = select(custom_field_projects.c.custom_field_id).where(custom_field_projects.c.project_id == project_id)
        stmt = stmt.where(or_(CustomField.is_for_all.is_(True), CustomField.id.in_(linked)))
    return list(db.execute(stmt).scalars().all())


def custom_field_values(ticket: Ticket, field: CustomField) -> list[str]:
    return [cv.value for cv in ticket.custom_values if cv.custom_field_id == field.id and cv.value is not None]


def set_custom_field_values(db: Session, ticket: Ticket, field: CustomField, values: list[str]) -> None:
    """Replace the ticket's values for one field."""
    unique: list[str] = []
    for value in values:
        if value not in unique:
            unique.append(value)
    if not field.is_multiple:
        unique = unique[:1]
    if custom_field_values(ticket, field) == unique:
        return
    kept = [cv for cv in ticket.custom_values if cv.custom_field_id != field.id]
    ticket.custom_values = kept + [CustomValue(custom_field_id=field.id, value=value) for value in unique]
    db.flush()


def log_time(
    db: Session,
    ticket: Ticket,
    *,
    user: User,
    hours: float,
    spent_on: dt.date,
    activity: TimeEntryActivity | None = None,
    comments: str | None = None,
) -> TimeEntry:
    if hours < 0:
        raise TicketValidationError({"hours": ["must be greater than or equal to 0"]})
    if activity is None:
        raise TicketValidationError({"activity": ["cannot be blank"]})
    entry = TimeEntry(
        project_id=ticket.project_id,
        ticket_id=ticket.id,
        user_id=user.id,
        activity_id=activity.id,
        spent_on=spent_on,
        hours=hours,
        comments=comments,
    )
    db.add(entry)
    db.flush()
    return entry

"""Service helpers for in-app notifications raised by ticket changes."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from ticket_importer.models.notification import Notification
from ticket_importer.models.ticket import Ticket
from ticket_importer.models.user import User

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: UUID,
    title: str,
    body: str | None = None,
    severity: str = "info",
    ticket_id: int | None = None,
    source: str | None = None,
) -> Notification:
    # Flushed with the ticket; the caller owns the transaction.
    record = Notification(
        user_id=user_id,
        ticket_id=ticket_id,
        title=title,
        body=body,
        severity=severity,
        source=source,
    )
    db.add(record)
    return record


def notify_ticket_saved(
    db: Session,
    ticket: Ticket,
    *,
    actor: User | None,
    created: bool,
    source: str | None = None,
) -> list[Notification]:
    """Notify the assignee and the watchers of a ticket, never the actor."""
    recipients: list[UUID] = []
    if ticket.assigned_to_id:
        recipients.append(ticket.assigned_to_id)
    for user_id in sorted(ticket.watcher_user_ids, key=str):
        if user_id not in recipients:
            recipients.append(user_id)
    actor_id = actor.id if actor else None

    verb = "created" if created else "updated"
    title = f"Ticket #{ticket.id} {verb}"
    records = [
        create_notification(
            db,
            user_id=user_id,
            title=title,
            body=ticket.subject,
            ticket_id=ticket.id,
            source=source,
        )
        for user_id in recipients
        if user_id != actor_id
    ]
    if records:
        logger.debug("Queued %s notifications for ticket %s", len(records), ticket.id)
    return records

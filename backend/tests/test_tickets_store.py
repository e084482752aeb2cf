from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ticket_importer.core.exceptions import CustomValueError, TicketValidationError
from ticket_importer.models.enums import CustomFieldFormat, RelationType
from ticket_importer.models.notification import Notification
from ticket_importer.models.project import Version
from ticket_importer.models.ticket import Journal, Ticket, TicketRelation
from ticket_importer.services import tickets as tickets_service
from ticket_importer.services.custom_fields import value_from_keyword


def test_validate_ticket_reports_messages_per_attribute() -> None:
    ticket = Ticket(subject="  ", done_ratio=150, start_date=dt.date(2026, 3, 2), due_date=dt.date(2026, 3, 1))

    errors = tickets_service.validate_ticket(ticket)

    assert errors["subject"] == ["cannot be blank"]
    assert {"tracker", "status", "priority", "author"} <= set(errors)
    assert errors["done_ratio"] == ["must be between 0 and 100"]
    assert errors["due_date"] == ["must be greater than start date"]


def test_save_ticket_journals_changes_and_notifies_assignee(db, seed, make_ticket) -> None:
    ticket = make_ticket("Before", assigned_to_id=seed.jsmith.id)

    ticket.subject = "After"
    tickets_service.save_ticket(db, ticket, actor=seed.admin, notes="Renamed by import")
    db.commit()

    journal = db.execute(select(Journal).where(Journal.ticket_id == ticket.id)).scalar_one()
    assert journal.notes == "Renamed by import"
    assert journal.user_id == seed.admin.id
    assert journal.details == [{"property": "subject", "old": "Before", "new": "After"}]
    notifications = db.execute(select(Notification).where(Notification.user_id == seed.jsmith.id)).scalars().all()
    assert [n.title for n in notifications] == [f"Ticket #{ticket.id} updated"]
    assert notifications[0].source == "import"


def test_save_ticket_without_notify_and_without_changes_writes_nothing_extra(db, seed, make_ticket) -> None:
    ticket = make_ticket("Quiet", assigned_to_id=seed.jsmith.id)

    tickets_service.save_ticket(db, ticket, actor=seed.admin, notify=False)
    db.commit()

    assert db.execute(select(Journal)).scalars().all() == []
    assert db.execute(select(Notification)).scalars().all() == []


def test_save_ticket_retries_once_on_transient_conflict(db, seed, monkeypatch) -> None:
    original_flush = db.flush
    calls = {"count": 0}

    def flaky_flush(*args, **kwargs):  # noqa: ANN002, ANN003
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("INSERT INTO tickets", {}, Exception("database is locked"))
        return original_flush(*args, **kwargs)

    monkeypatch.setattr(db, "flush", flaky_flush)
    ticket = Ticket(
        subject="Retried",
        project_id=seed.project.id,
        tracker_id=seed.bug.id,
        status_id=seed.new.id,
        priority_id=seed.normal.id,
        author_id=seed.admin.id,
    )

    tickets_service.save_ticket(db, ticket, actor=seed.admin, notify=False)
    db.commit()

    assert ticket.id is not None
    assert db.get(Ticket, ticket.id).subject == "Retried"


def test_save_ticket_does_not_retry_other_store_errors(db, seed, monkeypatch) -> None:
    def broken_flush(*args, **kwargs):  # noqa: ANN002, ANN003
        raise OperationalError("INSERT INTO tickets", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "flush", broken_flush)
    ticket = Ticket(
        subject="Broken",
        project_id=seed.project.id,
        tracker_id=seed.bug.id,
        status_id=seed.new.id,
        priority_id=seed.normal.id,
        author_id=seed.admin.id,
    )

    with pytest.raises(OperationalError):
        tickets_service.save_ticket(db, ticket, actor=seed.admin, notify=False)


def test_add_relation_stores_reverse_types_swapped_and_ignores_duplicates(db, seed, make_ticket) -> None:
    first = make_ticket("First")
    second = make_ticket("Second")

    relation = tickets_service.add_relation(db, first, second, RelationType.blocked)
    db.commit()

    assert (relation.ticket_from_id, relation.ticket_to_id) == (second.id, first.id)
    assert relation.relation_type == RelationType.blocks
    assert tickets_service.add_relation(db, second, first, RelationType.blocks) is None
    assert tickets_service.add_relation(db, first, second, RelationType.blocked) is None
    assert len(db.execute(select(TicketRelation)).scalars().all()) == 1
    with pytest.raises(TicketValidationError):
        tickets_service.add_relation(db, first, first, RelationType.relates)


def test_addable_watchers_are_active_members(db, seed, make_ticket) -> None:
    ticket = make_ticket("Watched")
    seed.dlopper.is_active = False
    db.commit()

    logins = [user.login for user in tickets_service.addable_watcher_users(db, ticket)]

    assert logins == ["admin", "jsmith"]
    assert tickets_service.add_watcher(db, ticket, seed.jsmith) is True
    assert tickets_service.add_watcher(db, ticket, seed.jsmith) is False


def test_set_custom_field_values_replaces_previous_values(db, seed, make_ticket) -> None:
    ticket = make_ticket("Tagged")

    tickets_service.set_custom_field_values(db, ticket, seed.tags, ["tag1", "tag2", "tag1"])
    tickets_service.set_custom_field_values(db, ticket, seed.tags, ["tag3"])
    db.commit()

    assert tickets_service.custom_field_values(ticket, seed.tags) == ["tag3"]


def test_defaults_come_from_enumeration_flags_and_positions(db, seed) -> None:
    assert tickets_service.default_tracker(db) is seed.bug
    assert tickets_service.default_priority(db) is seed.normal
    assert tickets_service.default_activity(db) is seed.development
    assert tickets_service.default_status(db, seed.feature) is seed.new


def test_log_time_requires_non_negative_hours(db, seed, make_ticket) -> None:
    ticket = make_ticket("Timed")

    entry = tickets_service.log_time(
        db, ticket, user=seed.jsmith, hours=1.5, spent_on=dt.date(2026, 10, 1), activity=seed.development
    )
    assert entry.project_id == seed.project.id
    with pytest.raises(TicketValidationError):
        tickets_service.log_time(
            db, ticket, user=seed.jsmith, hours=-1, spent_on=dt.date(2026, 10, 1), activity=seed.development
        )


def test_value_from_keyword_converts_by_format(db, seed, make_ticket) -> None:
    ticket = make_ticket("Converted")
    db.add(Version(project_id=seed.project.id, name="1.0"))
    db.commit()
    seed.external_ref.field_format = CustomFieldFormat.bool

    assert value_from_keyword(db, seed.tags, "TAG2, tag1", ticket) == ["tag2", "tag1"]
    assert value_from_keyword(db, seed.external_ref, "Yes", ticket) == ["1"]
    with pytest.raises(CustomValueError):
        value_from_keyword(db, seed.tags, "tag1, nope", ticket)
    with pytest.raises(CustomValueError):
        value_from_keyword(db, seed.external_ref, "maybe", ticket)

    seed.external_ref.field_format = CustomFieldFormat.date
    assert value_from_keyword(db, seed.external_ref, "2026-10-19", ticket) == ["2026-10-19"]
    seed.external_ref.field_format = CustomFieldFormat.user
    assert value_from_keyword(db, seed.external_ref, "JSmith", ticket) == [str(seed.jsmith.id)]
    seed.external_ref.field_format = CustomFieldFormat.version
    version_id = db.execute(select(Version.id).where(Version.name == "1.0")).scalar_one()
    assert value_from_keyword(db, seed.external_ref, "1.0", ticket) == [str(version_id)]

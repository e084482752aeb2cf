"""Ticket (work item) model and its satellites: relations, watchers, journals, time entries."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticket_importer.db.base import Base
from ticket_importer.models.enums import RelationType


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    # Required attributes are enforced by services.tickets.validate_ticket so
    # that a missing value surfaces as a per-attribute message, not a DB error.
    tracker_id: Mapped[int | None] = mapped_column(ForeignKey("trackers.id"), nullable=True)
    status_id: Mapped[int | None] = mapped_column(ForeignKey("ticket_statuses.id"), nullable=True, index=True)
    priority_id: Mapped[int | None] = mapped_column(ForeignKey("ticket_priorities.id"), nullable=True)
    author_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    assigned_to_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("ticket_categories.id", ondelete="SET NULL"), nullable=True)
    fixed_version_id: Mapped[int | None] = mapped_column(ForeignKey("versions.id", ondelete="SET NULL"), nullable=True)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True, index=True)
    subject: Mapped[str] = mapped_column(String(255), default="", nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    done_ratio: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    estimated_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project")
    tracker = relationship("Tracker")
    status = relationship("TicketStatus")
    priority = relationship("TicketPriority")
    author = relationship("User", foreign_keys=[author_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    category = relationship("Category")
    fixed_version = relationship("Version")
    parent = relationship("Ticket", remote_side=[id])

    watchers: Mapped[list[TicketWatcher]] = relationship(
        "TicketWatcher",
        back_populates="ticket",
        cascade="all, delete-orphan",
    )
    custom_values: Mapped[list[CustomValue]] = relationship(
        "CustomValue",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="CustomValue.id",
    )
    journals: Mapped[list[Journal]] = relationship(
        "Journal",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="Journal.created_at",
    )
    time_entries: Mapped[list[TimeEntry]] = relationship(
        "TimeEntry",
        back_populates="ticket",
        cascade="all, delete-orphan",
    )

    @property
    def is_closed(self) -> bool:
        return bool(self.status is not None and self.status.is_closed)

    @property
    def watcher_user_ids(self) -> set[UUID]:
        return {watcher.user_id for watcher in self.watchers}


class TicketRelation(Base):
    __tablename__ = "ticket_relations"
    __table_args__ = (
        UniqueConstraint("ticket_from_id", "ticket_to_id", "relation_type", name="uq_ticket_relations_from_to_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_from_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    ticket_to_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    # Only forward types are stored; see RelationType.forward.
    relation_type: Mapped[RelationType] = mapped_column(
        Enum(RelationType, name="relation_type", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    ticket_from = relationship("Ticket", foreign_keys=[ticket_from_id])
    ticket_to = relationship("Ticket", foreign_keys=[ticket_to_id])


class TicketWatcher(Base):
    __tablename__ = "ticket_watchers"
    __table_args__ = (UniqueConstraint("ticket_id", "user_id", name="uq_ticket_watchers_ticket_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    ticket: Mapped[Ticket] = relationship("Ticket", back_populates="watchers")
    user = relationship("User")


class Journal(Base):
    __tablename__ = "journals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"property": "subject", "old": "...", "new": "..."}]
    details: Mapped[list[dict]] = mapped_column(JSON, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    ticket: Mapped[Ticket] = relationship("Ticket", back_populates="journals")
    user = relationship("User")


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    activity_id: Mapped[int | None] = mapped_column(ForeignKey("time_entry_activities.id"), nullable=True)
    spent_on: Mapped[dt.date] = mapped_column(Date, nullable=False)
    hours: Mapped[float] = mapped_column(Float, nullable=False)
    comments: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    ticket: Mapped[Ticket] = relationship("Ticket", back_populates="time_entries")
    user = relationship("User")
    activity = relationship("TimeEntryActivity")

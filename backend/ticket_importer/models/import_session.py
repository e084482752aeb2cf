"""Staged CSV import awaiting its column mapping."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ticket_importer.db.base import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ImportSession(Base):
    __tablename__ = "import_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # One staged import per user; staging a new file replaces the old one.
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)
    project_id: Mapped[int | None] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    encoding: Mapped[str] = mapped_column(String(32), default="utf-8", nullable=False)
    col_sep: Mapped[str] = mapped_column(String(4), default=",", nullable=False)
    quote_char: Mapped[str] = mapped_column(String(4), default='"', nullable=False)
    csv_data: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

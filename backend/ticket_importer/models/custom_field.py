"""Store-defined custom attributes for tickets and their values."""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, Enum, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticket_importer.db.base import Base
from ticket_importer.models.enums import CustomFieldFormat

custom_field_projects = Table(
    "custom_field_projects",
    Base.metadata,
    Column("custom_field_id", ForeignKey("custom_fields.id", ondelete="CASCADE"), primary_key=True),
    Column("project_id", ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
)


class CustomField(Base):
    __tablename__ = "custom_fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    field_format: Mapped[CustomFieldFormat] = mapped_column(
        Enum(CustomFieldFormat, name="custom_field_format", values_callable=lambda x: [e.value for e in x]),
        default=CustomFieldFormat.string,
    )
    is_multiple: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_for_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    possible_values: Mapped[list[str]] = mapped_column(JSON, default=list)
    position: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    projects = relationship("Project", secondary=custom_field_projects)


class CustomValue(Base):
    __tablename__ = "custom_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    custom_field_id: Mapped[int] = mapped_column(ForeignKey("custom_fields.id", ondelete="CASCADE"), index=True)
    # Multi-valued fields store one row per value.
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    ticket = relationship("Ticket", back_populates="custom_values")
    custom_field: Mapped[CustomField] = relationship("CustomField")

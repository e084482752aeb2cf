"""Convenience imports so every table is registered on Base.metadata."""

from ticket_importer.models.user import User
from ticket_importer.models.project import Category, Project, ProjectMember, Version
from ticket_importer.models.enumerations import TicketPriority, TicketStatus, TimeEntryActivity, Tracker
from ticket_importer.models.ticket import Journal, Ticket, TicketRelation, TicketWatcher, TimeEntry
from ticket_importer.models.custom_field import CustomField, CustomValue
from ticket_importer.models.notification import Notification
from ticket_importer.models.import_session import ImportSession

__all__ = [
    "Category",
    "CustomField",
    "CustomValue",
    "ImportSession",
    "Journal",
    "Notification",
    "Project",
    "ProjectMember",
    "Ticket",
    "TicketPriority",
    "TicketRelation",
    "TicketStatus",
    "TicketWatcher",
    "TimeEntry",
    "TimeEntryActivity",
    "Tracker",
    "User",
    "Version",
]

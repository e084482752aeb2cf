"""Centralized RBAC policy helpers."""

from __future__ import annotations

from ticket_importer.models.enums import UserRole
from ticket_importer.models.user import User

Permission = str

ROLE_PERMISSIONS: dict[UserRole, set[Permission]] = {
    UserRole.admin: {
        "view_tickets",
        "create_ticket",
        "edit_ticket",
        "import_tickets",
        "watch_tickets",
        "log_time",
    },
    UserRole.agent: {
        "view_tickets",
        "create_ticket",
        "edit_ticket",
        "import_tickets",
        "watch_tickets",
        "log_time",
    },
    UserRole.user: {
        "view_tickets",
        "create_ticket",
        "watch_tickets",
    },
    UserRole.viewer: {
        "view_tickets",
    },
}


def has_permission(user: User, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(user.role, set())

"""Shared enum values used by the database models and schemas."""

from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    admin = "admin"
    agent = "agent"
    user = "user"
    viewer = "viewer"


class VersionStatus(str, enum.Enum):
    open = "open"
    locked = "locked"
    closed = "closed"


class VersionSharing(str, enum.Enum):
    none = "none"
    system = "system"


class CustomFieldFormat(str, enum.Enum):
    string = "string"
    text = "text"
    int = "int"
    float = "float"
    date = "date"
    bool = "bool"
    list = "list"
    enumeration = "enumeration"
    user = "user"
    version = "version"


class RelationType(str, enum.Enum):
    relates = "relates"
    duplicates = "duplicates"
    duplicated = "duplicated"
    blocks = "blocks"
    blocked = "blocked"
    precedes = "precedes"
    follows = "follows"
    copied_to = "copied_to"
    copied_from = "copied_from"

    @property
    def label(self) -> str:
        return RELATION_LABELS[self]

    @property
    def is_reverse(self) -> bool:
        return self in REVERSE_RELATIONS

    @property
    def forward(self) -> RelationType:
        """Type under which the relation is stored (reverse types are swapped)."""
        return REVERSE_RELATIONS.get(self, self)


RELATION_LABELS = {
    RelationType.relates: "Related to",
    RelationType.duplicates: "Is duplicate of",
    RelationType.duplicated: "Has duplicate",
    RelationType.blocks: "Blocks",
    RelationType.blocked: "Blocked by",
    RelationType.precedes: "Precedes",
    RelationType.follows: "Follows",
    RelationType.copied_to: "Copied to",
    RelationType.copied_from: "Copied from",
}

# reverse type -> forward type stored with ticket_from/ticket_to swapped
REVERSE_RELATIONS = {
    RelationType.duplicated: RelationType.duplicates,
    RelationType.blocked: RelationType.blocks,
    RelationType.follows: RelationType.precedes,
    RelationType.copied_from: RelationType.copied_to,
}

"""Semantic field vocabulary and the column mapping built from it."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ticket_importer.core.exceptions import InvalidImportConfigurationError
from ticket_importer.models.custom_field import CustomField
from ticket_importer.models.enums import RelationType
from ticket_importer.services.imports.normalizer import normalize_key


class FieldKind(str, enum.Enum):
    id = "id"
    subject = "subject"
    assigned_to = "assigned_to"
    fixed_version = "fixed_version"
    author = "author"
    description = "description"
    category = "category"
    priority = "priority"
    tracker = "tracker"
    status = "status"
    start_date = "start_date"
    due_date = "due_date"
    done_ratio = "done_ratio"
    estimated_hours = "estimated_hours"
    parent_issue = "parent_issue"
    watchers = "watchers"
    project = "project"
    spent_time = "spent_time"
    activity = "activity"
    user_for_spent_time = "user_for_spent_time"


FIELD_LABELS = {
    FieldKind.id: "#",
    FieldKind.subject: "Subject",
    FieldKind.assigned_to: "Assignee",
    FieldKind.fixed_version: "Target version",
    FieldKind.author: "Author",
    FieldKind.description: "Description",
    FieldKind.category: "Category",
    FieldKind.priority: "Priority",
    FieldKind.tracker: "Tracker",
    FieldKind.status: "Status",
    FieldKind.start_date: "Start date",
    FieldKind.due_date: "Due date",
    FieldKind.done_ratio: "% Done",
    FieldKind.estimated_hours: "Estimated time",
    FieldKind.parent_issue: "Parent task",
    FieldKind.watchers: "Watchers",
    FieldKind.project: "Project",
    FieldKind.spent_time: "Spent time",
    FieldKind.activity: "Activity",
    FieldKind.user_for_spent_time: "User for spent time",
}


@dataclass(frozen=True)
class FieldChoice:
    key: str
    label: str


@dataclass(frozen=True)
class FieldMap:
    """Dispatch table resolved once from the operator's column mapping.

    Columns are stored in normalized form (see ``normalize_key``).
    """

    builtins: dict[FieldKind, str] = field(default_factory=dict)
    custom: dict[int, str] = field(default_factory=dict)
    relations: dict[RelationType, str] = field(default_factory=dict)
    custom_fields: dict[int, CustomField] = field(default_factory=dict)
    keys: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        pairs: Iterable[tuple[str, str | None]],
        custom_fields: Sequence[CustomField],
    ) -> FieldMap:
        by_name = {normalize_key(cf.name): cf for cf in custom_fields}
        relation_keys = {rt.value: rt for rt in RelationType}
        builtins: dict[FieldKind, str] = {}
        custom: dict[int, str] = {}
        relations: dict[RelationType, str] = {}
        used: dict[int, CustomField] = {}
        keys: dict[str, str] = {}

        for column, key in pairs:
            column_key = normalize_key(column)
            field_key = normalize_key(key)
            if not column_key or not field_key:
                continue
            if field_key in keys.values():
                raise InvalidImportConfigurationError(
                    f"Field '{key}' is mapped to more than one column", setting="fields_map"
                )
            if field_key in FieldKind._value2member_map_:
                builtins[FieldKind(field_key)] = column_key
            elif field_key in relation_keys:
                relations[relation_keys[field_key]] = column_key
            elif field_key in by_name:
                cf = by_name[field_key]
                custom[cf.id] = column_key
                used[cf.id] = cf
            else:
                raise InvalidImportConfigurationError(
                    f"Unknown field '{key}' for column '{column}'", setting="fields_map"
                )
            keys[column_key] = field_key
        return cls(builtins=builtins, custom=custom, relations=relations, custom_fields=used, keys=keys)

    def column(self, kind: FieldKind) -> str | None:
        return self.builtins.get(kind)

    def has(self, kind: FieldKind) -> bool:
        return kind in self.builtins

    def key_for(self, column: str | None) -> str | None:
        if column is None:
            return None
        return self.keys.get(normalize_key(column))


def field_choices(custom_fields: Sequence[CustomField]) -> list[FieldChoice]:
    choices = [FieldChoice(key=kind.value, label=FIELD_LABELS[kind]) for kind in FieldKind]
    choices.extend(FieldChoice(key=cf.name, label=cf.name) for cf in custom_fields)
    choices.extend(FieldChoice(key=rt.value, label=rt.label) for rt in RelationType)
    return sorted(choices, key=lambda c: c.label.lower())


def match_column(header: str, choices: Sequence[FieldChoice]) -> str | None:
    """Suggest a field key for a header by key or label, ignoring case and spaces."""
    wanted = normalize_key(header)
    if not wanted:
        return None
    for choice in choices:
        if wanted in {normalize_key(choice.key), normalize_key(choice.label)}:
            return choice.key
    return None

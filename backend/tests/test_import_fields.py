from __future__ import annotations

import pytest

from ticket_importer.core.exceptions import InvalidImportConfigurationError
from ticket_importer.models.custom_field import CustomField
from ticket_importer.models.enums import CustomFieldFormat, RelationType
from ticket_importer.services.imports.fields import FieldKind, FieldMap, field_choices, match_column
from ticket_importer.services.imports.normalizer import normalize_key, normalize_row, split_values
from ticket_importer.services.imports.options import ImportConfiguration
from ticket_importer.services.imports.table import RawRow


def _custom_fields() -> list[CustomField]:
    return [
        CustomField(id=7, name="Tags", field_format=CustomFieldFormat.list, is_multiple=True),
        CustomField(id=8, name="Affected versions", field_format=CustomFieldFormat.version, is_multiple=True),
    ]


def test_normalize_key_ignores_case_and_spaces() -> None:
    assert normalize_key("  Due  Date ") == "due_date"
    assert normalize_key("Affected versions") == "affected_versions"
    assert normalize_key(None) == ""


def test_split_values_trims_and_deduplicates() -> None:
    assert split_values(" tag1 ,tag2,, TAG1 ") == ["tag1", "tag2"]
    assert split_values(None) == []


def test_normalize_row_keys_cells_by_normalized_header() -> None:
    row = normalize_row(RawRow(position=3, values={"Due Date": " 2026-01-02 ", "Subject": "  Hello   world "}))

    assert row.position == 3
    assert row.get("due_date") == "2026-01-02"
    assert row.get("subject") == "Hello world"
    assert row.get("missing") is None


def test_field_map_build_dispatches_builtin_custom_and_relation_keys() -> None:
    field_map = FieldMap.build(
        [
            ("#", "id"),
            ("Subject", "subject"),
            ("Tags", "tags"),
            ("Affected Versions", "Affected versions"),
            ("Blocked by", "blocked"),
            ("Ignored", ""),
            ("Also ignored", None),
        ],
        _custom_fields(),
    )

    assert field_map.column(FieldKind.id) == "#"
    assert field_map.column(FieldKind.subject) == "subject"
    assert field_map.custom == {7: "tags", 8: "affected_versions"}
    assert field_map.relations == {RelationType.blocked: "blocked_by"}
    assert field_map.key_for("SUBJECT") == "subject"
    assert field_map.key_for("Ignored") is None


def test_field_map_build_rejects_unknown_and_duplicate_fields() -> None:
    with pytest.raises(InvalidImportConfigurationError):
        FieldMap.build([("Colour", "colour")], _custom_fields())
    with pytest.raises(InvalidImportConfigurationError):
        FieldMap.build([("Title", "subject"), ("Summary", "subject")], _custom_fields())


def test_match_column_suggests_keys_from_labels_and_keys() -> None:
    choices = field_choices(_custom_fields())

    assert match_column("Assignee", choices) == FieldKind.assigned_to.value
    assert match_column("due date", choices) == FieldKind.due_date.value
    assert match_column("#", choices) == FieldKind.id.value
    assert match_column("TAGS", choices) == "Tags"
    assert match_column("Blocked by", choices) == RelationType.blocked.value
    assert match_column("Something else", choices) is None


def test_configuration_requires_unique_field_for_update_parent_and_relations() -> None:
    plain = FieldMap.build([("Subject", "subject")], [])
    with_parent = FieldMap.build([("Subject", "subject"), ("Parent", "parent_issue")], [])
    with_relation = FieldMap.build([("Subject", "subject"), ("Follows", "follows")], [])

    assert ImportConfiguration(project_id=1).validate(plain) is None
    with pytest.raises(InvalidImportConfigurationError):
        ImportConfiguration(project_id=1, update_existing=True).validate(plain)
    with pytest.raises(InvalidImportConfigurationError):
        ImportConfiguration(project_id=1).validate(with_parent)
    with pytest.raises(InvalidImportConfigurationError) as exc_info:
        ImportConfiguration(project_id=1).validate(with_relation)
    assert "Follows" in exc_info.value.message

    assert ImportConfiguration(project_id=1, unique_field="subject").validate(with_parent) == "subject"


def test_configuration_rejects_unmapped_unique_column_and_missing_id_mapping() -> None:
    field_map = FieldMap.build([("Subject", "subject")], [])

    with pytest.raises(InvalidImportConfigurationError):
        ImportConfiguration(project_id=1, unique_field="#").validate(field_map)
    with pytest.raises(InvalidImportConfigurationError) as exc_info:
        ImportConfiguration(project_id=1, use_supplied_id=True).validate(field_map)
    assert exc_info.value.details == {"setting": "use_supplied_id"}

"""Pydantic schemas for CSV ticket imports."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, field_validator

from ticket_importer.core.sanitize import clean_single_line
from ticket_importer.services.imports import ImportConfiguration, ImportPreview, ImportResult


class FieldChoiceOut(BaseModel):
    key: str
    label: str


class ImportPreviewOut(BaseModel):
    token: str
    filename: str | None = None
    headers: list[str]
    samples: list[list[str]]
    choices: list[FieldChoiceOut]
    suggested: dict[str, str | None]

    @classmethod
    def from_preview(cls, preview: ImportPreview) -> ImportPreviewOut:
        return cls(
            token=preview.token,
            filename=preview.filename,
            headers=preview.headers,
            samples=preview.samples,
            choices=[FieldChoiceOut(key=c.key, label=c.label) for c in preview.choices],
            suggested=preview.suggested,
        )


class FieldMapping(BaseModel):
    column: str = Field(..., min_length=1, max_length=255)
    field: str | None = Field(default=None, max_length=255)

    @field_validator("field", mode="before")
    @classmethod
    def normalize_field(cls, value: str | None) -> str | None:
        cleaned = clean_single_line(value)
        return cleaned or None


class ImportRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)
    fields_map: list[FieldMapping] = Field(default_factory=list)
    unique_field: str | None = Field(default=None, max_length=255)
    update_issue: bool = False
    update_other_project: bool = False
    allow_closed_issues_update: bool = False
    add_categories: bool = False
    add_versions: bool = False
    use_issue_id: bool = False
    ignore_non_exist: bool = False
    disable_send_emails: bool = False
    use_anonymous: bool = False
    default_tracker: int | None = None
    journal_field: str | None = Field(default=None, max_length=255)
    spent_on: dt.date | None = None

    @field_validator("unique_field", "journal_field", mode="before")
    @classmethod
    def normalize_optional(cls, value: str | None) -> str | None:
        cleaned = clean_single_line(value)
        return cleaned or None

    def to_configuration(self, project_id: int) -> ImportConfiguration:
        return ImportConfiguration(
            project_id=project_id,
            fields_map=tuple((item.column, item.field) for item in self.fields_map),
            unique_field=self.unique_field,
            update_existing=self.update_issue,
            allow_cross_project_update=self.update_other_project,
            allow_closed_update=self.allow_closed_issues_update,
            create_missing_categories=self.add_categories,
            create_missing_versions=self.add_versions,
            use_supplied_id=self.use_issue_id,
            ignore_missing_references=self.ignore_non_exist,
            suppress_notifications=self.disable_send_emails,
            use_anonymous=self.use_anonymous,
            default_tracker_id=self.default_tracker,
            journal_field=self.journal_field,
            spent_on=self.spent_on,
        )


class ImportResultOut(BaseModel):
    handled: int
    updated: int
    skipped: int
    failed: int
    aborted: bool
    messages: list[str]
    headers: list[str]
    failed_rows: list[list[str | None]]
    affected_projects: dict[str, int]

    @classmethod
    def from_result(cls, result: ImportResult) -> ImportResultOut:
        return cls(
            handled=result.handled,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            aborted=result.aborted,
            messages=result.messages,
            headers=result.headers,
            failed_rows=result.failed_table(),
            affected_projects=result.affected_projects,
        )

"""CSV ticket import endpoints: stage an upload, then run it."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Path, Query, Request
from sqlalchemy.orm import Session

from ticket_importer.core.deps import require_permission
from ticket_importer.core.exceptions import NotFoundError
from ticket_importer.db.session import get_db
from ticket_importer.models.project import Project
from ticket_importer.models.user import User
from ticket_importer.schemas.imports import ImportPreviewOut, ImportRequest, ImportResultOut
from ticket_importer.services.imports import run_import, stage_upload

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if not project:
        raise NotFoundError("project_not_found", details={"project_id": project_id})
    return project


@router.post("/projects/{project_id}/imports", response_model=ImportPreviewOut)
async def upload_import(
    request: Request,
    project_id: int = Path(..., ge=1),
    encoding: str | None = Query(default=None, max_length=32),
    delimiter: str | None = Query(default=None, max_length=1),
    quote_char: str | None = Query(default=None, max_length=1),
    filename: str | None = Query(default=None, max_length=255),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("import_tickets")),
) -> ImportPreviewOut:
    project = _get_project(db, project_id)
    payload = await request.body()
    preview = stage_upload(
        db,
        current_user,
        project,
        payload=payload,
        encoding=encoding,
        delimiter=delimiter,
        quote_char=quote_char,
        filename=filename,
    )
    return ImportPreviewOut.from_preview(preview)


@router.post("/projects/{project_id}/imports/result", response_model=ImportResultOut)
def import_result(
    payload: ImportRequest = Body(...),
    project_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("import_tickets")),
) -> ImportResultOut:
    project = _get_project(db, project_id)
    result = run_import(
        db,
        user=current_user,
        project=project,
        config=payload.to_configuration(project.id),
        token=payload.token,
    )
    return ImportResultOut.from_result(result)

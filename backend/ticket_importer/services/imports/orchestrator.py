"""Batch driver: row loop, failure isolation and finalization."""

from __future__ import annotations

import logging
from dataclasses import replace

from sqlalchemy.orm import Session

from ticket_importer.core.exceptions import AmbiguousRelationTargetError, MalformedTableError
from ticket_importer.models.project import Project
from ticket_importer.models.user import User
from ticket_importer.services.imports.builder import build_ticket
from ticket_importer.services.imports.cache import ReferenceCache, UniqueValueCache
from ticket_importer.services.imports.context import BatchContext
from ticket_importer.services.imports.expanders import expand
from ticket_importer.services.imports.fields import FieldMap
from ticket_importer.services.imports.normalizer import NormalizedRow, normalize_row
from ticket_importer.services.imports.options import ImportConfiguration
from ticket_importer.services.imports.resolver import ReferenceResolver
from ticket_importer.services.imports.result import Failed, ImportResult, RowOutcome, Success
from ticket_importer.services.imports.staging import discard_session, load_staged_session, purge_stale_sessions
from ticket_importer.services.imports.table import iter_rows
from ticket_importer.services.imports.unique_key import UniqueKeyResolver
from ticket_importer.services.tickets import available_custom_fields

logger = logging.getLogger(__name__)


def prepare_batch(db: Session, *, user: User, project: Project, config: ImportConfiguration) -> BatchContext:
    """Resolve the mapping once and validate the options before any row is read."""
    custom_fields = available_custom_fields(db, project.id)
    field_map = FieldMap.build(config.fields_map, custom_fields)
    unique_key = config.validate(field_map)
    unique = None
    if unique_key is not None:
        unique = UniqueKeyResolver.for_field(db, unique_key, custom_fields, UniqueValueCache())
    references = ReferenceResolver(
        db,
        ReferenceCache(),
        use_anonymous=config.use_anonymous,
        create_versions=config.create_missing_versions,
        create_categories=config.create_missing_categories,
    )
    return BatchContext(
        db=db,
        config=config,
        field_map=field_map,
        project=project,
        user=user,
        references=references,
        unique=unique,
    )


def process_row(ctx: BatchContext, row: NormalizedRow) -> RowOutcome:
    outcome = build_ticket(ctx, row)
    if isinstance(outcome, Success):
        return expand(ctx, row, outcome)
    return outcome


def run_import(
    db: Session,
    *,
    user: User,
    project: Project,
    config: ImportConfiguration,
    token: str,
) -> ImportResult:
    """Import the user's staged table into ``project``.

    Batch-level errors (missing or foreign session, invalid configuration,
    malformed table) propagate; a malformed table leaves the staged session
    in place. Rows already persisted are never rolled back.
    """
    staged = load_staged_session(db, user, token)
    config = replace(config, delimiter=staged.col_sep, quote_char=staged.quote_char, encoding=staged.encoding)
    ctx = prepare_batch(db, user=user, project=project, config=config)
    result = ImportResult()
    logger.info(
        "Import started: user=%s project=%s update=%s unique=%s notify=%s",
        user.login,
        project.identifier,
        config.update_existing,
        config.unique_field,
        ctx.notify,
    )

    try:
        for raw in iter_rows(staged.csv_data, delimiter=staged.col_sep, quote_char=staged.quote_char):
            if not result.headers:
                result.headers = list(raw.values)
            row = normalize_row(raw)
            try:
                outcome = process_row(ctx, row)
            except AmbiguousRelationTargetError as exc:
                db.rollback()
                logger.warning("Import aborted at row %s: %s", row.position, exc.message)
                result.record(raw, Failed((exc.message,)))
                result.aborted = True
                break
            except Exception as exc:  # noqa: BLE001
                db.rollback()
                logger.exception("Unexpected error importing row %s", row.position)
                outcome = Failed((f"Unexpected error: {exc}",))
            result.record(raw, outcome)
    except MalformedTableError as exc:
        db.rollback()
        logger.warning("Import aborted, malformed table: %s", exc.message)
        raise

    discard_session(db, user)
    purge_stale_sessions(db)
    db.commit()
    logger.info(
        "Import finished: handled=%s updated=%s skipped=%s failed=%s aborted=%s",
        result.handled,
        result.updated,
        result.skipped,
        result.failed,
        result.aborted,
    )
    return result

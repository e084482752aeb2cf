"""CSV ticket import: staging, row resolution and upsert."""

from ticket_importer.services.imports.options import ImportConfiguration
from ticket_importer.services.imports.orchestrator import prepare_batch, run_import
from ticket_importer.services.imports.result import Failed, ImportResult, Skipped, Success
from ticket_importer.services.imports.staging import (
    ImportPreview,
    discard_session,
    load_staged_session,
    purge_stale_sessions,
    stage_upload,
)

__all__ = [
    "Failed",
    "ImportConfiguration",
    "ImportPreview",
    "ImportResult",
    "Skipped",
    "Success",
    "discard_session",
    "load_staged_session",
    "prepare_batch",
    "purge_stale_sessions",
    "run_import",
    "stage_upload",
]

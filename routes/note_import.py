"""
Note import API routes.

Creates one note per row of an uploaded CSV.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
import structlog

from models.api import PreviewResponse
from models.configs import NoteImportConfig
from models.execution import RunState
from services.note_import_service import build_note_import_plan, apply_note_import
from services.preview_cache_service import CachedPlan
from services.report_service import build_note_import_report, build_failed_rows_report
from services.run_registry_service import RunRecord, execute_plan
from routes.common import (
    build_client,
    get_api_token,
    handle_error,
    parse_config,
    preview_response,
    read_table,
    start_execution,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

MODULE_ID = "note-import"


def _run_note_import(run: RunRecord, plan: CachedPlan, client) -> None:
    mappings = plan.metadata["mappings"]
    total_rows = plan.metadata["row_count"]
    columns = plan.metadata["columns"]
    rows = plan.metadata["rows"]

    execute_plan(
        run,
        plan.items,
        lambda item: apply_note_import(client, item),
        lambda results: build_note_import_report(results, mappings, total_rows),
        build_failed_rows=lambda results: build_failed_rows_report(results, columns, rows),
    )


@router.post("/preview", response_model=PreviewResponse)
def preview_note_import(
    file: UploadFile = File(..., description="CSV with one note per row"),
    config: str = Form(..., description="NoteImportConfig as JSON"),
    api_token: str = Depends(get_api_token),
):
    """
    Build a note from each row.

    Rows without a title or note text are reported as invalid.
    Nothing is written until /execute is called.
    """
    try:
        build_client(api_token)
        import_config = parse_config(NoteImportConfig, config)
        table = read_table(file)

        items = build_note_import_plan(table, import_config)

        return preview_response(
            MODULE_ID,
            items,
            metadata={
                "filename": file.filename,
                "row_count": table.row_count,
                "columns": table.columns,
                "mappings": import_config.model_dump(mode="json"),
            },
            run_context={"rows": table.rows},
        )

    except Exception as e:
        return handle_error(e)


@router.post("/execute/{preview_id}", response_model=RunState, status_code=202)
def execute_note_import(
    preview_id: str,
    background_tasks: BackgroundTasks,
    api_token: str = Depends(get_api_token),
):
    """Start creating the previewed notes. Poll /api/runs/{run_id}."""
    try:
        client = build_client(api_token)
        return start_execution(MODULE_ID, preview_id, background_tasks, _run_note_import, client)

    except Exception as e:
        return handle_error(e)

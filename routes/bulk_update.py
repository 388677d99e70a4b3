"""
Bulk update API routes.

Writes numeric custom field values from an uploaded CSV, one row per
feature UUID.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
import structlog

from models.api import PreviewResponse
from models.configs import BulkUpdateConfig
from models.execution import RunState
from models.plan import ClassifiedItem
from services.bulk_update_service import build_bulk_update_plan, apply_bulk_update
from services.preview_cache_service import CachedPlan
from services.report_service import build_bulk_update_report, build_failed_rows_report
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

MODULE_ID = "bulk-update"


def _field_mappings(items: list[ClassifiedItem], config: BulkUpdateConfig) -> list[list[str]]:
    """(csv column, field id, field name) per mapped field, names from the plan."""
    names: dict[str, str] = {}
    for item in items:
        for update in item.field_updates:
            names.setdefault(update.field_id, update.field_name)

    return [
        [column, field_id, names.get(field_id, field_id)]
        for field_id, column in config.value_columns().items()
    ]


def _run_bulk_update(run: RunRecord, plan: CachedPlan, client) -> None:
    field_mappings = [tuple(m) for m in plan.metadata["field_mappings"]]
    preserve_existing = plan.metadata["preserve_existing"]
    columns = plan.metadata["columns"]
    rows = plan.metadata["rows"]

    execute_plan(
        run,
        plan.items,
        lambda item: apply_bulk_update(client, item),
        lambda results: build_bulk_update_report(results, field_mappings, preserve_existing),
        build_failed_rows=lambda results: build_failed_rows_report(results, columns, rows),
    )


@router.post("/preview", response_model=PreviewResponse)
def preview_bulk_update(
    file: UploadFile = File(..., description="CSV with a feature UUID column"),
    config: str = Form(..., description="BulkUpdateConfig as JSON"),
    api_token: str = Depends(get_api_token),
):
    """
    Parse the CSV and classify each row.

    With preserve_existing, fields that already hold a value are skipped.
    Nothing is written until /execute is called.
    """
    try:
        client = build_client(api_token)
        update_config = parse_config(BulkUpdateConfig, config)
        table = read_table(file)

        items = build_bulk_update_plan(client, table, update_config)

        return preview_response(
            MODULE_ID,
            items,
            metadata={
                "filename": file.filename,
                "row_count": table.row_count,
                "columns": table.columns,
                "field_mappings": _field_mappings(items, update_config),
                "preserve_existing": update_config.preserve_existing,
            },
            run_context={"rows": table.rows},
        )

    except Exception as e:
        return handle_error(e)


@router.post("/execute/{preview_id}", response_model=RunState, status_code=202)
def execute_bulk_update(
    preview_id: str,
    background_tasks: BackgroundTasks,
    api_token: str = Depends(get_api_token),
):
    """Start writing the previewed values. Poll /api/runs/{run_id}."""
    try:
        client = build_client(api_token)
        return start_execution(MODULE_ID, preview_id, background_tasks, _run_bulk_update, client)

    except Exception as e:
        return handle_error(e)

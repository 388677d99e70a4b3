"""
Entity import API routes.

Creates or updates hierarchy entities (products, features, releases, ...)
from an uploaded CSV, optionally under a parent entity.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Path, UploadFile
import structlog

from models.api import PreviewResponse, CustomFieldListResponse
from models.configs import ENTITY_TYPES, EntityImportConfig
from models.execution import RunState
from exceptions import ValidationError
from services.entity_import_service import build_entity_import_plan, apply_entity_import
from services.preview_cache_service import CachedPlan
from services.report_service import build_entity_import_report, build_failed_rows_report
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

MODULE_ID = "entity-import"


def _run_entity_import(run: RunRecord, plan: CachedPlan, client) -> None:
    entity_type = plan.metadata["entity_type"]
    columns = plan.metadata["columns"]
    rows = plan.metadata["rows"]

    execute_plan(
        run,
        plan.items,
        lambda item: apply_entity_import(client, item),
        lambda results: build_entity_import_report(results, entity_type),
        build_failed_rows=lambda results: build_failed_rows_report(results, columns, rows),
    )


@router.get("/types/{entity_type}/fields", response_model=CustomFieldListResponse)
def list_entity_fields(
    entity_type: str = Path(..., description="Entity type, e.g. feature"),
    api_token: str = Depends(get_api_token),
):
    """List the custom fields configured for an entity type."""
    try:
        if entity_type not in ENTITY_TYPES:
            raise ValidationError(
                f"Unknown entity type: {entity_type}",
                code="INVALID_ENTITY_TYPE",
                details={"valid": list(ENTITY_TYPES)}
            )
        client = build_client(api_token)
        fields = client.list_custom_fields(entity_type)
        return CustomFieldListResponse(data=fields, total=len(fields))

    except Exception as e:
        return handle_error(e)


@router.post("/preview", response_model=PreviewResponse)
def preview_entity_import(
    file: UploadFile = File(..., description="CSV with a name column"),
    config: str = Form(..., description="EntityImportConfig as JSON"),
    api_token: str = Depends(get_api_token),
):
    """
    Match rows to existing entities by name and classify them.

    Nothing is written until /execute is called.
    """
    try:
        client = build_client(api_token)
        import_config = parse_config(EntityImportConfig, config)
        table = read_table(file)

        items, existing = build_entity_import_plan(client, table, import_config)

        return preview_response(
            MODULE_ID,
            items,
            existing,
            metadata={
                "filename": file.filename,
                "row_count": table.row_count,
                "columns": table.columns,
                "entity_type": import_config.entity_type,
                "parent_id": import_config.parent_id,
                "existing_entities": len(existing.records),
            },
            run_context={"rows": table.rows},
        )

    except Exception as e:
        return handle_error(e)


@router.post("/execute/{preview_id}", response_model=RunState, status_code=202)
def execute_entity_import(
    preview_id: str,
    background_tasks: BackgroundTasks,
    api_token: str = Depends(get_api_token),
):
    """Start the previewed import. Poll /api/runs/{run_id}."""
    try:
        client = build_client(api_token)
        return start_execution(MODULE_ID, preview_id, background_tasks, _run_entity_import, client)

    except Exception as e:
        return handle_error(e)

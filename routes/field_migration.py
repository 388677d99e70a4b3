"""
Custom field migration API routes.

Copies one custom field's values into another across every feature.
Runs are audited in the migration_logs table when Supabase is configured.
"""

from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
import structlog

from config import settings, ConnectionError as DatabaseConnectionError
from exceptions import DatabaseError, ExternalServiceError
from models.api import PreviewResponse, CustomFieldListResponse
from models.configs import FieldCopyConfig
from models.execution import RunState, RunStatus
from models.migration_log import MigrationLogResponse, MigrationLogListResponse
from models.plan import ClassifiedItem
from services.field_copy_service import build_field_copy_plan, apply_field_copy
from services.migration_log_service import MigrationLogRecorder, get_migration_log_service
from services.preview_cache_service import CachedPlan
from services.report_service import build_field_copy_report
from services.run_registry_service import RunRecord, execute_plan, get_run_registry
from routes.common import (
    build_client,
    get_api_token,
    handle_error,
    parse_config,
    preview_response,
    start_execution,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

MODULE_ID = "field-migration"


def _open_recorder(items: list[ClassifiedItem]) -> Optional[MigrationLogRecorder]:
    """Migration log recorder, or None when logs cannot be written."""
    if not settings.supabase_configured:
        logger.warning("migration_logs_disabled", reason="supabase_not_configured")
        return None
    try:
        return MigrationLogRecorder(get_migration_log_service(), items)
    except (DatabaseError, DatabaseConnectionError) as e:
        logger.warning("migration_logs_disabled", error=str(e))
        return None


def _log_service():
    """
    Raises:
        ExternalServiceError: If Supabase is not configured
    """
    if not settings.supabase_configured:
        raise ExternalServiceError(
            "supabase",
            "Migration logs are not configured",
            code="MIGRATION_LOGS_DISABLED"
        )
    return get_migration_log_service()


def _run_field_copy(run: RunRecord, plan: CachedPlan, client) -> None:
    recorder = _open_recorder(plan.items)
    if recorder:
        get_run_registry().set_migration_logs(run.run_id, recorder.log_ids)

    outcome = execute_plan(
        run,
        plan.items,
        lambda item: apply_field_copy(client, item),
        build_field_copy_report,
        on_progress=recorder.on_progress if recorder else None,
    )

    if recorder:
        recorder.finalize(failed=outcome is None or outcome.status == RunStatus.ABORTED)


# ===================
# ROUTES
# ===================

@router.get("/fields", response_model=CustomFieldListResponse)
def list_feature_fields(api_token: str = Depends(get_api_token)):
    """List feature custom fields available as copy source or target."""
    try:
        client = build_client(api_token)
        fields = client.list_custom_fields("features")
        return CustomFieldListResponse(data=fields, total=len(fields))

    except Exception as e:
        return handle_error(e)


@router.post("/preview", response_model=PreviewResponse)
def preview_field_migration(
    config: dict = Body(..., description="FieldCopyConfig"),
    api_token: str = Depends(get_api_token),
):
    """
    Classify every feature for each source -> target mapping.

    Nothing is written until /execute is called.
    """
    try:
        client = build_client(api_token)
        copy_config = parse_config(FieldCopyConfig, config)

        items, features = build_field_copy_plan(client, copy_config)

        return preview_response(
            MODULE_ID,
            items,
            features,
            metadata={
                "features": len(features.records),
                "mappings": len(copy_config.mappings),
                "only_empty_targets": copy_config.only_empty_targets,
            },
        )

    except Exception as e:
        return handle_error(e)


@router.post("/execute/{preview_id}", response_model=RunState, status_code=202)
def execute_field_migration(
    preview_id: str,
    background_tasks: BackgroundTasks,
    api_token: str = Depends(get_api_token),
):
    """Start copying values for a previewed plan. Poll /api/runs/{run_id}."""
    try:
        client = build_client(api_token)
        return start_execution(MODULE_ID, preview_id, background_tasks, _run_field_copy, client)

    except Exception as e:
        return handle_error(e)


@router.get("/logs", response_model=MigrationLogListResponse)
def list_migration_logs(
    limit: int = Query(20, ge=1, le=100, description="Maximum logs"),
):
    """Most recent migration logs, newest first."""
    try:
        logs = _log_service().list_recent(limit=limit)
        return MigrationLogListResponse(data=logs)

    except Exception as e:
        return handle_error(e)


@router.get("/logs/{log_id}", response_model=MigrationLogResponse)
def get_migration_log(log_id: str):
    """Get one migration log with its per-feature details."""
    try:
        return _log_service().get_by_id(log_id)

    except Exception as e:
        return handle_error(e)

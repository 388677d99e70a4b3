"""
Duplicate notes API routes.

Finds notes sharing the same content, title and company and deletes
every copy but the oldest.
"""

from fastapi import APIRouter, BackgroundTasks, Depends
import structlog

from models.api import PreviewResponse
from models.execution import RunState
from services.duplicate_notes_service import build_duplicate_notes_plan, apply_note_deletion
from services.executor_service import Throttle
from services.preview_cache_service import CachedPlan
from services.report_service import build_duplicate_notes_report
from services.run_registry_service import RunRecord, execute_plan
from routes.common import (
    build_client,
    get_api_token,
    handle_error,
    preview_response,
    start_execution,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

MODULE_ID = "duplicate-notes"


def _run_note_deletion(run: RunRecord, plan: CachedPlan, client) -> None:
    group_count = plan.metadata.get("groups", 0)
    execute_plan(
        run,
        plan.items,
        lambda item: apply_note_deletion(client, item),
        lambda results: build_duplicate_notes_report(results, group_count),
        throttle=Throttle.for_deletes(),
    )


@router.post("/preview", response_model=PreviewResponse)
def preview_duplicate_notes(api_token: str = Depends(get_api_token)):
    """
    Scan every note and classify duplicates.

    The oldest note of each group is kept. Nothing is deleted until
    /execute is called.
    """
    try:
        client = build_client(api_token)
        items, notes, group_count = build_duplicate_notes_plan(client)

        return preview_response(
            MODULE_ID,
            items,
            notes,
            metadata={
                "notes": len(notes.records),
                "groups": group_count,
            },
        )

    except Exception as e:
        return handle_error(e)


@router.post("/execute/{preview_id}", response_model=RunState, status_code=202)
def execute_duplicate_notes(
    preview_id: str,
    background_tasks: BackgroundTasks,
    api_token: str = Depends(get_api_token),
):
    """Start deleting the previewed duplicates. Poll /api/runs/{run_id}."""
    try:
        client = build_client(api_token)
        return start_execution(MODULE_ID, preview_id, background_tasks, _run_note_deletion, client)

    except Exception as e:
        return handle_error(e)

"""
Run status API routes.

Every module's /execute returns a run_id; these endpoints poll it,
cancel it and download its reports.
"""

from fastapi import APIRouter
import structlog

from models.execution import RunState
from services.report_service import render_failed_rows_csv, report_filename
from services.run_registry_service import get_run_registry
from routes.common import csv_response, handle_error, report_response

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/{run_id}", response_model=RunState)
def get_run(run_id: str):
    """
    Get run status.

    Includes progress, the summary once finished and the first
    failure messages (more_failures counts the rest).
    """
    try:
        return get_run_registry().get_state(run_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{run_id}/cancel", response_model=RunState)
def cancel_run(run_id: str):
    """Stop a running run before its next item. Finished runs are unchanged."""
    try:
        return get_run_registry().cancel(run_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{run_id}/report")
def download_report(run_id: str):
    """Download the run log as CSV."""
    try:
        report = get_run_registry().get_report(run_id)
        return report_response(report)

    except Exception as e:
        return handle_error(e)


@router.get("/{run_id}/failed-rows")
def download_failed_rows(run_id: str):
    """
    Download the failed input rows as CSV.

    Same columns as the upload plus an Error column, so the file can be
    fixed and uploaded again.
    """
    try:
        report = get_run_registry().get_report(run_id, failed_rows=True)
        return csv_response(render_failed_rows_csv(report), report_filename(report))

    except Exception as e:
        return handle_error(e)

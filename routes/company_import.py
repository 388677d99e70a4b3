"""
Company import API routes.

Creates companies from an uploaded CSV or updates the custom fields of
companies that already exist (matched by name and domain).
"""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
import structlog

from models.api import PreviewResponse, CustomFieldListResponse
from models.configs import CompanyImportConfig
from models.execution import RunState
from services.company_import_service import build_company_import_plan, apply_company_import
from services.preview_cache_service import CachedPlan
from services.report_service import build_company_import_report, build_failed_rows_report
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

MODULE_ID = "company-import"


def _run_company_import(run: RunRecord, plan: CachedPlan, client) -> None:
    columns = plan.metadata["columns"]
    rows = plan.metadata["rows"]

    execute_plan(
        run,
        plan.items,
        lambda item: apply_company_import(client, item),
        build_company_import_report,
        build_failed_rows=lambda results: build_failed_rows_report(results, columns, rows),
    )


@router.get("/fields", response_model=CustomFieldListResponse)
def list_company_fields(api_token: str = Depends(get_api_token)):
    """List company custom fields a column can map to."""
    try:
        client = build_client(api_token)
        fields = client.list_custom_fields("companies")
        return CustomFieldListResponse(data=fields, total=len(fields))

    except Exception as e:
        return handle_error(e)


@router.post("/preview", response_model=PreviewResponse)
def preview_company_import(
    file: UploadFile = File(..., description="CSV with name and domain columns"),
    config: str = Form(..., description="CompanyImportConfig as JSON"),
    api_token: str = Depends(get_api_token),
):
    """
    Match rows to existing companies and classify them.

    Nothing is written until /execute is called.
    """
    try:
        client = build_client(api_token)
        import_config = parse_config(CompanyImportConfig, config)
        table = read_table(file)

        items, companies = build_company_import_plan(client, table, import_config)

        return preview_response(
            MODULE_ID,
            items,
            companies,
            metadata={
                "filename": file.filename,
                "row_count": table.row_count,
                "columns": table.columns,
                "existing_companies": len(companies.records),
            },
            run_context={"rows": table.rows},
        )

    except Exception as e:
        return handle_error(e)


@router.post("/execute/{preview_id}", response_model=RunState, status_code=202)
def execute_company_import(
    preview_id: str,
    background_tasks: BackgroundTasks,
    api_token: str = Depends(get_api_token),
):
    """Start the previewed import. Poll /api/runs/{run_id}."""
    try:
        client = build_client(api_token)
        return start_execution(MODULE_ID, preview_id, background_tasks, _run_company_import, client)

    except Exception as e:
        return handle_error(e)

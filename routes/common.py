"""
Shared route helpers.

Error envelope, bearer token dependency, config parsing, CSV uploads
and CSV downloads used by every module router.
"""

from typing import Any, Callable, Optional, Type, TypeVar
from fastapi import BackgroundTasks, Header, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
import pydantic
import structlog

from exceptions import AppError, ValidationError
from integrations.productboard import ProductboardClient
from models.api import PreviewResponse
from models.execution import RunState, TabularReport
from models.plan import ClassifiedItem
from parsers.table_parser import ParsedTable, parse_table
from services import preview_cache_service
from services.pager_service import PagerResult
from services.preview_service import build_preview
from services.report_service import render_csv, report_filename
from services.run_registry_service import get_run_registry

logger = structlog.get_logger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# DEPENDENCIES
# ===================

def get_api_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract the bearer token. Missing tokens surface as 422 through
    the route's error handler when the client is built.
    """
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def build_client(api_token: str) -> ProductboardClient:
    """
    Client bound to the caller's token.

    Raises:
        ValidationError: If no bearer token was sent
    """
    if not api_token:
        raise ValidationError(
            "Missing API token",
            code="MISSING_TOKEN",
            details={"header": "Authorization: Bearer <token>"}
        )
    return ProductboardClient(api_token)


# ===================
# REQUEST PARSING
# ===================

def parse_config(model: Type[ConfigT], data) -> ConfigT:
    """
    Validate a run configuration from a dict or JSON string.

    Raises:
        MappingError: From the model's own mapping checks
        ValidationError: If the payload does not match the model
    """
    try:
        if isinstance(data, (str, bytes)):
            return model.model_validate_json(data)
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid configuration",
            code="INVALID_CONFIG",
            details={"errors": e.errors(include_url=False, include_context=False)}
        )


def read_table(file: UploadFile) -> ParsedTable:
    """
    Parse an uploaded CSV file.

    Raises:
        ValidationError: If the file is not UTF-8 text or has no header
    """
    content = file.file.read()
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError(
            "File must be UTF-8 encoded CSV",
            code="INVALID_ENCODING",
            details={"filename": file.filename}
        )

    table = parse_table(text)
    logger.info("csv_uploaded", filename=file.filename, rows=table.row_count)
    return table


# ===================
# PREVIEW / EXECUTE
# ===================

def preview_response(
    module_id: str,
    items: list[ClassifiedItem],
    pager: Optional[PagerResult] = None,
    metadata: Optional[dict[str, Any]] = None,
    run_context: Optional[dict[str, Any]] = None,
) -> PreviewResponse:
    """
    Cache the full plan and return its summary.

    metadata is returned to the client and kept with the plan; run_context
    (e.g. the uploaded table) is only kept with the plan.
    """
    metadata = metadata or {}
    preview_id = preview_cache_service.store_preview(
        preview_cache_service.CachedPlan(
            module_id=module_id,
            items=items,
            metadata={**metadata, **(run_context or {})},
        )
    )

    warning = None
    if pager is not None and not pager.complete:
        warning = f"Listing stopped after {len(pager.records)} records ({pager.error}). The plan may be incomplete."

    logger.info(
        "preview_created",
        module_id=module_id,
        preview_id=preview_id,
        items=len(items),
        complete=warning is None
    )

    return PreviewResponse(
        preview_id=preview_id,
        module_id=module_id,
        preview=build_preview(items),
        complete=warning is None,
        warning=warning,
        metadata=metadata,
    )


def start_execution(
    module_id: str,
    preview_id: str,
    background_tasks: BackgroundTasks,
    task: Callable[..., None],
    *args: Any,
) -> RunState:
    """
    Claim a cached plan, register the run and schedule it.

    The task is called as task(run, plan, *args).

    Raises:
        PreviewNotFoundError: If the preview expired or belongs elsewhere
        RunInProgressError: If the module already has an active run
    """
    plan = preview_cache_service.get_plan(preview_id, module_id)
    registry = get_run_registry()
    run = registry.start(module_id)
    preview_cache_service.delete_preview(preview_id)

    background_tasks.add_task(task, run, plan, *args)
    return registry.get_state(run.run_id)


# ===================
# RESPONSES
# ===================

def csv_response(content: str, filename: str) -> Response:
    """CSV file download."""
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def report_response(report: TabularReport) -> Response:
    return csv_response(render_csv(report), report_filename(report))

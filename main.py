"""
Bulk Reconciler — Main Application

FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import structlog
from datetime import datetime

from config import settings, check_connection
from exceptions import AppError

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Check datastore connection
    Shutdown: Clean up resources
    """
    # Startup
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug
    )

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info(
            "database_connected",
            migration_logs=db_status["migration_logs_count"]
        )
    elif db_status["status"] == "disabled":
        logger.warning("database_disabled", reason="supabase_not_configured")
    else:
        logger.error(
            "database_connection_failed",
            error=db_status.get("error")
        )

    yield

    # Shutdown
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Bulk Reconciler",
    description="Preview-then-execute bulk operations against a Productboard workspace",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Basic health status and datastore connection state
    """
    db_status = check_connection()

    return {
        "status": "degraded" if db_status["status"] == "unhealthy" else "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "database": db_status
    }


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "name": "Bulk Reconciler API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "field_migration": "/api/field-migration",
            "duplicate_notes": "/api/duplicate-notes",
            "bulk_update": "/api/bulk-update",
            "company_import": "/api/company-import",
            "entity_import": "/api/entity-import",
            "note_import": "/api/note-import",
            "runs": "/api/runs",
            "usage": "/api/usage"
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Return the standard error envelope for application errors."""
    logger.warning(
        "app_error",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.field_migration import router as field_migration_router
from routes.duplicate_notes import router as duplicate_notes_router
from routes.bulk_update import router as bulk_update_router
from routes.company_import import router as company_import_router
from routes.entity_import import router as entity_import_router
from routes.note_import import router as note_import_router
from routes.runs import router as runs_router
from routes.usage import router as usage_router

app.include_router(field_migration_router, prefix="/api/field-migration", tags=["Field Migration"])
app.include_router(duplicate_notes_router, prefix="/api/duplicate-notes", tags=["Duplicate Notes"])
app.include_router(bulk_update_router, prefix="/api/bulk-update", tags=["Bulk Update"])
app.include_router(company_import_router, prefix="/api/company-import", tags=["Company Import"])
app.include_router(entity_import_router, prefix="/api/entity-import", tags=["Entity Import"])
app.include_router(note_import_router, prefix="/api/note-import", tags=["Note Import"])
app.include_router(runs_router, prefix="/api/runs", tags=["Runs"])
app.include_router(usage_router, prefix="/api/usage", tags=["Usage"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )

"""
Custom exception classes for the application.

Per-item errors (field coercion, sink failures) are caught at the item
boundary and land in the run report; only run-level errors reach the API.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PREVIEW_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SOURCE ERRORS
# ===================

class SourceUnavailableError(ExternalServiceError):
    """First call to the record source failed; nothing can be planned."""

    def __init__(self, source: str, message: str):
        super().__init__(
            service="productboard",
            message=message,
            code="SOURCE_UNAVAILABLE",
            details={"source": source}
        )


class PageFetchError(ExternalServiceError):
    """A listing page request failed."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        super().__init__(
            service="productboard",
            message=message,
            code="PAGE_FETCH_FAILED",
            details={"source": source, "http_status": status_code}
        )


# ===================
# ROW / FIELD ERRORS
# ===================

class FieldCoercionError(ValidationError):
    """A single cell could not be converted to the field's type."""

    def __init__(self, value: Any, target_type: str = "number"):
        super().__init__(
            code="FIELD_COERCION_FAILED",
            message=f"Invalid {target_type} value: {value}",
            details={"value": value, "target_type": target_type}
        )
        self.value = value
        self.target_type = target_type


class MappingError(ValidationError):
    """Column mapping configuration is invalid."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_MAPPING",
            message=message,
            details=details
        )


# ===================
# SINK ERRORS
# ===================

class SinkApplyError(ExternalServiceError):
    """A single remote mutation failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        raw_error: Optional[str] = None,
        code: str = "SINK_APPLY_FAILED"
    ):
        super().__init__(
            service="productboard",
            message=message,
            code=code,
            details={"http_status": status_code}
        )
        self.http_status = status_code
        self.raw_error = raw_error


class OwnerAssignmentError(SinkApplyError):
    """Creation failed because the owner could not be resolved."""

    def __init__(
        self,
        message: str,
        owner_email: str,
        status_code: Optional[int] = None,
        raw_error: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            raw_error=raw_error,
            code="OWNER_ASSIGNMENT_FAILED"
        )
        self.owner_email = owner_email


# ===================
# PREVIEW / RUN ERRORS
# ===================

class PreviewNotFoundError(NotFoundError):
    """Preview expired or never existed."""

    def __init__(self, preview_id: str):
        super().__init__(
            resource="Preview",
            identifier=preview_id,
            code="PREVIEW_NOT_FOUND"
        )


class RunNotFoundError(NotFoundError):
    """Run not found."""

    def __init__(self, run_id: str):
        super().__init__(
            resource="Run",
            identifier=run_id,
            code="RUN_NOT_FOUND"
        )


class RunInProgressError(ConflictError):
    """Another run of the same module is still active."""

    def __init__(self, module_id: str, run_id: str):
        super().__init__(
            code="RUN_IN_PROGRESS",
            message=f"A {module_id} run is already in progress",
            details={"module_id": module_id, "run_id": run_id}
        )


class MigrationLogNotFoundError(NotFoundError):
    """Migration log not found."""

    def __init__(self, log_id: str):
        super().__init__(
            resource="Migration log",
            identifier=log_id,
            code="MIGRATION_LOG_NOT_FOUND"
        )

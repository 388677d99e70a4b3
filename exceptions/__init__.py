"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Source
    SourceUnavailableError,
    PageFetchError,

    # Rows / fields
    FieldCoercionError,
    MappingError,

    # Sink
    SinkApplyError,
    OwnerAssignmentError,

    # Previews / runs
    PreviewNotFoundError,
    RunNotFoundError,
    RunInProgressError,
    MigrationLogNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Source
    "SourceUnavailableError",
    "PageFetchError",

    # Rows / fields
    "FieldCoercionError",
    "MappingError",

    # Sink
    "SinkApplyError",
    "OwnerAssignmentError",

    # Previews / runs
    "PreviewNotFoundError",
    "RunNotFoundError",
    "RunInProgressError",
    "MigrationLogNotFoundError",
]

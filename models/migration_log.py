"""
Migration log models and schemas.

A migration log is the audit record of one custom-field copy run:
- Which source and target fields were involved
- Running counts of processed/updated/skipped/failed features
- One detail row per feature
"""

from datetime import datetime
from typing import Any, Optional
from enum import Enum
from pydantic import Field

from models.base import BaseSchema


class MigrationLogStatus(str, Enum):
    """Migration log status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class MigrationLogDetail(BaseSchema):
    """Outcome for one feature within a migration."""

    feature_id: str
    feature_name: str = ""
    source_value: Any = None
    target_value: Any = None
    action: str
    success: bool
    error: Optional[str] = None


class MigrationLogCreate(BaseSchema):
    """Create a migration log at run start."""

    source_field_id: str = Field(..., min_length=1)
    source_field_name: str = ""
    target_field_id: str = Field(..., min_length=1)
    target_field_name: str = ""


class MigrationLogUpdate(BaseSchema):
    """Update counts, status and details while a run progresses."""

    features_processed: Optional[int] = Field(None, ge=0)
    features_updated: Optional[int] = Field(None, ge=0)
    features_skipped: Optional[int] = Field(None, ge=0)
    features_failed: Optional[int] = Field(None, ge=0)
    status: Optional[MigrationLogStatus] = None
    completed_at: Optional[datetime] = None
    details: Optional[list[MigrationLogDetail]] = None


class MigrationLogResponse(BaseSchema):
    """Migration log response model."""

    id: str
    source_field_id: str
    source_field_name: str = ""
    target_field_id: str
    target_field_name: str = ""
    features_processed: int = 0
    features_updated: int = 0
    features_skipped: int = 0
    features_failed: int = 0
    status: MigrationLogStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    details: list[MigrationLogDetail] = Field(default_factory=list)


class MigrationLogListResponse(BaseSchema):
    """Newest migration logs."""

    data: list[MigrationLogResponse]

"""
Execution and reporting models.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from models.plan import ActionType, FieldUpdateDetail


class RunStatus(str, Enum):
    """Run state machine: idle -> running -> completed | aborted | cancelled."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class ExecutionResult(BaseModel):
    """Outcome of one processed plan item."""

    source_ref: str
    action: ActionType
    success: bool
    sent: bool = Field(True, description="False when no remote call was needed")
    record_id: Optional[str] = None
    display_name: str = ""
    row_index: Optional[int] = None
    applied_field_outcomes: list[FieldUpdateDetail] = Field(default_factory=list)
    field_errors: list[str] = Field(default_factory=list)
    all_fields_skipped: bool = False
    owner_skipped: bool = False
    owner_email: Optional[str] = None
    new_value: Any = None
    response: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return not self.sent


class RunProgress(BaseModel):
    current: int = 0
    total: int = 0


class RunSummary(BaseModel):
    """Aggregated counts for one run."""

    total: int = 0
    sent: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped_has_value: int = 0
    skipped_source_empty: int = 0
    skipped_blank: int = 0
    all_fields_skipped: int = 0
    owner_skipped: int = 0
    invalid: int = 0
    fields_updated: int = 0
    fields_skipped: int = 0


class RunOutcome(BaseModel):
    """Everything the executor produced for one run."""

    status: RunStatus
    results: list[ExecutionResult] = Field(default_factory=list)
    progress: RunProgress = Field(default_factory=RunProgress)
    error: Optional[str] = None


class TabularReport(BaseModel):
    """Flat exportable log: summary lines, then a header and one row per item."""

    title: str
    metadata: list[str] = Field(default_factory=list)
    columns: list[str]
    rows: list[list[str]] = Field(default_factory=list)
    filename_prefix: str = "run-log"


class RunState(BaseModel):
    """Run snapshot exposed to API clients."""

    run_id: str
    module_id: str
    status: RunStatus
    progress: RunProgress
    summary: Optional[RunSummary] = None
    failures: list[str] = Field(default_factory=list)
    more_failures: int = 0
    migration_log_id: Optional[str] = None
    error: Optional[str] = None
    started_at: str
    completed_at: Optional[str] = None

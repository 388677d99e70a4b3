"""
Plan models produced by the classifiers.

A plan is an ordered list of ClassifiedItem. It is computed without side
effects, previewed, cached, and then handed to the executor unchanged.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from models.record import Record


class ActionType(str, Enum):
    """Action category assigned to a record or row."""
    WILL_UPDATE = "will_update"
    SKIPPED_HAS_VALUE = "skipped_has_value"
    SKIPPED_SOURCE_EMPTY = "skipped_source_empty"
    SKIPPED_BLANK = "skipped_blank"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    KEEP = "keep"
    NOT_FOUND = "not_found"
    ERROR = "error"


# Categories that require a remote call
SENT_ACTIONS = frozenset({
    ActionType.WILL_UPDATE,
    ActionType.CREATE,
    ActionType.UPDATE,
    ActionType.DELETE,
})


def requires_remote_call(action: ActionType) -> bool:
    return action in SENT_ACTIONS


class FieldUpdateDetail(BaseModel):
    """Per-field outcome within one row of a bulk update."""
    model_config = ConfigDict(frozen=True)

    field_id: str
    field_name: str
    field_type: str = "number"
    old_value: Optional[str] = None
    new_value: Any = None
    skipped: bool = False


class ClassifiedItem(BaseModel):
    """
    One unit of a plan.

    source_ref identifies where the item came from (remote id or "row:N");
    record_id is the remote record the mutation targets, when known.
    """
    model_config = ConfigDict(frozen=True)

    source_ref: str
    action: ActionType
    comparison_key: str = ""
    current_value: Any = None
    new_value: Any = None

    row_index: Optional[int] = None
    record_id: Optional[str] = None
    display_name: str = ""

    # Field copy
    field_id: Optional[str] = None
    field_name: Optional[str] = None
    field_type: Optional[str] = None
    source_field_id: Optional[str] = None
    source_field_name: Optional[str] = None

    # Create / update payloads
    fields: dict[str, Any] = Field(default_factory=dict)
    current_values: dict[str, Any] = Field(default_factory=dict)
    field_updates: list[FieldUpdateDetail] = Field(default_factory=list)
    field_errors: list[str] = Field(default_factory=list)
    owner_email: Optional[str] = None
    parent_id: Optional[str] = None
    all_fields_skipped: bool = False
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Display-only values carried into the report"
    )

    error: Optional[str] = None


class DuplicateGroup(BaseModel):
    """Notes sharing the same content, title and company."""
    model_config = ConfigDict(frozen=True)

    key: str
    notes: list[Record]
    keep: Record
    delete: list[Record]


class PlanPreview(BaseModel):
    """Read-only summary of a plan."""

    total: int
    counts: dict[str, int]
    sample: list[ClassifiedItem]
    truncated: bool
    actionable: int = Field(0, description="Items that will trigger a remote call")

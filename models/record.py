"""
Remote record models.

Shapes exchanged with the record source and record sink. Records are read
for one run only and never persisted.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field

from models.base import BaseSchema


class Record(BaseModel):
    """One remote entity (feature, note, company, or v2 hierarchy entity)."""

    id: str = Field(..., description="Remote record id")
    fields: dict[str, Any] = Field(default_factory=dict, description="Field key -> value")
    created_at: Optional[str] = Field(None, description="ISO-8601 creation timestamp")

    def get(self, key: str, default: Any = None) -> Any:
        """Read a field, returning default when missing or null."""
        value = self.fields.get(key)
        return default if value is None else value

    @property
    def name(self) -> str:
        return str(self.get("name", "") or "")


class PageResult(BaseModel):
    """One page of a remote listing."""

    items: list[Record] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(
        None,
        description="Opaque cursor: page token or absolute next link"
    )


class FieldValueResult(BaseModel):
    """Current value of one custom field on one entity."""

    has_value: bool = False
    value: Any = None


class SinkResult(BaseModel):
    """
    Outcome of one remote mutation.

    `error` is sanitized and safe to show. `raw_error` is the remote response
    body, kept only for error classification and server-side logs.
    """

    success: bool
    record_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    raw_error: Optional[str] = Field(None, exclude=True, repr=False)


class CustomField(BaseSchema):
    """Custom field definition."""

    id: str
    name: str
    type: str = "text"
    description: Optional[str] = None

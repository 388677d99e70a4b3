"""
Usage counter models.
"""

from pydantic import Field

from models.base import BaseSchema


class UsageStatResponse(BaseSchema):
    """Executed run count for one module."""

    module_id: str
    count: int = Field(0, ge=0)


class UsageStatListResponse(BaseSchema):
    """All usage counters."""

    data: list[UsageStatResponse]

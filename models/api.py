"""
Response models shared by the module routers.
"""

from pydantic import BaseModel, Field
from typing import Any, Optional

from models.plan import PlanPreview
from models.record import CustomField


class PreviewResponse(BaseModel):
    """A classified plan waiting for confirmation."""

    preview_id: str
    module_id: str
    preview: PlanPreview
    complete: bool = Field(True, description="False when the listing stopped early")
    warning: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CustomFieldListResponse(BaseModel):
    data: list[CustomField]
    total: int

"""
Record source and record sink interfaces.

The classifiers and the executor only see these protocols; the
Productboard client is one implementation and test doubles are another.
"""

from typing import Any, Optional, Protocol

from models.record import (
    CustomField,
    FieldValueResult,
    PageResult,
    SinkResult,
)


class RecordSource(Protocol):
    """Paginated listing plus field value reads."""

    def list_page(self, kind: str, cursor: Optional[str] = None) -> PageResult:
        ...

    def get_field_value(self, entity_id: str, field_id: str, scope: str = "features") -> FieldValueResult:
        ...

    def get_batch_field_values(
        self,
        entity_ids: list[str],
        field_id: str,
        scope: str = "features"
    ) -> dict[str, FieldValueResult]:
        ...

    def list_custom_fields(self, scope: str) -> list[CustomField]:
        ...


class RecordSink(Protocol):
    """Applies one mutation at a time and reports success or failure."""

    def apply_field_value(
        self,
        entity_id: str,
        field_id: str,
        field_type: str,
        value: Any,
        scope: str = "features"
    ) -> SinkResult:
        ...

    def create_record(
        self,
        kind: str,
        fields: dict[str, Any],
        parent_id: Optional[str] = None
    ) -> SinkResult:
        ...

    def update_record(self, kind: str, record_id: str, fields: dict[str, Any]) -> SinkResult:
        ...

    def delete_record(self, kind: str, record_id: str) -> SinkResult:
        ...

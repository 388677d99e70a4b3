"""
Test data factories.

Uses factory pattern to generate consistent test data, plus an
in-memory workspace implementing the record source and sink.
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import uuid4

from models.record import CustomField, FieldValueResult, PageResult, Record, SinkResult
from models.plan import ActionType, ClassifiedItem
from services.field_value_service import get_batch_field_values


class RecordFactory:
    """
    Factory for creating test Record objects.

    Usage:
        # Create with defaults
        feature = RecordFactory.create()

        # Create with overrides
        feature = RecordFactory.create(name="Checkout", id="feat-1")

        # Create multiple
        features = RecordFactory.create_batch(5)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        name: Optional[str] = None,
        created_at: Optional[str] = None,
        **fields: Any
    ) -> Record:
        """
        Create a single record.

        Args:
            id: Record id (auto-generated if not provided)
            name: Record name (auto-generated if not provided)
            created_at: ISO timestamp
            **fields: Extra fields

        Returns:
            Record
        """
        counter = cls._next_counter()
        return Record(
            id=id or str(uuid4()),
            fields={"name": name or f"Test Record {counter}", **fields},
            created_at=created_at,
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[Record]:
        """Create multiple records."""
        return [cls.create(**overrides) for _ in range(count)]


class NoteFactory:
    """
    Factory for creating test notes.

    Each call is one minute newer than the previous one unless
    created_at is given.
    """

    _base = datetime(2024, 1, 1, 9, 0, 0)
    _counter = 0

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        title: str = "Feedback",
        content: str = "Customer wants dark mode",
        company_id: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> Record:
        cls._counter += 1
        fields = {"title": title, "content": content}
        if company_id:
            fields["company"] = {"id": company_id}
        return Record(
            id=id or str(uuid4()),
            fields=fields,
            created_at=created_at or (cls._base + timedelta(minutes=cls._counter)).isoformat(),
        )


class ItemFactory:
    """Factory for ClassifiedItem plans."""

    @classmethod
    def create(
        cls,
        index: int = 0,
        action: ActionType = ActionType.UPDATE,
        **overrides: Any
    ) -> ClassifiedItem:
        values = {
            "source_ref": f"item-{index}",
            "action": action,
            "record_id": f"rec-{index}",
            "display_name": f"Item {index}",
            "row_index": index,
        }
        values.update(overrides)
        return ClassifiedItem(**values)

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[ClassifiedItem]:
        return [cls.create(index=i, **overrides) for i in range(count)]


class FakeWorkspace:
    """
    In-memory record source and sink.

    Usage:
        workspace = FakeWorkspace(page_size=2)
        workspace.add("features", RecordFactory.create(id="f1"))
        workspace.set_value("f1", "cf-source", "hello")
        workspace.fail_writes["f1"] = SinkResult(success=False, error="Boom")
    """

    def __init__(self, page_size: int = 100):
        self.page_size = page_size
        self.records: dict[str, list[Record]] = {}
        self.values: dict[str, dict[str, Any]] = {}
        self.fields: dict[str, list[CustomField]] = {}
        self.failing_pages: set[tuple[str, int]] = set()
        self.fail_writes: dict[str, SinkResult] = {}
        self.create_responses: list[SinkResult] = []

        self.applied: list[tuple[str, str, str, Any, str]] = []
        self.created: list[tuple[str, dict, Optional[str]]] = []
        self.updated: list[tuple[str, str, dict]] = []
        self.deleted: list[tuple[str, str]] = []

    # ===================
    # SETUP
    # ===================

    def add(self, kind: str, *records: Record) -> None:
        self.records.setdefault(kind, []).extend(records)

    def set_value(self, entity_id: str, field_id: str, value: Any) -> None:
        self.values.setdefault(entity_id, {})[field_id] = value

    def add_field(self, scope: str, id: str, name: str, type: str = "text") -> CustomField:
        field = CustomField(id=id, name=name, type=type)
        self.fields.setdefault(scope, []).append(field)
        return field

    # ===================
    # SOURCE
    # ===================

    def list_page(self, kind: str, cursor: Optional[str] = None) -> PageResult:
        page_number = int(cursor) if cursor else 0
        if (kind, page_number) in self.failing_pages:
            raise RuntimeError(f"page {page_number} of {kind} failed")

        records = self.records.get(kind, [])
        start = page_number * self.page_size
        chunk = records[start:start + self.page_size]
        has_more = start + self.page_size < len(records)
        return PageResult(items=chunk, next_cursor=str(page_number + 1) if has_more else None)

    def get_field_value(self, entity_id: str, field_id: str, scope: str = "features") -> FieldValueResult:
        value = self.values.get(entity_id, {}).get(field_id)
        return FieldValueResult(has_value=value is not None, value=value)

    def get_batch_field_values(
        self,
        entity_ids: list[str],
        field_id: str,
        scope: str = "features"
    ) -> dict[str, FieldValueResult]:
        return get_batch_field_values(self, entity_ids, field_id, scope=scope)

    def list_custom_fields(self, scope: str) -> list[CustomField]:
        return list(self.fields.get(scope, []))

    # ===================
    # SINK
    # ===================

    def apply_field_value(
        self,
        entity_id: str,
        field_id: str,
        field_type: str,
        value: Any,
        scope: str = "features"
    ) -> SinkResult:
        self.applied.append((entity_id, field_id, field_type, value, scope))
        if entity_id in self.fail_writes:
            return self.fail_writes[entity_id]
        self.set_value(entity_id, field_id, value)
        return SinkResult(success=True, record_id=entity_id, status_code=200)

    def create_record(
        self,
        kind: str,
        fields: dict[str, Any],
        parent_id: Optional[str] = None
    ) -> SinkResult:
        self.created.append((kind, dict(fields), parent_id))
        if self.create_responses:
            return self.create_responses.pop(0)
        new_id = f"{kind}-new-{len(self.created)}"
        self.add(kind, Record(id=new_id, fields=dict(fields)))
        return SinkResult(success=True, record_id=new_id, status_code=201)

    def update_record(self, kind: str, record_id: str, fields: dict[str, Any]) -> SinkResult:
        self.updated.append((kind, record_id, dict(fields)))
        if record_id in self.fail_writes:
            return self.fail_writes[record_id]
        return SinkResult(success=True, record_id=record_id, status_code=200)

    def delete_record(self, kind: str, record_id: str) -> SinkResult:
        self.deleted.append((kind, record_id))
        if record_id in self.fail_writes:
            return self.fail_writes[record_id]
        return SinkResult(success=True, record_id=record_id, status_code=204)

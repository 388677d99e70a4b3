"""
Hierarchy entity import from an uploaded CSV (v2 entities API).

Rows are matched to existing entities of the same type by lowercase
name: matches are patched, everything else is created under the
configured parent. Cell values are formatted per field type before
sending, and an owner the workspace does not recognise is dropped
instead of failing the row.
"""

from typing import Any, Optional
import structlog

from models.configs import PARENT_TYPE_MAP, EntityImportConfig
from models.field_value import display_value
from models.plan import ActionType, ClassifiedItem
from models.record import CustomField, Record
from models.execution import ExecutionResult
from exceptions import FieldCoercionError, MappingError
from integrations.base import RecordSink, RecordSource
from parsers.table_parser import ParsedTable
from services.pager_service import PagerResult, fetch_all_records
from services.executor_service import (
    create_with_owner_retry,
    raise_for_sink,
    result_from_sink,
)
from utils.value_utils import is_blank, to_iso_date, to_numeric

logger = structlog.get_logger(__name__)

MISSING_NAME_ERROR = "Missing name"


def format_entity_value(field_key: str, value: str, field: Optional[CustomField] = None) -> Any:
    """
    Format one cell for the v2 entities API.

    Args:
        field_key: Target field key ("status", "owner", a custom field id, ...)
        value: Trimmed cell value
        field: Field configuration, when known

    Returns:
        Value in the shape the API expects for the field

    Raises:
        FieldCoercionError: If a number field gets a non-numeric value
    """
    field_type = (field.type if field else "").lower()
    field_label = (field.name if field else "").lower()

    if "status" in field_type or field_key == "status":
        return {"name": value}
    if (
        "member" in field_type
        or "user" in field_type
        or field_key == "owner"
        or "owner" in field_label
    ):
        return {"email": value.strip()}
    if "richtext" in field_type or "rich_text" in field_type or field_key == "description":
        return f"<p>{value}</p>"
    if "number" in field_type or "integer" in field_type or "float" in field_type:
        return to_numeric(value)
    if "date" in field_type:
        return to_iso_date(value)
    return value


def build_entity_fields(
    row: dict[str, str],
    config: EntityImportConfig,
    fields_by_id: dict[str, CustomField],
) -> tuple[dict[str, Any], list[str]]:
    """
    Build the request fields for one row.

    Returns:
        Tuple of (fields, field errors)
    """
    fields: dict[str, Any] = {}
    errors: list[str] = []

    for field_key, column in config.field_columns().items():
        raw_value = row.get(column)
        if is_blank(raw_value):
            continue
        value = raw_value.strip()

        if field_key.startswith("timeframe."):
            timeframe = fields.setdefault("timeframe", {"granularity": "day"})
            timeframe[field_key.split(".", 1)[1]] = to_iso_date(value)
            continue

        field = fields_by_id.get(field_key)
        try:
            fields[field_key] = format_entity_value(field_key, value, field)
        except FieldCoercionError:
            field_name = field.name if field else field_key
            errors.append(f"Invalid number value for {field_name}: {value}")

    return fields, errors


def classify_entity_import(
    rows: list[dict[str, str]],
    config: EntityImportConfig,
    existing: list[Record],
    fields_by_id: dict[str, CustomField],
) -> list[ClassifiedItem]:
    """
    Classify each row as create, update or error.

    Args:
        rows: Parsed rows in file order
        config: Entity type, parent and column mapping
        existing: Every entity of the configured type
        fields_by_id: Field configuration for the entity type

    Returns:
        One item per row
    """
    lookup: dict[str, Record] = {}
    for entity in existing:
        lookup.setdefault(entity.name.strip().lower(), entity)

    items = []
    for row_index, row in enumerate(rows):
        source_ref = f"row:{row_index + 1}"
        name = (row.get(config.name_column) or "").strip()

        if not name:
            items.append(ClassifiedItem(
                source_ref=source_ref,
                action=ActionType.ERROR,
                comparison_key="missing_name",
                row_index=row_index,
                error=MISSING_NAME_ERROR,
                context={"entity_type": config.entity_type},
            ))
            continue

        key = name.lower()
        match = lookup.get(key)
        fields, field_errors = build_entity_fields(row, config, fields_by_id)
        owner = fields.get("owner")
        owner_email = owner.get("email") if isinstance(owner, dict) else None

        current_values = {}
        if match:
            # matched case-insensitively; the name is the lookup key, not an edit
            fields.pop("name", None)
            current_values = {
                field_key: display_value(match.fields.get(field_key))
                for field_key in fields
                if match.fields.get(field_key) is not None
            }

        items.append(ClassifiedItem(
            source_ref=source_ref,
            action=ActionType.UPDATE if match else ActionType.CREATE,
            comparison_key=key,
            row_index=row_index,
            record_id=match.id if match else None,
            display_name=name,
            fields=fields,
            current_values=current_values,
            field_errors=field_errors,
            owner_email=owner_email,
            parent_id=None if match else config.parent_id,
            context={"entity_type": config.entity_type},
        ))

    return items


def build_entity_import_plan(
    source: RecordSource,
    table: ParsedTable,
    config: EntityImportConfig,
) -> tuple[list[ClassifiedItem], PagerResult]:
    """
    Load field configuration and existing entities, then classify rows.

    Raises:
        SourceUnavailableError: If the entity listing cannot be read
        MappingError: If the parent or a mapped column is invalid
    """
    if config.parent_id and not PARENT_TYPE_MAP.get(config.entity_type):
        raise MappingError(
            f"{config.entity_type} entities cannot have a parent",
            details={"entity_type": config.entity_type}
        )

    missing = [m.csv_column for m in config.mappings if m.mapped_to and m.csv_column not in table.columns]
    if missing:
        raise MappingError("Mapped column not found", details={"columns": missing})

    fields_by_id = {f.id: f for f in source.list_custom_fields(config.entity_type)}
    existing = fetch_all_records(source, config.entity_type)

    items = classify_entity_import(table.rows, config, existing.records, fields_by_id)

    logger.info(
        "entity_import_plan_built",
        entity_type=config.entity_type,
        rows=len(table.rows),
        existing=len(existing.records)
    )

    return items, existing


def apply_entity_import(sink: RecordSink, item: ClassifiedItem) -> ExecutionResult:
    """Create (with owner fallback) or patch one entity."""
    entity_type = item.context["entity_type"]

    if item.action == ActionType.CREATE:
        sink_result, owner_skipped = create_with_owner_retry(
            sink,
            entity_type,
            item.fields,
            owner_email=item.owner_email,
            parent_id=item.parent_id,
        )
        return result_from_sink(item, sink_result, owner_skipped=owner_skipped)

    sink_result = raise_for_sink(sink.update_record(entity_type, item.record_id, item.fields))
    return result_from_sink(item, sink_result)

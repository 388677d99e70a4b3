"""
Bulk numeric field update from an uploaded CSV.

Each row names a feature by UUID and carries values for one or more
mapped custom fields. Values are cleaned ("45%" -> 45.0), and with
preserve_existing a field that already holds data is never overwritten.
"""

from typing import Optional
import structlog

from models.configs import BulkUpdateConfig
from models.field_value import display_value
from models.plan import ActionType, ClassifiedItem, FieldUpdateDetail
from models.record import CustomField, FieldValueResult
from models.execution import ExecutionResult
from exceptions import FieldCoercionError, MappingError
from integrations.base import RecordSink, RecordSource
from parsers.table_parser import ParsedTable
from services.field_value_service import get_field_snapshots
from services.pager_service import fetch_all_records
from services.executor_service import base_result
from utils.value_utils import is_blank, to_numeric

logger = structlog.get_logger(__name__)

MISSING_UUID_ERROR = "Missing feature UUID"


def classify_bulk_update(
    rows: list[dict[str, str]],
    config: BulkUpdateConfig,
    fields_by_id: dict[str, CustomField],
    snapshots: dict[str, dict[str, FieldValueResult]],
    feature_names: Optional[dict[str, str]] = None,
) -> list[ClassifiedItem]:
    """
    Classify each CSV row.

    Args:
        rows: Parsed rows in file order
        config: UUID column, value mappings and preserve policy
        fields_by_id: Custom field definitions
        snapshots: Field id -> feature id -> current value (empty when
            preserve_existing is off)
        feature_names: Feature id -> name for display; the id is shown
            for features not in the map

    Returns:
        One item per row
    """
    value_columns = config.value_columns()
    names = feature_names or {}
    items = []

    for row_index, row in enumerate(rows):
        source_ref = f"row:{row_index + 1}"
        feature_id = (row.get(config.uuid_column) or "").strip()

        if is_blank(feature_id):
            items.append(ClassifiedItem(
                source_ref=source_ref,
                action=ActionType.ERROR,
                comparison_key="missing_uuid",
                row_index=row_index,
                error=MISSING_UUID_ERROR,
            ))
            continue

        field_updates: list[FieldUpdateDetail] = []
        field_errors: list[str] = []
        fields: dict[str, float] = {}
        current_values: dict[str, str] = {}

        for field_id, column in value_columns.items():
            raw_value = row.get(column)
            if is_blank(raw_value):
                continue

            field = fields_by_id.get(field_id)
            field_name = field.name if field else field_id

            try:
                number = to_numeric(raw_value)
            except FieldCoercionError:
                field_errors.append(f"Invalid number value for {field_name}: {raw_value.strip()}")
                continue

            current = snapshots.get(field_id, {}).get(feature_id)
            has_current = bool(current and current.has_value)
            old_value = display_value(current.value) if has_current else None
            skipped = config.preserve_existing and has_current

            field_updates.append(FieldUpdateDetail(
                field_id=field_id,
                field_name=field_name,
                field_type=field.type if field else "number",
                old_value=old_value,
                new_value=number,
                skipped=skipped,
            ))
            if old_value is not None:
                current_values[field_id] = old_value
            if not skipped:
                fields[field_id] = number

        if fields:
            action = ActionType.UPDATE
        elif field_updates:
            action = ActionType.SKIPPED_HAS_VALUE
        else:
            action = ActionType.SKIPPED_BLANK

        items.append(ClassifiedItem(
            source_ref=source_ref,
            action=action,
            comparison_key=feature_id,
            row_index=row_index,
            record_id=feature_id,
            display_name=names.get(feature_id) or feature_id,
            fields=fields,
            current_values=current_values,
            field_updates=field_updates,
            field_errors=field_errors,
            all_fields_skipped=action == ActionType.SKIPPED_HAS_VALUE,
        ))

    return items


def build_bulk_update_plan(
    source: RecordSource,
    table: ParsedTable,
    config: BulkUpdateConfig,
) -> list[ClassifiedItem]:
    """
    Validate the mapping, prefetch current values and classify rows.

    Raises:
        SourceUnavailableError: If the feature listing cannot be read
        MappingError: If the UUID column is missing or a field is unknown
    """
    if config.uuid_column not in table.columns:
        raise MappingError(
            f"UUID column not found: {config.uuid_column}",
            details={"columns": table.columns}
        )

    fields_by_id = {f.id: f for f in source.list_custom_fields("features")}
    value_columns = config.value_columns()

    unknown = [field_id for field_id in value_columns if field_id not in fields_by_id]
    if unknown:
        raise MappingError("Unknown custom field", details={"field_ids": unknown})

    features = fetch_all_records(source, "features")
    feature_names = {f.id: f.name for f in features.records if f.name}

    snapshots: dict[str, dict[str, FieldValueResult]] = {}
    if config.preserve_existing:
        feature_ids = [
            row[config.uuid_column].strip()
            for row in table.rows
            if not is_blank(row.get(config.uuid_column))
        ]
        snapshots = get_field_snapshots(source, feature_ids, list(value_columns))

    items = classify_bulk_update(table.rows, config, fields_by_id, snapshots, feature_names)

    logger.info(
        "bulk_update_plan_built",
        rows=len(table.rows),
        fields=len(value_columns),
        preserve_existing=config.preserve_existing
    )

    return items


def apply_bulk_update(sink: RecordSink, item: ClassifiedItem) -> ExecutionResult:
    """Write every included field of one row; other fields still run if one fails."""
    field_types = {f.field_id: f.field_type for f in item.field_updates}
    errors = []

    for field_id, value in item.fields.items():
        sink_result = sink.apply_field_value(
            item.record_id,
            field_id,
            field_types.get(field_id, "number"),
            value
        )
        if not sink_result.success:
            errors.append(f"Field update failed: {sink_result.error}")

    return base_result(
        item,
        success=not errors,
        error="; ".join(errors) or None,
        applied_field_outcomes=list(item.field_updates),
    )

"""
Custom field copy (field migration).

Copies each feature's value of a source custom field into a target
custom field. Targets that already hold a value are left alone when
only_empty_targets is set, so re-running a finished migration is a no-op.
"""

from typing import Optional
import structlog

from models.configs import FieldCopyConfig
from models.field_value import display_value
from models.plan import ActionType, ClassifiedItem
from models.record import CustomField, FieldValueResult, Record
from models.execution import ExecutionResult
from exceptions import MappingError
from integrations.base import RecordSink, RecordSource
from services.pager_service import PagerResult, fetch_all_records
from services.field_value_service import get_field_snapshots
from services.executor_service import result_from_sink

logger = structlog.get_logger(__name__)

_EMPTY = FieldValueResult(has_value=False, value=None)


def classify_field_copy(
    features: list[Record],
    config: FieldCopyConfig,
    snapshots: dict[str, dict[str, FieldValueResult]],
    fields_by_id: Optional[dict[str, CustomField]] = None,
) -> list[ClassifiedItem]:
    """
    Classify every (mapping, feature) pair.

    Args:
        features: Features in listing order
        config: Copy rules
        snapshots: Field id -> feature id -> current value
        fields_by_id: Field definitions for names and target types

    Returns:
        Items grouped mapping by mapping, features in input order
    """
    fields_by_id = fields_by_id or {}
    items = []

    for mapping in config.mappings:
        source_field = fields_by_id.get(mapping.source_field_id)
        target_field = fields_by_id.get(mapping.target_field_id)
        source_values = snapshots.get(mapping.source_field_id, {})
        target_values = snapshots.get(mapping.target_field_id, {})

        for feature in features:
            source = source_values.get(feature.id, _EMPTY)
            target = target_values.get(feature.id, _EMPTY)

            if not source.has_value:
                action = ActionType.SKIPPED_SOURCE_EMPTY
            elif config.only_empty_targets and target.has_value:
                action = ActionType.SKIPPED_HAS_VALUE
            else:
                action = ActionType.WILL_UPDATE

            items.append(ClassifiedItem(
                source_ref=feature.id,
                action=action,
                comparison_key=f"{feature.id}|{mapping.target_field_id}",
                current_value=target.value,
                new_value=source.value if action == ActionType.WILL_UPDATE else None,
                record_id=feature.id,
                display_name=feature.name,
                field_id=mapping.target_field_id,
                field_name=target_field.name if target_field else mapping.target_field_id,
                field_type=target_field.type if target_field else "text",
                source_field_id=mapping.source_field_id,
                source_field_name=source_field.name if source_field else mapping.source_field_id,
                context={
                    "source_field_name": source_field.name if source_field else mapping.source_field_id,
                    "target_field_name": target_field.name if target_field else mapping.target_field_id,
                    "source_value": display_value(source.value),
                    "target_value": display_value(target.value),
                },
            ))

    return items


def build_field_copy_plan(source: RecordSource, config: FieldCopyConfig) -> tuple[list[ClassifiedItem], PagerResult]:
    """
    Fetch features, field definitions and value snapshots, then classify.

    Raises:
        SourceUnavailableError: If the feature listing cannot be read
        MappingError: If a mapped field does not exist
    """
    fields_by_id = {f.id: f for f in source.list_custom_fields("features")}

    referenced = []
    for mapping in config.mappings:
        referenced.extend([mapping.source_field_id, mapping.target_field_id])
    unknown = [field_id for field_id in referenced if field_id not in fields_by_id]
    if unknown:
        raise MappingError("Unknown custom field", details={"field_ids": unknown})

    features = fetch_all_records(source, "features")
    snapshots = get_field_snapshots(
        source,
        [f.id for f in features.records],
        referenced,
    )

    items = classify_field_copy(features.records, config, snapshots, fields_by_id)

    logger.info(
        "field_copy_plan_built",
        features=len(features.records),
        mappings=len(config.mappings),
        items=len(items)
    )

    return items, features


def apply_field_copy(sink: RecordSink, item: ClassifiedItem) -> ExecutionResult:
    """Write the source value into the target field."""
    sink_result = sink.apply_field_value(
        item.record_id,
        item.field_id,
        item.field_type or "text",
        item.new_value
    )
    return result_from_sink(item, sink_result)

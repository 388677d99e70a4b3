"""
Batched custom field value reads.

The only parallel part of a run: values for many entities are read in
fixed-size batches on a thread pool, with a short pause between batches
to stay under the remote rate limit. A failed read counts as "no value".
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Optional
import time
import structlog

from config import settings
from models.record import FieldValueResult
from integrations.base import RecordSource

logger = structlog.get_logger(__name__)


def read_in_batches(
    read_one: Callable[[str], FieldValueResult],
    entity_ids: list[str],
    batch_size: Optional[int] = None,
    pause_seconds: Optional[float] = None,
    label: str = "field_value",
) -> dict[str, FieldValueResult]:
    """
    Read one value per entity, `batch_size` at a time.

    Args:
        read_one: Reads the value for a single entity id
        entity_ids: Entities to read (duplicates are read once)
        batch_size: Concurrent reads per batch (settings default)
        pause_seconds: Pause between batches (settings default)
        label: Name used in log events

    Returns:
        Entity id -> FieldValueResult, one entry per requested id
    """
    batch_size = batch_size or settings.field_value_batch_size
    if pause_seconds is None:
        pause_seconds = settings.field_value_batch_pause_ms / 1000

    unique_ids = list(dict.fromkeys(entity_ids))
    results: dict[str, FieldValueResult] = {}
    failed = 0

    for start in range(0, len(unique_ids), batch_size):
        batch = unique_ids[start:start + batch_size]

        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            future_map = {
                executor.submit(read_one, entity_id): entity_id
                for entity_id in batch
            }
            for future in as_completed(future_map):
                entity_id = future_map[future]
                try:
                    results[entity_id] = future.result()
                except Exception as e:
                    failed += 1
                    logger.warning(
                        "field_value_read_failed",
                        label=label,
                        entity_id=entity_id,
                        error=str(e)
                    )
                    results[entity_id] = FieldValueResult(has_value=False, value=None)

        if start + batch_size < len(unique_ids) and pause_seconds > 0:
            time.sleep(pause_seconds)

    logger.info(
        "field_values_read",
        label=label,
        count=len(unique_ids),
        failed=failed
    )

    return results


def get_batch_field_values(
    source: RecordSource,
    entity_ids: list[str],
    field_id: str,
    scope: str = "features",
) -> dict[str, FieldValueResult]:
    """
    Read one custom field for many entities through a record source.

    Args:
        source: Object with get_field_value(entity_id, field_id, scope=...)
        entity_ids: Entity ids
        field_id: Custom field id
        scope: "features" or "companies"

    Returns:
        Entity id -> FieldValueResult
    """
    return read_in_batches(
        lambda entity_id: source.get_field_value(entity_id, field_id, scope=scope),
        entity_ids,
        label=field_id,
    )


def get_field_snapshots(
    source: RecordSource,
    entity_ids: list[str],
    field_ids: list[str],
    scope: str = "features",
) -> dict[str, dict[str, FieldValueResult]]:
    """
    Read several custom fields for many entities, one batched pass per field.

    Returns:
        Field id -> entity id -> FieldValueResult
    """
    snapshots = {}
    for field_id in dict.fromkeys(field_ids):
        snapshots[field_id] = source.get_batch_field_values(entity_ids, field_id, scope=scope)
    return snapshots

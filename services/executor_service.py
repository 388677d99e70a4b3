"""
Plan executor.

Runs a classified plan strictly in order, one remote call per actionable
item. A failing item is recorded and the run moves on; only a failure
outside the item boundary (a broken progress callback) aborts a run.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
import threading
import time
import structlog

from config import settings
from models.plan import ActionType, ClassifiedItem, requires_remote_call
from models.record import SinkResult
from models.execution import (
    ExecutionResult,
    RunOutcome,
    RunProgress,
    RunStatus,
)
from exceptions import AppError, OwnerAssignmentError, SinkApplyError
from integrations.base import RecordSink
from integrations.error_sanitizer import is_owner_assignment_error, sanitize_exception

logger = structlog.get_logger(__name__)


ApplyItem = Callable[[ClassifiedItem], ExecutionResult]
ProgressCallback = Callable[[RunProgress, ExecutionResult], None]


@dataclass(frozen=True)
class Throttle:
    """Pause `delay_seconds` after every `every` processed items."""
    every: int = 10
    delay_seconds: float = 0.2

    @classmethod
    def for_writes(cls) -> "Throttle":
        return cls(
            every=settings.write_throttle_every,
            delay_seconds=settings.write_throttle_delay_ms / 1000
        )

    @classmethod
    def for_deletes(cls) -> "Throttle":
        return cls(
            every=settings.delete_throttle_every,
            delay_seconds=settings.delete_throttle_delay_ms / 1000
        )

    def should_pause(self, processed: int, total: int) -> bool:
        return (
            self.delay_seconds > 0
            and processed % self.every == 0
            and processed < total
        )


# ===================
# RESULT HELPERS
# ===================

def base_result(item: ClassifiedItem, **values: Any) -> ExecutionResult:
    """ExecutionResult carrying the item's identity fields."""
    fields = {
        "source_ref": item.source_ref,
        "action": item.action,
        "record_id": item.record_id,
        "display_name": item.display_name,
        "row_index": item.row_index,
        "owner_email": item.owner_email,
        "new_value": item.new_value,
        "field_errors": list(item.field_errors),
        "all_fields_skipped": item.all_fields_skipped,
        "context": dict(item.context),
    }
    fields.update(values)
    return ExecutionResult(**fields)


def not_sent_result(item: ClassifiedItem) -> ExecutionResult:
    """Result for an item that needs no remote call."""
    if item.action == ActionType.ERROR:
        return base_result(item, success=False, sent=False, error=item.error)
    return base_result(
        item,
        success=True,
        sent=False,
        applied_field_outcomes=list(item.field_updates),
    )


def result_from_sink(item: ClassifiedItem, sink_result: SinkResult, **values: Any) -> ExecutionResult:
    """Translate a sink outcome into an ExecutionResult."""
    response = f"HTTP {sink_result.status_code}" if sink_result.status_code else None
    return base_result(
        item,
        success=sink_result.success,
        record_id=sink_result.record_id or item.record_id,
        error=sink_result.error,
        response=response,
        **values
    )


def raise_for_sink(sink_result: SinkResult, owner_email: Optional[str] = None) -> SinkResult:
    """
    Raise if a mutation failed.

    Raises:
        OwnerAssignmentError: If an owner was set and the failure points at it
        SinkApplyError: For any other failure
    """
    if sink_result.success:
        return sink_result

    message = sink_result.error or "Request failed"
    raw = sink_result.raw_error or sink_result.error

    if owner_email and is_owner_assignment_error(raw, sink_result.status_code):
        raise OwnerAssignmentError(
            message,
            owner_email=owner_email,
            status_code=sink_result.status_code,
            raw_error=sink_result.raw_error
        )
    raise SinkApplyError(message, status_code=sink_result.status_code, raw_error=sink_result.raw_error)


def create_with_owner_retry(
    sink: RecordSink,
    kind: str,
    fields: dict[str, Any],
    owner_email: Optional[str] = None,
    parent_id: Optional[str] = None,
) -> tuple[SinkResult, bool]:
    """
    Create a record, retrying once without the owner on owner errors.

    Args:
        sink: Record sink
        kind: Record kind ("notes" or a v2 entity type)
        fields: Payload including an "owner" entry when owner_email is set
        owner_email: Owner being assigned, if any
        parent_id: Parent entity (v2 only)

    Returns:
        Tuple of (successful SinkResult, owner_skipped)

    Raises:
        SinkApplyError: If creation fails (after the retry, when one happened)
    """
    kwargs = {"parent_id": parent_id} if parent_id else {}
    try:
        return raise_for_sink(sink.create_record(kind, fields, **kwargs), owner_email), False
    except OwnerAssignmentError as e:
        logger.info(
            "owner_assignment_retry",
            kind=kind,
            status_code=e.http_status
        )

    without_owner = {k: v for k, v in fields.items() if k != "owner"}
    return raise_for_sink(sink.create_record(kind, without_owner, **kwargs)), True


# ===================
# EXECUTOR
# ===================

class Executor:
    """
    Sequential, throttled, failure-isolating plan runner.

    Args:
        throttle: Pause policy (default: general writes)
        progress_callback: Called after every item with progress and result
        cancel_event: Checked before each item; when set the run stops
        sleep: Injected for tests
    """

    def __init__(
        self,
        throttle: Optional[Throttle] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.throttle = throttle or Throttle.for_writes()
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event
        self._sleep = sleep
        self.status = RunStatus.IDLE

    def _apply(self, item: ClassifiedItem, apply_item: ApplyItem) -> ExecutionResult:
        if not requires_remote_call(item.action):
            return not_sent_result(item)

        try:
            result = apply_item(item)
        except SinkApplyError as e:
            result = base_result(item, success=False, error=e.message)
        except AppError as e:
            result = base_result(item, success=False, error=e.message)
        except Exception as e:
            result = base_result(
                item,
                success=False,
                error=sanitize_exception(e, f"apply_{item.action.value}")
            )

        if not result.success:
            logger.warning(
                "run_item_failed",
                source_ref=item.source_ref,
                action=item.action.value,
                error=result.error
            )
        return result

    def run(self, items: list[ClassifiedItem], apply_item: ApplyItem) -> RunOutcome:
        """
        Execute every item of a plan.

        Args:
            items: Full plan in order
            apply_item: Performs the remote call for one actionable item

        Returns:
            RunOutcome with one result per processed item
        """
        total = len(items)
        results: list[ExecutionResult] = []
        progress = RunProgress(current=0, total=total)
        self.status = RunStatus.RUNNING

        logger.info("run_started", total=total, throttle_every=self.throttle.every)

        try:
            for index, item in enumerate(items):
                if self.cancel_event is not None and self.cancel_event.is_set():
                    self.status = RunStatus.CANCELLED
                    logger.info("run_cancelled", processed=index, total=total)
                    break

                result = self._apply(item, apply_item)
                results.append(result)

                processed = index + 1
                progress = RunProgress(current=processed, total=total)
                if self.progress_callback:
                    self.progress_callback(progress, result)

                if self.throttle.should_pause(processed, total):
                    self._sleep(self.throttle.delay_seconds)
            else:
                self.status = RunStatus.COMPLETED

        except Exception as e:
            self.status = RunStatus.ABORTED
            message = e.message if isinstance(e, AppError) else sanitize_exception(e, "run")
            logger.error("run_aborted", processed=len(results), total=total, error=str(e))
            return RunOutcome(status=self.status, results=results, progress=progress, error=message)

        logger.info(
            "run_finished",
            status=self.status.value,
            processed=len(results),
            failed=sum(1 for r in results if r.sent and not r.success)
        )

        return RunOutcome(status=self.status, results=results, progress=progress)

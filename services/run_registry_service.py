"""
Run registry.

Tracks executing and finished runs in memory so API clients can poll
progress and download the report. Only one run per module may be
active at a time.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import threading
import uuid
import structlog

from config import settings
from models.plan import ClassifiedItem
from models.execution import (
    ExecutionResult,
    RunOutcome,
    RunProgress,
    RunState,
    RunStatus,
    RunSummary,
    TabularReport,
)
from exceptions import RunInProgressError, RunNotFoundError, ValidationError
from services.executor_service import ApplyItem, Executor, ProgressCallback, Throttle
from services.report_service import failure_messages, summarize
from services.usage_stats_service import record_run

logger = structlog.get_logger(__name__)


@dataclass
class RunRecord:
    """Mutable state of one run (guarded by the registry lock)."""
    run_id: str
    module_id: str
    status: RunStatus = RunStatus.IDLE
    progress: RunProgress = field(default_factory=RunProgress)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    results: list[ExecutionResult] = field(default_factory=list)
    summary: Optional[RunSummary] = None
    report: Optional[TabularReport] = None
    failed_rows_report: Optional[TabularReport] = None
    migration_log_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    expires_at: Optional[datetime] = None


class RunRegistry:
    """In-memory run store, one active run per module."""

    def __init__(self):
        self._runs: dict[str, RunRecord] = {}
        self._active: dict[str, str] = {}
        self._lock = threading.Lock()

    def start(self, module_id: str) -> RunRecord:
        """
        Register a new running run.

        Raises:
            RunInProgressError: If the module already has an active run
        """
        with self._lock:
            active_id = self._active.get(module_id)
            if active_id is not None:
                raise RunInProgressError(module_id, active_id)

            self._cleanup_expired()
            run = RunRecord(run_id=str(uuid.uuid4()), module_id=module_id, status=RunStatus.RUNNING)
            self._runs[run.run_id] = run
            self._active[module_id] = run.run_id

        logger.info("run_registered", run_id=run.run_id, module_id=module_id)
        return run

    def _cleanup_expired(self) -> None:
        """Drop finished runs past their retention (caller holds the lock)."""
        now = datetime.now()
        expired = [
            run_id for run_id, run in self._runs.items()
            if run.expires_at is not None and now > run.expires_at
        ]
        for run_id in expired:
            del self._runs[run_id]
        if expired:
            logger.info("runs_evicted", count=len(expired))

    def _get(self, run_id: str) -> RunRecord:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def update_progress(self, run_id: str, progress: RunProgress) -> None:
        with self._lock:
            self._get(run_id).progress = progress

    def finish(
        self,
        run_id: str,
        outcome: RunOutcome,
        report: Optional[TabularReport] = None,
        failed_rows_report: Optional[TabularReport] = None,
    ) -> None:
        """Store the outcome and release the module."""
        with self._lock:
            run = self._get(run_id)
            run.status = outcome.status
            run.progress = outcome.progress
            run.results = outcome.results
            run.summary = summarize(outcome.results)
            run.report = report
            run.failed_rows_report = failed_rows_report
            run.error = outcome.error
            run.completed_at = datetime.now(timezone.utc).isoformat()
            run.expires_at = datetime.now() + timedelta(minutes=settings.run_retention_minutes)
            if self._active.get(run.module_id) == run_id:
                del self._active[run.module_id]

    def fail(self, run_id: str, error: str) -> None:
        """Abort a run that broke outside the executor."""
        with self._lock:
            run = self._get(run_id)
            run.status = RunStatus.ABORTED
            run.error = error
            run.completed_at = datetime.now(timezone.utc).isoformat()
            run.expires_at = datetime.now() + timedelta(minutes=settings.run_retention_minutes)
            if self._active.get(run.module_id) == run_id:
                del self._active[run.module_id]

    def set_migration_logs(self, run_id: str, log_ids: list[str]) -> None:
        with self._lock:
            self._get(run_id).migration_log_ids = list(log_ids)

    def cancel(self, run_id: str) -> RunState:
        """Signal a running run to stop before its next item."""
        with self._lock:
            run = self._get(run_id)
            if run.status == RunStatus.RUNNING:
                run.cancel_event.set()
                logger.info("run_cancel_requested", run_id=run_id)
        return self.get_state(run_id)

    def get_record(self, run_id: str) -> RunRecord:
        with self._lock:
            return self._get(run_id)

    def get_state(self, run_id: str, failure_limit: Optional[int] = None) -> RunState:
        """
        Snapshot of a run for API clients.

        Raises:
            RunNotFoundError: If the run doesn't exist
        """
        limit = failure_limit or settings.failure_display_limit
        with self._lock:
            run = self._get(run_id)
            failures, more = failure_messages(run.results, limit)
            return RunState(
                run_id=run.run_id,
                module_id=run.module_id,
                status=run.status,
                progress=run.progress,
                summary=run.summary,
                failures=failures,
                more_failures=more,
                migration_log_id=run.migration_log_ids[0] if run.migration_log_ids else None,
                error=run.error,
                started_at=run.started_at,
                completed_at=run.completed_at,
            )

    def get_report(self, run_id: str, failed_rows: bool = False) -> TabularReport:
        """
        Report of a finished run.

        Raises:
            RunNotFoundError: If the run doesn't exist
            ValidationError: If the run has not produced that report
        """
        with self._lock:
            run = self._get(run_id)
            report = run.failed_rows_report if failed_rows else run.report
        if report is None:
            raise ValidationError(
                "Report not available for this run",
                code="REPORT_NOT_AVAILABLE",
                details={"run_id": run_id, "status": run.status.value}
            )
        return report


# Singleton instance
_run_registry: Optional[RunRegistry] = None


def get_run_registry() -> RunRegistry:
    """Get or create the RunRegistry instance."""
    global _run_registry
    if _run_registry is None:
        _run_registry = RunRegistry()
    return _run_registry


def execute_plan(
    run: RunRecord,
    items: list[ClassifiedItem],
    apply_item: ApplyItem,
    build_report: Callable[[list[ExecutionResult]], TabularReport],
    throttle: Optional[Throttle] = None,
    on_progress: Optional[ProgressCallback] = None,
    build_failed_rows: Optional[Callable[[list[ExecutionResult]], TabularReport]] = None,
    registry: Optional[RunRegistry] = None,
) -> Optional[RunOutcome]:
    """
    Execute a plan for a registered run and record the outcome.

    Intended as a background task: every failure ends up in the run state
    and nothing is raised.

    Args:
        run: Run returned by RunRegistry.start
        items: Full plan
        apply_item: Remote call for one actionable item
        build_report: Builds the module's audit log from results
        throttle: Pause policy (default: general writes)
        on_progress: Extra per-item callback (e.g. migration logs)
        build_failed_rows: Builds the re-uploadable failure report
        registry: Registry holding the run (default singleton)

    Returns:
        RunOutcome, or None if the run broke outside the executor
    """
    registry = registry or get_run_registry()

    def _progress(progress: RunProgress, result: ExecutionResult) -> None:
        registry.update_progress(run.run_id, progress)
        if on_progress:
            on_progress(progress, result)

    executor = Executor(
        throttle=throttle,
        progress_callback=_progress,
        cancel_event=run.cancel_event,
    )

    try:
        outcome = executor.run(items, apply_item)
        report = build_report(outcome.results)
        failed_rows = build_failed_rows(outcome.results) if build_failed_rows else None
    except Exception as e:
        logger.error("run_execution_failed", run_id=run.run_id, error=str(e))
        registry.fail(run.run_id, "An unexpected error occurred")
        return None

    registry.finish(run.run_id, outcome, report, failed_rows)
    record_run(run.module_id)

    logger.info(
        "run_recorded",
        run_id=run.run_id,
        module_id=run.module_id,
        status=outcome.status.value,
        results=len(outcome.results)
    )

    return outcome

"""
Migration log service.

Persists the audit trail of custom field copy runs in Supabase:
one log per (source field, target field) pair, created when the run
starts and updated as features are processed.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from models.migration_log import (
    MigrationLogStatus,
    MigrationLogDetail,
    MigrationLogCreate,
    MigrationLogUpdate,
    MigrationLogResponse,
)
from models.plan import ClassifiedItem
from models.execution import ExecutionResult, RunProgress
from exceptions import DatabaseError, MigrationLogNotFoundError

logger = structlog.get_logger(__name__)

RECENT_LOG_LIMIT = 20


class MigrationLogService:
    """
    Migration log persistence.

    Handles create, update and read operations for migration logs.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "migration_logs"

    # ===================
    # READ OPERATIONS
    # ===================

    def list_recent(self, limit: int = RECENT_LOG_LIMIT) -> list[MigrationLogResponse]:
        """
        Get the newest migration logs.

        Args:
            limit: Maximum number of logs

        Returns:
            Logs ordered by started_at descending
        """
        logger.info("getting_migration_logs", limit=limit)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .order("started_at", desc=True)
                .limit(limit)
                .execute()
            )

            logs = [MigrationLogResponse(**row) for row in result.data]

            logger.info("migration_logs_retrieved", count=len(logs))
            return logs

        except Exception as e:
            logger.error("get_migration_logs_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_id(self, log_id: str) -> MigrationLogResponse:
        """
        Get a single migration log.

        Raises:
            MigrationLogNotFoundError: If the log doesn't exist
        """
        logger.debug("getting_migration_log", log_id=log_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", log_id)
                .limit(1)
                .execute()
            )

            if not result.data:
                raise MigrationLogNotFoundError(log_id)

            return MigrationLogResponse(**result.data[0])

        except MigrationLogNotFoundError:
            raise
        except Exception as e:
            logger.error("get_migration_log_failed", log_id=log_id, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: MigrationLogCreate) -> MigrationLogResponse:
        """
        Create a running migration log with zero counts.

        Args:
            data: Source and target field identity

        Returns:
            Created log
        """
        logger.info(
            "creating_migration_log",
            source_field_id=data.source_field_id,
            target_field_id=data.target_field_id
        )

        try:
            row = {
                **data.model_dump(),
                "features_processed": 0,
                "features_updated": 0,
                "features_skipped": 0,
                "features_failed": 0,
                "status": MigrationLogStatus.RUNNING.value,
                "started_at": datetime.now(timezone.utc).isoformat(),
                "details": [],
            }

            result = self.db.table(self.table).insert(row).execute()

            log = MigrationLogResponse(**result.data[0])
            logger.info("migration_log_created", log_id=log.id)
            return log

        except Exception as e:
            logger.error("create_migration_log_failed", error=str(e))
            raise DatabaseError("insert", str(e))

    def update(self, log_id: str, data: MigrationLogUpdate) -> MigrationLogResponse:
        """
        Update counts, status or details of a log.

        Raises:
            MigrationLogNotFoundError: If the log doesn't exist
        """
        update_data = data.model_dump(exclude_none=True, mode="json")

        if not update_data:
            return self.get_by_id(log_id)

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", log_id)
                .execute()
            )

            if not result.data:
                raise MigrationLogNotFoundError(log_id)

            logger.debug(
                "migration_log_updated",
                log_id=log_id,
                fields=list(update_data.keys())
            )
            return MigrationLogResponse(**result.data[0])

        except MigrationLogNotFoundError:
            raise
        except Exception as e:
            logger.error("update_migration_log_failed", log_id=log_id, error=str(e))
            raise DatabaseError("update", str(e))


class MigrationLogRecorder:
    """
    Keeps migration logs in step with a field copy run.

    One log is opened per (source, target) pair in the plan. Counts and
    details are accumulated per result and written every `flush_every`
    results and at the end. Persistence failures are logged and never
    raised.
    """

    def __init__(
        self,
        service: MigrationLogService,
        items: list[ClassifiedItem],
        flush_every: int = 10,
    ):
        self.service = service
        self.flush_every = flush_every
        self._log_ids: dict[tuple[str, str], str] = {}
        self._updates: dict[str, MigrationLogUpdate] = {}
        self._details: dict[str, list[MigrationLogDetail]] = {}
        self._pending = 0
        attempted: set[tuple[str, str]] = set()

        for item in items:
            key = (item.source_field_id or "", item.field_id or "")
            if key in attempted:
                continue
            attempted.add(key)
            try:
                log = service.create(MigrationLogCreate(
                    source_field_id=key[0],
                    source_field_name=item.source_field_name or "",
                    target_field_id=key[1],
                    target_field_name=item.field_name or "",
                ))
            except DatabaseError as e:
                logger.warning("migration_log_create_failed", error=e.message)
                continue
            self._log_ids[key] = log.id
            self._updates[log.id] = MigrationLogUpdate(
                features_processed=0,
                features_updated=0,
                features_skipped=0,
                features_failed=0,
            )
            self._details[log.id] = []

        self._items = items

    @property
    def log_ids(self) -> list[str]:
        return list(self._log_ids.values())

    def on_progress(self, progress: RunProgress, result: ExecutionResult) -> None:
        """Executor progress callback."""
        item = self._items[progress.current - 1]
        log_id = self._log_ids.get((item.source_field_id or "", item.field_id or ""))
        if log_id is None:
            return

        counts = self._updates[log_id]
        counts.features_processed += 1
        if not result.sent:
            counts.features_skipped += 1
        elif result.success:
            counts.features_updated += 1
        else:
            counts.features_failed += 1

        self._details[log_id].append(MigrationLogDetail(
            feature_id=item.record_id or item.source_ref,
            feature_name=item.display_name,
            source_value=item.context.get("source_value"),
            target_value=item.context.get("target_value"),
            action=item.action.value,
            success=result.success,
            error=result.error,
        ))

        self._pending += 1
        if self._pending >= self.flush_every:
            self.flush()

    def flush(self, status: Optional[MigrationLogStatus] = None) -> None:
        """Write accumulated counts and details for every open log."""
        self._pending = 0
        for log_id, counts in self._updates.items():
            update = counts.model_copy(update={"details": list(self._details[log_id])})
            if status is not None:
                update = update.model_copy(update={
                    "status": status,
                    "completed_at": datetime.now(timezone.utc),
                })
            try:
                self.service.update(log_id, update)
            except (DatabaseError, MigrationLogNotFoundError) as e:
                logger.warning("migration_log_update_failed", log_id=log_id, error=e.message)

    def finalize(self, failed: bool = False) -> None:
        """Mark every log completed (or failed) with final counts."""
        status = MigrationLogStatus.FAILED if failed else MigrationLogStatus.COMPLETED
        self.flush(status)
        logger.info(
            "migration_logs_finalized",
            logs=len(self._log_ids),
            status=status.value
        )


# Singleton instance
_migration_log_service: Optional[MigrationLogService] = None


def get_migration_log_service() -> MigrationLogService:
    """Get or create MigrationLogService instance."""
    global _migration_log_service
    if _migration_log_service is None:
        _migration_log_service = MigrationLogService()
    return _migration_log_service

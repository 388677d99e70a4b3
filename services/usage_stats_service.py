"""
Usage stats service.

Counts executed runs per module in the usage_stats table.
"""

from typing import Optional
import structlog

from config import get_supabase_client, settings
from config.database import ConnectionError as DatabaseConnectionError
from models.usage import UsageStatResponse
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class UsageStatsService:
    """Per-module run counters."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "usage_stats"

    def get_all(self) -> list[UsageStatResponse]:
        """
        Get every module counter.

        Returns:
            Counters ordered by module id
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .order("module_id")
                .execute()
            )
            return [UsageStatResponse(**row) for row in result.data]

        except Exception as e:
            logger.error("get_usage_stats_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def increment(self, module_id: str) -> UsageStatResponse:
        """
        Add one to a module's counter, creating it on first use.

        Args:
            module_id: Module identifier (e.g. "bulk-update")

        Returns:
            Updated counter
        """
        try:
            existing = (
                self.db.table(self.table)
                .select("*")
                .eq("module_id", module_id)
                .limit(1)
                .execute()
            )

            if existing.data:
                count = int(existing.data[0].get("count") or 0) + 1
                result = (
                    self.db.table(self.table)
                    .update({"count": count})
                    .eq("module_id", module_id)
                    .execute()
                )
            else:
                result = (
                    self.db.table(self.table)
                    .insert({"module_id": module_id, "count": 1})
                    .execute()
                )

            stat = UsageStatResponse(**result.data[0])
            logger.info("usage_incremented", module_id=module_id, count=stat.count)
            return stat

        except Exception as e:
            logger.error("usage_increment_failed", module_id=module_id, error=str(e))
            raise DatabaseError("update", str(e))


# Singleton instance
_usage_stats_service: Optional[UsageStatsService] = None


def get_usage_stats_service() -> UsageStatsService:
    """Get or create UsageStatsService instance."""
    global _usage_stats_service
    if _usage_stats_service is None:
        _usage_stats_service = UsageStatsService()
    return _usage_stats_service


def record_run(module_id: str) -> None:
    """Count one executed run; a missing or failing datastore only logs a warning."""
    if not settings.supabase_configured:
        logger.warning("usage_stats_disabled", module_id=module_id)
        return
    try:
        get_usage_stats_service().increment(module_id)
    except (DatabaseError, DatabaseConnectionError) as e:
        logger.warning("usage_not_recorded", module_id=module_id, error=str(e))

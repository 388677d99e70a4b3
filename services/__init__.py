"""
Business logic services.

Classifiers build plans from records and rows, the executor applies them,
and the Supabase-backed services keep migration logs and usage counters.
"""

from services.executor_service import Executor, Throttle
from services.pager_service import PagerResult, fetch_all, fetch_all_records
from services.migration_log_service import (
    MigrationLogService,
    MigrationLogRecorder,
    get_migration_log_service,
)
from services.usage_stats_service import UsageStatsService, get_usage_stats_service, record_run
from services.run_registry_service import RunRegistry, get_run_registry, execute_plan

__all__ = [
    "Executor",
    "Throttle",
    "PagerResult",
    "fetch_all",
    "fetch_all_records",
    "MigrationLogService",
    "MigrationLogRecorder",
    "get_migration_log_service",
    "UsageStatsService",
    "get_usage_stats_service",
    "record_run",
    "RunRegistry",
    "get_run_registry",
    "execute_plan",
]

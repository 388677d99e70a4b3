"""
Exhaustive cursor pagination over a record source.

Walks every page of a listing. A failure on the first page is fatal;
a failure on a later page keeps what was collected and flags the
result incomplete so callers can warn before acting on partial data.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import structlog

from models.record import PageResult, Record
from exceptions import AppError, SourceUnavailableError
from integrations.base import RecordSource
from integrations.error_sanitizer import sanitize_exception

logger = structlog.get_logger(__name__)


@dataclass
class PagerResult:
    """All records collected by one walk."""
    records: list[Record] = field(default_factory=list)
    complete: bool = True
    error: Optional[str] = None
    pages: int = 0


def _error_message(error: Exception, label: str) -> str:
    if isinstance(error, AppError):
        return error.message
    return sanitize_exception(error, f"list_{label}")


def fetch_all(
    list_page: Callable[[Optional[str]], PageResult],
    *,
    label: str = "records",
) -> PagerResult:
    """
    Fetch every page of a listing.

    Args:
        list_page: Fetches one page given the previous cursor (None first)
        label: Listing name used in logs and errors

    Returns:
        PagerResult; complete=False when a later page failed

    Raises:
        SourceUnavailableError: If the first page fails
    """
    result = PagerResult()
    cursor: Optional[str] = None
    seen_cursors: set[str] = set()

    while True:
        try:
            page = list_page(cursor)
        except Exception as e:
            message = _error_message(e, label)
            if result.pages == 0:
                logger.error("pager_first_page_failed", label=label, error=message)
                raise SourceUnavailableError(label, message) from e

            logger.warning(
                "page_fetch_failed",
                label=label,
                page=result.pages + 1,
                collected=len(result.records),
                error=message
            )
            result.complete = False
            result.error = message
            break

        result.pages += 1
        result.records.extend(page.items)

        logger.debug(
            "pager_page_fetched",
            label=label,
            page=result.pages,
            count=len(page.items)
        )

        cursor = page.next_cursor
        if not cursor:
            break
        if cursor in seen_cursors:
            logger.warning("pager_cursor_repeated", label=label, page=result.pages)
            break
        seen_cursors.add(cursor)

    logger.info(
        "pager_completed",
        label=label,
        pages=result.pages,
        records=len(result.records),
        complete=result.complete
    )

    return result


def fetch_all_records(source: RecordSource, kind: str) -> PagerResult:
    """Walk every page of one listing kind on a record source."""
    return fetch_all(lambda cursor: source.list_page(kind, cursor), label=kind)

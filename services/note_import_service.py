"""
Note import from an uploaded CSV.

Each row becomes one note. The title joins the ordered title columns,
the body renders each ordered body column as a bold heading followed by
its value, and tag columns become note tags. Notes are always created;
there is no natural key to match against.
"""

from typing import Optional
import structlog

from models.configs import NoteImportConfig
from models.plan import ActionType, ClassifiedItem
from models.execution import ExecutionResult
from exceptions import MappingError
from integrations.base import RecordSink
from parsers.table_parser import ParsedTable
from services.executor_service import create_with_owner_retry, result_from_sink

logger = structlog.get_logger(__name__)


def build_title(row: dict[str, str], config: NoteImportConfig) -> str:
    values = [(row.get(col) or "").strip() for col in config.title_columns]
    return ", ".join(v for v in values if v)


def build_body(row: dict[str, str], config: NoteImportConfig) -> str:
    parts = [
        f"<b>{col}</b><br>{row[col].strip()}"
        for col in config.body_columns
        if (row.get(col) or "").strip()
    ]
    return "<br><br>".join(parts)


def build_tags(row: dict[str, str], config: NoteImportConfig) -> list[str]:
    values = [(row.get(col) or "").strip() for col in config.tag_columns]
    return [v for v in values if v]


def _optional_column(row: dict[str, str], column: Optional[str]) -> Optional[str]:
    if not column:
        return None
    return (row.get(column) or "").strip() or None


def _missing_error(title: str, body: str) -> Optional[str]:
    if not title and not body:
        return "Missing title and note text"
    if not title:
        return "Missing title"
    if not body:
        return "Missing note text"
    return None


def classify_note_import(rows: list[dict[str, str]], config: NoteImportConfig) -> list[ClassifiedItem]:
    """
    Classify each row as create or error.

    Args:
        rows: Parsed rows in file order
        config: Ordered title/body/tag columns and optional email columns

    Returns:
        One item per row
    """
    items = []

    for row_index, row in enumerate(rows):
        title = build_title(row, config)
        body = build_body(row, config)
        tags = build_tags(row, config)
        user_email = _optional_column(row, config.user_email_column)
        owner_email = _optional_column(row, config.owner_column)
        error = _missing_error(title, body)

        fields: dict = {}
        if not error:
            fields = {"title": title, "content": body}
            if user_email:
                fields["user"] = {"email": user_email}
            if owner_email:
                fields["owner"] = {"email": owner_email}
            if tags:
                fields["tags"] = tags

        items.append(ClassifiedItem(
            source_ref=f"row:{row_index + 1}",
            action=ActionType.ERROR if error else ActionType.CREATE,
            comparison_key=f"row:{row_index + 1}",
            row_index=row_index,
            display_name=title,
            fields=fields,
            owner_email=owner_email,
            error=error,
            context={
                "title": title,
                "content": body,
                "user_email": user_email or "",
                "owner": owner_email or "",
                "tags": tags,
            },
        ))

    return items


def build_note_import_plan(table: ParsedTable, config: NoteImportConfig) -> list[ClassifiedItem]:
    """
    Validate the column selection and classify rows.

    Raises:
        MappingError: If a selected column does not exist
    """
    selected = [
        *config.title_columns,
        *config.body_columns,
        *config.tag_columns,
        *[c for c in (config.user_email_column, config.owner_column) if c],
    ]
    missing = [col for col in dict.fromkeys(selected) if col not in table.columns]
    if missing:
        raise MappingError("Selected column not found", details={"columns": missing})

    items = classify_note_import(table.rows, config)

    logger.info(
        "note_import_plan_built",
        rows=len(table.rows),
        invalid=sum(1 for item in items if item.action == ActionType.ERROR)
    )

    return items


def apply_note_import(sink: RecordSink, item: ClassifiedItem) -> ExecutionResult:
    """Create one note, dropping the owner if the workspace rejects it."""
    sink_result, owner_skipped = create_with_owner_retry(
        sink,
        "notes",
        item.fields,
        owner_email=item.owner_email,
    )
    return result_from_sink(item, sink_result, owner_skipped=owner_skipped)

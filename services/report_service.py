"""
Run reports.

Aggregates execution results and renders the per-module audit logs as
CSV: a summary block, a blank line, then a header and one row per result.
"""

import csv
from datetime import datetime
from io import StringIO
from typing import Any, Optional

from models.field_value import display_value
from models.plan import ActionType
from models.execution import ExecutionResult, RunSummary, TabularReport
from utils.value_utils import strip_html


# ===================
# AGGREGATION
# ===================

def summarize(results: list[ExecutionResult]) -> RunSummary:
    """Count outcomes by category."""
    summary = RunSummary(total=len(results))

    for r in results:
        if r.action == ActionType.ERROR:
            summary.invalid += 1
            continue

        if not r.sent:
            summary.skipped += 1
            if r.action == ActionType.SKIPPED_HAS_VALUE:
                summary.skipped_has_value += 1
            elif r.action == ActionType.SKIPPED_SOURCE_EMPTY:
                summary.skipped_source_empty += 1
            elif r.action == ActionType.SKIPPED_BLANK:
                summary.skipped_blank += 1
            if r.all_fields_skipped:
                summary.all_fields_skipped += 1
            summary.fields_skipped += sum(1 for f in r.applied_field_outcomes if f.skipped)
            continue

        summary.sent += 1
        if not r.success:
            summary.failed += 1
            summary.fields_skipped += sum(1 for f in r.applied_field_outcomes if f.skipped)
            continue

        summary.succeeded += 1
        if r.action == ActionType.CREATE:
            summary.created += 1
        elif r.action in (ActionType.UPDATE, ActionType.WILL_UPDATE):
            summary.updated += 1
        elif r.action == ActionType.DELETE:
            summary.deleted += 1
        if r.owner_skipped:
            summary.owner_skipped += 1
        summary.fields_updated += sum(1 for f in r.applied_field_outcomes if not f.skipped)
        summary.fields_skipped += sum(1 for f in r.applied_field_outcomes if f.skipped)

    return summary


def result_error(result: ExecutionResult) -> str:
    """Error text for one result, falling back to field-level errors."""
    return result.error or "; ".join(result.field_errors)


def failure_messages(results: list[ExecutionResult], limit: int = 20) -> tuple[list[str], int]:
    """
    First `limit` failure messages plus how many more there are.

    Returns:
        Tuple of (messages, count beyond the cap)
    """
    messages = []
    for r in results:
        if r.success:
            continue
        label = r.display_name or r.record_id or r.source_ref
        messages.append(f"{label}: {result_error(r) or 'Unknown error'}")
    return messages[:limit], max(0, len(messages) - limit)


# ===================
# CSV
# ===================

def _write_rows(rows: list[list[Any]]) -> str:
    """Write rows with csv.writer (minimal quoting), no trailing newline."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()[:-1]


def escape_csv(value: Any) -> str:
    """
    Quote a value only when it contains a comma, quote or newline.

    Examples:
        escape_csv('plain')   -> 'plain'
        escape_csv('a, b')    -> '"a, b"'
    """
    if value is None or value == "":
        return ""
    return _write_rows([[value]])


def render_csv(report: TabularReport) -> str:
    """Summary block, blank line, header, rows."""
    rows: list[list[Any]] = [[report.title]]
    rows.extend([line] if line else [] for line in report.metadata)
    rows.append([])
    rows.append(report.columns)
    rows.extend(report.rows)
    return _write_rows(rows)


def report_filename(report: TabularReport, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{report.filename_prefix}-{stamp}.csv"


def _date_line() -> str:
    return f"Date: {datetime.now().isoformat(timespec='seconds')}"


def _row_number(result: ExecutionResult) -> str:
    return str(result.row_index + 1) if result.row_index is not None else ""


# ===================
# PER-MODULE REPORTS
# ===================

def build_field_copy_report(results: list[ExecutionResult]) -> TabularReport:
    """Migration log: one row per attempted write."""
    sent = [r for r in results if r.sent]
    rows = [
        [
            r.record_id or "",
            r.display_name,
            r.context.get("source_field_name", ""),
            r.context.get("target_field_name", ""),
            display_value(r.new_value),
            "Success" if r.success else "Failed",
            r.response or "",
            r.error or "",
        ]
        for r in sent
    ]
    return TabularReport(
        title="Migration Log",
        metadata=[
            _date_line(),
            f"Total: {len(sent)}",
            f"Successful: {sum(1 for r in sent if r.success)}",
            f"Failed: {sum(1 for r in sent if not r.success)}",
            f"Skipped (target has value): {sum(1 for r in results if r.action == ActionType.SKIPPED_HAS_VALUE)}",
            f"Skipped (source empty): {sum(1 for r in results if r.action == ActionType.SKIPPED_SOURCE_EMPTY)}",
        ],
        columns=[
            "Feature ID", "Feature Name", "Source Field", "Target Field",
            "New Value", "Status", "Response", "Error",
        ],
        rows=rows,
        filename_prefix="migration-log",
    )


def build_duplicate_notes_report(results: list[ExecutionResult], group_count: int) -> TabularReport:
    """Deletion log: one row per deletion attempt."""
    deletions = [r for r in results if r.action == ActionType.DELETE]
    rows = [
        [
            r.record_id or "",
            r.context.get("title", ""),
            r.context.get("company", ""),
            "Deleted" if r.success else "Failed",
            r.error or "",
        ]
        for r in deletions
    ]
    return TabularReport(
        title="Duplicate Notes Deletion Log",
        metadata=[
            _date_line(),
            f"Duplicate Groups Found: {group_count}",
            f"Notes Deleted: {sum(1 for r in deletions if r.success)}",
            f"Failed: {sum(1 for r in deletions if not r.success)}",
        ],
        columns=["Note ID", "Title", "Company", "Status", "Error"],
        rows=rows,
        filename_prefix="duplicate-notes-deletion-log",
    )


def _bulk_status(result: ExecutionResult) -> str:
    if not result.success:
        return "Failed"
    if result.all_fields_skipped:
        return "Skipped (all fields had data)"
    if not result.sent:
        return "Skipped (no valid values)"
    return "Updated"


def build_bulk_update_report(
    results: list[ExecutionResult],
    field_mappings: list[tuple[str, str, str]],
    preserve_existing: bool,
) -> TabularReport:
    """
    Bulk update log with old/new/skipped columns per mapped field.

    Args:
        results: Run results
        field_mappings: (csv column, field id, field name) per mapped field
        preserve_existing: Whether existing values were preserved
    """
    logged = [
        r for r in results
        if r.sent or r.all_fields_skipped or r.action == ActionType.ERROR or r.field_errors
    ]

    columns = ["Row", "Feature ID", "Feature Name", "Status", "Error"]
    for _, _, field_name in field_mappings:
        columns.extend([f"{field_name} (Old)", f"{field_name} (New)", f"{field_name} (Skipped)"])

    rows = []
    for r in logged:
        outcomes = {f.field_id: f for f in r.applied_field_outcomes}
        row = [_row_number(r), r.record_id or "", r.display_name, _bulk_status(r), result_error(r)]
        for _, field_id, _ in field_mappings:
            outcome = outcomes.get(field_id)
            if outcome:
                row.extend([
                    outcome.old_value or "",
                    display_value(outcome.new_value),
                    "Yes" if outcome.skipped else "No",
                ])
            else:
                row.extend(["", "", ""])
        rows.append(row)

    summary = summarize(logged)
    fields_list = ", ".join(f"{column} -> {name}" for column, _, name in field_mappings)
    metadata = [
        _date_line(),
        f"Preserve Existing Values: {'Yes' if preserve_existing else 'No'}",
        f"Field Mappings: {fields_list}",
        "",
        "Summary",
        f"Total Features Processed: {len(logged)}",
        f"Features Updated: {summary.updated}",
        f"Features Failed: {summary.failed + summary.invalid}",
    ]
    if preserve_existing:
        metadata.extend([
            f"Features Skipped (all fields had data): {summary.all_fields_skipped}",
            f"Total Fields Updated: {summary.fields_updated}",
            f"Total Fields Skipped (preserved existing): {summary.fields_skipped}",
        ])

    return TabularReport(
        title="CSV Bulk Update Log",
        metadata=metadata,
        columns=columns,
        rows=rows,
        filename_prefix="bulk-update-log",
    )


def build_company_import_report(results: list[ExecutionResult]) -> TabularReport:
    """Company import log (rows missing name or domain are left out)."""
    logged = [r for r in results if r.action != ActionType.SKIPPED_BLANK]
    rows = [
        [
            _row_number(r),
            r.context.get("name", ""),
            r.context.get("domain", ""),
            "Created" if r.action == ActionType.CREATE else "Updated",
            "Success" if r.success else "Failed",
            r.record_id or "",
            result_error(r),
        ]
        for r in logged
    ]
    return TabularReport(
        title="CSV Company Import Log",
        metadata=[
            _date_line(),
            f"Total: {len(logged)}",
            f"Created: {sum(1 for r in logged if r.success and r.action == ActionType.CREATE)}",
            f"Updated: {sum(1 for r in logged if r.success and r.action == ActionType.UPDATE)}",
            f"Failed: {sum(1 for r in logged if not r.success)}",
        ],
        columns=["Row", "Name", "Domain", "Action", "Status", "Company ID", "Error"],
        rows=rows,
        filename_prefix="company-import-log",
    )


def build_entity_import_report(results: list[ExecutionResult], entity_type: str) -> TabularReport:
    """Entity import log with owner fallback columns."""
    def status(r: ExecutionResult) -> str:
        if not r.success:
            return "Failed"
        return "Created" if r.action == ActionType.CREATE else "Updated"

    rows = [
        [
            _row_number(r),
            r.display_name,
            status(r),
            r.record_id or "",
            "Yes" if r.owner_skipped else "",
            r.owner_email if r.owner_skipped and r.owner_email else "",
            result_error(r),
        ]
        for r in results
    ]
    return TabularReport(
        title="CSV Entity Import Log",
        metadata=[
            _date_line(),
            f"Entity Type: {entity_type}",
            f"Total: {len(results)}",
            f"Created: {sum(1 for r in results if r.success and r.action == ActionType.CREATE)}",
            f"Updated: {sum(1 for r in results if r.success and r.action == ActionType.UPDATE)}",
            f"Failed: {sum(1 for r in results if not r.success)}",
            f"Owner Skipped: {sum(1 for r in results if r.owner_skipped)}",
        ],
        columns=["Row", "Name", "Status", "Entity ID", "Owner Skipped", "Skipped Owner Email", "Error"],
        rows=rows,
        filename_prefix="entity-import-log",
    )


def _column_list(columns) -> str:
    return " + ".join(columns) if columns else "(none)"


def build_note_import_report(
    results: list[ExecutionResult],
    mappings: dict[str, Any],
    total_rows: int,
) -> TabularReport:
    """
    Note import log.

    Args:
        results: Run results
        mappings: title_columns, body_columns, tag_columns,
            user_email_column, owner_column
        total_rows: Rows in the uploaded file
    """
    def status(r: ExecutionResult) -> str:
        if not r.success:
            return "Failed"
        return "Imported without Owner" if r.owner_skipped else "Success"

    rows = [
        [
            _row_number(r),
            r.context.get("title", ""),
            strip_html(r.context.get("content", ""))[:100],
            r.context.get("user_email", ""),
            r.context.get("owner", ""),
            "; ".join(r.context.get("tags", [])),
            status(r),
            result_error(r),
        ]
        for r in results
    ]
    return TabularReport(
        title="CSV Note Import Log",
        metadata=[
            _date_line(),
            "",
            "Column Mappings:",
            f"  Title: {_column_list(mappings.get('title_columns', ()))}",
            f"  Note Text: {_column_list(mappings.get('body_columns', ()))}",
            f"  User Email: {mappings.get('user_email_column') or '(none)'}",
            f"  Owner: {mappings.get('owner_column') or '(none)'}",
            f"  Tags: {_column_list(mappings.get('tag_columns', ()))}",
            "",
            f"Total Rows in CSV: {total_rows}",
            f"Successfully Imported: {sum(1 for r in results if r.success and not r.owner_skipped)}",
            f"Imported without Owner: {sum(1 for r in results if r.success and r.owner_skipped)}",
            f"Failed: {sum(1 for r in results if not r.success)}",
        ],
        columns=["Row", "Title", "Note Text (preview)", "User Email", "Owner", "Tags", "Status", "Error"],
        rows=rows,
        filename_prefix="note-import-log",
    )


def build_failed_rows_report(
    results: list[ExecutionResult],
    columns: list[str],
    rows: list[dict[str, str]],
) -> TabularReport:
    """
    Failed input rows with an Error column, ready to fix and re-upload.

    Rendered without a summary block by render_failed_rows_csv.
    """
    failed_rows = []
    for r in results:
        if r.success or r.row_index is None or r.row_index >= len(rows):
            continue
        source_row = rows[r.row_index]
        failed_rows.append([source_row.get(c, "") for c in columns] + [result_error(r) or "Unknown error"])

    return TabularReport(
        title="Failure Report",
        columns=[*columns, "Error"],
        rows=failed_rows,
        filename_prefix="failure_report",
    )


def render_failed_rows_csv(report: TabularReport) -> str:
    """Header and rows only, so the file can be uploaded again as-is."""
    return _write_rows([report.columns, *report.rows])

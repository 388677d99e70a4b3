"""
Unit tests for run summaries and CSV reports.

Run: pytest tests/unit/test_report_service.py -v
"""

from datetime import datetime

from models.plan import ActionType, FieldUpdateDetail
from models.execution import ExecutionResult, TabularReport
from parsers.table_parser import parse_csv_line, parse_table
from services.report_service import (
    summarize,
    failure_messages,
    escape_csv,
    render_csv,
    report_filename,
    build_field_copy_report,
    build_bulk_update_report,
    build_company_import_report,
    build_entity_import_report,
    build_note_import_report,
    build_failed_rows_report,
    render_failed_rows_csv,
)


def _result(index: int, action: ActionType = ActionType.UPDATE, **values) -> ExecutionResult:
    fields = {
        "source_ref": f"row:{index + 1}",
        "action": action,
        "success": True,
        "record_id": f"rec-{index}",
        "display_name": f"Item {index}",
        "row_index": index,
    }
    fields.update(values)
    return ExecutionResult(**fields)


class TestSummarize:
    """Tests for summarize()"""

    def test_counts_by_category(self):
        # Arrange
        results = [
            _result(0, ActionType.CREATE),
            _result(1, ActionType.UPDATE, owner_skipped=True),
            _result(2, ActionType.DELETE),
            _result(3, ActionType.UPDATE, success=False, error="Boom"),
            _result(4, ActionType.SKIPPED_HAS_VALUE, sent=False),
            _result(5, ActionType.SKIPPED_SOURCE_EMPTY, sent=False),
            _result(6, ActionType.ERROR, success=False, sent=False, error="Missing feature UUID"),
        ]

        # Act
        summary = summarize(results)

        # Assert
        assert summary.total == 7
        assert summary.sent == 4
        assert summary.succeeded == 3
        assert summary.failed == 1
        assert (summary.created, summary.updated, summary.deleted) == (1, 1, 1)
        assert summary.owner_skipped == 1
        assert summary.skipped == 2
        assert summary.skipped_has_value == 1
        assert summary.skipped_source_empty == 1
        assert summary.invalid == 1

    def test_field_counts(self):
        outcomes = [
            FieldUpdateDetail(field_id="a", field_name="A", new_value=1),
            FieldUpdateDetail(field_id="b", field_name="B", old_value="2", skipped=True),
        ]
        results = [_result(0, applied_field_outcomes=outcomes)]

        summary = summarize(results)

        assert summary.fields_updated == 1
        assert summary.fields_skipped == 1


class TestFailureMessages:
    """Tests for failure_messages()"""

    def test_capped_with_remainder(self):
        results = [_result(i, success=False, error="Boom") for i in range(25)]

        messages, more = failure_messages(results, limit=20)

        assert len(messages) == 20
        assert more == 5
        assert messages[0] == "Item 0: Boom"

    def test_falls_back_to_field_errors(self):
        results = [_result(0, success=False, field_errors=["Reach: Invalid data format"])]

        messages, more = failure_messages(results)

        assert messages == ["Item 0: Reach: Invalid data format"]
        assert more == 0


class TestEscapeCsv:
    """Tests for escape_csv()"""

    def test_plain_values_unquoted(self):
        assert escape_csv("plain") == "plain"
        assert escape_csv(None) == ""
        assert escape_csv(3) == "3"

    def test_quotes_and_commas(self):
        assert escape_csv('He said, "hi"') == '"He said, ""hi"""'

    def test_parser_reads_escaped_value_back(self):
        """Should decode to the original value with the table parser."""
        original = 'He said, "hi"'

        assert parse_csv_line(escape_csv(original)) == [original]


class TestRenderCsv:
    """Tests for render_csv() and report_filename()"""

    def test_summary_block_then_table(self):
        report = TabularReport(
            title="Log",
            metadata=["Total: 1"],
            columns=["ID", "Error"],
            rows=[["1", "a, b"]],
        )

        assert render_csv(report) == 'Log\nTotal: 1\n\nID,Error\n1,"a, b"'

    def test_blank_metadata_lines_stay_blank(self):
        """Should write an empty line, not a quoted empty value."""
        report = TabularReport(title="Log", metadata=["Mappings:", "", "Total: 0"], columns=["ID"])

        assert render_csv(report) == "Log\nMappings:\n\nTotal: 0\n\nID"

    def test_multiline_value_reads_back(self):
        """Should quote embedded newlines so the table parser restores them."""
        # Arrange
        report = TabularReport(
            title="Failure Report",
            columns=["uuid", "note"],
            rows=[["f1", 'line one\nsaid "hi", then left']],
        )

        # Act
        table = parse_table(render_failed_rows_csv(report))

        # Assert
        assert table.rows == [{"uuid": "f1", "note": 'line one\nsaid "hi", then left'}]

    def test_filename_has_timestamp(self):
        report = TabularReport(title="Log", columns=[], filename_prefix="migration-log")

        name = report_filename(report, now=datetime(2024, 5, 6, 7, 8, 9))

        assert name == "migration-log-2024-05-06T07-08-09.csv"


class TestModuleReports:
    """Tests for the per-module report builders"""

    def test_field_copy_report_lists_sent_items_only(self):
        results = [
            _result(0, new_value="hello", response="HTTP 200",
                    context={"source_field_name": "Old", "target_field_name": "New"}),
            _result(1, ActionType.SKIPPED_HAS_VALUE, sent=False),
        ]

        report = build_field_copy_report(results)

        assert report.rows == [["rec-0", "Item 0", "Old", "New", "hello", "Success", "HTTP 200", ""]]
        assert "Skipped (target has value): 1" in report.metadata

    def test_bulk_update_report_columns_per_field(self):
        outcomes = [
            FieldUpdateDetail(field_id="cf-r", field_name="Reach", old_value="50", new_value=80.0, skipped=True),
            FieldUpdateDetail(field_id="cf-i", field_name="Impact", new_value=3.0),
        ]
        results = [_result(0, applied_field_outcomes=outcomes)]

        report = build_bulk_update_report(
            results, [("reach", "cf-r", "Reach"), ("impact", "cf-i", "Impact")], preserve_existing=True
        )

        assert report.columns[5:] == [
            "Reach (Old)", "Reach (New)", "Reach (Skipped)",
            "Impact (Old)", "Impact (New)", "Impact (Skipped)",
        ]
        assert report.rows[0] == ["1", "rec-0", "Item 0", "Updated", "", "50", "80", "Yes", "", "3", "No"]
        assert "Field Mappings: reach -> Reach, impact -> Impact" in report.metadata
        assert "Total Fields Skipped (preserved existing): 1" in report.metadata

    def test_company_report_leaves_out_blank_rows(self):
        results = [
            _result(0, ActionType.CREATE, context={"name": "Globex", "domain": "globex.com"}),
            _result(1, ActionType.SKIPPED_BLANK, sent=False),
        ]

        report = build_company_import_report(results)

        assert report.rows == [["1", "Globex", "globex.com", "Created", "Success", "rec-0", ""]]

    def test_entity_report_owner_columns(self):
        results = [_result(0, ActionType.CREATE, owner_skipped=True, owner_email="ghost@example.com")]

        report = build_entity_import_report(results, "feature")

        assert report.rows[0][4:6] == ["Yes", "ghost@example.com"]
        assert "Entity Type: feature" in report.metadata

    def test_note_report_strips_html_preview(self):
        results = [_result(0, ActionType.CREATE, context={
            "title": "Acme", "content": "<b>Problem</b><br>Slow", "tags": ["ux", "perf"],
        })]
        mappings = {"title_columns": ["Customer"], "body_columns": ["Problem"]}

        report = build_note_import_report(results, mappings, total_rows=1)

        assert report.rows[0][1:3] == ["Acme", "Problem Slow"]
        assert report.rows[0][5] == "ux; perf"
        assert "  Owner: (none)" in report.metadata


class TestFailedRows:
    """Tests for build_failed_rows_report() and render_failed_rows_csv()"""

    def test_failed_rows_with_error_column(self):
        # Arrange
        rows = [{"uuid": "f1", "reach": "1"}, {"uuid": "", "reach": "2"}]
        results = [
            _result(0),
            _result(1, ActionType.ERROR, success=False, sent=False, error="Missing feature UUID"),
        ]

        # Act
        report = build_failed_rows_report(results, ["uuid", "reach"], rows)

        # Assert
        assert render_failed_rows_csv(report) == "uuid,reach,Error\n,2,Missing feature UUID"

"""
Unit tests for the bulk numeric field update.

Run: pytest tests/unit/test_bulk_update_service.py -v
"""

import pytest

from models.configs import BulkUpdateConfig
from models.plan import ActionType
from models.record import SinkResult
from parsers.table_parser import parse_table
from services.bulk_update_service import (
    MISSING_UUID_ERROR,
    build_bulk_update_plan,
    apply_bulk_update,
)
from exceptions import MappingError, SourceUnavailableError
from tests.factories import RecordFactory


def _config(preserve_existing: bool = True) -> BulkUpdateConfig:
    return BulkUpdateConfig(
        uuid_column="uuid",
        mappings=[
            {"csv_column": "uuid", "mapped_to": None},
            {"csv_column": "reach", "mapped_to": "cf-reach"},
            {"csv_column": "impact", "mapped_to": "cf-impact"},
        ],
        preserve_existing=preserve_existing,
    )


@pytest.fixture
def bulk_workspace(workspace, fast_settings):
    workspace.add_field("features", "cf-reach", "Reach", "number")
    workspace.add_field("features", "cf-impact", "Impact", "number")
    return workspace


class TestBuildBulkUpdatePlan:
    """Tests for build_bulk_update_plan()"""

    def test_preserve_existing_semantics(self, bulk_workspace):
        """One populated and one empty field: one applied, one skipped, success."""
        # Arrange
        bulk_workspace.set_value("f1", "cf-reach", 50)
        table = parse_table("uuid,reach,impact\nf1,80,3\n")

        # Act
        items = build_bulk_update_plan(bulk_workspace, table, _config())
        result = apply_bulk_update(bulk_workspace, items[0])

        # Assert
        item = items[0]
        assert item.action == ActionType.UPDATE
        assert item.fields == {"cf-impact": 3.0}
        skipped = [f for f in item.field_updates if f.skipped]
        applied = [f for f in item.field_updates if not f.skipped]
        assert [f.field_id for f in skipped] == ["cf-reach"]
        assert skipped[0].old_value == "50"
        assert [f.field_id for f in applied] == ["cf-impact"]

        assert result.success is True
        assert [a[1] for a in bulk_workspace.applied] == ["cf-impact"]

    def test_all_fields_populated_is_skipped(self, bulk_workspace):
        bulk_workspace.set_value("f1", "cf-reach", 1)
        bulk_workspace.set_value("f1", "cf-impact", 2)
        table = parse_table("uuid,reach,impact\nf1,80,3\n")

        items = build_bulk_update_plan(bulk_workspace, table, _config())

        assert items[0].action == ActionType.SKIPPED_HAS_VALUE
        assert items[0].all_fields_skipped is True

    def test_overwrite_when_not_preserving(self, bulk_workspace):
        """Should write every value and never read current ones."""
        bulk_workspace.set_value("f1", "cf-reach", 1)
        table = parse_table("uuid,reach,impact\nf1,80,3\n")

        items = build_bulk_update_plan(bulk_workspace, table, _config(preserve_existing=False))

        assert items[0].fields == {"cf-reach": 80.0, "cf-impact": 3.0}

    def test_missing_uuid_is_error(self, bulk_workspace):
        table = parse_table("uuid,reach,impact\n,80,3\n-,1,2\n")

        items = build_bulk_update_plan(bulk_workspace, table, _config())

        assert [i.action for i in items] == [ActionType.ERROR, ActionType.ERROR]
        assert items[0].error == MISSING_UUID_ERROR

    def test_blank_values_are_skipped(self, bulk_workspace):
        table = parse_table("uuid,reach,impact\nf1,-,\n")

        items = build_bulk_update_plan(bulk_workspace, table, _config())

        assert items[0].action == ActionType.SKIPPED_BLANK

    def test_invalid_number_is_field_error(self, bulk_workspace):
        """Should report the bad cell and still write the other field."""
        table = parse_table("uuid,reach,impact\nf1,lots,45%\n")

        items = build_bulk_update_plan(bulk_workspace, table, _config())

        assert items[0].action == ActionType.UPDATE
        assert items[0].fields == {"cf-impact": 45.0}
        assert items[0].field_errors == ["Invalid number value for Reach: lots"]

    def test_missing_uuid_column(self, bulk_workspace):
        table = parse_table("id,reach\nf1,1\n")

        with pytest.raises(MappingError):
            build_bulk_update_plan(bulk_workspace, table, _config())

    def test_unknown_field(self, bulk_workspace):
        config = BulkUpdateConfig(
            uuid_column="uuid",
            mappings=[{"csv_column": "reach", "mapped_to": "cf-nope"}],
        )
        table = parse_table("uuid,reach\nf1,1\n")

        with pytest.raises(MappingError) as exc_info:
            build_bulk_update_plan(bulk_workspace, table, config)

        assert exc_info.value.details["field_ids"] == ["cf-nope"]

    def test_config_requires_value_column(self):
        with pytest.raises(MappingError):
            BulkUpdateConfig(uuid_column="uuid", mappings=[{"csv_column": "uuid", "mapped_to": "cf-a"}])

    def test_display_name_from_feature_listing(self, bulk_workspace):
        """Should label rows with the feature name and fall back to the UUID."""
        # Arrange
        bulk_workspace.add("features", RecordFactory.create(id="f1", name="Checkout"))
        table = parse_table("uuid,reach,impact\nf1,1,\nf9,2,\n")

        # Act
        items = build_bulk_update_plan(bulk_workspace, table, _config())

        # Assert
        assert [i.display_name for i in items] == ["Checkout", "f9"]

    def test_feature_listing_failure_raises(self, bulk_workspace):
        bulk_workspace.failing_pages.add(("features", 0))
        table = parse_table("uuid,reach,impact\nf1,1,\n")

        with pytest.raises(SourceUnavailableError):
            build_bulk_update_plan(bulk_workspace, table, _config())

    def test_same_file_gives_same_plan(self, bulk_workspace):
        """Should classify an unchanged file identically on every run."""
        bulk_workspace.set_value("f1", "cf-reach", 50)
        text = "uuid,reach,impact\nf1,80,3\n,1,2\nf2,-,\n"

        first = build_bulk_update_plan(bulk_workspace, parse_table(text), _config())
        second = build_bulk_update_plan(bulk_workspace, parse_table(text), _config())

        assert first == second


class TestApplyBulkUpdate:
    """Tests for apply_bulk_update()"""

    def test_failed_field_does_not_stop_others(self, bulk_workspace):
        bulk_workspace.fail_writes["f1"] = SinkResult(success=False, error="Invalid data format", status_code=422)
        table = parse_table("uuid,reach,impact\nf1,1,2\n")
        items = build_bulk_update_plan(bulk_workspace, table, _config(preserve_existing=False))

        result = apply_bulk_update(bulk_workspace, items[0])

        assert len(bulk_workspace.applied) == 2
        assert result.success is False
        assert result.error == "Field update failed: Invalid data format; Field update failed: Invalid data format"

"""
Unit tests for custom field copy.

Run: pytest tests/unit/test_field_copy_service.py -v
"""

import pytest

from models.configs import FieldCopyConfig
from models.plan import ActionType
from models.record import SinkResult
from services.field_copy_service import (
    classify_field_copy,
    build_field_copy_plan,
    apply_field_copy,
)
from exceptions import MappingError
from tests.factories import RecordFactory


def _config(only_empty_targets: bool = True) -> FieldCopyConfig:
    return FieldCopyConfig(
        mappings=[{"source_field_id": "cf-source", "target_field_id": "cf-target"}],
        only_empty_targets=only_empty_targets,
    )


@pytest.fixture
def copy_workspace(workspace, fast_settings):
    """Three features: source only, both fields, neither field."""
    workspace.add_field("features", "cf-source", "Legacy Score", "number")
    workspace.add_field("features", "cf-target", "Score", "number")
    workspace.add(
        "features",
        RecordFactory.create(id="f1", name="Checkout"),
        RecordFactory.create(id="f2", name="Search"),
        RecordFactory.create(id="f3", name="Export"),
    )
    workspace.set_value("f1", "cf-source", 7)
    workspace.set_value("f2", "cf-source", 8)
    workspace.set_value("f2", "cf-target", 1)
    return workspace


class TestClassifyFieldCopy:
    """Tests for build_field_copy_plan() / classify_field_copy()"""

    def test_skip_logic(self, copy_workspace):
        """Should update empty targets, skip filled targets and empty sources."""
        # Act
        items, features = build_field_copy_plan(copy_workspace, _config())

        # Assert
        actions = {item.record_id: item.action for item in items}
        assert actions == {
            "f1": ActionType.WILL_UPDATE,
            "f2": ActionType.SKIPPED_HAS_VALUE,
            "f3": ActionType.SKIPPED_SOURCE_EMPTY,
        }
        assert features.complete is True

    def test_overwrite_when_not_only_empty(self, copy_workspace):
        """Should update filled targets when only_empty_targets is off."""
        items, _ = build_field_copy_plan(copy_workspace, _config(only_empty_targets=False))

        f2 = next(item for item in items if item.record_id == "f2")
        assert f2.action == ActionType.WILL_UPDATE
        assert f2.new_value == 8
        assert f2.current_value == 1

    def test_item_carries_names_and_values(self, copy_workspace):
        items, _ = build_field_copy_plan(copy_workspace, _config())

        f1 = items[0]
        assert f1.display_name == "Checkout"
        assert f1.field_name == "Score"
        assert f1.field_type == "number"
        assert f1.source_field_name == "Legacy Score"
        assert f1.context["source_value"] == "7"
        assert f1.context["target_value"] == ""

    def test_classification_is_idempotent(self, copy_workspace):
        """Should produce the same plan from the same inputs."""
        features = copy_workspace.records["features"]
        snapshots = {
            "cf-source": copy_workspace.get_batch_field_values(["f1", "f2", "f3"], "cf-source"),
            "cf-target": copy_workspace.get_batch_field_values(["f1", "f2", "f3"], "cf-target"),
        }

        first = classify_field_copy(features, _config(), snapshots)
        second = classify_field_copy(features, _config(), snapshots)

        assert first == second

    def test_rerun_after_copy_is_noop(self, copy_workspace):
        """Should have nothing left to update once the copy has been applied."""
        # Arrange
        items, _ = build_field_copy_plan(copy_workspace, _config())
        for item in items:
            if item.action == ActionType.WILL_UPDATE:
                apply_field_copy(copy_workspace, item)

        # Act
        rerun, _ = build_field_copy_plan(copy_workspace, _config())

        # Assert
        assert not any(item.action == ActionType.WILL_UPDATE for item in rerun)

    def test_unknown_field_rejected(self, copy_workspace):
        config = FieldCopyConfig(
            mappings=[{"source_field_id": "cf-source", "target_field_id": "cf-missing"}]
        )

        with pytest.raises(MappingError) as exc_info:
            build_field_copy_plan(copy_workspace, config)

        assert exc_info.value.details["field_ids"] == ["cf-missing"]

    def test_same_source_and_target_rejected(self):
        with pytest.raises(MappingError):
            FieldCopyConfig(mappings=[{"source_field_id": "cf-a", "target_field_id": "cf-a"}])


class TestApplyFieldCopy:
    """Tests for apply_field_copy()"""

    def test_writes_source_value(self, copy_workspace):
        items, _ = build_field_copy_plan(copy_workspace, _config())

        result = apply_field_copy(copy_workspace, items[0])

        assert result.success is True
        assert result.response == "HTTP 200"
        assert copy_workspace.applied[-1] == ("f1", "cf-target", "number", 7, "features")

    def test_failure_is_reported(self, copy_workspace):
        copy_workspace.fail_writes["f1"] = SinkResult(success=False, error="Rate limited", status_code=429)
        items, _ = build_field_copy_plan(copy_workspace, _config())

        result = apply_field_copy(copy_workspace, items[0])

        assert result.success is False
        assert result.error == "Rate limited"
        assert result.response == "HTTP 429"

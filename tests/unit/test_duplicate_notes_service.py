"""
Unit tests for duplicate note detection.

Run: pytest tests/unit/test_duplicate_notes_service.py -v
"""

import pytest

from models.plan import ActionType
from models.record import Record, SinkResult
from services.duplicate_notes_service import (
    find_duplicate_groups,
    classify_duplicate_notes,
    build_duplicate_notes_plan,
    apply_note_deletion,
)
from tests.factories import NoteFactory, RecordFactory


@pytest.fixture
def notes_abc() -> list[Record]:
    """A and B share company C1; C has no company and is the oldest."""
    return [
        NoteFactory.create(id="A", content="x", title="t", company_id="C1", created_at="2020-01-01"),
        NoteFactory.create(id="B", content="x", title="t", company_id="C1", created_at="2020-02-01"),
        NoteFactory.create(id="C", content="x", title="t", created_at="2019-01-01"),
    ]


class TestFindDuplicateGroups:
    """Tests for find_duplicate_groups()"""

    def test_companyless_note_joins_company_group(self, notes_abc):
        """Should group A, B and C, keep A (oldest with company), delete B and C."""
        # Act
        groups = find_duplicate_groups(notes_abc)

        # Assert
        assert len(groups) == 1
        group = groups[0]
        assert {n.id for n in group.notes} == {"A", "B", "C"}
        assert group.keep.id == "A"
        assert {n.id for n in group.delete} == {"B", "C"}

    def test_content_and_title_are_trimmed(self):
        notes = [
            NoteFactory.create(id="n1", content=" same ", title="t "),
            NoteFactory.create(id="n2", content="same", title=" t"),
        ]

        groups = find_duplicate_groups(notes)

        assert len(groups) == 1
        assert groups[0].keep.id == "n1"

    def test_different_companies_are_separate_groups(self):
        notes = [
            NoteFactory.create(id="a1", company_id="C1"),
            NoteFactory.create(id="a2", company_id="C1"),
            NoteFactory.create(id="b1", company_id="C2"),
        ]

        groups = find_duplicate_groups(notes)

        assert len(groups) == 1
        assert groups[0].keep.id == "a1"

    def test_companyless_only_group_keeps_oldest(self):
        notes = [
            NoteFactory.create(id="late", created_at="2021-01-01"),
            NoteFactory.create(id="early", created_at="2020-01-01"),
        ]

        groups = find_duplicate_groups(notes)

        assert groups[0].keep.id == "early"
        assert [n.id for n in groups[0].delete] == ["late"]

    def test_same_id_twice_is_not_a_duplicate(self):
        """Should ignore groups whose notes share a single id."""
        note = NoteFactory.create(id="dup")

        assert find_duplicate_groups([note, note]) == []

    def test_unique_notes_have_no_groups(self):
        notes = [
            NoteFactory.create(content="one"),
            NoteFactory.create(content="two"),
        ]

        assert find_duplicate_groups(notes) == []


class TestClassifyDuplicateNotes:
    """Tests for classify_duplicate_notes()"""

    def test_keep_and_delete_items(self, notes_abc):
        items = classify_duplicate_notes(find_duplicate_groups(notes_abc), {"C1": "Acme"})

        actions = {item.record_id: item.action for item in items}
        assert actions == {"A": ActionType.KEEP, "B": ActionType.DELETE, "C": ActionType.DELETE}
        a = next(item for item in items if item.record_id == "A")
        assert a.context["company"] == "Acme"
        assert a.context["kept_note_id"] == "A"

    def test_companyless_note_in_two_groups_deleted_once(self):
        """Should emit a single delete for a note merged into several groups."""
        notes = [
            NoteFactory.create(id="c1-note", company_id="C1", created_at="2020-01-01"),
            NoteFactory.create(id="c2-note", company_id="C2", created_at="2020-01-02"),
            NoteFactory.create(id="loose", created_at="2019-01-01"),
        ]

        items = classify_duplicate_notes(find_duplicate_groups(notes))

        deletes = [item.record_id for item in items if item.action == ActionType.DELETE]
        keeps = {item.record_id for item in items if item.action == ActionType.KEEP}
        assert deletes == ["loose"]
        assert keeps == {"c1-note", "c2-note"}


class TestBuildDuplicateNotesPlan:
    """Tests for build_duplicate_notes_plan() and apply_note_deletion()"""

    def test_plan_uses_company_names(self, workspace, notes_abc):
        # Arrange
        workspace.add("notes", *notes_abc)
        workspace.add("companies", RecordFactory.create(id="C1", name="Acme"))

        # Act
        items, notes, group_count = build_duplicate_notes_plan(workspace)

        # Assert
        assert group_count == 1
        assert len(notes.records) == 3
        assert {item.context["company"] for item in items if item.record_id in ("A", "B")} == {"Acme"}

    def test_company_listing_failure_is_not_fatal(self, workspace, notes_abc):
        """Should still plan when company names cannot be read."""
        workspace.add("notes", *notes_abc)
        workspace.failing_pages.add(("companies", 0))

        items, _, group_count = build_duplicate_notes_plan(workspace)

        assert group_count == 1
        assert len(items) == 3

    def test_replanning_unchanged_workspace_gives_same_plan(self, workspace, notes_abc):
        """Should classify the same notes the same way on every run."""
        # Arrange
        workspace.add("notes", *notes_abc)
        workspace.add("companies", RecordFactory.create(id="C1", name="Acme"))

        # Act
        first, _, _ = build_duplicate_notes_plan(workspace)
        second, _, _ = build_duplicate_notes_plan(workspace)

        # Assert
        assert first == second
        assert classify_duplicate_notes(find_duplicate_groups(notes_abc)) == \
            classify_duplicate_notes(find_duplicate_groups(notes_abc))

    def test_apply_deletes_note(self, workspace, notes_abc):
        items = classify_duplicate_notes(find_duplicate_groups(notes_abc))
        delete_b = next(item for item in items if item.record_id == "B")

        result = apply_note_deletion(workspace, delete_b)

        assert result.success is True
        assert workspace.deleted == [("notes", "B")]

    def test_apply_reports_failure(self, workspace, notes_abc):
        workspace.fail_writes["B"] = SinkResult(success=False, error="Access denied", status_code=403)
        items = classify_duplicate_notes(find_duplicate_groups(notes_abc))
        delete_b = next(item for item in items if item.record_id == "B")

        result = apply_note_deletion(workspace, delete_b)

        assert result.success is False
        assert result.error == "Access denied"

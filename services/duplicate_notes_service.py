"""
Duplicate note detection.

Notes are duplicates when they share trimmed content, trimmed title and
company. Notes without a company are merged into every company group
with the same content and title, so a stray copy is cleaned up wherever
it was duplicated. The oldest note with a company survives each group.
"""

from typing import Optional
import structlog

from models.plan import ActionType, ClassifiedItem, DuplicateGroup
from models.record import Record
from models.execution import ExecutionResult
from exceptions import SourceUnavailableError
from integrations.base import RecordSink, RecordSource
from services.pager_service import PagerResult, fetch_all_records
from services.executor_service import result_from_sink

logger = structlog.get_logger(__name__)


def _company_id(note: Record) -> Optional[str]:
    company = note.get("company")
    if isinstance(company, dict):
        return company.get("id") or None
    return None


def _content_title(note: Record) -> tuple[str, str]:
    return (
        str(note.get("content", "")).strip(),
        str(note.get("title", "")).strip(),
    )


def _group_key(content: str, title: str, company_id: Optional[str]) -> str:
    return f"{content}|||{title}|||{company_id or 'null'}"


def find_duplicate_groups(notes: list[Record]) -> list[DuplicateGroup]:
    """
    Group notes by (content, title, company) and pick a survivor per group.

    Args:
        notes: Every note in the workspace

    Returns:
        Groups with at least two notes and two distinct ids, in first-seen order
    """
    with_company: dict[tuple[str, str, str], list[Record]] = {}
    without_company: dict[tuple[str, str], list[Record]] = {}

    for note in notes:
        content, title = _content_title(note)
        company_id = _company_id(note)
        if company_id:
            with_company.setdefault((content, title, company_id), []).append(note)
        else:
            without_company.setdefault((content, title), []).append(note)

    merged: dict[tuple[str, str, Optional[str]], list[Record]] = {
        key: list(group) for key, group in with_company.items()
    }

    for (content, title), loose_notes in without_company.items():
        matching = [key for key in with_company if key[0] == content and key[1] == title]
        if matching:
            for key in matching:
                merged[key].extend(loose_notes)
        else:
            merged[(content, title, None)] = list(loose_notes)

    groups = []
    for (content, title, company_id), group_notes in merged.items():
        unique_ids = {n.id for n in group_notes}
        if len(group_notes) < 2 or len(unique_ids) < 2:
            continue

        ordered = sorted(group_notes, key=lambda n: n.created_at or "")
        with_company_notes = [n for n in ordered if _company_id(n)]
        keep = with_company_notes[0] if with_company_notes else ordered[0]

        delete: list[Record] = []
        seen = {keep.id}
        for note in ordered:
            if note.id not in seen:
                seen.add(note.id)
                delete.append(note)

        groups.append(DuplicateGroup(
            key=_group_key(content, title, company_id),
            notes=ordered,
            keep=keep,
            delete=delete,
        ))

    logger.info(
        "duplicate_groups_found",
        notes=len(notes),
        groups=len(groups)
    )

    return groups


def classify_duplicate_notes(
    groups: list[DuplicateGroup],
    company_names: Optional[dict[str, str]] = None,
) -> list[ClassifiedItem]:
    """
    Turn duplicate groups into keep/delete items.

    A note that appears in several groups is deleted at most once, and
    never when some group keeps it.
    """
    company_names = company_names or {}
    kept_ids = {g.keep.id for g in groups}
    emitted: set[str] = set()
    items = []

    def _item(note: Record, action: ActionType, group: DuplicateGroup) -> ClassifiedItem:
        company_id = _company_id(note)
        return ClassifiedItem(
            source_ref=note.id,
            action=action,
            comparison_key=group.key,
            record_id=note.id,
            display_name=str(note.get("title", "")),
            context={
                "title": str(note.get("title", "")),
                "company": company_names.get(company_id, "") if company_id else "",
                "created_at": note.created_at or "",
                "kept_note_id": group.keep.id,
            },
        )

    for group in groups:
        if group.keep.id not in emitted:
            emitted.add(group.keep.id)
            items.append(_item(group.keep, ActionType.KEEP, group))
        for note in group.delete:
            if note.id in kept_ids or note.id in emitted:
                continue
            emitted.add(note.id)
            items.append(_item(note, ActionType.DELETE, group))

    return items


def build_duplicate_notes_plan(source: RecordSource) -> tuple[list[ClassifiedItem], PagerResult, int]:
    """
    Fetch every note and company and classify duplicates.

    Returns:
        Tuple of (items, notes pager result, duplicate group count)

    Raises:
        SourceUnavailableError: If the notes listing cannot be read
    """
    notes = fetch_all_records(source, "notes")

    company_names: dict[str, str] = {}
    try:
        companies = fetch_all_records(source, "companies")
        company_names = {c.id: c.name for c in companies.records}
    except SourceUnavailableError as e:
        # Names are display-only
        logger.warning("company_names_unavailable", error=e.message)

    groups = find_duplicate_groups(notes.records)
    return classify_duplicate_notes(groups, company_names), notes, len(groups)


def apply_note_deletion(sink: RecordSink, item: ClassifiedItem) -> ExecutionResult:
    """Delete one duplicate note (already-deleted notes count as success)."""
    return result_from_sink(item, sink.delete_record("notes", item.record_id))

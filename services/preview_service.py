"""
Read-only plan previews.
"""

from collections import Counter
from typing import Optional

from config import settings
from models.plan import ActionType, ClassifiedItem, PlanPreview, requires_remote_call


def count_by_action(items: list[ClassifiedItem]) -> dict[str, int]:
    """Counts per action, in ActionType declaration order, zero counts omitted."""
    counts = Counter(item.action for item in items)
    return {action.value: counts[action] for action in ActionType if counts[action]}


def build_preview(items: list[ClassifiedItem], limit: Optional[int] = None) -> PlanPreview:
    """
    Summarize a plan.

    Args:
        items: Full plan
        limit: Sample size (settings default); never affects execution

    Returns:
        PlanPreview with counts over the full plan and the first `limit` items
    """
    limit = limit or settings.preview_sample_limit
    return PlanPreview(
        total=len(items),
        counts=count_by_action(items),
        sample=items[:limit],
        truncated=len(items) > limit,
        actionable=sum(1 for item in items if requires_remote_call(item.action)),
    )

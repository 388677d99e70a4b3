"""
Temporary storage for plan previews.
Holds the full classified plan in memory between preview and execute,
with TTL expiration. Single-process only.
"""
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from config import settings
from models.plan import ClassifiedItem
from exceptions import PreviewNotFoundError


@dataclass
class CachedPlan:
    """A plan waiting for confirmation."""
    module_id: str
    items: list[ClassifiedItem]
    metadata: dict[str, Any] = field(default_factory=dict)


_cache: dict[str, tuple[datetime, CachedPlan]] = {}
_lock = threading.Lock()


def store_preview(plan: CachedPlan, ttl_minutes: Optional[int] = None) -> str:
    """Store a plan, return preview_id."""
    ttl = ttl_minutes or settings.preview_ttl_minutes
    preview_id = str(uuid.uuid4())
    expires_at = datetime.now() + timedelta(minutes=ttl)
    with _lock:
        _cache[preview_id] = (expires_at, plan)
        _cleanup_expired()
    return preview_id


def retrieve_preview(preview_id: str) -> Optional[CachedPlan]:
    """Retrieve a plan by preview_id. Returns None if expired/not found."""
    with _lock:
        entry = _cache.get(preview_id)
        if entry is None:
            return None
        expires_at, plan = entry
        if datetime.now() > expires_at:
            del _cache[preview_id]
            return None
        return plan


def get_plan(preview_id: str, module_id: str) -> CachedPlan:
    """
    Retrieve a plan that must belong to the given module.

    Raises:
        PreviewNotFoundError: If missing, expired, or from another module
    """
    plan = retrieve_preview(preview_id)
    if plan is None or plan.module_id != module_id:
        raise PreviewNotFoundError(preview_id)
    return plan


def delete_preview(preview_id: str) -> None:
    """Remove preview after execute or cancel."""
    with _lock:
        _cache.pop(preview_id, None)


def _cleanup_expired() -> None:
    """Remove all expired entries (caller holds the lock)."""
    now = datetime.now()
    expired = [k for k, (exp, _) in _cache.items() if now > exp]
    for k in expired:
        del _cache[k]

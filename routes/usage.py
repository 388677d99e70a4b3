"""
Usage stats API routes.
"""

from fastapi import APIRouter
import structlog

from config import settings
from models.usage import UsageStatListResponse
from services.usage_stats_service import get_usage_stats_service
from routes.common import handle_error

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=UsageStatListResponse)
def get_usage_stats():
    """
    Executed run counts per module.

    Returns an empty list when the datastore is not configured.
    """
    try:
        if not settings.supabase_configured:
            return UsageStatListResponse(data=[])

        stats = get_usage_stats_service().get_all()
        return UsageStatListResponse(data=stats)

    except Exception as e:
        return handle_error(e)

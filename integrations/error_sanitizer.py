"""
Safe error messages for remote API failures.

Raw response bodies can echo tokens, emails or internal ids, so they are
logged server-side and replaced with a fixed message before reaching a
report or an API response.
"""

from typing import Optional
import requests
import structlog

logger = structlog.get_logger(__name__)


SAFE_ERROR_MAP = {
    400: "Invalid request parameters",
    401: "Invalid or expired API token",
    403: "Access denied - check token permissions",
    404: "Resource not found",
    409: "Conflict - resource already exists",
    422: "Invalid data format",
    429: "Rate limit exceeded - please wait and retry",
    500: "Productboard server error",
    502: "Productboard service unavailable",
    503: "Productboard service temporarily unavailable",
    504: "Request timed out",
}

NETWORK_ERROR = "Network error - check your connection"
TIMEOUT_ERROR = "Request timed out"
CANCELLED_ERROR = "Request was cancelled"
UNEXPECTED_ERROR = "An unexpected error occurred"


def sanitize_api_error(
    status_code: int,
    raw_error: Optional[str] = None,
    context: Optional[str] = None
) -> str:
    """
    Map an HTTP status to a message safe to show users.

    Args:
        status_code: HTTP status of the failed response
        raw_error: Response body, logged only
        context: Operation name for the log entry

    Returns:
        Safe message
    """
    logger.warning(
        "remote_api_error",
        status_code=status_code,
        context=context,
        raw_error=(raw_error or "")[:500]
    )
    return SAFE_ERROR_MAP.get(status_code, f"Request failed ({status_code})")


def sanitize_exception(error: BaseException, context: Optional[str] = None) -> str:
    """
    Map a transport or unexpected exception to a safe message.

    Args:
        error: Caught exception
        context: Operation name for the log entry

    Returns:
        Safe message
    """
    logger.error(
        "remote_call_exception",
        context=context,
        error=str(error),
        error_type=type(error).__name__
    )

    if isinstance(error, requests.exceptions.Timeout):
        return TIMEOUT_ERROR
    if isinstance(error, requests.exceptions.ConnectionError):
        return NETWORK_ERROR
    if isinstance(error, requests.exceptions.RequestException):
        return NETWORK_ERROR

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return TIMEOUT_ERROR
    if "cancel" in message or "abort" in message:
        return CANCELLED_ERROR
    if "network" in message or "fetch" in message:
        return NETWORK_ERROR
    return UNEXPECTED_ERROR


def is_owner_assignment_error(message: Optional[str], status_code: Optional[int] = None) -> bool:
    """
    Check if a create failure was caused by the owner/user assignment.

    Matches "owner" or "member" anywhere, "user" when the status is 400 or
    unknown, and "email" together with "invalid".

    Args:
        message: Raw remote error text (not the sanitized one)
        status_code: HTTP status, if known

    Returns:
        True if a retry without the owner is worth attempting
    """
    if not message:
        return False

    text = message.lower()

    if "owner" in text or "member" in text:
        return True
    if "user" in text and status_code in (None, 400):
        return True
    if "email" in text and "invalid" in text:
        return True
    return False

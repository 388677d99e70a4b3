"""
Cell value cleaning for uploaded tables.

Used by every file-driven classifier (bulk update, company, entity and
note import) and by the reporter for note previews.
"""

from datetime import date, datetime
from typing import Any, Optional
import math
import re

import pandas as pd

from exceptions import FieldCoercionError


# Placeholders spreadsheets use for "no value"
BLANK_MARKERS = ("", "-", "'-")

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%d/%m/%Y"]

_TAG_PATTERN = re.compile(r"<[^>]*>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def is_blank(value: Any) -> bool:
    """
    Check if a cell carries no value.

    Examples:
        is_blank(None)   -> True
        is_blank("  - ") -> True
        is_blank("'-")   -> True
        is_blank("0")    -> False
    """
    if value is None:
        return True
    return str(value).strip() in BLANK_MARKERS


def to_numeric(value: Any) -> float:
    """
    Parse a cell as a finite number.

    Every "%" is removed first, so "45%" becomes 45.0.

    Args:
        value: Raw cell value

    Returns:
        Parsed float

    Raises:
        FieldCoercionError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise FieldCoercionError(value, "number")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace("%", "").strip()
        # float() accepts "1_000"; spreadsheets never mean that
        if not text or "_" in text:
            raise FieldCoercionError(value, "number")
        try:
            number = float(text)
        except ValueError as e:
            raise FieldCoercionError(value, "number") from e

    if not math.isfinite(number):
        raise FieldCoercionError(value, "number")
    return number


def to_iso_date(value: Any) -> str:
    """
    Normalize a date cell to YYYY-MM-DD.

    ISO dates pass through untouched. Unparseable input is returned as-is
    so the remote API can reject it with its own message.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    value_str = str(value).strip()
    if ISO_DATE_PATTERN.match(value_str):
        return value_str

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value_str, fmt).date().isoformat()
        except ValueError:
            continue

    # Try pandas parsing as fallback
    try:
        parsed = pd.to_datetime(value_str)
    except (ValueError, TypeError, OverflowError):
        return value_str
    if pd.isna(parsed):
        return value_str
    return parsed.date().isoformat()


def strip_html(value: Optional[str]) -> str:
    """Drop markup and collapse whitespace."""
    if not value:
        return ""
    text = _TAG_PATTERN.sub(" ", value)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def truncate(value: Optional[str], length: int = 100) -> str:
    """Cut text to `length` characters, marking the cut with "..."."""
    if not value:
        return ""
    if len(value) <= length:
        return value
    return value[:length] + "..."

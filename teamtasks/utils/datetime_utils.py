"""
Centralized datetime and business-day utilities.

Daily tasks are keyed by a timezone-naive business day. "Today" is always
computed in the configured timezone so every request agrees on the key.
"""

import re
from datetime import datetime, date
from typing import Any, Optional
import pytz

from config import settings

DAY_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def get_local_tz() -> pytz.BaseTzInfo:
    """Get the configured local timezone."""
    return pytz.timezone(settings.timezone)


def get_local_now() -> datetime:
    """Get current time in local timezone (naive)."""
    local_tz = get_local_tz()
    return datetime.now(local_tz).replace(tzinfo=None)


def get_local_today() -> date:
    """Current business day key."""
    return get_local_now().date()


def parse_day_key(value: Any) -> Optional[date]:
    """
    Parse a business-day query value.

    - None, "" or [""] mean today
    - "YYYY-MM-DD" must be a real calendar date (2025-02-31 is rejected)
    - anything else is invalid

    Returns:
        The business day, or None if the value is invalid
    """
    if value is None:
        return get_local_today()

    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
        if not isinstance(value, str):
            return None

    if isinstance(value, date) and not isinstance(value, datetime):
        return value

    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return get_local_today()

    if not DAY_KEY_PATTERN.match(raw):
        return None

    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


def format_day_key(day: date) -> str:
    """Format a business day as YYYY-MM-DD."""
    return day.strftime("%Y-%m-%d")


def js_weekday(day: date) -> int:
    """Weekday number with Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % 7


def is_past_day(day: date) -> bool:
    """True if the business day is before today."""
    return day < get_local_today()

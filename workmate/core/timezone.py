"""User timezone helpers.

Prompts and date filters reason in the user's local calendar, while
timestamps sent to the task service are UTC ISO-8601.
"""

import os
from datetime import datetime, date, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Asia/Ho_Chi_Minh"


def load_timezone(name: Optional[str] = None):
    """Return a tzinfo for ``name`` (falls back to UTC on unknown names)."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


USER_TZ = load_timezone(os.getenv("USER_TIMEZONE", DEFAULT_TIMEZONE))


def set_user_timezone(name: str):
    """Switch the process-wide user timezone (called once at startup)."""
    global USER_TZ
    USER_TZ = load_timezone(name)


def now_local(tz=None) -> datetime:
    return datetime.now(tz or USER_TZ)


def today_local(tz=None) -> date:
    return now_local(tz).date()


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def date_offset(days: int, tz=None) -> str:
    """YYYY-MM-DD for today + ``days`` in the user's timezone."""
    return (today_local(tz) + timedelta(days=days)).isoformat()


def to_utc_iso(value: str, tz=None) -> str:
    """Normalize a date or datetime string to UTC ISO-8601.

    Naive values are interpreted in the user's timezone. Unparseable values
    are returned unchanged.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or USER_TZ)
    return parsed.astimezone(timezone.utc).isoformat()

"""Date and timestamp helpers shared by the stores and the analysis code.

All timestamps are handled as timezone-aware UTC datetimes. Naive values
are assumed to already be UTC.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Optional


# Fixed-width storage format; lexicographic order equals chronological order
STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp from a datetime, date or ISO string.

    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return start_of_day(value)
    if isinstance(value, str):
        text = value.strip()
        # fromisoformat() before 3.11 rejects a trailing 'Z'
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date from a date, datetime or ISO string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a timestamp for SQLite storage."""
    if value is None:
        return None
    return to_utc(value).strftime(STORAGE_FORMAT)

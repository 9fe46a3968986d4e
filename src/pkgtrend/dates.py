"""Calendar-date helpers for YYYY-MM-DD strings interpreted as UTC dates."""

import re
from datetime import date, datetime, timedelta, timezone

from .errors import InvalidDateError

# Fixed-width, zero-padded calendar date
_DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS_PER_DAY = 86_400_000


def parse_day(day: str) -> date:
    """Parse a YYYY-MM-DD string into a date.

    Raises:
        InvalidDateError: If the string is malformed or names a date that
            does not exist (e.g. 2025-02-30).
    """
    if not isinstance(day, str) or not _DAY_PATTERN.match(day):
        raise InvalidDateError(f"Invalid date {day!r}: expected YYYY-MM-DD")

    year, month, dom = (int(part) for part in day.split("-"))
    try:
        return date(year, month, dom)
    except ValueError as e:
        raise InvalidDateError(f"Invalid date {day!r}: {e}") from e


def format_day(value: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return value.isoformat()


def to_utc_midnight(day: str) -> int:
    """Return 00:00:00.000 UTC on the given day, in milliseconds since epoch."""
    parsed = parse_day(day)
    midnight = datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
    return int((midnight - _EPOCH).total_seconds()) * 1000


def from_utc_midnight(timestamp: int) -> str:
    """Return the calendar day containing a millisecond UTC timestamp."""
    return format_day((_EPOCH + timedelta(days=timestamp // _MS_PER_DAY)).date())


def add_days(day: str, n: int) -> str:
    """Return the calendar date n days after day (n may be negative)."""
    return format_day(parse_day(day) + timedelta(days=n))


def compare_days(a: str, b: str) -> int:
    """Compare two days chronologically, returning -1, 0 or 1."""
    first, second = parse_day(a), parse_day(b)
    if first < second:
        return -1
    if first > second:
        return 1
    return 0

"""Shared utility functions consumed by the workflow core.

new_id:                  prefixed, process-wide unique identifiers
business_days_between:   weekday count, half-open [start, end)
add_business_days:       move a date forward n weekdays
parse_datetime:          ISO date / datetime → aware UTC datetime (None on bad input)
percent:                 round-half-up integer percentage
"""
import math
import uuid
from datetime import date, datetime, time, timedelta, timezone

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_id(prefix: str) -> str:
    """Return a human-inspectable unique id: ``BB-LX9Q2K1M-3FA9C2D1``.

    The timestamp part keeps ids roughly sortable by creation time; the
    uuid4 suffix makes them unique across the process.
    """
    millis = int(utcnow().timestamp() * 1000)
    return f"{prefix}-{_base36(millis)}-{uuid.uuid4().hex[:8]}".upper()


def parse_datetime(value):
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty/invalid input. Naive values are assumed UTC;
    date-only values resolve to midnight UTC.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except (ValueError, TypeError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def isoformat(value):
    """Serialise a datetime for JSON storage; None passes through."""
    if value is None:
        return None
    return value.isoformat()


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def business_days_between(start, end) -> int:
    """Count weekdays in the half-open range [start, end).

    Saturdays and Sundays are excluded. Returns 0 when either bound is
    missing or end is not after start.
    """
    start_d = _as_date(start)
    end_d = _as_date(end)
    if start_d is None or end_d is None or end_d <= start_d:
        return 0

    total_days = (end_d - start_d).days
    full_weeks, remainder = divmod(total_days, 7)
    days = full_weeks * 5
    weekday = start_d.weekday()
    for offset in range(remainder):
        if (weekday + offset) % 7 < 5:
            days += 1
    return days


def add_business_days(start, business_days: int):
    """Return ``start`` moved forward by ``business_days`` weekdays.

    Keeps the type of ``start`` (date or datetime).
    """
    current = start
    remaining = business_days
    while remaining > 0:
        current = current + timedelta(days=1)
        if current.weekday() < 5:
            remaining -= 1
    return current


def percent(part: int, whole: int) -> int:
    """Integer percentage rounded half-up; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return int(math.floor(100 * part / whole + 0.5))

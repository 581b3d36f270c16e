"""Date-only helpers.

Bookings and periods are half-open ``[start, end)`` ranges of calendar days.
All arithmetic happens on ``datetime.date`` values so time zones and DST never
shift a night.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone

SECONDS_PER_DAY = 86_400


def parse_date_only(value: str | date | datetime) -> date:
    """
    Parse ``YYYY-MM-DD`` (preferred) or a full ISO timestamp into a date.

    Timestamps are normalized to their UTC calendar day. Raises ``ValueError``
    when the value cannot be parsed.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    text = (value or "").strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def nights_between(start: date | datetime, end: date | datetime) -> int:
    """
    Return the number of nights in ``[start, end)``.

    Rounds rather than truncates so a bound that is fractionally off midnight
    still yields the intended night count.
    """
    if isinstance(start, datetime) or isinstance(end, datetime):
        start_dt = _as_utc_datetime(start)
        end_dt = _as_utc_datetime(end)
        return math.floor((end_dt - start_dt).total_seconds() / SECONDS_PER_DAY + 0.5)
    return (end - start).days


def _as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

"""
Domain time utilities (pure).

Centralized timestamp validation and calendar-month arithmetic.

Behavior and error messages must remain consistent across the domain model.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that stored timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def as_date(value: date | datetime) -> date:
    """Drop the time-of-day part; comparisons against due dates are date-only."""

    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(start: date, months: int) -> date:
    """
    Shift a date by whole calendar months, keeping the day of month.

    The day is clamped to the last day of the target month, so a schedule
    starting on Jan 31 falls due on Feb 28 (or 29) and then on Mar 31.
    """

    if months < 0:
        raise ValueError("months must be >= 0")

    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))

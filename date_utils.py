"""
Calendar arithmetic helpers.

All helpers operate on ``datetime.date`` values (calendar dates, no time of
day or timezone). Month arithmetic clamps the day of month to the length of
the target month, in both directions, so Jan 31 plus one month is Feb 28/29
and Mar 31 minus one month is Feb 28/29.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

logger = logging.getLogger(__name__)


def to_date(value: Any) -> date:
    """
    Normalize a date-like value to a calendar date (midnight).

    Args:
        value: ``date``, ``datetime`` or ISO-8601 string

    Returns:
        Calendar date

    Raises:
        ValueError: If the value cannot be interpreted as a date
        TypeError: If the value has an unsupported type
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        # "2024-01-31", "2024-01-31T00:00:00.000Z" and "2024-01-31 08:00" all share the prefix
        return date.fromisoformat(text[:10])
    raise TypeError(f"Unsupported date value type: {type(value).__name__}")


def parse_optional_date(value: Any) -> Optional[date]:
    """Return ``to_date(value)`` or None when the value is empty or unparseable."""
    if value is None:
        return None
    try:
        return to_date(value)
    except (ValueError, TypeError):
        logger.debug("Unable to parse date value %r", value)
        return None


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: date, months: int) -> date:
    """
    Shift a date by a number of calendar months, clamping to month end.

    Args:
        value: Starting date
        months: Months to add (negative to go backward)

    Returns:
        Shifted date
    """
    total = value.year * 12 + (value.month - 1) + months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    day = min(value.day, days_in_month(year, month))
    return date(year, month, day)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def shift(anchor: date, months: int, days: int, steps: int) -> date:
    """
    Return the date ``steps`` cycles away from ``anchor``.

    A cycle is ``months`` calendar months plus ``days`` days. The result is
    always computed from the anchor directly, so clamping applied to one
    cycle never carries over into the next.
    """
    result = anchor
    if months:
        result = add_months(result, months * steps)
    if days:
        result = add_days(result, days * steps)
    return result


def weekday_offset(value: date, anchor_weekday: int) -> int:
    """Days elapsed since the most recent ``anchor_weekday`` on or before ``value``."""
    return (value.weekday() - anchor_weekday) % 7


def format_short(value: date) -> str:
    """Short display label, e.g. ``Feb 1``."""
    return f"{value.strftime('%b')} {value.day}"

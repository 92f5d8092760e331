"""
Clock abstraction supplying "today" to the engine.

Calculations never read the system time themselves; entry points that need
the current date take a clock so callers (and tests) decide what "now" is.
"""

from datetime import date, datetime
from typing import Protocol, Union


class Clock(Protocol):
    """Anything with a ``today()`` method returning a calendar date."""

    def today(self) -> date:
        ...


class SystemClock:
    """Clock backed by the local system date."""

    def today(self) -> date:
        return date.today()


class FixedClock:
    """Clock pinned to a single date."""

    def __init__(self, current: Union[date, datetime]):
        if isinstance(current, datetime):
            current = current.date()
        self._current = current

    def today(self) -> date:
        return self._current

    def __repr__(self) -> str:
        return f"FixedClock({self._current.isoformat()})"

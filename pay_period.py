"""
Pay-period calculator.

A pay period is a 7-day window starting on a configured anchor weekday
(Thursday by default) and ending six days later, inclusive.
"""

import logging
from datetime import date, timedelta
from typing import Any, List, Union

from clock import Clock
from date_utils import to_date, weekday_offset
from exceptions import ConfigError, PayPeriodError
from models import PayPeriod

logger = logging.getLogger(__name__)

WEEKDAYS = {"MON": 0, "TUE": 1, "WED": 2, "THU": 3, "FRI": 4, "SAT": 5, "SUN": 6}
DEFAULT_ANCHOR_WEEKDAY = "THU"
PERIOD_LENGTH_DAYS = 7


def resolve_weekday(value: Union[str, int]) -> int:
    """
    Convert a weekday name (``THU``, ``thursday``) or index (0=Mon) to an index.

    Raises:
        ConfigError: If the value does not name a weekday
    """
    if isinstance(value, bool):
        raise ConfigError("Invalid pay period anchor weekday", details={"weekday": value})
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ConfigError("Weekday index must be between 0 and 6", details={"weekday": value})
    if isinstance(value, str):
        key = value.strip().upper()[:3]
        if key in WEEKDAYS:
            return WEEKDAYS[key]
    raise ConfigError("Invalid pay period anchor weekday", details={"weekday": value})


class PayPeriodCalculator:
    """
    Maps dates to the pay period containing them.

    The calculator only holds its anchor weekday, so one instance may be
    shared freely.
    """

    def __init__(self, anchor_weekday: Union[str, int] = DEFAULT_ANCHOR_WEEKDAY):
        """
        Initialize the calculator.

        Args:
            anchor_weekday: Weekday pay periods start on (name or 0=Mon index)

        Raises:
            ConfigError: If the weekday is invalid
        """
        self.anchor_weekday = resolve_weekday(anchor_weekday)
        logger.debug("Pay period calculator anchored on weekday %s", self.anchor_weekday)

    def period_starting(self, start: Any) -> PayPeriod:
        """Return the 7-day period beginning on ``start``."""
        start = to_date(start)
        return PayPeriod(start=start, end=start + timedelta(days=PERIOD_LENGTH_DAYS - 1))

    def period_containing(self, value: Any) -> PayPeriod:
        """
        Return the pay period containing ``value``.

        The period starts on the most recent anchor weekday on or before the
        date; a date falling on the anchor weekday starts its own period.

        Args:
            value: ``date``, ``datetime`` or ISO date string

        Returns:
            PayPeriod covering the date
        """
        day = to_date(value)
        start = day - timedelta(days=weekday_offset(day, self.anchor_weekday))
        return self.period_starting(start)

    def n_periods_from(self, value: Any, count: int) -> List[PayPeriod]:
        """
        Return ``count`` consecutive periods starting with the one containing ``value``.

        Args:
            value: Seed date
            count: Number of periods (0 returns an empty list)

        Returns:
            Non-overlapping consecutive pay periods

        Raises:
            PayPeriodError: If count is negative or not an integer
        """
        if isinstance(count, bool) or not isinstance(count, int):
            raise PayPeriodError("Period count must be an integer", details={"count": count})
        if count < 0:
            raise PayPeriodError("Period count cannot be negative", details={"count": count})

        first = self.period_containing(value)
        periods = [
            self.period_starting(first.start + timedelta(days=PERIOD_LENGTH_DAYS * index))
            for index in range(count)
        ]
        logger.debug("Generated %s pay periods from %s", len(periods), first.start)
        return periods

    def current_period(self, clock: Clock) -> PayPeriod:
        """Return the period containing the clock's current date."""
        return self.period_containing(clock.today())

    def upcoming_periods(self, clock: Clock, count: int) -> List[PayPeriod]:
        """Return ``count`` periods starting with the current one."""
        return self.n_periods_from(clock.today(), count)


def period_containing(value: Any, anchor_weekday: Union[str, int] = DEFAULT_ANCHOR_WEEKDAY) -> PayPeriod:
    """Module-level shortcut for ``PayPeriodCalculator(anchor_weekday).period_containing``."""
    return PayPeriodCalculator(anchor_weekday).period_containing(value)


def n_periods_from(
    value: Any,
    count: int,
    anchor_weekday: Union[str, int] = DEFAULT_ANCHOR_WEEKDAY,
) -> List[PayPeriod]:
    """Module-level shortcut for ``PayPeriodCalculator(anchor_weekday).n_periods_from``."""
    return PayPeriodCalculator(anchor_weekday).n_periods_from(value, count)

"""
Occurrence projector.

Finds the billing events of a single subscription inside a period by walking
backward and forward from the subscription's anchor date, one cycle at a time,
up to a bounded number of cycles in each direction. Both walks feed a mapping
keyed by date, so an event found by both walks is kept once, and the result
is returned in date order.
"""

import logging
from datetime import date
from typing import Dict, Iterator, List, Optional

from data_quality import DataQualityLog, IssueCode, ensure_log
from date_utils import shift
from exceptions import ProjectionError
from models import Occurrence, PayPeriod, Subscription

logger = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 36


def backward_candidates(subscription: Subscription, period: PayPeriod, max_cycles: int) -> Iterator[date]:
    """
    Yield anchor, anchor - 1 cycle, ... while candidates are not before ``period.start``.

    At most ``max_cycles`` candidates are produced.
    """
    months, days = subscription.frequency.cycle
    for step in range(max_cycles):
        candidate = shift(subscription.anchor_date, months, days, -step)
        if candidate < period.start:
            return
        yield candidate


def forward_candidates(subscription: Subscription, period: PayPeriod, max_cycles: int) -> Iterator[date]:
    """
    Yield anchor, anchor + 1 cycle, ... while candidates are not after ``period.end``.

    At most ``max_cycles`` candidates are produced.
    """
    months, days = subscription.frequency.cycle
    for step in range(max_cycles):
        candidate = shift(subscription.anchor_date, months, days, step)
        if candidate > period.end:
            return
        yield candidate


def resolve_cost(subscription: Subscription, day: date) -> float:
    """
    Return the amount charged for the occurrence on ``day``.

    A scheduled price change dated ``day`` wins, then the variable-pricing
    average, then the list price.
    """
    pricing = subscription.variable_pricing
    if pricing is not None:
        change = pricing.change_on(day)
        if change is not None:
            return change.cost
        if pricing.average_price is not None:
            return pricing.average_price
    return subscription.price


class OccurrenceProjector:
    """
    Projects subscriptions onto date windows.

    Projection ignores subscription status; filtering by status belongs to
    the aggregator.
    """

    def __init__(self, max_cycles: int = DEFAULT_MAX_CYCLES):
        """
        Initialize the projector.

        Args:
            max_cycles: Maximum cycles walked in each direction from the anchor

        Raises:
            ProjectionError: If max_cycles is not a positive integer
        """
        if isinstance(max_cycles, bool) or not isinstance(max_cycles, int) or max_cycles < 1:
            raise ProjectionError("max_cycles must be a positive integer", details={"max_cycles": max_cycles})
        self.max_cycles = max_cycles

    def project(
        self,
        subscription: Subscription,
        period: PayPeriod,
        quality: Optional[DataQualityLog] = None,
    ) -> List[Occurrence]:
        """
        Return the subscription's occurrences inside ``period``.

        Args:
            subscription: Subscription snapshot
            period: Inclusive window to search
            quality: Optional issue log

        Returns:
            Occurrences sorted by date, at most one per date
        """
        if subscription.anchor_date is None:
            ensure_log(quality).record(
                IssueCode.MISSING_ANCHOR_DATE,
                f"Subscription {subscription.name!r} has no anchor date; no occurrences projected",
                subject_id=subscription.id,
                field="anchor_date",
            )
            return []

        found: Dict[date, Occurrence] = {}
        for walk in (backward_candidates, forward_candidates):
            for candidate in walk(subscription, period, self.max_cycles):
                if period.contains(candidate) and candidate not in found:
                    found[candidate] = self._occurrence(subscription, candidate)

        occurrences = [found[day] for day in sorted(found)]
        logger.debug(
            "Projected %s occurrence(s) for %s (%s, anchor %s) in %s..%s",
            len(occurrences),
            subscription.id,
            subscription.frequency.value,
            subscription.anchor_date,
            period.start,
            period.end,
        )
        return occurrences

    @staticmethod
    def _occurrence(subscription: Subscription, day: date) -> Occurrence:
        description = None
        if subscription.variable_pricing is not None:
            change = subscription.variable_pricing.change_on(day)
            if change is not None:
                description = change.description
        return Occurrence(
            subscription_id=subscription.id,
            date=day,
            resolved_cost=resolve_cost(subscription, day),
            name=subscription.name,
            category=subscription.category,
            budget_category_id=subscription.budget_category_id,
            status=subscription.status,
            frequency=subscription.frequency,
            description=description,
        )


def project(
    subscription: Subscription,
    period: PayPeriod,
    quality: Optional[DataQualityLog] = None,
    max_cycles: int = DEFAULT_MAX_CYCLES,
) -> List[Occurrence]:
    """Module-level shortcut for ``OccurrenceProjector(max_cycles).project``."""
    return OccurrenceProjector(max_cycles).project(subscription, period, quality)

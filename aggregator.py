"""
Period aggregator.

Runs the occurrence projector across a subscription collection and a period,
producing per-category and per-status cost breakdowns. Also builds
requirements for runs of consecutive periods and reports upcoming price
changes and collection statistics.
"""

import logging
from collections import Counter
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from clock import Clock
from data_quality import DataQualityLog
from date_utils import format_short
from exceptions import ContractViolationError
from models import (
    PayPeriod,
    PeriodRequirement,
    PeriodSummary,
    PriceChangeNotice,
    Subscription,
    SubscriptionStatistics,
    SubscriptionStatus,
)
from pay_period import PayPeriodCalculator
from projector import OccurrenceProjector

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

SubscriptionInput = Union[Subscription, Mapping[str, Any]]


class StatusFilter(str, Enum):
    """Which subscriptions an aggregation includes."""
    ALL = "all"
    ACTIVE_ONLY = "active"

    @classmethod
    def parse(cls, value: Union["StatusFilter", str, bool]) -> "StatusFilter":
        """
        Accept a member, its value, or the legacy ``include_all_statuses`` flag.

        Raises:
            ContractViolationError: If the value names no filter
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.ALL if value else cls.ACTIVE_ONLY
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("all", "any"):
                return cls.ALL
            if text in ("active", "active_only", "active-only"):
                return cls.ACTIVE_ONLY
        raise ContractViolationError("Unknown status filter", details={"status_filter": value})

    def includes(self, subscription: Subscription) -> bool:
        if self is StatusFilter.ALL:
            return True
        return subscription.is_active and subscription.status is SubscriptionStatus.ACTIVE


def coerce_subscriptions(
    subscriptions: Optional[Iterable[SubscriptionInput]],
    quality: Optional[DataQualityLog] = None,
) -> List[Subscription]:
    """
    Convert a collection of snapshots or mappings to Subscription objects.

    Raises:
        ContractViolationError: If the collection is None
    """
    if subscriptions is None:
        raise ContractViolationError("Subscription collection is required")
    return [
        item if isinstance(item, Subscription) else Subscription.from_dict(item, quality)
        for item in subscriptions
    ]


class PeriodAggregator:
    """
    Aggregates projected occurrences for a subscription collection.

    Results depend only on the subscriptions and the period passed in.
    """

    def __init__(self, projector: Optional[OccurrenceProjector] = None):
        """
        Initialize the aggregator.

        Args:
            projector: Occurrence projector (default 36-cycle projector)
        """
        self.projector = projector or OccurrenceProjector()

    def aggregate(
        self,
        subscriptions: Optional[Iterable[SubscriptionInput]],
        period: PayPeriod,
        status_filter: Union[StatusFilter, str, bool] = StatusFilter.ALL,
        quality: Optional[DataQualityLog] = None,
    ) -> PeriodSummary:
        """
        Project every included subscription into ``period`` and group the results.

        Args:
            subscriptions: Subscription snapshots or mappings
            period: Window to aggregate
            status_filter: ALL or ACTIVE_ONLY
            quality: Optional issue log

        Returns:
            PeriodSummary with occurrences grouped by category and status

        Raises:
            ContractViolationError: If subscriptions or period is None
        """
        if period is None:
            raise ContractViolationError("Pay period is required")
        status_filter = StatusFilter.parse(status_filter)
        snapshots = coerce_subscriptions(subscriptions, quality)
        included = [sub for sub in snapshots if status_filter.includes(sub)]

        occurrences = []
        for subscription in included:
            occurrences.extend(self.projector.project(subscription, period, quality))
        occurrences.sort(key=lambda occ: (occ.date, occ.subscription_id))

        summary = PeriodSummary(period=period, occurrences=occurrences)
        for occ in occurrences:
            category = occ.category or UNCATEGORIZED
            status = occ.status.value
            summary.occurrences_by_category.setdefault(category, []).append(occ)
            summary.occurrences_by_status.setdefault(status, []).append(occ)
            summary.cost_by_category[category] = summary.cost_by_category.get(category, 0.0) + occ.resolved_cost
            summary.cost_by_status[status] = summary.cost_by_status.get(status, 0.0) + occ.resolved_cost
            summary.total_cost += occ.resolved_cost
        summary.occurrence_count = len(occurrences)
        summary.upcoming_changes = [
            notice for notice in price_change_notices(included)
            if period.contains(notice.change.date)
        ]

        logger.debug(
            "Aggregated %s of %s subscription(s) for %s..%s: %s occurrence(s), total %.2f",
            len(included),
            len(snapshots),
            period.start,
            period.end,
            summary.occurrence_count,
            summary.total_cost,
        )
        return summary

    def requirements(
        self,
        subscriptions: Optional[Iterable[SubscriptionInput]],
        periods: Sequence[PayPeriod],
        status_filter: Union[StatusFilter, str, bool] = StatusFilter.ALL,
        quality: Optional[DataQualityLog] = None,
    ) -> List[PeriodRequirement]:
        """
        Build one PeriodRequirement per period.

        Args:
            subscriptions: Subscription snapshots or mappings
            periods: Consecutive periods, typically from ``n_periods_from``
            status_filter: ALL or ACTIVE_ONLY
            quality: Optional issue log

        Returns:
            Requirements labelled ``Week N: <start> - <end>``
        """
        if periods is None:
            raise ContractViolationError("Period collection is required")
        snapshots = coerce_subscriptions(subscriptions, quality)
        requirements = []
        for index, period in enumerate(periods):
            summary = self.aggregate(snapshots, period, status_filter, quality)
            requirements.append(PeriodRequirement(
                index=index,
                period=period,
                label=f"Week {index + 1}: {format_short(period.start)} - {format_short(period.end)}",
                required_amount=summary.total_cost,
                occurrences=summary.occurrences,
            ))
        logger.debug(
            "Built %s period requirement(s), total %.2f",
            len(requirements),
            sum(req.required_amount for req in requirements),
        )
        return requirements

    def upcoming_requirements(
        self,
        subscriptions: Optional[Iterable[SubscriptionInput]],
        clock: Clock,
        count: int = 12,
        calculator: Optional[PayPeriodCalculator] = None,
        status_filter: Union[StatusFilter, str, bool] = StatusFilter.ALL,
        quality: Optional[DataQualityLog] = None,
    ) -> List[PeriodRequirement]:
        """Requirements for ``count`` periods starting with the clock's current period."""
        calculator = calculator or PayPeriodCalculator()
        periods = calculator.upcoming_periods(clock, count)
        return self.requirements(subscriptions, periods, status_filter, quality)


def price_change_notices(subscriptions: Iterable[Subscription]) -> List[PriceChangeNotice]:
    """All scheduled price changes of the given subscriptions, ordered by date."""
    notices = []
    for subscription in subscriptions:
        if subscription.variable_pricing is None:
            continue
        for change in subscription.variable_pricing.upcoming_changes:
            notices.append(PriceChangeNotice(
                subscription_id=subscription.id,
                subscription_name=subscription.name,
                change=change,
                current_cost=subscription.price,
                difference=change.cost - subscription.price,
            ))
    notices.sort(key=lambda notice: (notice.change.date, notice.subscription_id))
    return notices


def upcoming_price_changes(
    subscriptions: Optional[Iterable[SubscriptionInput]],
    clock: Clock,
    quality: Optional[DataQualityLog] = None,
) -> List[PriceChangeNotice]:
    """
    Return scheduled price changes dated strictly after the clock's today.

    Args:
        subscriptions: Subscription snapshots or mappings
        clock: Source of today's date
        quality: Optional issue log

    Returns:
        Notices ordered by change date
    """
    today = clock.today()
    snapshots = coerce_subscriptions(subscriptions, quality)
    return [notice for notice in price_change_notices(snapshots) if notice.change.date > today]


def subscription_statistics(
    subscriptions: Optional[Iterable[SubscriptionInput]],
    quality: Optional[DataQualityLog] = None,
) -> SubscriptionStatistics:
    """Count subscriptions by status, category and frequency."""
    snapshots = coerce_subscriptions(subscriptions, quality)
    statuses = Counter(sub.status for sub in snapshots)
    return SubscriptionStatistics(
        total=len(snapshots),
        active=statuses[SubscriptionStatus.ACTIVE],
        cancelled=statuses[SubscriptionStatus.CANCELLED],
        watchlist=statuses[SubscriptionStatus.WATCHLIST],
        by_category=dict(Counter(sub.category or UNCATEGORIZED for sub in snapshots)),
        by_frequency=dict(Counter(sub.frequency.value for sub in snapshots)),
        anchor_dates=[sub.anchor_date for sub in snapshots if sub.anchor_date is not None],
    )


def aggregate(
    subscriptions: Optional[Iterable[SubscriptionInput]],
    period: PayPeriod,
    status_filter: Union[StatusFilter, str, bool] = StatusFilter.ALL,
    quality: Optional[DataQualityLog] = None,
) -> PeriodSummary:
    """Module-level shortcut for ``PeriodAggregator().aggregate``."""
    return PeriodAggregator().aggregate(subscriptions, period, status_filter, quality)

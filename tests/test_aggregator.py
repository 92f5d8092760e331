"""
Unit tests for the period aggregator.

Validates status filtering, category/status grouping, multi-period
requirements, price-change notices and collection statistics.
"""

from datetime import date
from unittest.mock import Mock

import pytest

from aggregator import (
    PeriodAggregator,
    StatusFilter,
    aggregate,
    subscription_statistics,
    upcoming_price_changes,
)
from clock import FixedClock
from data_quality import IssueCode
from exceptions import ContractViolationError
from models import (
    Frequency,
    Occurrence,
    PayPeriod,
    PriceChange,
    Subscription,
    VariablePricing,
)
from projector import OccurrenceProjector


class TestAggregate:
    """Tests for single-period aggregation."""

    def test_all_statuses(self, subscriptions, feb_week):
        summary = aggregate(subscriptions, feb_week, StatusFilter.ALL)

        assert summary.occurrence_count == 4
        assert summary.total_cost == pytest.approx(134.48)
        assert [occ.subscription_id for occ in summary.occurrences] == ["gym", "old-stream", "netflix", "ide"]
        assert summary.cost_by_category == pytest.approx({
            "Entertainment": 25.48,
            "Health": 10.0,
            "Software": 99.0,
        })
        assert summary.cost_by_status == pytest.approx({
            "active": 25.49,
            "cancelled": 9.99,
            "watchlist": 99.0,
        })
        assert len(summary.occurrences_by_category["Entertainment"]) == 2
        assert len(summary.occurrences_by_status["watchlist"]) == 1

    def test_active_only(self, subscriptions, feb_week):
        summary = aggregate(subscriptions, feb_week, StatusFilter.ACTIVE_ONLY)

        assert summary.occurrence_count == 2
        assert summary.total_cost == pytest.approx(25.49)
        assert set(summary.cost_by_status) == {"active"}

    def test_is_active_flag_is_respected_by_active_filter(self, feb_week):
        paused = Subscription(
            id="paused", name="Paused", price=5.0, frequency="weekly",
            anchor_date=date(2024, 2, 2), is_active=False,
        )
        assert aggregate([paused], feb_week, "active").occurrence_count == 0
        assert aggregate([paused], feb_week, "all").occurrence_count == 1

    @pytest.mark.parametrize("value, expected", [
        (True, StatusFilter.ALL),
        (False, StatusFilter.ACTIVE_ONLY),
        ("ALL", StatusFilter.ALL),
        ("active_only", StatusFilter.ACTIVE_ONLY),
    ])
    def test_status_filter_parsing(self, value, expected):
        assert StatusFilter.parse(value) is expected

    def test_unknown_status_filter_raises(self, subscriptions, feb_week):
        with pytest.raises(ContractViolationError):
            aggregate(subscriptions, feb_week, "paused")

    def test_none_collection_raises(self, feb_week):
        with pytest.raises(ContractViolationError):
            aggregate(None, feb_week)

    def test_none_period_raises(self, subscriptions):
        with pytest.raises(ContractViolationError):
            aggregate(subscriptions, None)

    def test_empty_collection(self, feb_week):
        summary = aggregate([], feb_week)
        assert summary.occurrence_count == 0
        assert summary.total_cost == 0.0
        assert summary.occurrences_by_category == {}

    def test_uncategorized_bucket(self, feb_week):
        sub = Subscription(id="x", name="X", price=3.0, frequency="weekly", anchor_date=date(2024, 2, 2))
        summary = aggregate([sub], feb_week)
        assert summary.cost_by_category == {"Uncategorized": 3.0}

    def test_accepts_plain_mappings(self, feb_week, quality):
        raw = [
            {"id": "a", "name": "A", "price": 4, "frequency": "weekly", "nextPayment": "2024-02-02",
             "status": "active", "category": "Misc"},
            {"id": "b", "name": "B", "price": -3, "frequency": "sometimes", "nextPayment": "2024-02-03",
             "status": "active", "category": "Misc"},
        ]
        summary = aggregate(raw, feb_week, quality=quality)

        assert summary.occurrence_count == 2
        assert summary.total_cost == pytest.approx(4.0)
        assert len(quality.by_code(IssueCode.INVALID_PRICE)) == 1
        assert len(quality.by_code(IssueCode.UNKNOWN_FREQUENCY)) == 1

    def test_price_changes_inside_period_are_listed(self, feb_week):
        pricing = VariablePricing(
            average_price=10.0,
            upcoming_changes=(
                PriceChange(date(2024, 2, 5), 11.0, "Hike"),
                PriceChange(date(2024, 3, 5), 12.0),
            ),
        )
        sub = Subscription(
            id="v", name="Variable", price=10.0, frequency="monthly",
            anchor_date=date(2024, 2, 5), variable_pricing=pricing,
        )
        summary = aggregate([sub], feb_week)

        assert summary.total_cost == pytest.approx(11.0)
        assert [notice.change.date for notice in summary.upcoming_changes] == [date(2024, 2, 5)]
        assert summary.upcoming_changes[0].difference == pytest.approx(1.0)

    def test_uses_injected_projector(self, subscriptions, feb_week):
        projector = Mock(spec=OccurrenceProjector)
        projector.project.return_value = [
            Occurrence(subscription_id="fake", date=date(2024, 2, 2), resolved_cost=1.5, category="Fake"),
        ]
        summary = PeriodAggregator(projector).aggregate(subscriptions[:1], feb_week)

        projector.project.assert_called_once()
        assert summary.cost_by_category == {"Fake": 1.5}

    def test_deterministic_for_identical_inputs(self, subscriptions, feb_week):
        first = aggregate(subscriptions, feb_week)
        second = aggregate(list(reversed(subscriptions)), feb_week)
        assert first.occurrences == second.occurrences
        assert first.total_cost == pytest.approx(second.total_cost)


class TestRequirements:
    """Tests for multi-period requirements."""

    def test_requirements_per_period(self, calculator):
        gym = Subscription(id="gym", name="Gym", price=10.0, frequency="weekly", anchor_date=date(2024, 1, 4))
        periods = calculator.n_periods_from(date(2024, 2, 1), 2)

        requirements = PeriodAggregator().requirements([gym], periods)

        assert [req.label for req in requirements] == ["Week 1: Feb 1 - Feb 7", "Week 2: Feb 8 - Feb 14"]
        assert [req.required_amount for req in requirements] == [10.0, 10.0]
        assert requirements[1].occurrences[0].date == date(2024, 2, 8)

    def test_upcoming_requirements_use_clock(self, subscriptions, clock, calculator):
        requirements = PeriodAggregator().upcoming_requirements(
            subscriptions, clock, count=3, calculator=calculator, status_filter=StatusFilter.ACTIVE_ONLY
        )

        assert len(requirements) == 3
        assert requirements[0].period == PayPeriod(date(2024, 2, 1), date(2024, 2, 7))
        assert requirements[0].required_amount == pytest.approx(25.49)
        # only the weekly gym bills in the following two weeks
        assert [req.required_amount for req in requirements[1:]] == [10.0, 10.0]

    def test_zero_periods(self, subscriptions, clock):
        assert PeriodAggregator().upcoming_requirements(subscriptions, clock, count=0) == []

    def test_none_periods_raise(self, subscriptions):
        with pytest.raises(ContractViolationError):
            PeriodAggregator().requirements(subscriptions, None)


class TestPriceChangesAndStatistics:
    """Tests for upcoming price changes and statistics."""

    def test_upcoming_price_changes_after_today(self):
        pricing = VariablePricing(upcoming_changes=(
            PriceChange(date(2024, 3, 1), 14.0),
            PriceChange(date(2024, 1, 15), 11.0),
            PriceChange(date(2024, 2, 10), 12.5, "Promo ends"),
        ))
        sub = Subscription(
            id="s", name="S", price=10.0, frequency=Frequency.MONTHLY,
            anchor_date=date(2024, 2, 10), variable_pricing=pricing,
        )

        notices = upcoming_price_changes([sub], FixedClock(date(2024, 2, 1)))

        assert [notice.change.date for notice in notices] == [date(2024, 2, 10), date(2024, 3, 1)]
        assert notices[0].difference == pytest.approx(2.5)
        assert notices[0].current_cost == 10.0
        assert notices[0].change.description == "Promo ends"

    def test_change_dated_today_is_not_upcoming(self):
        pricing = VariablePricing(upcoming_changes=(PriceChange(date(2024, 2, 1), 14.0),))
        sub = Subscription(
            id="s", name="S", price=10.0, frequency="monthly",
            anchor_date=date(2024, 2, 1), variable_pricing=pricing,
        )
        assert upcoming_price_changes([sub], FixedClock(date(2024, 2, 1))) == []

    def test_statistics(self, subscriptions):
        stats = subscription_statistics(subscriptions)

        assert stats.total == 4
        assert stats.active == 2
        assert stats.cancelled == 1
        assert stats.watchlist == 1
        assert stats.by_category == {"Entertainment": 2, "Health": 1, "Software": 1}
        assert stats.by_frequency == {"monthly": 2, "weekly": 1, "yearly": 1}
        assert date(2024, 2, 5) in stats.anchor_dates

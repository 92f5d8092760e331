"""
Unit tests for the budget allocator.

Covers balance health classification, per-category funding needs,
recommendation ordering, alerts and the standing weekly allocation.
"""

import logging
from datetime import date

import pytest

from aggregator import aggregate
from allocator import BudgetAllocator, CategoryMatcher, allocate, classify_balance
from data_quality import IssueCode
from exceptions import AllocationError, ContractViolationError
from models import (
    BalanceHealth,
    BudgetCategory,
    Frequency,
    Occurrence,
    PayPeriod,
    PeriodSummary,
    Subscription,
)


def summary_of(*occurrences, period=None):
    """Build a PeriodSummary directly from occurrences."""
    period = period or PayPeriod(date(2024, 2, 1), date(2024, 2, 7))
    return PeriodSummary(
        period=period,
        occurrences=list(occurrences),
        total_cost=sum(occ.resolved_cost for occ in occurrences),
        occurrence_count=len(occurrences),
    )


def occurrence(cost, category="Bills", sub_id="s1", budget_category_id=None):
    return Occurrence(
        subscription_id=sub_id,
        date=date(2024, 2, 2),
        resolved_cost=cost,
        category=category,
        budget_category_id=budget_category_id,
    )


class TestClassifyBalance:
    """Tests for balance health thresholds."""

    @pytest.mark.parametrize("balance, buffer, expected", [
        (100.0, 25.0, BalanceHealth.HEALTHY),
        (25.0, 25.0, BalanceHealth.HEALTHY),
        (10.0, 25.0, BalanceHealth.WARNING),
        (0.01, 25.0, BalanceHealth.WARNING),
        (0.0, 25.0, BalanceHealth.CRITICAL),
        (-5.0, 0.0, BalanceHealth.CRITICAL),
        (0.0, 0.0, BalanceHealth.CRITICAL),
        (1.0, 0.0, BalanceHealth.HEALTHY),
    ])
    def test_thresholds(self, balance, buffer, expected):
        assert classify_balance(balance, buffer) is expected


class TestAllocate:
    """Tests for allocate()."""

    def test_empty_balance_needs_full_amount(self):
        category = BudgetCategory(id="c1", name="Bills", weekly_allocation=60.0, current_balance=0.0)
        result = allocate([category], summary_of(occurrence(50.0)))

        line = result.categories["c1"]
        assert line.total_due == 50.0
        assert line.required_funding == 50.0
        assert line.balance_health is BalanceHealth.CRITICAL
        assert result.additional_funding_required == 50.0

    def test_healthy_category_with_weekly_burn(self):
        category = BudgetCategory(
            id="c1", name="Bills", weekly_allocation=20.0, current_balance=100.0, minimum_buffer=25.0
        )
        weekly = Subscription(id="s1", name="Weekly", price=10.0, frequency="weekly",
                              anchor_date=date(2024, 2, 2), category="Bills")
        result = allocate([category], summary_of(occurrence(10.0)), subscriptions=[weekly])

        line = result.categories["c1"]
        assert line.balance_health is BalanceHealth.HEALTHY
        assert line.required_funding == 0.0
        assert line.weekly_total == pytest.approx(10.0)
        assert line.projected_weeks == 10
        assert line.utilization_rate == pytest.approx(50.0)
        assert result.funding_recommendations == []

    def test_warning_when_below_buffer(self):
        category = BudgetCategory(id="c1", name="Bills", current_balance=10.0, minimum_buffer=25.0)
        result = allocate([category], summary_of())
        assert result.categories["c1"].balance_health is BalanceHealth.WARNING

    def test_zero_allocation_has_zero_utilization(self):
        category = BudgetCategory(id="c1", name="Bills", weekly_allocation=0.0, current_balance=5.0)
        result = allocate([category], summary_of(occurrence(30.0)))
        assert result.categories["c1"].utilization_rate == 0.0

    def test_projected_weeks_zero_without_positive_balance(self):
        category = BudgetCategory(id="c1", name="Bills", weekly_allocation=10.0, current_balance=-20.0)
        result = allocate([category], summary_of(occurrence(5.0)))
        line = result.categories["c1"]
        assert line.projected_weeks == 0
        assert line.required_funding == pytest.approx(25.0)

    def test_totals_and_alerts_with_fixtures(self, subscriptions, categories, feb_week):
        summary = aggregate(subscriptions, feb_week)
        result = allocate(categories, summary)

        assert list(result.categories) == ["cat-ent", "cat-health", "cat-soft"]
        assert result.categories["cat-ent"].total_due == pytest.approx(25.48)
        assert result.categories["cat-ent"].occurrence_count == 2
        assert result.categories["cat-ent"].balance_health is BalanceHealth.WARNING
        assert result.categories["cat-ent"].required_funding == pytest.approx(20.48)
        assert result.categories["cat-ent"].utilization_rate == pytest.approx(127.4)
        assert result.categories["cat-soft"].projected_weeks == 5
        assert result.total_weekly_need == pytest.approx(134.48)
        assert result.total_current_balance == pytest.approx(505.0)
        assert result.additional_funding_required == 0.0
        assert result.alerts == ["Health has no funds available."]

    def test_weekly_total_from_active_subscriptions(self, subscriptions, categories, feb_week):
        result = allocate(categories, aggregate(subscriptions, feb_week), subscriptions=subscriptions)

        assert result.categories["cat-ent"].weekly_total == pytest.approx(15.49 / 4.33)
        assert result.categories["cat-health"].weekly_total == pytest.approx(10.0)
        # the watchlist licence does not count toward the standing burn rate
        assert result.categories["cat-soft"].weekly_total == 0.0
        assert result.categories["cat-soft"].projected_weeks == 0

    def test_shortfall_alert(self):
        category = BudgetCategory(id="c1", name="Bills", current_balance=40.0)
        result = allocate([category], summary_of(occurrence(1234.5)))
        assert result.additional_funding_required == pytest.approx(1194.5)
        assert result.alerts == ["Balances fall short of this period's bills by $1,194.50."]

    def test_additional_funding_never_negative(self):
        category = BudgetCategory(id="c1", name="Bills", current_balance=1000.0)
        result = allocate([category], summary_of(occurrence(5.0)))
        assert result.additional_funding_required == 0.0

    def test_unmatched_occurrences_are_ignored(self):
        category = BudgetCategory(id="c1", name="Bills")
        result = allocate([category], summary_of(occurrence(5.0, category="Elsewhere")))
        assert result.categories["c1"].total_due == 0.0
        assert result.total_weekly_need == 0.0

    def test_none_inputs_raise(self, categories):
        with pytest.raises(ContractViolationError):
            allocate(None, summary_of())
        with pytest.raises(ContractViolationError):
            allocate(categories, None)

    def test_malformed_category_mapping_is_coerced(self, quality):
        raw = {"id": "c9", "name": "Misc", "weeklyAllocation": -5, "priority": None, "currentBalance": "12.50"}
        result = allocate([raw], summary_of(), quality=quality)

        line = result.categories["c9"]
        assert line.priority == 0
        assert line.current_balance == pytest.approx(12.5)
        assert len(quality.by_code(IssueCode.INVALID_CATEGORY_VALUE)) == 2

    def test_allocation_does_not_modify_balances(self, categories, subscriptions, feb_week):
        before = [category.current_balance for category in categories]
        allocate(categories, aggregate(subscriptions, feb_week))
        assert [category.current_balance for category in categories] == before


class TestCategoryMatching:
    """Tests for CategoryMatcher."""

    def test_explicit_id_wins_over_name(self):
        bills = BudgetCategory(id="c1", name="Bills")
        other = BudgetCategory(id="c2", name="Other")
        result = allocate(
            [bills, other],
            summary_of(occurrence(7.0, category="Bills", budget_category_id="c2")),
        )
        assert result.categories["c1"].total_due == 0.0
        assert result.categories["c2"].total_due == 7.0

    def test_duplicate_id_does_not_capture_its_name(self, caplog):
        first = BudgetCategory(id="c1", name="Bills")
        duplicate = BudgetCategory(id="c1", name="Streaming")

        with caplog.at_level(logging.WARNING, logger="allocator"):
            result = allocate([first, duplicate], summary_of(occurrence(9.0, category="Streaming")))

        assert list(result.categories) == ["c1"]
        assert result.categories["c1"].total_due == 0.0
        assert "Duplicate budget category id 'c1'" in caplog.text
        assert CategoryMatcher([first, duplicate]).match(None, "streaming") is None

    def test_unknown_id_falls_back_to_name(self):
        matcher = CategoryMatcher([BudgetCategory(id="c1", name="Bills")])
        assert matcher.match("missing", "bills").id == "c1"

    def test_name_match_is_case_insensitive_and_first_wins(self):
        first = BudgetCategory(id="c1", name="Streaming")
        second = BudgetCategory(id="c2", name="streaming")
        result = allocate([first, second], summary_of(occurrence(9.0, category=" STREAMING ")))
        assert result.categories["c1"].total_due == 9.0
        assert result.categories["c2"].total_due == 0.0


class TestRecommendations:
    """Tests for funding recommendation ordering."""

    def test_higher_priority_first(self, subscriptions, categories, feb_week):
        result = allocate(categories, aggregate(subscriptions, feb_week))

        recommendations = result.funding_recommendations
        assert [rec.category_id for rec in recommendations] == ["cat-health", "cat-ent"]
        assert recommendations[0].amount == pytest.approx(10.0)
        assert recommendations[0].reason_summary == "1 subscription(s) due this period; auto-fund enabled"
        assert recommendations[1].reason_summary == "2 subscription(s) due this period"

    def test_ties_use_funding_order_then_input_position(self):
        categories = [
            BudgetCategory(id="a", name="A", priority=5),
            BudgetCategory(id="b", name="B", priority=5, funding_order=2),
            BudgetCategory(id="c", name="C", priority=5),
            BudgetCategory(id="d", name="D", priority=5, funding_order=1),
        ]
        summary = summary_of(*(occurrence(1.0, category=name, sub_id=name) for name in "ABCD"))

        result = allocate(categories, summary)

        assert [rec.category_id for rec in result.funding_recommendations] == ["d", "b", "a", "c"]

    def test_funded_categories_are_not_recommended(self):
        categories = [
            BudgetCategory(id="a", name="A", priority=9, current_balance=100.0),
            BudgetCategory(id="b", name="B", priority=1),
        ]
        summary = summary_of(occurrence(5.0, category="A"), occurrence(5.0, category="B", sub_id="s2"))
        result = allocate(categories, summary)
        assert [rec.category_id for rec in result.funding_recommendations] == ["b"]


class TestWeeklyBudgetAllocation:
    """Tests for the standing weekly allocation against income."""

    def test_weekly_allocation_against_income(self, subscriptions, categories):
        allocation = BudgetAllocator().weekly_budget_allocation(subscriptions, categories, weekly_income=100.0)

        lines = {line.category_id: line for line in allocation.allocations}
        assert lines["cat-ent"].required_amount == pytest.approx(15.49 / 4.33)
        assert lines["cat-ent"].subscription_count == 1
        assert lines["cat-health"].utilization == pytest.approx(10.0 / 15.0 * 100.0)
        assert lines["cat-soft"].required_amount == 0.0
        assert allocation.total_allocated == pytest.approx(35.0)
        assert allocation.remaining_income == pytest.approx(65.0)
        assert not allocation.is_over_budget

    @pytest.mark.parametrize("income", [float("nan"), float("inf"), "100", None, True])
    def test_invalid_income_raises(self, subscriptions, categories, income):
        with pytest.raises(AllocationError):
            BudgetAllocator().weekly_budget_allocation(subscriptions, categories, weekly_income=income)

    def test_over_budget(self, categories):
        rent = Subscription(
            id="rent", name="Rent", price=1200.0, frequency=Frequency.MONTHLY,
            anchor_date=date(2024, 2, 1), category="Health",
        )
        allocation = BudgetAllocator().weekly_budget_allocation([rent], categories, weekly_income=100.0)
        assert allocation.total_required == pytest.approx(1200.0 / 4.33)
        assert allocation.is_over_budget

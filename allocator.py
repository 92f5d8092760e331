"""
Budget allocator.

Matches a period's occurrences to budget categories and works out how much
each category still needs, how healthy its balance is, and which categories
should be funded first. The allocator only reports; it never changes a
category's balance.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from aggregator import SubscriptionInput, coerce_subscriptions
from data_quality import DataQualityLog
from exceptions import AllocationError, ContractViolationError
from frequency import subscription_weekly_amount
from models import (
    AllocationResult,
    BalanceHealth,
    BudgetCategory,
    CategoryAllocation,
    FundingRecommendation,
    Occurrence,
    PeriodSummary,
    Subscription,
    SubscriptionStatus,
    WeeklyAllocationLine,
    WeeklyBudgetAllocation,
)

logger = logging.getLogger(__name__)

CategoryInput = Union[BudgetCategory, Mapping[str, Any]]


def classify_balance(current_balance: float, minimum_buffer: float) -> BalanceHealth:
    """
    Classify a balance against its minimum buffer.

    healthy: balance >= buffer; warning: 0 < balance < buffer;
    critical: balance <= 0 (a zero buffer with a zero balance is critical).
    """
    if current_balance <= 0:
        return BalanceHealth.CRITICAL
    if current_balance >= minimum_buffer:
        return BalanceHealth.HEALTHY
    return BalanceHealth.WARNING


def coerce_categories(
    categories: Optional[Iterable[CategoryInput]],
    quality: Optional[DataQualityLog] = None,
) -> List[BudgetCategory]:
    """
    Convert category snapshots or mappings to BudgetCategory objects.

    Raises:
        ContractViolationError: If the collection is None
    """
    if categories is None:
        raise ContractViolationError("Budget category collection is required")
    return [
        item if isinstance(item, BudgetCategory) else BudgetCategory.from_dict(item, quality)
        for item in categories
    ]


class CategoryMatcher:
    """
    Resolves which category a subscription or occurrence belongs to.

    An explicit budget category id wins over a name match; among several
    name matches the first category in input order wins, so every cost is
    charged to exactly one category.
    """

    def __init__(self, categories: List[BudgetCategory]):
        self._by_id: Dict[str, BudgetCategory] = {}
        self._by_name: Dict[str, BudgetCategory] = {}
        for category in categories:
            if category.id in self._by_id:
                logger.warning(
                    "Duplicate budget category id '%s'; not matching on its name '%s'",
                    category.id,
                    category.name,
                )
                continue
            self._by_id[category.id] = category
            key = self._category_key(category.name)
            if key:
                self._by_name.setdefault(key, category)

    @staticmethod
    def _category_key(name: Optional[str]) -> str:
        """Case-insensitive key for category comparisons."""
        if name is None:
            return ""
        return name.strip().lower()

    def match(self, budget_category_id: Optional[str], category: Optional[str]) -> Optional[BudgetCategory]:
        if budget_category_id and budget_category_id in self._by_id:
            return self._by_id[budget_category_id]
        return self._by_name.get(self._category_key(category))

    def match_occurrence(self, occurrence: Occurrence) -> Optional[BudgetCategory]:
        return self.match(occurrence.budget_category_id, occurrence.category)

    def match_subscription(self, subscription: Subscription) -> Optional[BudgetCategory]:
        return self.match(subscription.budget_category_id, subscription.category)


def _is_active(subscription: Subscription) -> bool:
    return subscription.is_active and subscription.status is SubscriptionStatus.ACTIVE


class BudgetAllocator:
    """
    Computes funding needs and recommendations for budget categories.

    Recommendations are ordered by priority (highest first); equal priorities
    are ordered by declared funding order (categories without one last), then
    by their position in the input.
    """

    def allocate(
        self,
        categories: Optional[Iterable[CategoryInput]],
        period_summary: Optional[PeriodSummary],
        subscriptions: Optional[Iterable[SubscriptionInput]] = None,
        quality: Optional[DataQualityLog] = None,
    ) -> AllocationResult:
        """
        Allocate category balances against the cost due in a period.

        Args:
            categories: Budget categories (snapshots or mappings), in creation order
            period_summary: Aggregated occurrences for the period
            subscriptions: Optional subscriptions used to compute each
                category's standing weekly burn rate; without them the
                period's amount due is used
            quality: Optional issue log

        Returns:
            AllocationResult

        Raises:
            ContractViolationError: If categories or period_summary is None
        """
        if period_summary is None:
            raise ContractViolationError("Period summary is required for allocation")
        budget_categories = coerce_categories(categories, quality)
        matcher = CategoryMatcher(budget_categories)

        due: Dict[str, float] = {category.id: 0.0 for category in budget_categories}
        counts: Dict[str, int] = {category.id: 0 for category in budget_categories}
        unmatched = 0
        for occurrence in period_summary.occurrences:
            category = matcher.match_occurrence(occurrence)
            if category is None:
                unmatched += 1
                continue
            due[category.id] += occurrence.resolved_cost
            counts[category.id] += 1
        if unmatched:
            logger.debug("%s occurrence(s) matched no budget category", unmatched)

        weekly_totals = dict(due)
        if subscriptions is not None:
            weekly_totals = self._weekly_totals(
                coerce_subscriptions(subscriptions, quality), budget_categories, matcher, quality
            )

        allocations: Dict[str, CategoryAllocation] = {}
        for category in budget_categories:
            if category.id in allocations:
                logger.warning("Duplicate budget category id '%s'; keeping the first", category.id)
                continue
            allocations[category.id] = self._allocate_category(
                category, due[category.id], counts[category.id], weekly_totals[category.id]
            )

        total_need = sum(item.total_due for item in allocations.values())
        total_balance = sum(item.current_balance for item in allocations.values())
        result = AllocationResult(
            categories=allocations,
            total_weekly_need=total_need,
            total_current_balance=total_balance,
            additional_funding_required=max(0.0, total_need - total_balance),
            funding_recommendations=self._recommendations(budget_categories, allocations),
        )
        result.alerts = self.get_allocation_alerts(result)

        logger.debug(
            "Allocation for %s..%s: need %.2f, balance %.2f, additional %.2f, %s recommendation(s)",
            period_summary.period.start,
            period_summary.period.end,
            result.total_weekly_need,
            result.total_current_balance,
            result.additional_funding_required,
            len(result.funding_recommendations),
        )
        return result

    @staticmethod
    def _allocate_category(
        category: BudgetCategory,
        total_due: float,
        occurrence_count: int,
        weekly_total: float,
    ) -> CategoryAllocation:
        balance = category.current_balance
        if category.weekly_allocation > 0:
            utilization = weekly_total / category.weekly_allocation * 100.0
        else:
            utilization = 0.0
        if weekly_total > 0 and balance > 0:
            projected_weeks = math.floor(balance / weekly_total)
        else:
            projected_weeks = 0
        return CategoryAllocation(
            category_id=category.id,
            category_name=category.name,
            total_due=total_due,
            current_balance=balance,
            required_funding=max(0.0, total_due - balance),
            balance_health=classify_balance(balance, category.minimum_buffer),
            weekly_total=weekly_total,
            utilization_rate=utilization,
            projected_weeks=projected_weeks,
            occurrence_count=occurrence_count,
            priority=category.priority,
        )

    @staticmethod
    def _weekly_totals(
        subscriptions: List[Subscription],
        categories: List[BudgetCategory],
        matcher: CategoryMatcher,
        quality: Optional[DataQualityLog],
    ) -> Dict[str, float]:
        totals = {category.id: 0.0 for category in categories}
        for subscription in subscriptions:
            if not _is_active(subscription):
                continue
            category = matcher.match_subscription(subscription)
            if category is None:
                continue
            totals[category.id] += subscription_weekly_amount(subscription, quality)
        return totals

    @staticmethod
    def _recommendations(
        categories: List[BudgetCategory],
        allocations: Dict[str, CategoryAllocation],
    ) -> List[FundingRecommendation]:
        ranked: List[Tuple[Tuple[int, int, int, int], BudgetCategory]] = []
        seen = set()
        for position, category in enumerate(categories):
            if category.id in seen:
                continue
            seen.add(category.id)
            if allocations[category.id].required_funding <= 0:
                continue
            has_order = category.funding_order is not None
            sort_key = (
                -category.priority,
                0 if has_order else 1,
                category.funding_order if has_order else 0,
                position,
            )
            ranked.append((sort_key, category))
        ranked.sort(key=lambda item: item[0])

        recommendations = []
        for _, category in ranked:
            allocation = allocations[category.id]
            reason = f"{allocation.occurrence_count} subscription(s) due this period"
            if category.auto_fund:
                reason += "; auto-fund enabled"
            recommendations.append(FundingRecommendation(
                category_id=category.id,
                category_name=category.name,
                amount=allocation.required_funding,
                priority=category.priority,
                auto_fund=category.auto_fund,
                reason_summary=reason,
            ))
        return recommendations

    @staticmethod
    def get_allocation_alerts(result: AllocationResult) -> List[str]:
        """High-priority alerts derived from an allocation result."""
        alerts: List[str] = []
        for allocation in result.categories.values():
            if allocation.balance_health is BalanceHealth.CRITICAL:
                alerts.append(f"{allocation.category_name or allocation.category_id} has no funds available.")
        if result.additional_funding_required > 0:
            alerts.append(
                f"Balances fall short of this period's bills by ${result.additional_funding_required:,.2f}."
            )
        return alerts

    def weekly_budget_allocation(
        self,
        subscriptions: Optional[Iterable[SubscriptionInput]],
        categories: Optional[Iterable[CategoryInput]],
        weekly_income: float,
        quality: Optional[DataQualityLog] = None,
    ) -> WeeklyBudgetAllocation:
        """
        Compare each category's standing weekly requirement with its allocation.

        Args:
            subscriptions: Subscriptions (only active ones count)
            categories: Budget categories
            weekly_income: Income available per pay period
            quality: Optional issue log

        Returns:
            WeeklyBudgetAllocation

        Raises:
            AllocationError: If weekly_income is not a finite number
        """
        if (
            isinstance(weekly_income, bool)
            or not isinstance(weekly_income, (int, float))
            or not math.isfinite(weekly_income)
        ):
            raise AllocationError("Weekly income must be a finite number", details={"weekly_income": weekly_income})
        snapshots = coerce_subscriptions(subscriptions, quality)
        budget_categories = coerce_categories(categories, quality)
        matcher = CategoryMatcher(budget_categories)
        required = self._weekly_totals(snapshots, budget_categories, matcher, quality)
        counts = {category.id: 0 for category in budget_categories}
        for subscription in snapshots:
            if not _is_active(subscription):
                continue
            category = matcher.match_subscription(subscription)
            if category is not None:
                counts[category.id] += 1

        lines = []
        for category in budget_categories:
            amount = required[category.id]
            lines.append(WeeklyAllocationLine(
                category_id=category.id,
                category_name=category.name,
                required_amount=amount,
                allocated_amount=category.weekly_allocation,
                utilization=(amount / category.weekly_allocation * 100.0) if category.weekly_allocation > 0 else 0.0,
                subscription_count=counts[category.id],
            ))

        total_required = sum(line.required_amount for line in lines)
        total_allocated = sum(line.allocated_amount for line in lines)
        return WeeklyBudgetAllocation(
            allocations=lines,
            total_required=total_required,
            total_allocated=total_allocated,
            remaining_income=weekly_income - total_allocated,
            is_over_budget=total_required > weekly_income,
        )


def allocate(
    categories: Optional[Iterable[CategoryInput]],
    period_summary: Optional[PeriodSummary],
    subscriptions: Optional[Iterable[SubscriptionInput]] = None,
    quality: Optional[DataQualityLog] = None,
) -> AllocationResult:
    """Module-level shortcut for ``BudgetAllocator().allocate``."""
    return BudgetAllocator().allocate(categories, period_summary, subscriptions, quality)

"""
Report generator module for tabular views of engine results.

This module converts period summaries, requirements, allocations and
normalized subscription costs into pandas DataFrames that a presentation
layer can chart or export, plus the currency/percentage conversions it needs.
"""

import logging
from typing import Iterable, List, Optional

import pandas as pd

from aggregator import SubscriptionInput, coerce_subscriptions
from data_quality import DataQualityLog
from frequency import to_monthly, to_weekly, to_yearly
from models import AllocationResult, PeriodRequirement, PeriodSummary

logger = logging.getLogger(__name__)

OCCURRENCE_COLUMNS = ["date", "subscription_id", "name", "category", "status", "frequency", "cost", "description"]
REQUIREMENT_COLUMNS = ["period", "label", "start_date", "end_date", "required_amount", "occurrence_count"]
ALLOCATION_COLUMNS = [
    "category_id", "category_name", "priority", "total_due", "current_balance", "required_funding",
    "balance_health", "weekly_total", "utilization_rate", "projected_weeks", "occurrence_count",
]
RECOMMENDATION_COLUMNS = ["rank", "category_id", "category_name", "priority", "amount", "auto_fund", "reason"]
NORMALIZED_COLUMNS = ["subscription_id", "name", "category", "status", "frequency", "weekly", "monthly", "yearly"]


class ReportGenerator:
    """
    Build DataFrames from engine results.

    All frames are plain data; rounding is left to the caller except in
    ``format_currency``.
    """

    def __init__(self):
        """Initialize the report generator."""
        logger.debug("Report generator initialized")

    def format_currency(self, amount: float) -> str:
        """
        Format amount as currency string.

        Args:
            amount: Amount to format

        Returns:
            Formatted currency string
        """
        if amount < 0:
            return f"-${abs(amount):,.2f}"
        return f"${amount:,.2f}"

    def format_percentage(self, percentage: float) -> str:
        """
        Format percentage string.

        Args:
            percentage: Percentage value

        Returns:
            Formatted percentage string
        """
        return f"{percentage:.1f}%"

    def occurrences_frame(self, summary: PeriodSummary) -> pd.DataFrame:
        """
        One row per occurrence in a period summary.

        Args:
            summary: PeriodSummary from the aggregator

        Returns:
            DataFrame with OCCURRENCE_COLUMNS, ordered by date
        """
        rows = [
            {
                "date": occ.date,
                "subscription_id": occ.subscription_id,
                "name": occ.name,
                "category": occ.category,
                "status": occ.status.value,
                "frequency": occ.frequency.value,
                "cost": occ.resolved_cost,
                "description": occ.description,
            }
            for occ in summary.occurrences
        ]
        return pd.DataFrame(rows, columns=OCCURRENCE_COLUMNS)

    def category_breakdown_frame(self, summary: PeriodSummary) -> pd.DataFrame:
        """Cost and occurrence count per category, most expensive first."""
        rows = [
            {
                "category": category,
                "cost": summary.cost_by_category.get(category, 0.0),
                "occurrence_count": len(items),
                "share_pct": (summary.cost_by_category.get(category, 0.0) / summary.total_cost * 100.0)
                if summary.total_cost > 0 else 0.0,
            }
            for category, items in summary.occurrences_by_category.items()
        ]
        df = pd.DataFrame(rows, columns=["category", "cost", "occurrence_count", "share_pct"])
        if df.empty:
            return df
        return df.sort_values(["cost", "category"], ascending=[False, True]).reset_index(drop=True)

    def requirements_frame(self, requirements: Iterable[PeriodRequirement]) -> pd.DataFrame:
        """One row per period requirement."""
        rows = [
            {
                "period": req.index + 1,
                "label": req.label,
                "start_date": req.period.start,
                "end_date": req.period.end,
                "required_amount": req.required_amount,
                "occurrence_count": len(req.occurrences),
            }
            for req in requirements
        ]
        return pd.DataFrame(rows, columns=REQUIREMENT_COLUMNS)

    def allocation_frame(self, result: AllocationResult) -> pd.DataFrame:
        """One row per category allocation, in input order."""
        rows = [
            {
                "category_id": item.category_id,
                "category_name": item.category_name,
                "priority": item.priority,
                "total_due": item.total_due,
                "current_balance": item.current_balance,
                "required_funding": item.required_funding,
                "balance_health": item.balance_health.value,
                "weekly_total": item.weekly_total,
                "utilization_rate": item.utilization_rate,
                "projected_weeks": item.projected_weeks,
                "occurrence_count": item.occurrence_count,
            }
            for item in result.categories.values()
        ]
        return pd.DataFrame(rows, columns=ALLOCATION_COLUMNS)

    def recommendations_frame(self, result: AllocationResult) -> pd.DataFrame:
        """Funding recommendations in ranked order."""
        rows = [
            {
                "rank": rank,
                "category_id": rec.category_id,
                "category_name": rec.category_name,
                "priority": rec.priority,
                "amount": rec.amount,
                "auto_fund": rec.auto_fund,
                "reason": rec.reason_summary,
            }
            for rank, rec in enumerate(result.funding_recommendations, start=1)
        ]
        return pd.DataFrame(rows, columns=RECOMMENDATION_COLUMNS)

    def normalized_costs_frame(
        self,
        subscriptions: Iterable[SubscriptionInput],
        quality: Optional[DataQualityLog] = None,
    ) -> pd.DataFrame:
        """
        Weekly, monthly and yearly equivalents per subscription.

        Args:
            subscriptions: Subscription snapshots or mappings
            quality: Optional issue log

        Returns:
            DataFrame with NORMALIZED_COLUMNS
        """
        rows: List[dict] = []
        for sub in coerce_subscriptions(subscriptions, quality):
            args = (sub.price, sub.frequency, sub.variable_pricing, quality, sub.id)
            rows.append({
                "subscription_id": sub.id,
                "name": sub.name,
                "category": sub.category,
                "status": sub.status.value,
                "frequency": sub.frequency.value,
                "weekly": to_weekly(*args),
                "monthly": to_monthly(*args),
                "yearly": to_yearly(*args),
            })
        return pd.DataFrame(rows, columns=NORMALIZED_COLUMNS)

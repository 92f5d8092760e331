"""
Frequency normalizer.

Converts a (price, frequency) pair into weekly, monthly and yearly
equivalents using fixed conversion factors. When a variable-pricing average
is present it replaces the list price as the base. Unknown frequencies fall
back to monthly and are reported as UNKNOWN_FREQUENCY.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from clock import Clock
from data_quality import DataQualityLog
from date_utils import shift
from models import (
    Frequency,
    Subscription,
    SubscriptionMetrics,
    VariablePricing,
    coerce_amount,
)

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = 4.33
DAYS_PER_MONTH = 30.44
DAYS_PER_YEAR = 365.25
BIWEEKLY_PERIODS_PER_MONTH = 2.16
DUE_SOON_DAYS = 7

# Multipliers applied to the base price
WEEKLY_FACTORS: Dict[Frequency, float] = {
    Frequency.DAILY: 7.0,
    Frequency.WEEKLY: 1.0,
    Frequency.BIWEEKLY: 1 / 2,
    Frequency.MONTHLY: 1 / WEEKS_PER_MONTH,
    Frequency.QUARTERLY: 1 / 13,
    Frequency.SEMIANNUAL: 1 / 26,
    Frequency.YEARLY: 1 / 52,
}

MONTHLY_FACTORS: Dict[Frequency, float] = {
    Frequency.DAILY: DAYS_PER_MONTH,
    Frequency.WEEKLY: WEEKS_PER_MONTH,
    Frequency.BIWEEKLY: BIWEEKLY_PERIODS_PER_MONTH,
    Frequency.MONTHLY: 1.0,
    Frequency.QUARTERLY: 1 / 3,
    Frequency.SEMIANNUAL: 1 / 6,
    Frequency.YEARLY: 1 / 12,
}

YEARLY_FACTORS: Dict[Frequency, float] = {
    Frequency.DAILY: DAYS_PER_YEAR,
    Frequency.WEEKLY: 52.0,
    Frequency.BIWEEKLY: 26.0,
    Frequency.MONTHLY: 12.0,
    Frequency.QUARTERLY: 4.0,
    Frequency.SEMIANNUAL: 2.0,
    Frequency.YEARLY: 1.0,
}


def base_price(
    price: Any,
    variable_pricing: Optional[VariablePricing] = None,
    quality: Optional[DataQualityLog] = None,
    subject_id: Optional[str] = None,
) -> float:
    """Return the average price if variable pricing has one, else the clamped list price."""
    if variable_pricing is not None and variable_pricing.average_price is not None:
        return variable_pricing.average_price
    return coerce_amount(price, field_name="price", subject_id=subject_id, quality=quality)


def _convert(
    factors: Dict[Frequency, float],
    price: Any,
    frequency: Any,
    variable_pricing: Optional[VariablePricing],
    quality: Optional[DataQualityLog],
    subject_id: Optional[str],
) -> float:
    resolved = Frequency.parse(frequency, quality, subject_id)
    return base_price(price, variable_pricing, quality, subject_id) * factors[resolved]


def to_weekly(
    price: Any,
    frequency: Any,
    variable_pricing: Optional[VariablePricing] = None,
    quality: Optional[DataQualityLog] = None,
    subject_id: Optional[str] = None,
) -> float:
    """
    Convert a per-cycle price to its weekly equivalent.

    Args:
        price: Price per billing event
        frequency: Frequency member or string
        variable_pricing: Optional schedule whose average replaces ``price``
        quality: Optional issue log
        subject_id: Subscription identifier for issue records

    Returns:
        Weekly amount

    Example:
        >>> round(to_weekly(21, "monthly"), 2)
        4.85
    """
    return _convert(WEEKLY_FACTORS, price, frequency, variable_pricing, quality, subject_id)


def to_monthly(
    price: Any,
    frequency: Any,
    variable_pricing: Optional[VariablePricing] = None,
    quality: Optional[DataQualityLog] = None,
    subject_id: Optional[str] = None,
) -> float:
    """Convert a per-cycle price to its monthly equivalent."""
    return _convert(MONTHLY_FACTORS, price, frequency, variable_pricing, quality, subject_id)


def to_yearly(
    price: Any,
    frequency: Any,
    variable_pricing: Optional[VariablePricing] = None,
    quality: Optional[DataQualityLog] = None,
    subject_id: Optional[str] = None,
) -> float:
    """Convert a per-cycle price to its yearly equivalent."""
    return _convert(YEARLY_FACTORS, price, frequency, variable_pricing, quality, subject_id)


def subscription_weekly_amount(subscription: Subscription, quality: Optional[DataQualityLog] = None) -> float:
    """Weekly equivalent of a subscription's base price."""
    return to_weekly(
        subscription.price,
        subscription.frequency,
        subscription.variable_pricing,
        quality,
        subscription.id,
    )


def next_payment_date(last_payment: date, frequency: Any, quality: Optional[DataQualityLog] = None) -> date:
    """Return the billing date one cycle after ``last_payment``."""
    months, days = Frequency.parse(frequency, quality).cycle
    return shift(last_payment, months, days, 1)


def normalized_amounts(
    subscription: Subscription,
    clock: Clock,
    quality: Optional[DataQualityLog] = None,
) -> SubscriptionMetrics:
    """
    Compute normalized cost figures and due-date flags for a subscription.

    Args:
        subscription: Subscription snapshot
        clock: Source of today's date
        quality: Optional issue log

    Returns:
        SubscriptionMetrics
    """
    weekly = to_weekly(
        subscription.price, subscription.frequency, subscription.variable_pricing,
        quality, subscription.id,
    )
    monthly = to_monthly(
        subscription.price, subscription.frequency, subscription.variable_pricing,
        quality, subscription.id,
    )
    yearly = to_yearly(
        subscription.price, subscription.frequency, subscription.variable_pricing,
        quality, subscription.id,
    )

    days_until: Optional[int] = None
    if subscription.anchor_date is not None:
        days_until = (subscription.anchor_date - clock.today()).days

    return SubscriptionMetrics(
        weekly=weekly,
        monthly=monthly,
        yearly=yearly,
        daily=weekly / 7,
        days_until_payment=days_until,
        is_overdue=days_until is not None and days_until < 0,
        is_due_soon=days_until is not None and 0 <= days_until <= DUE_SOON_DAYS,
    )

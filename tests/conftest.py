from datetime import date

import pytest

from clock import FixedClock
from data_quality import DataQualityLog
from models import BudgetCategory, Frequency, Subscription, SubscriptionStatus
from pay_period import PayPeriodCalculator


@pytest.fixture
def calculator():
    """Thursday-anchored pay period calculator."""
    return PayPeriodCalculator("THU")


@pytest.fixture
def clock():
    """Clock pinned to Saturday 2024-02-03 (inside the Feb 1-7 pay period)."""
    return FixedClock(date(2024, 2, 3))


@pytest.fixture
def quality():
    """Fresh data-quality log."""
    return DataQualityLog()


@pytest.fixture
def feb_week(calculator):
    """Pay period Thu 2024-02-01 .. Wed 2024-02-07."""
    return calculator.period_containing(date(2024, 2, 1))


@pytest.fixture
def subscriptions():
    """A mixed-status subscription collection with one event each in Feb 1-7 2024."""
    return [
        Subscription(
            id="netflix",
            name="Netflix",
            price=15.49,
            frequency=Frequency.MONTHLY,
            anchor_date=date(2024, 2, 5),
            category="Entertainment",
        ),
        Subscription(
            id="gym",
            name="Gym",
            price=10.0,
            frequency=Frequency.WEEKLY,
            anchor_date=date(2024, 1, 4),
            category="Health",
        ),
        Subscription(
            id="old-stream",
            name="Old Streaming",
            price=9.99,
            frequency=Frequency.MONTHLY,
            anchor_date=date(2024, 2, 3),
            status=SubscriptionStatus.CANCELLED,
            category="Entertainment",
        ),
        Subscription(
            id="ide",
            name="IDE License",
            price=99.0,
            frequency=Frequency.YEARLY,
            anchor_date=date(2024, 2, 6),
            status=SubscriptionStatus.WATCHLIST,
            category="Software",
        ),
    ]


@pytest.fixture
def categories():
    """Budget categories in creation order."""
    return [
        BudgetCategory(
            id="cat-ent",
            name="Entertainment",
            weekly_allocation=20.0,
            current_balance=5.0,
            priority=3,
            minimum_buffer=25.0,
        ),
        BudgetCategory(
            id="cat-health",
            name="Health",
            weekly_allocation=15.0,
            current_balance=0.0,
            priority=8,
            minimum_buffer=10.0,
            auto_fund=True,
        ),
        BudgetCategory(
            id="cat-soft",
            name="Software",
            weekly_allocation=0.0,
            current_balance=500.0,
            priority=5,
            minimum_buffer=50.0,
        ),
    ]

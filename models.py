"""
Data model for the billing engine.

Inputs (subscriptions, budget categories, pay periods) are frozen snapshots
supplied per call; results (summaries, allocations) are plain dataclasses
handed back to the caller. Snapshots can be built from the plain mappings a
persistence layer delivers via ``from_dict``; malformed values are replaced
with safe defaults and reported through a DataQualityLog.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from data_quality import DataQualityLog, IssueCode, ensure_log
from date_utils import format_short, parse_optional_date, to_date
from exceptions import PayPeriodError

logger = logging.getLogger(__name__)


class Frequency(str, Enum):
    """Billing cycles supported by the projector."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    YEARLY = "yearly"

    @property
    def cycle(self) -> Tuple[int, int]:
        """Cycle length as (calendar months, days)."""
        return _CYCLES[self]

    @classmethod
    def parse(
        cls,
        raw: Any,
        quality: Optional[DataQualityLog] = None,
        subject_id: Optional[str] = None,
    ) -> "Frequency":
        """
        Resolve a frequency from an enum member or string.

        Unknown or missing values fall back to MONTHLY and are recorded as
        UNKNOWN_FREQUENCY.

        Args:
            raw: Frequency value as received
            quality: Optional issue log
            subject_id: Subscription identifier for the issue record

        Returns:
            Resolved Frequency
        """
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            resolved = _FREQUENCY_ALIASES.get(raw.strip().lower())
            if resolved is not None:
                return resolved
        ensure_log(quality).record(
            IssueCode.UNKNOWN_FREQUENCY,
            f"Unknown frequency {raw!r}; using monthly",
            subject_id=subject_id,
            field="frequency",
            original_value=raw,
            substituted_value=cls.MONTHLY.value,
        )
        return cls.MONTHLY


_CYCLES: Dict[Frequency, Tuple[int, int]] = {
    Frequency.DAILY: (0, 1),
    Frequency.WEEKLY: (0, 7),
    Frequency.BIWEEKLY: (0, 14),
    Frequency.MONTHLY: (1, 0),
    Frequency.QUARTERLY: (3, 0),
    Frequency.SEMIANNUAL: (6, 0),
    Frequency.YEARLY: (12, 0),
}

_FREQUENCY_ALIASES: Dict[str, Frequency] = {
    "daily": Frequency.DAILY,
    "day": Frequency.DAILY,
    "weekly": Frequency.WEEKLY,
    "week": Frequency.WEEKLY,
    "biweekly": Frequency.BIWEEKLY,
    "bi-weekly": Frequency.BIWEEKLY,
    "monthly": Frequency.MONTHLY,
    "month": Frequency.MONTHLY,
    "quarterly": Frequency.QUARTERLY,
    "quarter": Frequency.QUARTERLY,
    "semiannual": Frequency.SEMIANNUAL,
    "semi-annual": Frequency.SEMIANNUAL,
    "semi-annually": Frequency.SEMIANNUAL,
    "semiannually": Frequency.SEMIANNUAL,
    "yearly": Frequency.YEARLY,
    "year": Frequency.YEARLY,
    "annual": Frequency.YEARLY,
    "annually": Frequency.YEARLY,
}


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    WATCHLIST = "watchlist"

    @classmethod
    def parse(
        cls,
        raw: Any,
        quality: Optional[DataQualityLog] = None,
        subject_id: Optional[str] = None,
    ) -> "SubscriptionStatus":
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            text = raw.strip().lower()
            if text == "canceled":
                return cls.CANCELLED
            for member in cls:
                if member.value == text:
                    return member
        ensure_log(quality).record(
            IssueCode.UNKNOWN_STATUS,
            f"Unknown status {raw!r}; using active",
            subject_id=subject_id,
            field="status",
            original_value=raw,
            substituted_value=cls.ACTIVE.value,
        )
        return cls.ACTIVE


class BalanceHealth(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


def coerce_amount(
    value: Any,
    *,
    field_name: str,
    subject_id: Optional[str] = None,
    quality: Optional[DataQualityLog] = None,
    minimum: Optional[float] = 0.0,
    default: float = 0.0,
    code: IssueCode = IssueCode.INVALID_PRICE,
) -> float:
    """
    Convert a monetary value to a finite float.

    Non-numeric, NaN and infinite values become ``default``; values below
    ``minimum`` (when given) are clamped to it. Every substitution is
    recorded.

    Args:
        value: Raw value (number, Decimal or numeric string)
        field_name: Field name for the issue record
        subject_id: Owning subscription or category identifier
        quality: Optional issue log
        minimum: Lower bound, or None for no bound
        default: Replacement for unusable values
        code: Issue code to record

    Returns:
        Clean float
    """
    number: Optional[float]
    if isinstance(value, bool) or value is None:
        number = None
    elif isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, Decimal):
        number = float(value) if value.is_finite() else None
    elif isinstance(value, str):
        try:
            number = float(Decimal(value.strip().replace("$", "").replace(",", "")))
        except (InvalidOperation, ValueError):
            number = None
    else:
        number = None

    if number is None or math.isnan(number) or math.isinf(number):
        ensure_log(quality).record(
            code,
            f"Invalid {field_name} {value!r}; using {default}",
            subject_id=subject_id,
            field=field_name,
            original_value=value,
            substituted_value=default,
        )
        return default

    if minimum is not None and number < minimum:
        ensure_log(quality).record(
            code,
            f"Negative {field_name} {value!r}; clamped to {minimum}",
            subject_id=subject_id,
            field=field_name,
            original_value=value,
            substituted_value=minimum,
        )
        return minimum
    return number


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key (supports camelCase and snake_case payloads)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class PriceChange:
    """A scheduled per-occurrence price override."""
    date: date
    cost: float
    description: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "cost", coerce_amount(self.cost, field_name="upcoming_changes.cost"))


@dataclass(frozen=True)
class VariablePricing:
    """
    Variable pricing schedule.

    Attributes:
        average_price: Base price used for occurrences without an override
        upcoming_changes: Scheduled overrides, ordered by date
        min_price: Lowest observed price, informational
        max_price: Highest observed price, informational
    """
    average_price: Optional[float] = None
    upcoming_changes: Tuple[PriceChange, ...] = ()
    min_price: Optional[float] = None
    max_price: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("average_price", "min_price", "max_price"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, coerce_amount(value, field_name=name))
        object.__setattr__(
            self,
            "upcoming_changes",
            tuple(sorted(self.upcoming_changes, key=lambda change: change.date)),
        )

    def change_on(self, day: date) -> Optional[PriceChange]:
        """Return the override scheduled for ``day``, if any."""
        for change in self.upcoming_changes:
            if change.date == day:
                return change
        return None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        quality: Optional[DataQualityLog] = None,
        subject_id: Optional[str] = None,
    ) -> "VariablePricing":
        average_raw = _pick(data, "averagePrice", "average_price")
        average = None
        if average_raw is not None:
            average = coerce_amount(
                average_raw, field_name="average_price", subject_id=subject_id, quality=quality
            )

        raw_changes = _pick(data, "upcomingChanges", "upcoming_changes", default=[])
        if not isinstance(raw_changes, (list, tuple)):
            ensure_log(quality).record(
                IssueCode.INVALID_DATE,
                f"Ignoring price change schedule {raw_changes!r}; expected a list",
                subject_id=subject_id,
                field="upcoming_changes",
                original_value=raw_changes,
                substituted_value=[],
            )
            raw_changes = []

        changes: List[PriceChange] = []
        for raw_change in raw_changes:
            if not isinstance(raw_change, Mapping):
                ensure_log(quality).record(
                    IssueCode.INVALID_DATE,
                    f"Skipping malformed price change {raw_change!r}",
                    subject_id=subject_id,
                    field="upcoming_changes",
                    original_value=raw_change,
                )
                continue
            change_date = parse_optional_date(raw_change.get("date"))
            if change_date is None:
                ensure_log(quality).record(
                    IssueCode.INVALID_DATE,
                    f"Skipping price change with invalid date {raw_change.get('date')!r}",
                    subject_id=subject_id,
                    field="upcoming_changes.date",
                    original_value=raw_change.get("date"),
                )
                continue
            changes.append(PriceChange(
                date=change_date,
                cost=coerce_amount(
                    raw_change.get("cost"),
                    field_name="upcoming_changes.cost",
                    subject_id=subject_id,
                    quality=quality,
                ),
                description=raw_change.get("description"),
            ))

        min_raw = _pick(data, "minPrice", "min_price")
        max_raw = _pick(data, "maxPrice", "max_price")
        return cls(
            average_price=average,
            upcoming_changes=tuple(changes),
            min_price=None if min_raw is None else coerce_amount(
                min_raw, field_name="min_price", subject_id=subject_id, quality=quality
            ),
            max_price=None if max_raw is None else coerce_amount(
                max_raw, field_name="max_price", subject_id=subject_id, quality=quality
            ),
        )


@dataclass(frozen=True)
class Subscription:
    """
    Snapshot of a recurring subscription.

    Attributes:
        id: Subscription identifier
        name: Display name
        price: Non-negative price per billing event
        frequency: Billing cycle
        anchor_date: Canonical next-occurrence date all others derive from
        status: active, cancelled or watchlist
        category: Free-text category name
        budget_category_id: Optional reference to a BudgetCategory id
        variable_pricing: Optional per-event pricing schedule
        is_active: Activity flag kept alongside status by the persistence layer
    """
    id: str
    name: str
    price: float
    frequency: Frequency
    anchor_date: Optional[date]
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    category: str = ""
    budget_category_id: Optional[str] = None
    variable_pricing: Optional[VariablePricing] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(
            self,
            "price",
            coerce_amount(self.price, field_name="price", subject_id=self.id),
        )
        if not isinstance(self.frequency, Frequency):
            object.__setattr__(self, "frequency", Frequency.parse(self.frequency, subject_id=self.id))
        if not isinstance(self.status, SubscriptionStatus):
            object.__setattr__(self, "status", SubscriptionStatus.parse(self.status, subject_id=self.id))
        if self.anchor_date is not None:
            object.__setattr__(self, "anchor_date", to_date(self.anchor_date))
        object.__setattr__(self, "category", (self.category or "").strip())

    @property
    def base_price(self) -> float:
        """Average price when variable pricing defines one, else the list price."""
        if self.variable_pricing is not None and self.variable_pricing.average_price is not None:
            return self.variable_pricing.average_price
        return self.price

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        quality: Optional[DataQualityLog] = None,
    ) -> "Subscription":
        """
        Build a Subscription from a persistence-layer mapping.

        Accepts camelCase (``nextPayment``, ``budgetCategory``,
        ``variablePricing``) or snake_case keys.

        Args:
            data: Raw subscription mapping
            quality: Optional issue log for substitutions

        Returns:
            Subscription snapshot
        """
        subject_id = str(_pick(data, "id", default=""))
        price = coerce_amount(
            _pick(data, "price"), field_name="price", subject_id=subject_id, quality=quality
        )
        frequency = Frequency.parse(
            _pick(data, "frequency", "billingCycle", "billing_cycle"), quality, subject_id
        )
        status = SubscriptionStatus.parse(_pick(data, "status", default="active"), quality, subject_id)

        anchor_raw = _pick(data, "anchorDate", "anchor_date", "nextPayment", "next_payment")
        anchor = parse_optional_date(anchor_raw)
        # A missing anchor is reported by the projector; only flag unparseable values here
        if anchor is None and anchor_raw is not None:
            ensure_log(quality).record(
                IssueCode.INVALID_DATE,
                f"Unparseable anchor date {anchor_raw!r}; subscription will not be projected",
                subject_id=subject_id,
                field="anchor_date",
                original_value=anchor_raw,
            )

        pricing_raw = _pick(data, "variablePricing", "variable_pricing")
        pricing = None
        if isinstance(pricing_raw, Mapping):
            pricing = VariablePricing.from_dict(pricing_raw, quality, subject_id)

        return cls(
            id=subject_id,
            name=str(_pick(data, "name", default="")),
            price=price,
            frequency=frequency,
            anchor_date=anchor,
            status=status,
            category=str(_pick(data, "category", default="")),
            budget_category_id=_optional_str(
                _pick(data, "budgetCategoryId", "budget_category_id", "budgetCategory")
            ),
            variable_pricing=pricing,
            is_active=bool(_pick(data, "isActive", "is_active", default=True)),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class PayPeriod:
    """Inclusive date window ``[start, end]``; pay periods span 7 days."""
    start: date
    end: date

    def __post_init__(self) -> None:
        start = to_date(self.start)
        end = to_date(self.end)
        if end < start:
            raise PayPeriodError(
                "Pay period ends before it starts",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def label(self) -> str:
        return f"{format_short(self.start)} - {format_short(self.end)}"


@dataclass(frozen=True)
class Occurrence:
    """One billing event of a subscription inside a period."""
    subscription_id: str
    date: date
    resolved_cost: float
    name: str = ""
    category: str = ""
    budget_category_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    frequency: Frequency = Frequency.MONTHLY
    description: Optional[str] = None


@dataclass(frozen=True)
class BudgetCategory:
    """
    Snapshot of a budget category ("pod").

    Attributes:
        id: Category identifier
        name: Display name, also matched against Subscription.category
        weekly_allocation: Target funding per pay period (>= 0)
        current_balance: Balance held for this category (may be negative)
        priority: 1-10, higher is more urgent; 0 when missing
        minimum_buffer: Balance below which health degrades to warning
        auto_fund: Whether the caller funds this category automatically
        funding_order: Optional declared funding order (lower first)
    """
    id: str
    name: str
    weekly_allocation: float = 0.0
    current_balance: float = 0.0
    priority: int = 0
    minimum_buffer: float = 0.0
    auto_fund: bool = False
    funding_order: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "name", (self.name or "").strip())
        object.__setattr__(self, "weekly_allocation", coerce_amount(
            self.weekly_allocation, field_name="weekly_allocation", subject_id=self.id,
            code=IssueCode.INVALID_CATEGORY_VALUE,
        ))
        object.__setattr__(self, "current_balance", coerce_amount(
            self.current_balance, field_name="current_balance", subject_id=self.id,
            minimum=None, code=IssueCode.INVALID_CATEGORY_VALUE,
        ))
        object.__setattr__(self, "minimum_buffer", coerce_amount(
            self.minimum_buffer, field_name="minimum_buffer", subject_id=self.id,
            code=IssueCode.INVALID_CATEGORY_VALUE,
        ))
        object.__setattr__(self, "priority", coerce_priority(self.priority, subject_id=self.id))

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        quality: Optional[DataQualityLog] = None,
    ) -> "BudgetCategory":
        """
        Build a BudgetCategory from a persistence-layer mapping.

        Negative allocations become 0 and a missing or invalid priority
        becomes 0; both are recorded as INVALID_CATEGORY_VALUE.
        """
        subject_id = str(_pick(data, "id", default=""))
        code = IssueCode.INVALID_CATEGORY_VALUE
        funding_order = _pick(data, "fundingOrder", "funding_order")
        try:
            funding_order = None if funding_order is None else int(funding_order)
        except (TypeError, ValueError):
            funding_order = None
        return cls(
            id=subject_id,
            name=str(_pick(data, "name", default="")),
            weekly_allocation=coerce_amount(
                _pick(data, "weeklyAllocation", "weekly_allocation", default=0.0),
                field_name="weekly_allocation", subject_id=subject_id, quality=quality, code=code,
            ),
            current_balance=coerce_amount(
                _pick(data, "currentBalance", "current_balance", default=0.0),
                field_name="current_balance", subject_id=subject_id, quality=quality,
                minimum=None, code=code,
            ),
            priority=coerce_priority(
                _pick(data, "priority"), subject_id=subject_id, quality=quality
            ),
            minimum_buffer=coerce_amount(
                _pick(data, "minimumBuffer", "minimum_buffer", default=0.0),
                field_name="minimum_buffer", subject_id=subject_id, quality=quality, code=code,
            ),
            auto_fund=bool(_pick(data, "autoFund", "auto_fund", default=False)),
            funding_order=funding_order,
        )


def coerce_priority(
    value: Any,
    *,
    subject_id: Optional[str] = None,
    quality: Optional[DataQualityLog] = None,
) -> int:
    """Clamp a priority to the 0-10 range; missing or non-numeric becomes 0."""
    try:
        if isinstance(value, bool):
            raise TypeError("boolean priority")
        number = float(value)
        if math.isnan(number):
            raise ValueError("NaN priority")
    except (TypeError, ValueError):
        ensure_log(quality).record(
            IssueCode.INVALID_CATEGORY_VALUE,
            f"Invalid priority {value!r}; using 0",
            subject_id=subject_id,
            field="priority",
            original_value=value,
            substituted_value=0,
        )
        return 0
    clamped = int(min(max(number, 0), 10))
    if clamped != number:
        ensure_log(quality).record(
            IssueCode.INVALID_CATEGORY_VALUE,
            f"Priority {value!r} outside 0-10; using {clamped}",
            subject_id=subject_id,
            field="priority",
            original_value=value,
            substituted_value=clamped,
        )
    return clamped


@dataclass
class PeriodSummary:
    """
    Aggregated occurrences for one period.

    Attributes:
        period: Window the summary covers
        occurrences: All occurrences, ordered by (date, subscription id)
        occurrences_by_category: Occurrences grouped by category name
        occurrences_by_status: Occurrences grouped by status value
        cost_by_category: Cost total per category name
        cost_by_status: Cost total per status value
        total_cost: Sum of resolved costs
        occurrence_count: Number of occurrences
        upcoming_changes: Price changes dated inside the period
    """
    period: PayPeriod
    occurrences: List[Occurrence] = field(default_factory=list)
    occurrences_by_category: Dict[str, List[Occurrence]] = field(default_factory=dict)
    occurrences_by_status: Dict[str, List[Occurrence]] = field(default_factory=dict)
    cost_by_category: Dict[str, float] = field(default_factory=dict)
    cost_by_status: Dict[str, float] = field(default_factory=dict)
    total_cost: float = 0.0
    occurrence_count: int = 0
    upcoming_changes: List["PriceChangeNotice"] = field(default_factory=list)


@dataclass
class PeriodRequirement:
    """Funding required for one of a run of consecutive periods."""
    index: int
    period: PayPeriod
    label: str
    required_amount: float
    occurrences: List[Occurrence] = field(default_factory=list)


@dataclass
class PriceChangeNotice:
    """A scheduled price change with its effect relative to the list price."""
    subscription_id: str
    subscription_name: str
    change: PriceChange
    current_cost: float
    difference: float


@dataclass
class SubscriptionStatistics:
    total: int
    active: int
    cancelled: int
    watchlist: int
    by_category: Dict[str, int]
    by_frequency: Dict[str, int]
    anchor_dates: List[date]


@dataclass
class SubscriptionMetrics:
    """Normalized cost figures and due-date flags for one subscription."""
    weekly: float
    monthly: float
    yearly: float
    daily: float
    days_until_payment: Optional[int]
    is_overdue: bool
    is_due_soon: bool


@dataclass
class CategoryAllocation:
    """Per-category allocation figures."""
    category_id: str
    category_name: str
    total_due: float
    current_balance: float
    required_funding: float
    balance_health: BalanceHealth
    weekly_total: float
    utilization_rate: float
    projected_weeks: int
    occurrence_count: int
    priority: int


@dataclass
class FundingRecommendation:
    category_id: str
    category_name: str
    amount: float
    priority: int
    auto_fund: bool
    reason_summary: str


@dataclass
class AllocationResult:
    """
    Outcome of allocating category balances against a period's cost.

    Attributes:
        categories: CategoryAllocation keyed by category id (input order)
        total_weekly_need: Sum of per-category amounts due
        total_current_balance: Sum of category balances
        additional_funding_required: max(0, need - balance)
        funding_recommendations: Categories short of funds, most urgent first
        alerts: Human-readable warnings for critical categories and shortfalls
    """
    categories: Dict[str, CategoryAllocation]
    total_weekly_need: float
    total_current_balance: float
    additional_funding_required: float
    funding_recommendations: List[FundingRecommendation] = field(default_factory=list)
    alerts: List[str] = field(default_factory=list)


@dataclass
class WeeklyAllocationLine:
    category_id: str
    category_name: str
    required_amount: float
    allocated_amount: float
    utilization: float
    subscription_count: int


@dataclass
class WeeklyBudgetAllocation:
    """Standing weekly requirement of active subscriptions against income."""
    allocations: List[WeeklyAllocationLine]
    total_required: float
    total_allocated: float
    remaining_income: float
    is_over_budget: bool

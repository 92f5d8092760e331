"""
Configuration management for the billing engine.

This module loads engine settings from a YAML file, merges them over the
defaults, validates them, and wires the calculator, projector, aggregator and
allocator from the result.
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from aggregator import PeriodAggregator, StatusFilter, SubscriptionInput
from allocator import BudgetAllocator
from clock import Clock
from data_quality import DataQualityLog
from exceptions import BillingEngineError, ConfigError
from models import PayPeriod, PeriodRequirement, PeriodSummary
from pay_period import DEFAULT_ANCHOR_WEEKDAY, PayPeriodCalculator, resolve_weekday
from projector import DEFAULT_MAX_CYCLES, OccurrenceProjector

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    "pay_period": {
        "anchor_weekday": DEFAULT_ANCHOR_WEEKDAY,
    },
    "projection": {
        "max_cycles": DEFAULT_MAX_CYCLES,
    },
    "aggregation": {
        "status_filter": StatusFilter.ALL.value,
        "periods_ahead": 12,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}

CONFIG_FILE = "config.yaml"


@dataclass(frozen=True)
class EngineSettings:
    """Validated engine settings."""
    anchor_weekday: int
    max_cycles: int
    status_filter: StatusFilter
    periods_ahead: int


@dataclass(frozen=True)
class Engine:
    """Engine components wired from one set of settings."""
    settings: EngineSettings
    calculator: PayPeriodCalculator
    projector: OccurrenceProjector
    aggregator: PeriodAggregator
    allocator: BudgetAllocator

    def aggregate(
        self,
        subscriptions: Optional[Iterable[SubscriptionInput]],
        period: PayPeriod,
        quality: Optional[DataQualityLog] = None,
    ) -> PeriodSummary:
        """Aggregate one period using the configured status filter."""
        return self.aggregator.aggregate(subscriptions, period, self.settings.status_filter, quality)

    def upcoming_requirements(
        self,
        subscriptions: Optional[Iterable[SubscriptionInput]],
        clock: Clock,
        count: Optional[int] = None,
        quality: Optional[DataQualityLog] = None,
    ) -> List[PeriodRequirement]:
        """
        Requirements for the clock's current period and the ones after it.

        Args:
            subscriptions: Subscription snapshots or mappings
            clock: Source of today's date
            count: Number of periods (defaults to ``aggregation.periods_ahead``)
            quality: Optional issue log

        Returns:
            One PeriodRequirement per period
        """
        return self.aggregator.upcoming_requirements(
            subscriptions,
            clock,
            count=self.settings.periods_ahead if count is None else count,
            calculator=self.calculator,
            status_filter=self.settings.status_filter,
            quality=quality,
        )


def _merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``overrides`` onto a copy of ``defaults``."""
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file (defaults to ``config.yaml``)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping
    """
    path = Path(config_path) if config_path is not None else Path(CONFIG_FILE)
    if not path.exists():
        logger.info("Config file %s not found; using defaults", path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Unable to read configuration file: {e}",
            details={"config_path": str(path)},
            original_error=e,
        ) from e

    if not isinstance(loaded, dict):
        raise ConfigError(
            "Configuration file must contain a mapping",
            details={"config_path": str(path), "type": type(loaded).__name__},
        )

    config = _merge(DEFAULT_CONFIG, loaded)
    logger.info("Configuration loaded from %s", path)
    return config


def get_engine_settings(config: Optional[Dict[str, Any]] = None) -> EngineSettings:
    """
    Validate a configuration dictionary into EngineSettings.

    Args:
        config: Configuration dictionary (defaults when None)

    Returns:
        EngineSettings

    Raises:
        ConfigError: If any setting is invalid
    """
    config = _merge(DEFAULT_CONFIG, config or {})

    anchor_weekday = resolve_weekday(config["pay_period"]["anchor_weekday"])

    max_cycles = config["projection"]["max_cycles"]
    if isinstance(max_cycles, bool) or not isinstance(max_cycles, int) or max_cycles < 1:
        raise ConfigError("projection.max_cycles must be a positive integer", details={"max_cycles": max_cycles})

    periods_ahead = config["aggregation"]["periods_ahead"]
    if isinstance(periods_ahead, bool) or not isinstance(periods_ahead, int) or periods_ahead < 0:
        raise ConfigError(
            "aggregation.periods_ahead must be a non-negative integer",
            details={"periods_ahead": periods_ahead},
        )

    try:
        status_filter = StatusFilter.parse(config["aggregation"]["status_filter"])
    except BillingEngineError as e:
        raise ConfigError(
            "aggregation.status_filter must be 'all' or 'active'",
            details={"status_filter": config["aggregation"]["status_filter"]},
            original_error=e,
        ) from e

    return EngineSettings(
        anchor_weekday=anchor_weekday,
        max_cycles=max_cycles,
        status_filter=status_filter,
        periods_ahead=periods_ahead,
    )


def build_engine(settings: Optional[EngineSettings] = None) -> Engine:
    """Wire engine components from settings (defaults when None)."""
    settings = settings or get_engine_settings()
    projector = OccurrenceProjector(settings.max_cycles)
    engine = Engine(
        settings=settings,
        calculator=PayPeriodCalculator(settings.anchor_weekday),
        projector=projector,
        aggregator=PeriodAggregator(projector),
        allocator=BudgetAllocator(),
    )
    logger.info(
        "Billing engine initialized (anchor weekday %s, max cycles %s, status filter %s)",
        settings.anchor_weekday,
        settings.max_cycles,
        settings.status_filter.value,
    )
    return engine

"""Fare services."""

from fares.services.fare_config_service import (
    DEFAULT_FARE_CONFIGS,
    FARE_REQUESTS,
    FareConfigService,
)
from fares.services.fare_engine import FareBreakdown, FareEngine, FareRules

__all__ = [
    "DEFAULT_FARE_CONFIGS",
    "FARE_REQUESTS",
    "FareBreakdown",
    "FareConfigService",
    "FareEngine",
    "FareRules",
]

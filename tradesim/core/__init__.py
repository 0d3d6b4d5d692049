"""
Core module - shared market data models, limits and error types.
"""

from .config import (
    DEFAULT_ENGINE,
    DEFAULT_POSITION_LIMITS,
    DEFAULT_RISK_LIMITS,
    EngineDefaults,
    PositionLimits,
    RiskLimits,
    Settings,
)
from .errors import (
    AdvisoryUnavailable,
    BacktestCancelled,
    ConfigurationError,
    DataUnavailable,
    InsufficientData,
    InvalidRiskParameter,
    InvalidStopLoss,
    TradeClosedError,
    TradeSimError,
)
from .models import Bar, Side, closes, volumes

__all__ = [
    # Models
    "Bar",
    "Side",
    "closes",
    "volumes",
    # Config
    "RiskLimits",
    "PositionLimits",
    "EngineDefaults",
    "Settings",
    "DEFAULT_RISK_LIMITS",
    "DEFAULT_POSITION_LIMITS",
    "DEFAULT_ENGINE",
    # Errors
    "TradeSimError",
    "ConfigurationError",
    "InsufficientData",
    "DataUnavailable",
    "InvalidRiskParameter",
    "InvalidStopLoss",
    "TradeClosedError",
    "AdvisoryUnavailable",
    "BacktestCancelled",
]

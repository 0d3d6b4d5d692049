"""
Risk Module - position sizing and portfolio risk gates.
"""

from .manager import RiskManager
from .models import (
    PositionSizing,
    PositionSnapshot,
    RiskBearing,
    RiskParameters,
    ValidationResult,
)

__all__ = [
    "RiskManager",
    "RiskParameters",
    "PositionSizing",
    "PositionSnapshot",
    "RiskBearing",
    "ValidationResult",
]

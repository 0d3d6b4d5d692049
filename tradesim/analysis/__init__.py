"""
Analysis module - technical signal snapshots for the advisory service.
"""

from .technical import (
    MACDSnapshot,
    TechnicalSignals,
    VolumeSnapshot,
    analyze_market,
    analyze_volume,
    determine_trend,
    find_key_levels,
    trend_strength,
)

__all__ = [
    "TechnicalSignals",
    "MACDSnapshot",
    "VolumeSnapshot",
    "analyze_market",
    "analyze_volume",
    "determine_trend",
    "find_key_levels",
    "trend_strength",
]

"""
Technical Indicators Module - Pure math functions for market analysis.

All functions are stateless and operate on price/bar data. Short input never
raises: results degrade to empty series (or None for single readings), which
callers treat as "indicator unavailable".
"""

from .bollinger import BollingerBands, bollinger_bands
from .macd import MACDResult, MACDSeries, macd
from .moving_averages import ema, ema_latest, sma, sma_series
from .pivots import PivotPoints, TrendSegment, Trendlines, pivot_points, trendlines
from .rsi import rsi, rsi_latest

__all__ = [
    # Moving Averages
    "sma",
    "sma_series",
    "ema",
    "ema_latest",
    # Bollinger Bands
    "bollinger_bands",
    "BollingerBands",
    # RSI
    "rsi",
    "rsi_latest",
    # MACD
    "macd",
    "MACDResult",
    "MACDSeries",
    # Pivots / Trendlines
    "pivot_points",
    "trendlines",
    "PivotPoints",
    "TrendSegment",
    "Trendlines",
]

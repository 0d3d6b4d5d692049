"""
Technical analysis of a bar window.

Computes the TechnicalSignals snapshot handed to the advisory service:
trend from EMA20/EMA50, trend strength from average absolute returns,
swing-based support/resistance, RSI, MACD and a volume trend.

A fresh snapshot is computed for every analysis window and never mutated.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from tradesim.core.models import Bar, closes, volumes
from tradesim.indicators import ema, macd, rsi_latest, sma

Trend = Literal["bullish", "bearish", "neutral"]
VolumeTrend = Literal["increasing", "decreasing", "neutral"]

# Swing levels closer than this (fraction of price) to an existing level are merged
LEVEL_MIN_DISTANCE = 0.002

# Number of support/resistance levels reported
MAX_LEVELS = 3


@dataclass(frozen=True)
class MACDSnapshot:
    """Latest MACD reading."""

    line: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class VolumeSnapshot:
    """Current volume against its average."""

    current: float
    average: float
    trend: VolumeTrend


@dataclass(frozen=True)
class TechnicalSignals:
    """Indicator snapshot for one analysis window."""

    trend: Trend
    strength: float  # 0-1
    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)
    rsi: float | None = None
    macd: MACDSnapshot | None = None
    volume: VolumeSnapshot | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "trend": self.trend,
            "strength": self.strength,
            "support": list(self.support),
            "resistance": list(self.resistance),
            "rsi": self.rsi,
            "macd": (
                {
                    "line": self.macd.line,
                    "signal": self.macd.signal,
                    "histogram": self.macd.histogram,
                }
                if self.macd
                else None
            ),
            "volume": (
                {
                    "current": self.volume.current,
                    "average": self.volume.average,
                    "trend": self.volume.trend,
                }
                if self.volume
                else None
            ),
        }


def determine_trend(ema_fast: list[float], ema_slow: list[float]) -> Trend:
    """Trend from the latest fast/slow EMA relationship."""
    if not ema_fast or not ema_slow:
        return "neutral"

    if ema_fast[-1] > ema_slow[-1]:
        return "bullish"
    if ema_fast[-1] < ema_slow[-1]:
        return "bearish"
    return "neutral"


def trend_strength(prices: list[float]) -> float:
    """Average absolute return scaled to [0, 1] (1% average move = 1.0)."""
    returns = [
        abs(curr - prev) / prev for prev, curr in zip(prices, prices[1:]) if prev != 0
    ]
    if not returns:
        return 0.0
    return min(sum(returns) / len(returns) * 100, 1.0)


def _is_near_existing(price: float, levels: list[float]) -> bool:
    return any(abs(level - price) / price < LEVEL_MIN_DISTANCE for level in levels)


def find_key_levels(bars: Sequence[Bar]) -> tuple[list[float], list[float]]:
    """
    Find swing-based support and resistance levels.

    A swing low is lower than the two bars on each side (swing high mirrors).
    Nearby levels are merged.

    Returns:
        (support, resistance): up to 3 supports (highest first) and
        up to 3 resistances (lowest first)
    """
    support: list[float] = []
    resistance: list[float] = []

    for i in range(2, len(bars) - 2):
        current = bars[i]
        neighbours = (bars[i - 2], bars[i - 1], bars[i + 1], bars[i + 2])

        if all(current.low < other.low for other in neighbours):
            if current.low > 0 and not _is_near_existing(current.low, support):
                support.append(current.low)

        if all(current.high > other.high for other in neighbours):
            if current.high > 0 and not _is_near_existing(current.high, resistance):
                resistance.append(current.high)

    support.sort(reverse=True)
    resistance.sort()
    return support[:MAX_LEVELS], resistance[:MAX_LEVELS]


def analyze_volume(values: list[float]) -> VolumeSnapshot | None:
    """Compare the 5-bar average volume against the 20-bar average."""
    if not values:
        return None

    average = sma(values, 20)
    if average is None:
        average = sum(values) / len(values)
    short_term = sma(values, 5)
    if short_term is None:
        short_term = average

    trend: VolumeTrend
    if short_term > average * 1.1:
        trend = "increasing"
    elif short_term < average * 0.9:
        trend = "decreasing"
    else:
        trend = "neutral"

    return VolumeSnapshot(current=values[-1], average=average, trend=trend)


def analyze_market(bars: Sequence[Bar]) -> TechnicalSignals:
    """
    Compute technical signals for a bar window.

    Args:
        bars: Analysis window in ascending time order

    Returns:
        TechnicalSignals (neutral with empty levels for an empty window)
    """
    prices = closes(list(bars))
    if not prices:
        return TechnicalSignals(trend="neutral", strength=0.0)

    support, resistance = find_key_levels(bars)

    latest_macd = macd(prices).latest()
    macd_snapshot = (
        MACDSnapshot(
            line=latest_macd.macd_line,
            signal=latest_macd.signal_line,
            histogram=latest_macd.histogram,
        )
        if latest_macd
        else None
    )

    return TechnicalSignals(
        trend=determine_trend(ema(prices, 20), ema(prices, 50)),
        strength=trend_strength(prices),
        support=support,
        resistance=resistance,
        rsi=rsi_latest(prices, 14),
        macd=macd_snapshot,
        volume=analyze_volume(volumes(list(bars))),
    )

"""
Pivot and trendline detection.

A pivot high is a bar whose high is strictly greater than every other high
in a window of 2 * lookback + 1 bars centred on it (pivot lows mirror this).
Trendlines are naive two-point segments joining consecutive pivots.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from tradesim.core.models import Bar


@dataclass(frozen=True)
class PivotPoints:
    """Pivot price levels in scan order."""

    highs: list[float] = field(default_factory=list)
    lows: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class TrendSegment:
    """A two-point line between consecutive pivots."""

    start: float
    end: float

    @property
    def slope(self) -> float:
        """Change from start to end (positive = rising)."""
        return self.end - self.start


@dataclass(frozen=True)
class Trendlines:
    """Resistance (from pivot highs) and support (from pivot lows) segments."""

    resistance: list[TrendSegment] = field(default_factory=list)
    support: list[TrendSegment] = field(default_factory=list)

    @property
    def resistance_levels(self) -> list[float]:
        """Latest price of each resistance segment."""
        return [segment.end for segment in self.resistance]

    @property
    def support_levels(self) -> list[float]:
        """Latest price of each support segment."""
        return [segment.end for segment in self.support]


def pivot_points(bars: Sequence[Bar], lookback: int = 5) -> PivotPoints:
    """
    Find pivot highs and lows.

    Args:
        bars: Bars in ascending time order
        lookback: Bars on each side that must be strictly exceeded

    Returns:
        PivotPoints with high and low levels in scan order
        (empty if there are fewer than 2 * lookback + 1 bars)
    """
    highs: list[float] = []
    lows: list[float] = []

    if lookback <= 0:
        return PivotPoints()

    for i in range(lookback, len(bars) - lookback):
        current = bars[i]
        neighbours = [bars[j] for j in range(i - lookback, i + lookback + 1) if j != i]

        if all(current.high > other.high for other in neighbours):
            highs.append(current.high)
        if all(current.low < other.low for other in neighbours):
            lows.append(current.low)

    return PivotPoints(highs=highs, lows=lows)


def _connect(levels: list[float]) -> list[TrendSegment]:
    return [TrendSegment(start=prev, end=curr) for prev, curr in zip(levels, levels[1:])]


def trendlines(bars: Sequence[Bar], lookback: int = 5) -> Trendlines:
    """
    Connect consecutive pivot highs into resistance and pivot lows into support.

    Args:
        bars: Bars in ascending time order
        lookback: Pivot detection half-window

    Returns:
        Trendlines (a single pivot produces no segment)
    """
    pivots = pivot_points(bars, lookback)
    return Trendlines(resistance=_connect(pivots.highs), support=_connect(pivots.lows))

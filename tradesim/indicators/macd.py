"""
MACD Indicator - Moving Average Convergence Divergence.

Trend-following momentum indicator showing the relationship
between two exponential moving averages of price.
"""

from dataclasses import dataclass, field

from .moving_averages import ema


@dataclass(frozen=True)
class MACDResult:
    """A single MACD reading."""

    macd_line: float  # Fast EMA - Slow EMA
    signal_line: float  # EMA of MACD line
    histogram: float  # MACD line - Signal line

    @property
    def is_bullish(self) -> bool:
        """True if MACD is above signal line."""
        return self.histogram > 0

    @property
    def is_bearish(self) -> bool:
        """True if MACD is below signal line."""
        return self.histogram < 0


@dataclass(frozen=True)
class MACDSeries:
    """MACD line, signal and histogram series aligned with the input prices."""

    line: list[float] = field(default_factory=list)
    signal: list[float] = field(default_factory=list)
    histogram: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.line)

    def latest(self) -> MACDResult | None:
        """Most recent reading, or None if the series is empty."""
        if not self.line:
            return None
        return MACDResult(
            macd_line=self.line[-1],
            signal_line=self.signal[-1],
            histogram=self.histogram[-1],
        )


def macd(
    prices: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDSeries:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    MACD Line = EMA(fast) - EMA(slow)
    Signal Line = EMA(signal) of the MACD line
    Histogram = MACD Line - Signal Line

    All EMAs are seeded with their first input value, so every series has
    the same length as `prices`.

    Args:
        prices: List of prices (most recent last)
        fast: Fast EMA period (default 12)
        slow: Slow EMA period (default 26)
        signal: Signal line EMA period (default 9)

    Returns:
        MACDSeries (empty for empty input or non-positive periods)
    """
    if not prices or fast <= 0 or slow <= 0 or signal <= 0:
        return MACDSeries()

    fast_ema = ema(prices, fast)
    slow_ema = ema(prices, slow)

    line = [f - s for f, s in zip(fast_ema, slow_ema, strict=True)]
    signal_series = ema(line, signal)
    histogram = [m - s for m, s in zip(line, signal_series, strict=True)]

    return MACDSeries(line=line, signal=signal_series, histogram=histogram)

"""
Bollinger Bands - volatility envelope around a simple moving average.
"""

from dataclasses import dataclass, field

from .moving_averages import sma_series


@dataclass(frozen=True)
class BollingerBands:
    """Upper/middle/lower band series, aligned with each other."""

    upper: list[float] = field(default_factory=list)
    middle: list[float] = field(default_factory=list)
    lower: list[float] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when there was not enough data to compute any band."""
        return not self.middle

    def latest(self) -> tuple[float, float, float] | None:
        """Most recent (upper, middle, lower), or None if unavailable."""
        if self.is_empty:
            return None
        return self.upper[-1], self.middle[-1], self.lower[-1]


def bollinger_bands(
    prices: list[float],
    period: int = 20,
    stddev: float = 2.0,
) -> BollingerBands:
    """
    Calculate Bollinger Bands.

    Middle = SMA(period)
    Upper  = Middle + stddev * population standard deviation of the window
    Lower  = Middle - stddev * population standard deviation of the window

    Args:
        prices: List of prices (most recent last)
        period: Window length (default 20)
        stddev: Band width in standard deviations (default 2)

    Returns:
        BollingerBands with series of length len(prices) - period + 1,
        or empty series if fewer than `period` prices
    """
    middle = sma_series(prices, period)
    if not middle:
        return BollingerBands()

    upper: list[float] = []
    lower: list[float] = []

    for i, mean in enumerate(middle):
        window = prices[i : i + period]
        variance = sum((p - mean) ** 2 for p in window) / period
        deviation = variance**0.5
        upper.append(mean + stddev * deviation)
        lower.append(mean - stddev * deviation)

    return BollingerBands(upper=upper, middle=middle, lower=lower)

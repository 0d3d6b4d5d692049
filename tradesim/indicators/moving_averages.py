"""
Moving Average Indicators - SMA and EMA calculations.

Pure math functions for calculating simple and exponential moving averages.
"""


def sma(prices: list[float], period: int) -> float | None:
    """
    Calculate Simple Moving Average.

    Args:
        prices: List of prices (most recent last)
        period: Number of periods to average

    Returns:
        SMA value or None if insufficient data
    """
    if len(prices) < period or period <= 0:
        return None

    return sum(prices[-period:]) / period


def sma_series(prices: list[float], period: int) -> list[float]:
    """
    Calculate SMA for every complete window.

    Returns:
        List of length len(prices) - period + 1, or [] if insufficient data
    """
    if len(prices) < period or period <= 0:
        return []

    window_sum = sum(prices[:period])
    result = [window_sum / period]
    for i in range(period, len(prices)):
        window_sum += prices[i] - prices[i - period]
        result.append(window_sum / period)

    return result


def ema(prices: list[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average series.

    Uses multiplier k = 2 / (period + 1). The series is seeded with the
    first price (not an SMA), so the output has the same length as the
    input and ema(x, p)[0] == x[0].

    Args:
        prices: List of prices (most recent last)
        period: Number of periods for EMA calculation

    Returns:
        List of EMA values, one per input price ([] for empty input)
    """
    if not prices or period <= 0:
        return []

    k = 2 / (period + 1)
    result = [prices[0]]

    for price in prices[1:]:
        result.append(price * k + result[-1] * (1 - k))

    return result


def ema_latest(prices: list[float], period: int) -> float | None:
    """Most recent EMA value, or None for empty input."""
    series = ema(prices, period)
    return series[-1] if series else None

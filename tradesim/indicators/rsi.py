"""
RSI Indicator - Relative Strength Index calculation.

Measures the speed and magnitude of recent price changes
to evaluate overbought or oversold conditions.
"""


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    """RSI from smoothed averages; zero average loss is pinned to 100."""
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def rsi(prices: list[float], period: int = 14) -> list[float]:
    """
    Calculate RSI series using Wilder's smoothing.

    The first average gain/loss is the simple mean of the first `period`
    price changes; after that each average is smoothed as
    (prev_avg * (period - 1) + current) / period.

    RSI = 100 - (100 / (1 + RS)), RS = Average Gain / Average Loss.
    A zero average loss yields 100.

    Args:
        prices: List of prices (most recent last)
        period: Lookback period (default 14)

    Returns:
        List of RSI values of length len(prices) - period,
        or [] if there are not more than `period` prices
    """
    if len(prices) <= period or period <= 0:
        return []

    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
    gains = [c if c > 0 else 0.0 for c in changes]
    losses = [-c if c < 0 else 0.0 for c in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    result = [_rsi_value(avg_gain, avg_loss)]

    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        result.append(_rsi_value(avg_gain, avg_loss))

    return result


def rsi_latest(prices: list[float], period: int = 14) -> float | None:
    """Most recent RSI value, or None if insufficient data."""
    series = rsi(prices, period)
    return series[-1] if series else None

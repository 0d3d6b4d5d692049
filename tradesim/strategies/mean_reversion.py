"""
Mean Reversion Strategy.

A contrarian strategy that fades overextended moves: a close outside the
Bollinger Bands with RSI at an extreme is expected to snap back to the mean.
"""

import logging
from collections.abc import Sequence

from tradesim.core.models import Bar, closes
from tradesim.indicators import bollinger_bands, rsi_latest
from tradesim.strategies.base import StrategySignal, average_volume

logger = logging.getLogger(__name__)

RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70


class MeanReversionStrategy:
    """
    Band-extreme fades.

    Confidence (0-100):
    - Distance outside the band: up to 30
    - RSI beyond 30/70: 2 points per RSI point, up to 30
    - Volume of the last 3 bars vs the 3 before: 20 (> 1.5x) or 10 (> 1.2x)
    - Momentum of the last 5 closes in the move's direction: 20 (> 2%) or 10 (> 1%)
    """

    name = "mean_reversion"

    def __init__(
        self,
        min_confidence: float = 80.0,
        period: int = 20,
        stddev: float = 2.0,
        stop_buffer: float = 0.002,
        stop_lookback: int = 5,
    ):
        self.min_confidence = min_confidence
        self.period = period
        self.stddev = stddev
        self.stop_buffer = stop_buffer
        self.stop_lookback = stop_lookback

    def analyze(self, bars: Sequence[Bar]) -> StrategySignal:
        """
        Look for a band-extreme fade on the latest bar.

        Args:
            bars: Bar window, oldest first

        Returns:
            StrategySignal (direction "none" when there is no setup)
        """
        prices = closes(list(bars))
        bands = bollinger_bands(prices, self.period, self.stddev).latest()
        rsi = rsi_latest(prices)
        if bands is None or rsi is None:
            return StrategySignal.none(self.name, "Not enough data for Bollinger Bands/RSI")

        upper, middle, lower = bands
        price = prices[-1]
        recent = bars[-self.stop_lookback:]

        if price > upper and rsi > RSI_OVERBOUGHT:
            direction = "short"
            deviation = (price - upper) / upper
            stop_loss = max(max(bar.high for bar in recent), price * (1 + self.stop_buffer))
        elif price < lower and rsi < RSI_OVERSOLD:
            direction = "long"
            deviation = (lower - price) / lower
            stop_loss = min(min(bar.low for bar in recent), price * (1 - self.stop_buffer))
        else:
            return StrategySignal.none(self.name, "No valid mean reversion setup (Confidence: 0%)")

        confidence = self._confidence(deviation, rsi, direction, bars)
        if confidence < self.min_confidence:
            return StrategySignal.none(
                self.name,
                f"No valid mean reversion setup (Confidence: {confidence:.0f}%)",
                confidence=confidence,
            )

        side_word = "below lower" if direction == "long" else "above upper"
        rsi_state = "oversold" if direction == "long" else "overbought"
        reason = (
            f"Mean reversion {direction} signal: Price {deviation * 100:.2f}% {side_word} band "
            f"with {rsi_state} RSI ({rsi:.2f}), mean at {middle:.2f}"
        )
        logger.debug(f"[Strategy] {reason}")

        return StrategySignal(
            strategy=self.name,
            direction=direction,
            confidence=confidence,
            reason=reason,
            is_valid=True,
            entry=price,
            stop_loss=stop_loss,
        )

    def _confidence(
        self,
        deviation: float,
        rsi: float,
        direction: str,
        bars: Sequence[Bar],
    ) -> float:
        confidence = min(30.0, abs(deviation) * 100)

        if direction == "long":
            confidence += min(30.0, max(0.0, (RSI_OVERSOLD - rsi) * 2))
        else:
            confidence += min(30.0, max(0.0, (rsi - RSI_OVERBOUGHT) * 2))

        if len(bars) >= 6:
            recent_volume = average_volume(bars[-3:])
            previous_volume = average_volume(bars[-6:-3])
            if recent_volume > previous_volume * 1.5:
                confidence += 20
            elif recent_volume > previous_volume * 1.2:
                confidence += 10

        recent = [bar.close for bar in bars[-5:]]
        momentum = sum(
            (curr - prev) / prev for prev, curr in zip(recent, recent[1:]) if prev != 0
        )
        if direction == "long":
            momentum = -momentum
        if momentum > 0.02:
            confidence += 20
        elif momentum > 0.01:
            confidence += 10

        return min(100.0, confidence)

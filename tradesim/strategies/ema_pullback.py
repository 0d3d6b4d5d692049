"""
EMA Pullback Strategy.

A trend-following strategy that buys dips in an uptrend (and sells rallies in
a downtrend). Trend comes from EMA20/50/200 alignment; the entry is a pullback
to EMA20 or EMA50.
"""

import logging
from collections.abc import Sequence

from tradesim.core.models import Bar, closes
from tradesim.indicators import ema_latest, rsi_latest
from tradesim.strategies.base import StrategySignal, average_volume

logger = logging.getLogger(__name__)

# EMAs within this fraction of each other count as "flat"
FLAT_EMA_THRESHOLD = 0.005


def _near(price: float, level: float, threshold: float) -> bool:
    return level != 0 and abs(price - level) / level <= threshold


class EMAPullbackStrategy:
    """
    Pullback-to-EMA entries in the direction of the EMA trend.

    Confidence (0-100):
    - Trend alignment: 15 for EMA20 vs EMA50, 15 for EMA50 vs EMA200
    - RSI below 50 in an uptrend / above 50 in a downtrend: 20
    - Proximity: within 0.1% of EMA20 = 30, 0.2% of EMA20 = 20, 0.3% of EMA50 = 15
    - Volume of the last 5 bars vs the 5 before: 20 if higher, 10 if > 80%
    """

    name = "ema_pullback"

    def __init__(
        self,
        min_confidence: float = 75.0,
        ema20_threshold: float = 0.002,
        ema50_threshold: float = 0.003,
        stop_lookback: int = 10,
    ):
        self.min_confidence = min_confidence
        self.ema20_threshold = ema20_threshold
        self.ema50_threshold = ema50_threshold
        self.stop_lookback = stop_lookback

    @staticmethod
    def determine_trend(ema20: float, ema50: float, ema200: float) -> str:
        """Trend from EMA alignment: full alignment first, then EMA20 vs EMA50."""
        if ema20 > ema50 > ema200:
            return "bullish"
        if ema20 < ema50 < ema200:
            return "bearish"
        if _near(ema20, ema50, FLAT_EMA_THRESHOLD) and _near(ema50, ema200, FLAT_EMA_THRESHOLD):
            return "neutral"
        if ema20 > ema50:
            return "bullish"
        if ema20 < ema50:
            return "bearish"
        return "neutral"

    def analyze(self, bars: Sequence[Bar]) -> StrategySignal:
        """
        Look for a pullback entry on the latest bar.

        Args:
            bars: Bar window, oldest first

        Returns:
            StrategySignal (direction "none" when there is no setup)
        """
        prices = closes(list(bars))
        if not prices:
            return StrategySignal.none(self.name, "No data")

        price = prices[-1]
        ema20 = ema_latest(prices, 20)
        ema50 = ema_latest(prices, 50)
        ema200 = ema_latest(prices, 200)
        rsi = rsi_latest(prices)
        if ema20 is None or ema50 is None or ema200 is None or rsi is None:
            return StrategySignal.none(self.name, "Not enough data for EMA/RSI")

        trend = self.determine_trend(ema20, ema50, ema200)
        if trend == "neutral":
            return StrategySignal.none(self.name, "No clear trend detected")

        near20 = _near(price, ema20, self.ema20_threshold)
        near50 = _near(price, ema50, self.ema50_threshold)
        if not near20 and not near50:
            return StrategySignal.none(self.name, "Price not near any key EMA level")

        confidence = self._confidence(price, ema20, ema50, ema200, rsi, trend, bars)
        is_valid = confidence >= self.min_confidence

        recent = bars[-self.stop_lookback:]
        if trend == "bullish":
            stop_loss = min(min(bar.low for bar in recent), ema50 * 0.995)
        else:
            stop_loss = max(max(bar.high for bar in recent), ema50 * 1.005)

        if is_valid:
            level = "EMA20" if near20 else "EMA50"
            rsi_state = "oversold" if trend == "bullish" else "overbought"
            reason = (
                f"Strong {trend} trend with pullback to {level} and {rsi_state} RSI ({rsi:.2f})"
            )
        else:
            reason = f"Insufficient confidence ({confidence:.0f}%) for {trend} trend"

        logger.debug(f"[Strategy] EMA pullback confidence {confidence:.0f}: {reason}")

        return StrategySignal(
            strategy=self.name,
            direction="long" if trend == "bullish" else "short",
            confidence=confidence,
            reason=reason,
            is_valid=is_valid,
            entry=price,
            stop_loss=stop_loss,
        )

    def _confidence(
        self,
        price: float,
        ema20: float,
        ema50: float,
        ema200: float,
        rsi: float,
        trend: str,
        bars: Sequence[Bar],
    ) -> float:
        confidence = 0.0

        # Trend strength (0-30)
        if trend == "bullish":
            confidence += 15 if ema20 > ema50 else 0
            confidence += 15 if ema50 > ema200 else 0
        else:
            confidence += 15 if ema20 < ema50 else 0
            confidence += 15 if ema50 < ema200 else 0

        # RSI alignment (0-20)
        if (trend == "bullish" and rsi < 50) or (trend == "bearish" and rsi > 50):
            confidence += 20

        # Proximity (0-30)
        if _near(price, ema20, 0.001):
            confidence += 30
        elif _near(price, ema20, 0.002):
            confidence += 20
        elif _near(price, ema50, 0.003):
            confidence += 15

        # Volume (0-20)
        if len(bars) >= 10:
            recent = average_volume(bars[-5:])
            previous = average_volume(bars[-10:-5])
            if recent > previous:
                confidence += 20
            elif recent > previous * 0.8:
                confidence += 10

        return min(100.0, confidence)

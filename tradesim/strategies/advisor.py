"""
Rule-based advisor.

Runs deterministic strategies over the analysis window and turns the first
valid signal into a Recommendation. Lets a backtest run reproducibly without
an LLM in the loop.
"""

import logging
from collections.abc import Sequence

from tradesim.advisory.gateway import AdvisoryRequest
from tradesim.advisory.models import (
    KeyLevels,
    Recommendation,
    SignalFlags,
    TradeRecommendation,
)
from tradesim.strategies.base import Strategy, StrategySignal
from tradesim.strategies.ema_pullback import EMAPullbackStrategy
from tradesim.strategies.mean_reversion import MeanReversionStrategy

logger = logging.getLogger(__name__)


class StrategyAdvisor:
    """
    Advisor backed by rule-based strategies.

    Usage:
        advisor = StrategyAdvisor([EMAPullbackStrategy(), MeanReversionStrategy()])
        gateway = AdvisoryGateway(advisor)
    """

    def __init__(
        self,
        strategies: Sequence[Strategy] | None = None,
        reward_multiple: float = 2.0,
        risk_percentage: float = 1.0,
    ) -> None:
        """
        Initialize the advisor.

        Args:
            strategies: Strategies checked in order (defaults to EMA pullback, mean reversion)
            reward_multiple: Target distance as a multiple of the stop distance
            risk_percentage: Risk % put on every recommendation
        """
        self.strategies: list[Strategy] = list(
            strategies if strategies is not None
            else (EMAPullbackStrategy(), MeanReversionStrategy())
        )
        self.reward_multiple = reward_multiple
        self.risk_percentage = risk_percentage

    def _flags(self, signals: list[StrategySignal]) -> SignalFlags:
        valid = {s.strategy for s in signals if s.is_valid}
        return SignalFlags(
            ema_pullback="ema_pullback" in valid,
            mean_reversion="mean_reversion" in valid,
        )

    async def analyze(self, request: AdvisoryRequest) -> Recommendation:
        """Recommendation for the current bar (hold when no strategy fires)."""
        technicals = request.technical_signals
        levels = KeyLevels(support=list(technicals.support), resistance=list(technicals.resistance))

        signals = [strategy.analyze(request.bars) for strategy in self.strategies]
        flags = self._flags(signals)

        for signal in signals:
            if not signal.is_valid or signal.entry is None or signal.stop_loss is None:
                continue

            risk = abs(signal.entry - signal.stop_loss)
            if risk == 0:
                continue

            if signal.direction == "long":
                action, target = "buy", signal.entry + risk * self.reward_multiple
            else:
                action, target = "sell", signal.entry - risk * self.reward_multiple

            logger.info(f"[Strategy] {signal.strategy} {action} {request.symbol}: {signal.reason}")

            return Recommendation(
                trend=technicals.trend,
                confidence=signal.confidence,
                recommendation=TradeRecommendation(
                    action=action,
                    entry_price=signal.entry,
                    stop_loss=signal.stop_loss,
                    take_profit=target,
                    risk_percentage=self.risk_percentage,
                    reasoning=signal.reason,
                    timeframe=request.timeframe,
                ),
                key_levels=levels,
                signals=flags,
            )

        return Recommendation(
            trend=technicals.trend,
            confidence=max((s.confidence for s in signals), default=0.0),
            recommendation=TradeRecommendation(
                action="hold",
                reasoning="; ".join(s.reason for s in signals) or "No strategies configured",
                timeframe=request.timeframe,
            ),
            key_levels=levels,
            signals=flags,
        )

"""
Position Manager - Refines open positions bar by bar.

For one open position and a recent bar window it decides whether to:
- Close the position (key level breached, or live reward/risk collapsed)
- Tighten the stop-loss to a new swing low/high (confidence scored)
- Scale out through a take-profit ladder at 1R/2R/3R

Decisions are plain values. Applying them is delegated to an ExecutionSink,
or to the engine when it manages its own simulated trades.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from tradesim.core.config import DEFAULT_POSITION_LIMITS, PositionLimits
from tradesim.core.models import Bar, Side
from tradesim.execution import ExecutionSink, OrderResult
from tradesim.indicators import pivot_points, trendlines
from tradesim.risk import PositionSnapshot, RiskManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyLevels:
    """Technical levels derived from a bar window."""

    pivot_highs: list[float] = field(default_factory=list)
    pivot_lows: list[float] = field(default_factory=list)
    support: list[float] = field(default_factory=list)  # Support trendline ends
    resistance: list[float] = field(default_factory=list)  # Resistance trendline ends


@dataclass(frozen=True)
class StopLossAdjustment:
    """A proposed stop-loss move."""

    new_stop_loss: float
    reason: str
    confidence: float  # 0-100


@dataclass(frozen=True)
class TakeProfitLevel:
    """One rung of the take-profit ladder."""

    price: float
    percentage: float  # % of the position closed at this level
    quantity: float  # Units closed at this level
    risk_multiple: float


@dataclass(frozen=True)
class PositionDecision:
    """What to do with an open position on this bar."""

    should_close: bool = False
    close_reason: str | None = None
    stop_adjustment: StopLossAdjustment | None = None
    take_profit_levels: list[TakeProfitLevel] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        """True if nothing changes for the position."""
        return not self.should_close and self.stop_adjustment is None


class PositionManager:
    """
    Stop/target lifecycle for open positions.

    Usage:
        manager = PositionManager()
        decision = manager.analyze(PositionSnapshot.from_trade(trade, price), bars)
        manager.apply(trade.id, snapshot, decision, sink)
    """

    def __init__(
        self,
        risk_manager: RiskManager | None = None,
        limits: PositionLimits = DEFAULT_POSITION_LIMITS,
    ) -> None:
        """
        Initialize the position manager.

        Args:
            risk_manager: Gate for stop-loss modifications
            limits: Thresholds for closing, stop adjustment and the ladder
        """
        self.risk_manager = risk_manager or RiskManager()
        self.limits = limits

    def find_key_levels(self, bars: Sequence[Bar]) -> KeyLevels:
        """Pivot highs/lows and trendline endpoints for a bar window."""
        lookback = self.limits.pivot_lookback
        pivots = pivot_points(bars, lookback)
        lines = trendlines(bars, lookback)
        return KeyLevels(
            pivot_highs=pivots.highs,
            pivot_lows=pivots.lows,
            support=lines.support_levels,
            resistance=lines.resistance_levels,
        )

    def analyze(
        self,
        position: PositionSnapshot,
        bars: Sequence[Bar],
        current_price: float | None = None,
    ) -> PositionDecision:
        """
        Decide what to do with an open position.

        Args:
            position: Snapshot of the open position
            bars: Recent bars, oldest first (the last bar is the current one)
            current_price: Price to evaluate at (defaults to position.current_price)

        Returns:
            PositionDecision (a close decision carries no stop or ladder)
        """
        if current_price is not None and current_price != position.current_price:
            position = PositionSnapshot(
                symbol=position.symbol,
                entry_price=position.entry_price,
                current_price=current_price,
                stop_loss=position.stop_loss,
                take_profit=position.take_profit,
                size=position.size,
                risk_percentage=position.risk_percentage,
                side=position.side,
            )

        levels = self.find_key_levels(bars)

        close_reason = self.check_close(position, bars, levels)
        if close_reason:
            logger.info(f"[Position] Close signal for {position.symbol}: {close_reason}")
            return PositionDecision(should_close=True, close_reason=close_reason)

        return PositionDecision(
            stop_adjustment=self.stop_loss_adjustment(position, bars),
            take_profit_levels=self.take_profit_levels(position, levels),
        )

    def check_close(
        self,
        position: PositionSnapshot,
        bars: Sequence[Bar],
        levels: KeyLevels,
    ) -> str | None:
        """
        Close check.

        A long is closed when price falls through the nearest support that sat
        below the previous close; a short mirrors this with resistance. Then
        the live reward/risk |current - entry| / |entry - stop| must stay at or
        above the minimum.

        Returns:
            Close reason, or None to keep the position
        """
        price = position.current_price

        if len(bars) >= 2:
            previous_close = bars[-2].close
            if position.is_long:
                below = [level for level in levels.support if level < previous_close]
                if below and price < max(below):
                    return f"Price breached key support level at {max(below):.2f}"
            else:
                above = [level for level in levels.resistance if level > previous_close]
                if above and price > min(above):
                    return f"Price breached key resistance level at {min(above):.2f}"

        risk = abs(position.entry_price - position.stop_loss)
        # Stop at breakeven: nothing left at risk to compare against
        if risk == 0:
            return None

        live_ratio = abs(price - position.entry_price) / risk
        if live_ratio < self.limits.min_live_risk_reward:
            return f"Risk-reward ratio deteriorated to {live_ratio:.2f}"

        return None

    def stop_loss_adjustment(
        self,
        position: PositionSnapshot,
        bars: Sequence[Bar],
    ) -> StopLossAdjustment | None:
        """
        Look for a tighter stop in the recent bars.

        Long: the highest low below the current price, if above the current
        stop. Short: the lowest high above the current price, if below the
        current stop.

        Returns:
            The adjustment if confident enough and accepted by the RiskManager
        """
        price = position.current_price
        recent = bars[-self.limits.stop_search_bars:]

        if position.is_long:
            candidates = [bar.low for bar in recent if bar.low < price]
            if not candidates or max(candidates) <= position.stop_loss:
                return None
            new_stop = max(candidates)
            reason = "Higher swing low formed"
        else:
            candidates = [bar.high for bar in recent if bar.high > price]
            if not candidates or min(candidates) >= position.stop_loss:
                return None
            new_stop = min(candidates)
            reason = "Lower swing high formed"

        confidence = self.stop_loss_confidence(position, new_stop, bars)
        if confidence < self.limits.min_stop_confidence:
            logger.debug(
                f"[Position] Stop {new_stop:.2f} for {position.symbol} skipped: "
                f"confidence {confidence:.0f}"
            )
            return None

        check = self.risk_manager.validate_stop_loss_modification(position, new_stop)
        if not check:
            logger.debug(f"[Position] Stop {new_stop:.2f} rejected: {check.reason}")
            return None

        return StopLossAdjustment(new_stop_loss=new_stop, reason=reason, confidence=confidence)

    def stop_loss_confidence(
        self,
        position: PositionSnapshot,
        new_stop: float,
        bars: Sequence[Bar],
    ) -> float:
        """
        Score a stop move from 0 to 100.

        - Price movement in favour: up to 40 points
        - Size of the stop improvement: up to 30 points
        - Volume of the last 3 bars vs the 3 before: 30 (> 1.2x) or 15 (> 1x)
        """
        confidence = 0.0

        if position.entry_price > 0:
            movement = abs(position.current_price - position.entry_price) / position.entry_price
            confidence += min(40.0, movement * 1000)

        if position.stop_loss > 0:
            improvement = abs(new_stop - position.stop_loss) / position.stop_loss
            confidence += min(30.0, improvement * 1000)

        if len(bars) >= 6:
            recent_volume = sum(bar.volume for bar in bars[-3:]) / 3
            previous_volume = sum(bar.volume for bar in bars[-6:-3]) / 3
            if recent_volume > previous_volume * 1.2:
                confidence += 30
            elif recent_volume > previous_volume:
                confidence += 15

        return min(100.0, confidence)

    def take_profit_levels(
        self,
        position: PositionSnapshot,
        levels: KeyLevels,
    ) -> list[TakeProfitLevel]:
        """
        Build the take-profit ladder.

        Targets sit at the configured risk multiples from entry. Each is
        pulled inside the nearest opposing level between entry and the raw
        target. Unit quantities round down; the last rung takes the remainder.
        """
        risk = abs(position.entry_price - position.stop_loss)
        if risk == 0:
            return []

        multiples = self.limits.take_profit_multiples
        allocations = self.limits.take_profit_allocations
        buffer = self.limits.level_buffer_pct / 100

        ladder: list[TakeProfitLevel] = []
        remaining_pct = 100.0
        remaining_qty = position.size

        for index, (multiple, allocation) in enumerate(zip(multiples, allocations, strict=True)):
            is_last = index == len(multiples) - 1
            pct = remaining_pct if is_last else allocation
            quantity = remaining_qty if is_last else math.floor(position.size * pct / 100)
            remaining_pct -= pct
            remaining_qty -= quantity

            if position.is_long:
                target = position.entry_price + risk * multiple
                blocking = [r for r in levels.resistance if position.entry_price < r < target]
                if blocking:
                    target = min(target, min(blocking) * (1 - buffer))
            else:
                target = position.entry_price - risk * multiple
                blocking = [s for s in levels.support if target < s < position.entry_price]
                if blocking:
                    target = max(target, max(blocking) * (1 + buffer))

            ladder.append(
                TakeProfitLevel(
                    price=target,
                    percentage=pct,
                    quantity=quantity,
                    risk_multiple=multiple,
                )
            )

        return ladder

    def apply(
        self,
        position_id: str,
        position: PositionSnapshot,
        decision: PositionDecision,
        sink: ExecutionSink,
    ) -> list[OrderResult]:
        """
        Send a decision to the execution sink.

        Args:
            position_id: Venue identifier of the position
            position: Snapshot the decision was made on
            decision: Output of analyze()
            sink: Where intents are sent

        Returns:
            Results of every intent submitted, in order
        """
        results: list[OrderResult] = []

        if decision.should_close:
            results.append(sink.close(position_id))
            logger.info(f"[Position] Closed {position_id}: {decision.close_reason}")
            return results

        if decision.stop_adjustment:
            new_stop = decision.stop_adjustment.new_stop_loss
            results.append(sink.modify_stop(position_id, new_stop))
            logger.info(f"[Position] Updated stop for {position_id} to {new_stop:.2f}")

        exit_side = Side.SHORT if position.is_long else Side.LONG
        for level in decision.take_profit_levels:
            if level.quantity > 0:
                result = sink.place_limit(position_id, exit_side, level.quantity, level.price)
                results.append(result)

        return results

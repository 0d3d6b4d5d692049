"""
Trade execution sink.

The engine and position manager never place orders themselves; they emit
intents (open, modify stop/target, scaled limit orders, close) to a sink.
Applying intents against a real venue is outside the simulation core, so the
only implementation here is a paper sink that records them.

Usage:
    sink = PaperExecutionSink()
    sink.open("AAPL-1", "AAPL", Side.LONG, size=200, entry=100, stop_loss=95, take_profit=115)
    sink.modify_stop("AAPL-1", 98)
    sink.close("AAPL-1")
    print(sink.intents)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol

from tradesim.core.config import DEFAULT_RISK_LIMITS
from tradesim.core.models import Side

logger = logging.getLogger(__name__)

IntentType = Literal["open", "modify_stop", "modify_target", "limit", "close"]


@dataclass(frozen=True)
class OrderIntent:
    """A single instruction sent to the execution venue."""

    type: IntentType
    position_id: str
    symbol: str
    side: Side | None = None
    size: float | None = None
    price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class OrderResult:
    """Result of submitting an intent."""

    success: bool
    message: str
    intent: OrderIntent | None = None


@dataclass
class PaperPosition:
    """Venue-side view of an open position."""

    symbol: str
    side: Side
    size: float
    entry_price: float
    stop_loss: float
    take_profit: float


class ExecutionSink(Protocol):
    """Interface for anything that can apply trade intents."""

    def open(
        self,
        position_id: str,
        symbol: str,
        side: Side,
        size: float,
        entry: float,
        stop_loss: float,
        take_profit: float,
    ) -> OrderResult: ...

    def modify_stop(self, position_id: str, new_stop: float) -> OrderResult: ...

    def modify_target(self, position_id: str, new_target: float) -> OrderResult: ...

    def place_limit(
        self, position_id: str, side: Side, size: float, price: float
    ) -> OrderResult: ...

    def close(self, position_id: str) -> OrderResult: ...


class PaperExecutionSink:
    """
    Records intents in order and tracks the positions they imply.

    Refuses to open more positions than the portfolio limit allows and
    rejects intents for unknown positions, mirroring a venue's behaviour.
    """

    def __init__(self, max_positions: int = DEFAULT_RISK_LIMITS.max_positions) -> None:
        """
        Initialize the paper sink.

        Args:
            max_positions: Maximum concurrently open positions
        """
        self.max_positions = max_positions
        self.positions: dict[str, PaperPosition] = {}
        self.intents: list[OrderIntent] = []

    def _record(self, intent: OrderIntent, message: str) -> OrderResult:
        self.intents.append(intent)
        logger.debug(f"[Paper] {message}")
        return OrderResult(success=True, message=message, intent=intent)

    def _missing(self, position_id: str) -> OrderResult:
        message = f"No open position {position_id}"
        logger.warning(f"[Paper] {message}")
        return OrderResult(success=False, message=message)

    def open(
        self,
        position_id: str,
        symbol: str,
        side: Side,
        size: float,
        entry: float,
        stop_loss: float,
        take_profit: float,
    ) -> OrderResult:
        """Open a position at the given entry with attached stop/target."""
        if position_id in self.positions:
            return OrderResult(success=False, message=f"Position {position_id} already open")
        if len(self.positions) >= self.max_positions:
            return OrderResult(
                success=False,
                message=f"Maximum positions ({self.max_positions}) reached",
            )

        self.positions[position_id] = PaperPosition(
            symbol=symbol,
            side=side,
            size=size,
            entry_price=entry,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        intent = OrderIntent(
            type="open",
            position_id=position_id,
            symbol=symbol,
            side=side,
            size=size,
            price=entry,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        return self._record(intent, f"Opened {side.value} {size} {symbol} @ {entry:,.2f}")

    def modify_stop(self, position_id: str, new_stop: float) -> OrderResult:
        """Replace the stop order of an open position."""
        position = self.positions.get(position_id)
        if position is None:
            return self._missing(position_id)

        position.stop_loss = new_stop
        intent = OrderIntent(
            type="modify_stop",
            position_id=position_id,
            symbol=position.symbol,
            stop_loss=new_stop,
        )
        return self._record(intent, f"Stop for {position_id} moved to {new_stop:,.2f}")

    def modify_target(self, position_id: str, new_target: float) -> OrderResult:
        """Replace the take-profit order of an open position."""
        position = self.positions.get(position_id)
        if position is None:
            return self._missing(position_id)

        position.take_profit = new_target
        intent = OrderIntent(
            type="modify_target",
            position_id=position_id,
            symbol=position.symbol,
            take_profit=new_target,
        )
        return self._record(intent, f"Target for {position_id} moved to {new_target:,.2f}")

    def place_limit(self, position_id: str, side: Side, size: float, price: float) -> OrderResult:
        """Place a scaled exit limit order against an open position."""
        position = self.positions.get(position_id)
        if position is None:
            return self._missing(position_id)
        if size <= 0:
            return OrderResult(success=False, message="Limit order size must be positive")

        intent = OrderIntent(
            type="limit",
            position_id=position_id,
            symbol=position.symbol,
            side=side,
            size=size,
            price=price,
        )
        return self._record(intent, f"Limit {side.value} {size} {position.symbol} @ {price:,.2f}")

    def close(self, position_id: str) -> OrderResult:
        """Close an open position at market."""
        position = self.positions.pop(position_id, None)
        if position is None:
            return self._missing(position_id)

        intent = OrderIntent(
            type="close",
            position_id=position_id,
            symbol=position.symbol,
            side=position.side,
            size=position.size,
        )
        return self._record(intent, f"Closed {position_id}")

    def intents_for(self, position_id: str) -> list[OrderIntent]:
        """All intents recorded for one position, in order."""
        return [intent for intent in self.intents if intent.position_id == position_id]

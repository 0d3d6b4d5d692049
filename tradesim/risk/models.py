"""
Data models for risk calculations.

Value objects only: nothing here is persisted or mutated after creation.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from tradesim.backtest.models import Trade


class RiskBearing(Protocol):
    """Anything that reports the % of balance it puts at risk."""

    risk_percentage: float


@dataclass(frozen=True)
class RiskParameters:
    """Inputs for sizing and validating a proposed trade."""

    account_balance: float
    risk_percentage: float  # % of balance (0.5 - 2.0)
    entry_price: float
    stop_loss: float
    take_profit: float

    @property
    def risk_per_unit(self) -> float:
        """Distance between entry and stop."""
        return abs(self.entry_price - self.stop_loss)

    @property
    def reward_per_unit(self) -> float:
        """Distance between entry and target."""
        return abs(self.take_profit - self.entry_price)


@dataclass(frozen=True)
class PositionSizing:
    """Result of a position size calculation."""

    size: int  # Whole units
    risk_amount: float  # balance * risk% / 100
    max_risk_amount: float  # balance * max risk% / 100
    risk_reward_ratio: float


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a risk gate check."""

    is_valid: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def reject(cls, reason: str) -> "ValidationResult":
        return cls(is_valid=False, reason=reason)

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class PositionSnapshot:
    """
    Point-in-time view of an open position.

    Used for stop-loss modification checks and position management, where
    the current market price matters.
    """

    symbol: str
    entry_price: float
    current_price: float
    stop_loss: float
    take_profit: float
    size: float
    risk_percentage: float = 0.0
    side: str | None = None  # "long" / "short" when known

    @property
    def is_long(self) -> bool:
        """Position direction (falls back to price-inferred direction when side is unknown)."""
        if self.side is not None:
            return self.side == "long"
        return self.entry_price < self.current_price

    @property
    def unrealized_pnl(self) -> float:
        """Open profit/loss at the current price."""
        diff = self.current_price - self.entry_price
        return diff * self.size if self.is_long else -diff * self.size

    @classmethod
    def from_trade(cls, trade: "Trade", current_price: float) -> "PositionSnapshot":
        """Snapshot an open trade at the given market price."""
        return cls(
            symbol=trade.symbol,
            entry_price=trade.entry_price,
            current_price=current_price,
            stop_loss=trade.stop_loss,
            take_profit=trade.take_profit,
            size=trade.size,
            risk_percentage=trade.risk_percentage,
            side=trade.side.value,
        )

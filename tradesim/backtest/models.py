"""
Data models for backtesting configuration and results.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from tradesim.core.config import DEFAULT_ENGINE
from tradesim.core.errors import ConfigurationError, InvalidStopLoss, TradeClosedError
from tradesim.core.models import Side

if TYPE_CHECKING:
    from tradesim.advisory.models import Recommendation
    from tradesim.analysis.technical import TechnicalSignals


def _parse_datetime(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class BacktestConfig:
    """
    Configuration for a backtest run.

    Defines the instrument, the window to simulate and the trading
    parameters applied to every recommendation.

    The per-bar PositionManager pass (early closes, trailed stops, the
    take-profit ladder) only runs with manage_positions=True. The default
    engine leaves open trades alone until their stop or target is hit.
    """

    symbol: str
    timeframe: str  # "1Min", "1Hour", "1Day", ...
    start_date: datetime
    end_date: datetime
    initial_balance: float = DEFAULT_ENGINE.initial_balance
    risk_per_trade: float = DEFAULT_ENGINE.risk_per_trade  # % used when a recommendation has none

    # Bars skipped before the first analysis (capped at len(bars) - 1)
    warmup_bars: int = DEFAULT_ENGINE.warmup_bars
    analysis_window: int = DEFAULT_ENGINE.analysis_window
    min_confidence: float = DEFAULT_ENGINE.min_confidence

    # Analysis sampling: every Nth bar, and an optional cap on advisor calls
    analysis_interval: int = 1
    max_analyses: int | None = None

    # Apply PositionManager decisions to open trades on every bar. Off by
    # default: plain runs only exit on stop-loss, take-profit or end of data.
    manage_positions: bool = False

    # Bars requested from a market data provider when none are supplied
    bar_limit: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.start_date >= self.end_date:
            raise ConfigurationError(
                "Start date must be before end date",
                start_date=self.start_date.isoformat(),
                end_date=self.end_date.isoformat(),
            )
        if self.initial_balance <= 0:
            raise ConfigurationError(
                "initial_balance must be positive", initial_balance=self.initial_balance
            )
        if self.warmup_bars < 0:
            raise ConfigurationError("warmup_bars cannot be negative", warmup_bars=self.warmup_bars)
        if self.analysis_window < 1:
            raise ConfigurationError(
                "analysis_window must be at least 1", analysis_window=self.analysis_window
            )
        if self.analysis_interval < 1:
            raise ConfigurationError(
                "analysis_interval must be at least 1",
                analysis_interval=self.analysis_interval,
            )
        if self.max_analyses is not None and self.max_analyses < 0:
            raise ConfigurationError(
                "max_analyses cannot be negative", max_analyses=self.max_analyses
            )

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestConfig":
        """Create config from dictionary."""
        return cls(
            symbol=data["symbol"],
            timeframe=data.get("timeframe", "1Day"),
            start_date=_parse_datetime(data["start_date"]),
            end_date=_parse_datetime(data["end_date"]),
            initial_balance=data.get("initial_balance", DEFAULT_ENGINE.initial_balance),
            risk_per_trade=data.get("risk_per_trade", DEFAULT_ENGINE.risk_per_trade),
            warmup_bars=data.get("warmup_bars", DEFAULT_ENGINE.warmup_bars),
            analysis_window=data.get("analysis_window", DEFAULT_ENGINE.analysis_window),
            min_confidence=data.get("min_confidence", DEFAULT_ENGINE.min_confidence),
            analysis_interval=data.get("analysis_interval", 1),
            max_analyses=data.get("max_analyses"),
            manage_positions=data.get("manage_positions", False),
            bar_limit=data.get("bar_limit", 1000),
        )


@dataclass
class Trade:
    """
    A position opened by the engine.

    Open while exit_time is None. Closing sets the exit fields once; after
    that the trade is immutable.
    """

    id: str
    symbol: str
    side: Side
    entry_price: float
    stop_loss: float
    take_profit: float
    size: float
    entry_time: datetime
    risk_percentage: float = 0.0  # % of balance risked at entry

    exit_time: datetime | None = None
    exit_price: float | None = None
    pnl: float | None = None
    pnl_percentage: float | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        """Validate price ordering for the trade direction."""
        if self.side == Side.LONG:
            ordered = self.stop_loss < self.entry_price < self.take_profit
            expected = "stop_loss < entry_price < take_profit"
        else:
            ordered = self.take_profit < self.entry_price < self.stop_loss
            expected = "take_profit < entry_price < stop_loss"
        if not ordered:
            raise InvalidStopLoss(
                f"Invalid {self.side.value} trade: expected {expected}",
                side=self.side.value,
                entry_price=self.entry_price,
                stop_loss=self.stop_loss,
                take_profit=self.take_profit,
            )

    @property
    def is_open(self) -> bool:
        """True until the trade is closed."""
        return self.exit_time is None

    @property
    def is_long(self) -> bool:
        """True if this is a long position."""
        return self.side == Side.LONG

    @property
    def duration_seconds(self) -> float:
        """How long the position was held (0 while open)."""
        if self.exit_time is None:
            return 0.0
        return (self.exit_time - self.entry_time).total_seconds()

    def unrealized_pnl(self, current_price: float) -> float:
        """Calculate unrealized P&L based on current price."""
        price_diff = current_price - self.entry_price
        return price_diff * self.size if self.is_long else -price_diff * self.size

    def _ensure_open(self, operation: str) -> None:
        if not self.is_open:
            raise TradeClosedError(
                f"Cannot {operation}: trade {self.id} is already closed",
                trade_id=self.id,
                exit_time=self.exit_time.isoformat() if self.exit_time else None,
            )

    def close(self, price: float, time: datetime, reason: str, balance: float) -> float:
        """
        Close the trade.

        Args:
            price: Exit price
            time: Exit timestamp
            reason: Why the trade was closed (stop_loss, take_profit, ...)
            balance: Account balance at close time, for pnl_percentage

        Returns:
            Realized P&L

        Raises:
            TradeClosedError: If the trade is already closed
        """
        self._ensure_open("close")

        pnl = self.unrealized_pnl(price)
        self.exit_price = price
        self.exit_time = time
        self.reason = reason
        self.pnl = pnl
        self.pnl_percentage = pnl / balance * 100 if balance > 0 else 0.0
        return pnl

    def modify_stop(self, new_stop: float) -> None:
        """Move the stop-loss of an open trade."""
        self._ensure_open("modify stop")
        self.stop_loss = new_stop

    def modify_target(self, new_target: float) -> None:
        """Move the take-profit of an open trade."""
        self._ensure_open("modify target")
        self.take_profit = new_target

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "size": self.size,
            "entry_time": self.entry_time.isoformat(),
            "risk_percentage": self.risk_percentage,
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "exit_price": self.exit_price,
            "pnl": self.pnl,
            "pnl_percentage": self.pnl_percentage,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class EquityPoint:
    """A single point in the equity curve."""

    timestamp: datetime
    balance: float  # Initial balance + realized P&L up to timestamp

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "balance": self.balance}


@dataclass(frozen=True)
class AnalysisEntry:
    """One advisory call made during a run."""

    timestamp: datetime
    recommendation: "Recommendation"
    technical_signals: "TechnicalSignals"

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "analysis_result": self.recommendation.to_dict(),
            "technical_signals": self.technical_signals.to_dict(),
        }


@dataclass(frozen=True)
class BacktestStatistics:
    """Summary statistics over the closed trades and equity curve of a run."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0  # Fraction of winning trades (0-1)
    average_win: float = 0.0
    average_loss: float = 0.0  # Positive magnitude
    profit_factor: float = 0.0  # math.inf when there are wins and no losses
    max_drawdown: float = 0.0  # Currency units
    max_drawdown_percentage: float = 0.0  # 0-100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary; an infinite profit factor becomes the string "inf"."""
        profit_factor: float | str = self.profit_factor
        if math.isinf(self.profit_factor):
            profit_factor = "inf"
        return {
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "win_rate": self.win_rate,
            "average_win": self.average_win,
            "average_loss": self.average_loss,
            "profit_factor": profit_factor,
            "max_drawdown": self.max_drawdown,
            "max_drawdown_percentage": self.max_drawdown_percentage,
        }


@dataclass(frozen=True)
class BacktestResult:
    """
    Results from a completed backtest run.

    Assembled once when the run finishes and never modified afterwards.
    """

    symbol: str
    timeframe: str
    start_date: datetime
    end_date: datetime
    initial_balance: float
    final_balance: float
    trades: tuple[Trade, ...]
    equity_curve: tuple[EquityPoint, ...]
    analysis_history: tuple[AnalysisEntry, ...]
    statistics: BacktestStatistics = field(default_factory=BacktestStatistics)
    total_bars: int = 0
    execution_time_seconds: float = 0.0

    @property
    def pnl(self) -> float:
        """Total realized P&L."""
        return self.final_balance - self.initial_balance

    @property
    def pnl_pct(self) -> float:
        """P&L as % of initial balance."""
        return self.pnl / self.initial_balance * 100 if self.initial_balance else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "initial_balance": self.initial_balance,
            "final_balance": self.final_balance,
            "statistics": self.statistics.to_dict(),
            "trades": [trade.to_dict() for trade in self.trades],
            "equity_curve": [point.to_dict() for point in self.equity_curve],
            "analysis_history": [entry.to_dict() for entry in self.analysis_history],
            "execution": {
                "total_bars": self.total_bars,
                "execution_time_seconds": self.execution_time_seconds,
            },
        }

    def print_summary(self) -> None:
        """Print a summary of backtest results."""
        stats = self.statistics
        profit_factor = "∞" if math.isinf(stats.profit_factor) else f"{stats.profit_factor:.2f}"

        print("\n" + "=" * 60)
        print(f"📊 BACKTEST RESULTS: {self.symbol} ({self.timeframe})")
        print("=" * 60)

        print(
            f"\n📅 Period: {self.start_date.strftime('%Y-%m-%d %H:%M')} to "
            f"{self.end_date.strftime('%Y-%m-%d %H:%M')}"
        )
        print(f"📈 Bars: {self.total_bars}")

        print("\n💰 PERFORMANCE")
        print("-" * 40)
        print(f"  Initial Balance: ${self.initial_balance:,.2f}")
        print(f"  Final Balance:   ${self.final_balance:,.2f}")
        print(f"  Total P&L:       ${self.pnl:+,.2f} ({self.pnl_pct:+.2f}%)")

        print("\n📊 RISK METRICS")
        print("-" * 40)
        print(f"  Win Rate:        {stats.win_rate * 100:.1f}%")
        print(
            f"  Max Drawdown:    ${stats.max_drawdown:,.2f} "
            f"({stats.max_drawdown_percentage:.2f}%)"
        )
        print(f"  Profit Factor:   {profit_factor}")

        print("\n🔄 TRADE STATISTICS")
        print("-" * 40)
        print(f"  Total Trades:    {stats.total_trades}")
        print(f"  Winning:         {stats.winning_trades}")
        print(f"  Losing:          {stats.losing_trades}")
        print(f"  Avg Win:         ${stats.average_win:+,.2f}")
        print(f"  Avg Loss:        ${stats.average_loss:,.2f}")

        print("\n⚙️  EXECUTION")
        print("-" * 40)
        print(f"  Analyses:        {len(self.analysis_history)}")
        print(f"  Runtime:         {self.execution_time_seconds:.1f}s")

        print("=" * 60 + "\n")

"""
Performance statistics for a finished backtest.

Pure functions of the closed trades and the equity curve: calling them twice
on the same inputs gives identical numbers.
"""

import math
from collections.abc import Sequence

from tradesim.backtest.models import BacktestStatistics, EquityPoint, Trade


def calculate_drawdown(
    equity_curve: Sequence[EquityPoint],
    initial_balance: float,
) -> tuple[float, float]:
    """
    Calculate maximum drawdown from the equity curve.

    The running peak starts at the initial balance. Absolute and percentage
    drawdowns are tracked as independent maxima.

    Args:
        equity_curve: Balance points in time order
        initial_balance: Starting balance (seed for the running peak)

    Returns:
        (max_drawdown, max_drawdown_percentage)
    """
    peak = initial_balance
    max_dd = 0.0
    max_dd_pct = 0.0

    for point in equity_curve:
        if point.balance > peak:
            peak = point.balance
        drawdown = peak - point.balance
        max_dd = max(max_dd, drawdown)
        if peak > 0:
            max_dd_pct = max(max_dd_pct, drawdown / peak * 100)

    return max_dd, min(max_dd_pct, 100.0)


def profit_factor(total_wins: float, total_losses: float) -> float:
    """Gross profit / gross loss; infinite with wins and no losses, 0 with neither."""
    if total_losses > 0:
        return total_wins / total_losses
    if total_wins > 0:
        return math.inf
    return 0.0


def calculate_statistics(
    trades: Sequence[Trade],
    initial_balance: float,
    equity_curve: Sequence[EquityPoint],
) -> BacktestStatistics:
    """
    Summarize a run.

    Only closed trades count. A trade with pnl <= 0 is a loss.

    Args:
        trades: All trades of the run (open ones are ignored)
        initial_balance: Starting balance
        equity_curve: Balance points in time order

    Returns:
        BacktestStatistics
    """
    closed = [t for t in trades if not t.is_open and t.pnl is not None]
    wins = [t.pnl for t in closed if t.pnl > 0]
    losses = [t.pnl for t in closed if t.pnl <= 0]

    total_wins = sum(wins)
    total_losses = abs(sum(losses))
    max_dd, max_dd_pct = calculate_drawdown(equity_curve, initial_balance)

    return BacktestStatistics(
        total_trades=len(closed),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(closed) if closed else 0.0,
        average_win=total_wins / len(wins) if wins else 0.0,
        average_loss=total_losses / len(losses) if losses else 0.0,
        profit_factor=profit_factor(total_wins, total_losses),
        max_drawdown=max_dd,
        max_drawdown_percentage=max_dd_pct,
    )

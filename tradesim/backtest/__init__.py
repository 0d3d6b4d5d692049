"""
Backtest Module - Historical simulation with risk and position management.

Orchestrates the flow: Bars → Indicators → Advisory → Risk Manager → Trades → Equity
"""

from .engine import BacktestEngine, EngineState, run_backtest
from .models import (
    AnalysisEntry,
    BacktestConfig,
    BacktestResult,
    BacktestStatistics,
    EquityPoint,
    Trade,
)
from .position_manager import (
    KeyLevels,
    PositionDecision,
    PositionManager,
    StopLossAdjustment,
    TakeProfitLevel,
)
from .statistics import calculate_drawdown, calculate_statistics, profit_factor

__all__ = [
    "BacktestEngine",
    "EngineState",
    "run_backtest",
    "BacktestConfig",
    "BacktestResult",
    "BacktestStatistics",
    "AnalysisEntry",
    "EquityPoint",
    "Trade",
    "PositionManager",
    "PositionDecision",
    "StopLossAdjustment",
    "TakeProfitLevel",
    "KeyLevels",
    "calculate_statistics",
    "calculate_drawdown",
    "profit_factor",
]

#!/usr/bin/env python3
"""
Integration tests for the backtest engine.

Run with:
    python -m pytest tests/test_backtest.py -v
"""

import asyncio
import math
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

# ruff: noqa: E402
from tradesim.advisory import AdvisoryGateway, Recommendation, RetryPolicy, TradeRecommendation
from tradesim.backtest import (
    BacktestConfig,
    BacktestEngine,
    BacktestStatistics,
    EngineState,
    EquityPoint,
    Trade,
    calculate_drawdown,
    calculate_statistics,
    profit_factor,
    run_backtest,
)
from tradesim.core.errors import (
    BacktestCancelled,
    ConfigurationError,
    InsufficientData,
    InvalidStopLoss,
    TradeClosedError,
)
from tradesim.core.models import Bar, Side
from tradesim.execution import PaperExecutionSink

START = datetime(2024, 1, 1)


def trending_bars(count: int = 30, overrides: dict[int, dict] | None = None) -> list[Bar]:
    """Daily bars with close = 95 + 0.5 * i and a 1.0 range either side."""
    overrides = overrides or {}
    bars = []
    for i in range(count):
        close = 95.0 + i * 0.5
        values = {
            "timestamp": START + timedelta(days=i),
            "open": close,
            "high": close + 1,
            "low": close - 1,
            "close": close,
            "volume": 1000.0,
        }
        values.update(overrides.get(i, {}))
        bars.append(Bar(**values))
    return bars


def make_config(**overrides) -> BacktestConfig:
    values = {
        "symbol": "TEST",
        "timeframe": "1Day",
        "start_date": START,
        "end_date": START + timedelta(days=60),
        "initial_balance": 100000.0,
        "warmup_bars": 5,
    }
    values.update(overrides)
    return BacktestConfig(**values)


def buy(entry: float, stop: float, target: float, confidence: float = 80.0) -> Recommendation:
    return Recommendation(
        trend="bullish",
        confidence=confidence,
        recommendation=TradeRecommendation(
            action="buy",
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            risk_percentage=1.0,
            reasoning="scripted",
        ),
    )


class ScriptedAdvisor:
    """Buys once when the close hits `buy_at`, holds otherwise."""

    def __init__(self, buy_at: float = 100.0, confidence: float = 80.0):
        self.buy_at = buy_at
        self.confidence = confidence
        self.calls = 0

    async def analyze(self, request):
        self.calls += 1
        if request.current_price == self.buy_at and not request.open_positions:
            return buy(self.buy_at, 95.0, 115.0, self.confidence)
        return Recommendation.hold()


class LadderAdvisor:
    """Buys at each scripted close with the paired stop/target while flat."""

    def __init__(self, setups: dict[float, tuple[float, float]]):
        self.setups = setups

    async def analyze(self, request):
        setup = self.setups.get(request.current_price)
        if setup and not request.open_positions:
            stop, target = setup
            return buy(request.current_price, stop, target)
        return Recommendation.hold()


class HoldAdvisor:
    async def analyze(self, request):
        return Recommendation.hold()


class FailingAdvisor:
    def __init__(self):
        self.calls = 0

    async def analyze(self, request):
        self.calls += 1
        raise RuntimeError("model offline")


class CancellingAdvisor:
    """Requests cancellation of its engine on the third call."""

    def __init__(self):
        self.engine = None
        self.calls = 0

    async def analyze(self, request):
        self.calls += 1
        if self.calls == 3:
            self.engine.cancel()
        return Recommendation.hold()


class BrokenResultSink:
    def save(self, result):
        raise OSError("disk full")


class StaticMarketData:
    def __init__(self, bars):
        self.bars = bars
        self.requests = []

    def get_bars(self, symbol, timeframe, limit, start=None, end=None):
        self.requests.append((symbol, timeframe, limit))
        return list(self.bars)


class TestBacktestConfig:
    """Tests for BacktestConfig validation."""

    def test_start_after_end(self):
        with pytest.raises(ConfigurationError):
            make_config(start_date=START, end_date=START)

    def test_non_positive_balance(self):
        with pytest.raises(ConfigurationError) as exc:
            make_config(initial_balance=0)
        assert exc.value.kind == "configuration_error"

    def test_invalid_sampling(self):
        with pytest.raises(ConfigurationError):
            make_config(analysis_interval=0)
        with pytest.raises(ConfigurationError):
            make_config(warmup_bars=-1)
        with pytest.raises(ConfigurationError):
            make_config(max_analyses=-1)

    def test_from_dict(self):
        config = BacktestConfig.from_dict(
            {
                "symbol": "AAPL",
                "start_date": "2024-01-01T00:00:00Z",
                "end_date": "2024-02-01T00:00:00Z",
                "warmup_bars": 10,
            }
        )
        assert config.timeframe == "1Day"
        assert config.warmup_bars == 10
        assert config.start_date.tzinfo is not None


class TestTrade:
    """Tests for the Trade lifecycle."""

    def make_trade(self, side: Side = Side.LONG) -> Trade:
        if side == Side.LONG:
            return Trade("T-1", "TEST", side, 100.0, 95.0, 110.0, 200, START)
        return Trade("T-1", "TEST", side, 100.0, 105.0, 90.0, 200, START)

    def test_invalid_ordering(self):
        with pytest.raises(InvalidStopLoss):
            Trade("T-1", "TEST", Side.LONG, 100.0, 105.0, 110.0, 200, START)
        with pytest.raises(InvalidStopLoss):
            Trade("T-1", "TEST", Side.SHORT, 100.0, 95.0, 90.0, 200, START)

    def test_close_long(self):
        trade = self.make_trade()
        pnl = trade.close(110.0, START + timedelta(days=2), "take_profit", 100000.0)
        assert pnl == 2000.0
        assert trade.pnl_percentage == pytest.approx(2.0)
        assert not trade.is_open
        assert trade.duration_seconds == 2 * 24 * 3600

    def test_close_short(self):
        trade = self.make_trade(Side.SHORT)
        assert trade.close(105.0, START, "stop_loss", 100000.0) == -1000.0

    def test_closed_trade_is_immutable(self):
        trade = self.make_trade()
        trade.close(100.0, START, "manual", 100000.0)
        with pytest.raises(TradeClosedError):
            trade.close(101.0, START, "manual", 100000.0)
        with pytest.raises(TradeClosedError):
            trade.modify_stop(99.0)
        with pytest.raises(TradeClosedError):
            trade.modify_target(120.0)


class TestStatistics:
    """Tests for drawdown and summary statistics."""

    def points(self, balances):
        return [EquityPoint(START + timedelta(days=i), b) for i, b in enumerate(balances)]

    def test_drawdown(self):
        dd, dd_pct = calculate_drawdown(self.points([100000, 110000, 99000, 105000]), 100000)
        assert dd == 11000
        assert dd_pct == pytest.approx(10.0)

    def test_drawdown_peak_seeded_with_initial_balance(self):
        dd, dd_pct = calculate_drawdown(self.points([90000, 95000]), 100000)
        assert dd == 10000
        assert dd_pct == pytest.approx(10.0)

    def test_drawdown_flat(self):
        assert calculate_drawdown(self.points([100000] * 5), 100000) == (0.0, 0.0)

    def test_profit_factor(self):
        assert profit_factor(300.0, 100.0) == 3.0
        assert math.isinf(profit_factor(300.0, 0.0))
        assert profit_factor(0.0, 0.0) == 0.0

    def test_calculate_statistics(self):
        trades = []
        for i, exit_price in enumerate([110.0, 95.0, 100.0, 105.0]):
            trade = Trade(f"T-{i}", "TEST", Side.LONG, 100.0, 95.0, 110.0, 100, START)
            trade.close(exit_price, START, "test", 100000.0)
            trades.append(trade)
        # Open trades are ignored
        trades.append(Trade("T-open", "TEST", Side.LONG, 100.0, 95.0, 110.0, 100, START))

        stats = calculate_statistics(trades, 100000.0, [])

        assert stats.total_trades == 4
        assert stats.winning_trades == 2
        # Breakeven counts as a loss
        assert stats.losing_trades == 2
        assert stats.win_rate == 0.5
        assert stats.average_win == 750.0
        assert stats.average_loss == 250.0
        assert stats.profit_factor == 3.0

    def test_statistics_are_deterministic(self):
        bars = trending_bars(overrides={15: {"low": 94.0}})
        result = asyncio.run(run_backtest(make_config(), ScriptedAdvisor(), bars))

        first = calculate_statistics(result.trades, 100000.0, result.equity_curve)
        second = calculate_statistics(result.trades, 100000.0, result.equity_curve)

        assert first == second
        assert first == result.statistics

    def test_infinite_profit_factor_serialized(self):
        stats = BacktestStatistics(total_trades=1, winning_trades=1, profit_factor=math.inf)
        assert stats.to_dict()["profit_factor"] == "inf"


class TestBacktestEngine:
    """End-to-end runs over synthetic bars."""

    def test_take_profit_run(self):
        """Buy at 100 on bar 10, target 115 touched on bar 20."""
        bars = trending_bars(overrides={20: {"high": 116.0}})
        sink = PaperExecutionSink()
        engine = BacktestEngine(make_config(), ScriptedAdvisor(), execution_sink=sink)

        result = asyncio.run(engine.run(bars))

        assert engine.state == EngineState.DONE
        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.id == "TEST-1"
        assert trade.size == 200
        assert trade.entry_time == bars[10].timestamp
        assert trade.exit_time == bars[20].timestamp
        assert trade.exit_price == 115.0
        assert trade.reason == "take_profit"
        assert trade.pnl == 3000.0

        assert result.final_balance == 103000.0
        assert result.statistics.win_rate == 1.0
        assert math.isinf(result.statistics.profit_factor)
        assert result.statistics.max_drawdown == 0.0

        # Seed point + bars 5..28 + final point
        assert len(result.equity_curve) == 26
        assert result.equity_curve[0].timestamp == bars[0].timestamp
        assert result.equity_curve[-1].balance == 103000.0
        assert len(result.analysis_history) == 25
        assert result.total_bars == 30

        assert [i.type for i in sink.intents_for("TEST-1")] == ["open", "close"]

    def test_stop_checked_before_target(self):
        """A bar spanning both stop and target closes at the stop."""
        bars = trending_bars(overrides={15: {"low": 94.0, "high": 116.0}})
        result = asyncio.run(run_backtest(make_config(), ScriptedAdvisor(), bars))

        trade = result.trades[0]
        assert trade.reason == "stop_loss"
        assert trade.exit_price == 95.0
        assert trade.pnl == -1000.0
        assert result.final_balance == 99000.0
        assert result.statistics.max_drawdown == 1000.0
        assert result.statistics.max_drawdown_percentage == pytest.approx(1.0)

    def test_equity_curve_tracks_realized_pnl(self):
        """Every equity point equals initial balance plus P&L of trades exited by then."""
        bars = trending_bars(overrides={12: {"low": 94.0}})
        advisor = LadderAdvisor({100.0: (95.0, 115.0), 102.5: (100.0, 107.5)})

        result = asyncio.run(run_backtest(make_config(), advisor, bars))

        assert [t.reason for t in result.trades] == ["stop_loss", "take_profit"]
        assert result.trades[0].exit_time == bars[12].timestamp
        assert result.trades[1].entry_time == bars[15].timestamp
        assert result.trades[1].exit_time == bars[23].timestamp

        for point in result.equity_curve:
            realized = sum(t.pnl for t in result.trades if t.exit_time <= point.timestamp)
            assert point.balance == pytest.approx(100000.0 + realized)

        assert result.final_balance == pytest.approx(100000.0 + sum(t.pnl for t in result.trades))

    def test_open_position_closed_at_end(self):
        """Positions still open after the last bar close at its close price."""
        result = asyncio.run(run_backtest(make_config(), ScriptedAdvisor(), trending_bars()))

        trade = result.trades[0]
        assert trade.reason == "end_of_backtest"
        assert trade.exit_price == 109.5
        assert trade.pnl == 1900.0
        assert result.final_balance == 101900.0
        assert result.equity_curve[-1].balance == 101900.0

    def test_flat_series_with_hold_advisor(self):
        bars = [
            Bar(START + timedelta(days=i), 100.0, 100.0, 100.0, 100.0, 1000.0)
            for i in range(30)
        ]
        result = asyncio.run(run_backtest(make_config(), HoldAdvisor(), bars))

        assert result.trades == ()
        assert result.final_balance == result.initial_balance
        assert result.statistics.max_drawdown == 0.0
        assert result.statistics.profit_factor == 0.0
        assert all(p.balance == 100000.0 for p in result.equity_curve)

    def test_low_confidence_skipped(self):
        """Recommendations below min_confidence are recorded but not traded."""
        advisor = ScriptedAdvisor(confidence=60.0)
        result = asyncio.run(run_backtest(make_config(), advisor, trending_bars()))

        assert result.trades == ()
        assert any(e.recommendation.action == "buy" for e in result.analysis_history)

    def test_analysis_interval_and_budget(self):
        result = asyncio.run(
            run_backtest(make_config(analysis_interval=5), HoldAdvisor(), trending_bars())
        )
        assert [e.timestamp for e in result.analysis_history] == [
            trending_bars()[i].timestamp for i in (5, 10, 15, 20, 25)
        ]

        result = asyncio.run(
            run_backtest(make_config(max_analyses=2), HoldAdvisor(), trending_bars())
        )
        assert len(result.analysis_history) == 2

    def test_advisory_failures_skip_bars(self):
        """A failing advisor never aborts the run."""
        advisor = FailingAdvisor()
        gateway = AdvisoryGateway(advisor, retry=RetryPolicy(max_retries=1, base_delay=0))
        result = asyncio.run(
            run_backtest(make_config(max_analyses=3), gateway, trending_bars())
        )

        assert result.trades == ()
        assert result.analysis_history == ()
        assert advisor.calls == 6
        assert gateway.failures == 3

    def test_manage_positions_closes_stalled_trade(self):
        """With management on, a trade with live R:R under 0.5 is closed."""
        sink = PaperExecutionSink()
        result = asyncio.run(
            run_backtest(
                make_config(manage_positions=True),
                ScriptedAdvisor(),
                trending_bars(),
                execution_sink=sink,
            )
        )

        trade = result.trades[0]
        assert trade.reason == "position_manager"
        assert trade.exit_time == START + timedelta(days=11)
        assert trade.pnl == 100.0
        assert [i.type for i in sink.intents_for("TEST-1")] == ["open", "close"]

    def test_position_manager_off_by_default(self):
        """The same stalled trade is left alone until the end of data."""
        config = make_config()
        assert config.manage_positions is False

        result = asyncio.run(run_backtest(config, ScriptedAdvisor(), trending_bars()))

        assert result.trades[0].reason == "end_of_backtest"

    def test_cancel(self):
        advisor = CancellingAdvisor()
        engine = BacktestEngine(make_config(), advisor)
        advisor.engine = engine

        with pytest.raises(BacktestCancelled) as exc:
            asyncio.run(engine.run(trending_bars()))

        assert engine.state == EngineState.CANCELLED
        assert exc.value.params["bars_processed"] == 3

    def test_no_bars_in_window(self):
        config = make_config(
            start_date=datetime(2025, 1, 1), end_date=datetime(2025, 2, 1)
        )
        engine = BacktestEngine(config, HoldAdvisor())

        with pytest.raises(InsufficientData) as exc:
            asyncio.run(engine.run(trending_bars()))

        assert engine.state == EngineState.FAILED
        assert exc.value.kind == "insufficient_data"

    def test_no_bars_and_no_provider(self):
        with pytest.raises(InsufficientData):
            asyncio.run(run_backtest(make_config(), HoldAdvisor()))

    def test_bars_from_market_data(self):
        provider = StaticMarketData(trending_bars())
        result = asyncio.run(
            run_backtest(make_config(bar_limit=500), HoldAdvisor(), market_data=provider)
        )

        assert provider.requests == [("TEST", "1Day", 500)]
        assert result.total_bars == 30

    def test_result_sink_failure_does_not_fail_run(self):
        result = asyncio.run(
            run_backtest(
                make_config(),
                HoldAdvisor(),
                trending_bars(),
                result_sink=BrokenResultSink(),
            )
        )
        assert result.final_balance == 100000.0

    def test_runs_are_independent(self):
        """Running the same engine twice gives the same result."""
        bars = trending_bars(overrides={20: {"high": 116.0}})
        engine = BacktestEngine(make_config(), ScriptedAdvisor())

        first = asyncio.run(engine.run(bars))
        second = asyncio.run(engine.run(bars))

        assert first.final_balance == second.final_balance == 103000.0
        assert len(second.trades) == 1

    def test_result_serialization(self, capsys):
        bars = trending_bars(overrides={20: {"high": 116.0}})
        result = asyncio.run(run_backtest(make_config(), ScriptedAdvisor(), bars))

        data = result.to_dict()
        assert data["final_balance"] == 103000.0
        assert data["statistics"]["profit_factor"] == "inf"
        assert data["trades"][0]["reason"] == "take_profit"
        assert "analysis_result" in data["analysis_history"][0]

        result.print_summary()
        out = capsys.readouterr().out
        assert "BACKTEST RESULTS: TEST" in out
        assert "∞" in out

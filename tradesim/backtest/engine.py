"""
Backtest Engine - Drives a simulation over historical bars.

Flow per bar: Exit check → Position management → Advisory → Risk Manager → Equity

The engine replays bars in order, closes positions whose stop or target was
touched, asks the advisor for a recommendation on sampled bars, sizes and
opens new positions through the RiskManager and records the equity curve.

States: Initializing → Running → Finalizing → Done
"""

import logging
import time
from collections.abc import Sequence
from enum import Enum

from tradesim.advisory import Advisor, AdvisoryGateway, AdvisoryRequest, Recommendation
from tradesim.analysis import analyze_market
from tradesim.backtest.models import (
    AnalysisEntry,
    BacktestConfig,
    BacktestResult,
    EquityPoint,
    Trade,
)
from tradesim.backtest.position_manager import PositionManager
from tradesim.backtest.statistics import calculate_statistics
from tradesim.core.errors import (
    AdvisoryUnavailable,
    BacktestCancelled,
    InsufficientData,
    InvalidRiskParameter,
    InvalidStopLoss,
)
from tradesim.core.models import Bar, Side
from tradesim.data import MarketDataProvider, filter_window
from tradesim.execution import ExecutionSink
from tradesim.risk import PositionSnapshot, RiskManager, RiskParameters
from tradesim.storage import ResultSink

logger = logging.getLogger(__name__)


class EngineState(Enum):
    """Lifecycle of one engine run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    FINALIZING = "finalizing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class BacktestEngine:
    """
    Runs one backtest.

    Owns the per-run simulation context (balance, open positions, equity
    curve). Nothing is shared between runs or engine instances.

    Usage:
        engine = BacktestEngine(config, StrategyAdvisor())
        result = await engine.run(bars)
    """

    def __init__(
        self,
        config: BacktestConfig,
        advisor: Advisor | AdvisoryGateway,
        execution_sink: ExecutionSink | None = None,
        result_sink: ResultSink | None = None,
        market_data: MarketDataProvider | None = None,
        risk_manager: RiskManager | None = None,
        position_manager: PositionManager | None = None,
    ) -> None:
        """
        Initialize the backtest engine.

        Args:
            config: Backtest configuration
            advisor: Recommendation source (wrapped in an AdvisoryGateway if needed)
            execution_sink: Optional sink that receives every trade intent
            result_sink: Optional persistence for the finished result
            market_data: Bar provider, used when run() is not given bars
            risk_manager: Sizing and validation (a fresh one per engine by default)
            position_manager: Stop/target refinement (used when config.manage_positions)
        """
        self.config = config
        self.gateway = (
            advisor
            if isinstance(advisor, AdvisoryGateway)
            else AdvisoryGateway(advisor, default_risk_percentage=config.risk_per_trade)
        )
        self.execution_sink = execution_sink
        self.result_sink = result_sink
        self.market_data = market_data
        self.risk_manager = risk_manager or RiskManager()
        self.position_manager = position_manager or PositionManager(self.risk_manager)

        self.state = EngineState.IDLE
        self._cancel_requested = False
        self._reset()

    def _reset(self) -> None:
        """Clear the simulation context for a fresh run."""
        self.balance = self.config.initial_balance
        self._open: list[Trade] = []
        self._trades: list[Trade] = []
        self._equity_curve: list[EquityPoint] = []
        self._analysis_history: list[AnalysisEntry] = []
        self._analysis_count = 0
        self._trade_counter = 0

    @property
    def open_positions(self) -> list[Trade]:
        """Currently open trades (a copy)."""
        return list(self._open)

    def cancel(self) -> None:
        """Request cancellation. Honoured before the next bar starts."""
        self._cancel_requested = True
        logger.info("Backtest cancellation requested")

    # ------------------------------------------------------------------
    # Initializing
    # ------------------------------------------------------------------

    def _load_bars(self, bars: Sequence[Bar] | None) -> list[Bar]:
        """Bars inside [start_date, end_date], fetched from market_data if not given."""
        config = self.config

        if bars is None:
            if self.market_data is None:
                raise InsufficientData(
                    "No bars supplied and no market data provider configured",
                    symbol=config.symbol,
                )
            # DataUnavailable from the provider propagates: fatal before the run starts
            bars = self.market_data.get_bars(
                config.symbol,
                config.timeframe,
                config.bar_limit,
                start=config.start_date,
                end=config.end_date,
            )

        ordered = sorted(bars, key=lambda b: b.timestamp)
        window = filter_window(ordered, config.start_date, config.end_date)
        if not window:
            raise InsufficientData(
                "No data available for the specified date range",
                symbol=config.symbol,
                start_date=config.start_date.isoformat(),
                end_date=config.end_date.isoformat(),
                bars_supplied=len(bars),
            )
        return window

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def _close_trade(self, trade: Trade, price: float, bar: Bar, reason: str) -> None:
        """Close a trade, realize its P&L and notify the execution sink."""
        pnl = trade.close(price, bar.timestamp, reason, self.balance)
        self.balance += pnl

        if self.execution_sink:
            self.execution_sink.close(trade.id)

        emoji = "🟢" if pnl > 0 else "🔴"
        logger.info(
            f"{emoji} Closed {trade.side.value} {trade.id} @ {price:,.2f} ({reason}): "
            f"P&L ${pnl:+,.2f}"
        )

    def _check_exits(self, bar: Bar) -> None:
        """
        Close positions whose stop or target was touched by this bar.

        Stop-loss is checked before take-profit: when a bar spans both, the
        trade is assumed to have stopped out.
        """
        for trade in self._open:
            if trade.is_long:
                if bar.low <= trade.stop_loss:
                    self._close_trade(trade, trade.stop_loss, bar, "stop_loss")
                elif bar.high >= trade.take_profit:
                    self._close_trade(trade, trade.take_profit, bar, "take_profit")
            else:
                if bar.high >= trade.stop_loss:
                    self._close_trade(trade, trade.stop_loss, bar, "stop_loss")
                elif bar.low <= trade.take_profit:
                    self._close_trade(trade, trade.take_profit, bar, "take_profit")

    def _remove_closed(self) -> None:
        self._open = [trade for trade in self._open if trade.is_open]

    def _window(self, bars: Sequence[Bar], index: int) -> list[Bar]:
        """Trailing analysis window ending at (and including) bars[index]."""
        return list(bars[max(0, index - self.config.analysis_window + 1) : index + 1])

    def _manage_positions(self, bars: Sequence[Bar], index: int) -> None:
        """Apply PositionManager decisions to every open trade."""
        bar = bars[index]
        window = self._window(bars, index)

        for trade in list(self._open):
            snapshot = PositionSnapshot.from_trade(trade, bar.close)
            decision = self.position_manager.analyze(snapshot, window)

            if decision.should_close:
                self._close_trade(trade, bar.close, bar, "position_manager")
                continue

            if decision.stop_adjustment:
                trade.modify_stop(decision.stop_adjustment.new_stop_loss)
                logger.info(
                    f"Stop for {trade.id} moved to {trade.stop_loss:,.2f} "
                    f"({decision.stop_adjustment.reason}, "
                    f"confidence {decision.stop_adjustment.confidence:.0f})"
                )

            if self.execution_sink:
                self.position_manager.apply(trade.id, snapshot, decision, self.execution_sink)

        self._remove_closed()

    def _should_analyze(self, index: int, start_index: int) -> bool:
        """Position slots free, bar sampled, and analysis budget left."""
        config = self.config
        if len(self._open) >= self.risk_manager.limits.max_positions:
            return False
        if (index - start_index) % config.analysis_interval != 0:
            return False
        if config.max_analyses is not None and self._analysis_count >= config.max_analyses:
            return False
        return True

    async def _analyze_and_enter(self, bars: Sequence[Bar], index: int) -> None:
        """Request a recommendation for this bar and open a position if it qualifies."""
        bar = bars[index]
        window = self._window(bars, index)
        signals = analyze_market(window)

        request = AdvisoryRequest(
            symbol=self.config.symbol,
            timeframe=self.config.timeframe,
            balance=self.balance,
            open_positions=tuple(self._open),
            technical_signals=signals,
            bars=tuple(window),
        )

        self._analysis_count += 1
        try:
            recommendation = await self.gateway.request(request)
        except AdvisoryUnavailable as e:
            logger.warning(f"Analysis error at {bar.timestamp.isoformat()}: {e}")
            return

        self._analysis_history.append(
            AnalysisEntry(
                timestamp=bar.timestamp,
                recommendation=recommendation,
                technical_signals=signals,
            )
        )

        if recommendation.action == "hold":
            return
        if recommendation.confidence < self.config.min_confidence:
            logger.debug(
                f"Skipping {recommendation.action}: confidence "
                f"{recommendation.confidence:.0f} < {self.config.min_confidence:.0f}"
            )
            return

        self._open_trade(recommendation, bar)

    def _open_trade(self, recommendation: Recommendation, bar: Bar) -> Trade | None:
        """Size and open a position from a recommendation, if the RiskManager accepts it."""
        rec = recommendation.recommendation
        if rec.entry_price is None or rec.stop_loss is None or rec.take_profit is None:
            logger.warning(f"Recommendation at {bar.timestamp.isoformat()} has no prices")
            return None

        params = RiskParameters(
            account_balance=self.balance,
            risk_percentage=rec.risk_percentage or self.config.risk_per_trade,
            entry_price=rec.entry_price,
            stop_loss=rec.stop_loss,
            take_profit=rec.take_profit,
        )

        check = self.risk_manager.validate_new_position(params, self._open)
        if not check:
            logger.info(f"Trade rejected at {bar.timestamp.isoformat()}: {check.reason}")
            return None

        try:
            sizing = self.risk_manager.calculate_position_size(params)
            if sizing.size <= 0:
                logger.info(f"Position size rounds to zero at {bar.timestamp.isoformat()}")
                return None

            self._trade_counter += 1
            trade = Trade(
                id=f"{self.config.symbol}-{self._trade_counter}",
                symbol=self.config.symbol,
                side=Side.from_action(rec.action),
                entry_price=params.entry_price,
                stop_loss=params.stop_loss,
                take_profit=params.take_profit,
                size=sizing.size,
                entry_time=bar.timestamp,
                risk_percentage=params.risk_percentage,
            )
        except (InvalidRiskParameter, InvalidStopLoss) as e:
            logger.warning(f"Trade skipped at {bar.timestamp.isoformat()}: {e}")
            return None

        self._open.append(trade)
        self._trades.append(trade)

        if self.execution_sink:
            self.execution_sink.open(
                trade.id,
                trade.symbol,
                trade.side,
                trade.size,
                trade.entry_price,
                trade.stop_loss,
                trade.take_profit,
            )

        logger.info(
            f"Opened {trade.side.value} {trade.id}: {trade.size} @ {trade.entry_price:,.2f} "
            f"(SL {trade.stop_loss:,.2f}, TP {trade.take_profit:,.2f}, "
            f"risk ${sizing.risk_amount:,.2f}, R:R {sizing.risk_reward_ratio:.2f})"
        )
        return trade

    def _record_equity(self, bar: Bar) -> None:
        """Record a point on the equity curve."""
        self._equity_curve.append(EquityPoint(timestamp=bar.timestamp, balance=self.balance))

    # ------------------------------------------------------------------
    # Finalizing
    # ------------------------------------------------------------------

    def _finalize(self, bars: Sequence[Bar], execution_time: float) -> BacktestResult:
        """Force-close remaining positions, compute statistics and build the result."""
        last_bar = bars[-1]
        for trade in self._open:
            self._close_trade(trade, last_bar.close, last_bar, "end_of_backtest")
        self._remove_closed()
        self._record_equity(last_bar)

        statistics = calculate_statistics(
            self._trades, self.config.initial_balance, self._equity_curve
        )

        return BacktestResult(
            symbol=self.config.symbol,
            timeframe=self.config.timeframe,
            start_date=self.config.start_date,
            end_date=self.config.end_date,
            initial_balance=self.config.initial_balance,
            final_balance=self.balance,
            trades=tuple(self._trades),
            equity_curve=tuple(self._equity_curve),
            analysis_history=tuple(self._analysis_history),
            statistics=statistics,
            total_bars=len(bars),
            execution_time_seconds=execution_time,
        )

    def _publish(self, result: BacktestResult) -> None:
        """Hand the result to the result sink. Failures there never fail the run."""
        if self.result_sink is None:
            return
        try:
            self.result_sink.save(result)
        except Exception as e:
            logger.error(f"Result sink failed: {e}")

    async def run(self, bars: Sequence[Bar] | None = None) -> BacktestResult:
        """
        Run the backtest.

        Args:
            bars: Historical bars (fetched from market_data when omitted)

        Returns:
            BacktestResult with trades, equity curve and statistics

        Raises:
            ConfigurationError / InsufficientData: No bars in the configured window
            DataUnavailable: The market data provider has no data
            BacktestCancelled: cancel() was called during the run
        """
        start_time = time.time()
        config = self.config

        self.state = EngineState.INITIALIZING
        self._cancel_requested = False
        self._reset()
        logger.info(
            f"Starting backtest: {config.symbol} {config.timeframe} "
            f"{config.start_date.isoformat()} to {config.end_date.isoformat()}"
        )

        try:
            window = self._load_bars(bars)
        except Exception:
            self.state = EngineState.FAILED
            raise
        logger.info(f"Processing {len(window)} bars")

        self.state = EngineState.RUNNING
        start_index = min(config.warmup_bars, len(window) - 1)
        if start_index > 0:
            self._equity_curve.append(
                EquityPoint(timestamp=window[0].timestamp, balance=self.balance)
            )

        last_index = len(window) - 1
        for index in range(start_index, len(window)):
            if self._cancel_requested:
                self.state = EngineState.CANCELLED
                logger.info(f"Backtest cancelled at bar {index}/{len(window)}")
                raise BacktestCancelled(bars_processed=index - start_index)

            bar = window[index]

            # 1-2. Exits first (stop-loss, take-profit)
            self._check_exits(bar)
            self._remove_closed()

            if config.manage_positions and self._open:
                self._manage_positions(window, index)

            # 3-4. Advisory and new entries
            if self._should_analyze(index, start_index):
                await self._analyze_and_enter(window, index)

            # 5. The last bar's point is recorded after the final closes
            if index < last_index:
                self._record_equity(bar)

        self.state = EngineState.FINALIZING
        result = self._finalize(window, time.time() - start_time)
        self._publish(result)
        self.state = EngineState.DONE

        stats = result.statistics
        logger.info(
            f"Backtest complete: {stats.total_trades} trades, "
            f"P&L: {result.pnl_pct:+.2f}%, "
            f"Runtime: {result.execution_time_seconds:.1f}s"
        )

        return result


async def run_backtest(
    config: BacktestConfig,
    advisor: Advisor | AdvisoryGateway,
    bars: Sequence[Bar] | None = None,
    **kwargs,
) -> BacktestResult:
    """
    Convenience function to run a backtest.

    Usage:
        result = await run_backtest(config, StrategyAdvisor(), bars)

    Args:
        config: Backtest configuration
        advisor: Recommendation source
        bars: Historical bars (or pass market_data=... in kwargs)
        **kwargs: Extra BacktestEngine arguments

    Returns:
        BacktestResult
    """
    engine = BacktestEngine(config, advisor, **kwargs)
    return await engine.run(bars)

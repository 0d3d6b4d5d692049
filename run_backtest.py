#!/usr/bin/env python3
"""
Run a backtest.

Usage:
    python run_backtest.py --data data/historical/AAPL_1Day.csv --symbol AAPL \\
        --start 2024-01-01 --end 2024-12-31              # Rule-based advisor (default)
    python run_backtest.py --symbol AAPL --start 2024-01-01 --end 2024-06-30
                                                         # Bars from Alpaca (needs APCA_* keys)
    python run_backtest.py --advisor ollama ...          # LLM advisor (requires Ollama)
    python run_backtest.py --strategies mean_reversion   # Pick rule-based strategies
    python run_backtest.py --manage-positions            # Trail stops with the PositionManager
    python run_backtest.py --output data/backtests       # Save the result as JSON

Advisors:
    1. strategy (default): EMA pullback / mean reversion rules, deterministic
    2. ollama: Local LLM via Ollama, recommendations through the advisory gateway
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

from tradesim.advisory import AdvisoryGateway, OllamaAdvisor, RateLimiter, RetryPolicy
from tradesim.backtest import BacktestConfig, BacktestEngine, BacktestResult
from tradesim.core import DEFAULT_ENGINE, Settings, TradeSimError
from tradesim.data import AlpacaMarketData, CsvBarSource
from tradesim.execution import PaperExecutionSink
from tradesim.storage import JsonResultSink
from tradesim.strategies import StrategyAdvisor, get_strategy, list_strategies

console = Console()


def setup_logging(log_file: str, verbose: bool) -> None:
    """Log to a file; mirror to the console with --verbose."""
    handlers: list[logging.Handler] = [logging.FileHandler(log_file)]
    if verbose:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=handlers,
    )


def parse_date(value: str) -> datetime:
    """argparse type for ISO dates/datetimes."""
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date: {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a backtest over historical bars")
    parser.add_argument("--symbol", "-s", required=True, help="Instrument symbol (e.g., AAPL)")
    parser.add_argument("--timeframe", "-t", default="1Day", help="Bar timeframe (default: 1Day)")
    parser.add_argument("--start", type=parse_date, required=True, help="Start date (ISO)")
    parser.add_argument("--end", type=parse_date, required=True, help="End date (ISO)")
    parser.add_argument(
        "--data",
        "-d",
        help="Path to CSV bar file (default: fetch from Alpaca)",
    )
    parser.add_argument(
        "--balance",
        "-b",
        type=float,
        default=DEFAULT_ENGINE.initial_balance,
        help=f"Starting balance (default: {DEFAULT_ENGINE.initial_balance:,.0f})",
    )
    parser.add_argument(
        "--risk",
        type=float,
        default=DEFAULT_ENGINE.risk_per_trade,
        help="Risk %% per trade when the advisor gives none (default: 1.0)",
    )
    parser.add_argument(
        "--warmup",
        type=int,
        default=DEFAULT_ENGINE.warmup_bars,
        help="Bars skipped before the first analysis (default: 20)",
    )
    parser.add_argument(
        "--window",
        type=int,
        default=DEFAULT_ENGINE.analysis_window,
        help="Bars in each analysis window (default: 20)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=1,
        help="Analyze every Nth bar (default: 1)",
    )
    parser.add_argument(
        "--max-analyses",
        type=int,
        help="Stop calling the advisor after this many analyses",
    )
    parser.add_argument(
        "--advisor",
        "-a",
        choices=["strategy", "ollama"],
        default="strategy",
        help="Recommendation source (default: strategy)",
    )
    parser.add_argument(
        "--strategies",
        nargs="+",
        default=list_strategies(),
        choices=list_strategies(),
        help="Rule-based strategies for --advisor strategy (default: all)",
    )
    parser.add_argument(
        "--manage-positions",
        action="store_true",
        help=(
            "Run the PositionManager on every bar (stop adjustments, close signals). "
            "Off by default: trades exit only at stop-loss, take-profit or end of data"
        ),
    )
    parser.add_argument("--output", "-o", help="Directory to save the result as JSON")
    parser.add_argument("--env-file", help="Path to .env file (default: ./.env)")
    parser.add_argument(
        "--log-file", default="backtest.log", help="Log file (default: backtest.log)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log to the console too")
    return parser


def print_trades(result: BacktestResult, limit: int = 10) -> None:
    """Render the most recent trades as a table."""
    if not result.trades:
        console.print("[dim]No trades[/dim]")
        return

    table = Table(title=f"📜 RECENT TRADES (last {min(limit, len(result.trades))})")
    table.add_column("ID")
    table.add_column("Side")
    table.add_column("Size", justify="right")
    table.add_column("Entry", justify="right")
    table.add_column("Exit", justify="right")
    table.add_column("Reason")
    table.add_column("P&L", justify="right")

    for trade in result.trades[-limit:]:
        pnl = trade.pnl or 0.0
        color = "green" if pnl > 0 else "red"
        table.add_row(
            trade.id,
            trade.side.value.upper(),
            f"{trade.size:,.0f}",
            f"${trade.entry_price:,.2f}",
            f"${trade.exit_price:,.2f}" if trade.exit_price is not None else "-",
            trade.reason or "-",
            f"[{color}]${pnl:+,.2f}[/{color}]",
        )

    console.print(table)


async def main() -> int:
    args = build_parser().parse_args()
    setup_logging(args.log_file, args.verbose)
    settings = Settings.from_env(args.env_file)

    # Bars
    if args.data:
        if not Path(args.data).exists():
            console.print(f"❌ Data file not found: {args.data}")
            return 1
        market_data = CsvBarSource(args.data)
    elif settings.has_alpaca_credentials:
        market_data = AlpacaMarketData(
            settings.alpaca_key_id,  # type: ignore[arg-type]
            settings.alpaca_secret_key,  # type: ignore[arg-type]
            base_url=settings.alpaca_data_url,
        )
    else:
        console.print("❌ No --data file and no APCA_API_KEY_ID / APCA_API_SECRET_KEY set")
        return 1

    # Advisor
    ollama: OllamaAdvisor | None = None
    if args.advisor == "ollama":
        ollama = OllamaAdvisor(
            base_url=settings.ollama_url,
            model=settings.ollama_model,
            timeout=settings.advisory_timeout,
        )
        if not await ollama.is_available():
            console.print(
                f"⚠️  Ollama not reachable at {settings.ollama_url} (start with: ollama serve)"
            )
        advisor = ollama
    else:
        advisor = StrategyAdvisor([get_strategy(name) for name in args.strategies])

    gateway = AdvisoryGateway(
        advisor,
        retry=RetryPolicy(max_retries=settings.advisory_max_retries),
        rate_limiter=(
            RateLimiter(settings.advisory_min_interval)
            if settings.advisory_min_interval > 0
            else None
        ),
        timeout=settings.advisory_timeout,
        default_risk_percentage=args.risk,
    )

    try:
        config = BacktestConfig(
            symbol=args.symbol,
            timeframe=args.timeframe,
            start_date=args.start,
            end_date=args.end,
            initial_balance=args.balance,
            risk_per_trade=args.risk,
            warmup_bars=args.warmup,
            analysis_window=args.window,
            analysis_interval=args.interval,
            max_analyses=args.max_analyses,
            manage_positions=args.manage_positions,
        )
    except TradeSimError as e:
        console.print(f"❌ {e}")
        return 1

    print(f"\n{'='*60}")
    print("🚀 BACKTEST CONFIGURATION")
    print("=" * 60)
    print(f"  Symbol:    {config.symbol} ({config.timeframe})")
    print(f"  Period:    {config.start_date.date()} to {config.end_date.date()}")
    print(f"  Data:      {args.data or 'Alpaca'}")
    print(f"  Balance:   ${config.initial_balance:,.2f}")
    print(f"  Advisor:   {args.advisor}")
    if args.advisor == "strategy":
        print(f"  Rules:     {', '.join(args.strategies)}")
    print(f"  Positions: {'managed' if config.manage_positions else 'static stop/target'}")
    print("=" * 60)

    engine = BacktestEngine(
        config,
        gateway,
        execution_sink=PaperExecutionSink(),
        result_sink=JsonResultSink(args.output) if args.output else None,
        market_data=market_data,
    )

    print("\n⏳ Running backtest...")
    try:
        result = await engine.run()
    except TradeSimError as e:
        console.print(f"❌ {e.kind}: {e}")
        logging.getLogger(__name__).error(f"Backtest failed: {e.to_dict()}")
        return 1
    finally:
        if ollama:
            await ollama.close()

    result.print_summary()
    print_trades(result)
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()

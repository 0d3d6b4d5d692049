"""
JSON result sink.

Writes finished backtest results to disk, one file per run, named after the
symbol, timeframe and the time the result was saved.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from tradesim.backtest.models import BacktestResult

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    """Receives a finished BacktestResult for persistence."""

    def save(self, result: "BacktestResult") -> object: ...


class JsonResultSink:
    """
    Persists results as pretty-printed JSON.

    Usage:
        sink = JsonResultSink("data/backtests")
        path = sink.save(result)
        data = JsonResultSink.load(path)
    """

    def __init__(self, directory: str | Path = "data/backtests"):
        self.directory = Path(directory)
        self.saved: list[Path] = []

    def save(self, result: "BacktestResult") -> Path:
        """
        Write a result to a new JSON file.

        Args:
            result: Finished backtest result

        Returns:
            Path of the written file
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.directory / f"backtest_{result.symbol}_{result.timeframe}_{timestamp}.json"

        # Same-second runs get a numeric suffix
        counter = 1
        while path.exists():
            path = path.with_name(
                f"backtest_{result.symbol}_{result.timeframe}_{timestamp}_{counter}.json"
            )
            counter += 1

        with path.open("w") as f:
            json.dump(result.to_dict(), f, indent=2)

        self.saved.append(path)
        logger.info(f"Saved backtest result to {path}")
        return path

    @staticmethod
    def load(path: str | Path) -> dict:
        """Read a saved result back as a dict."""
        with Path(path).open() as f:
            return json.load(f)

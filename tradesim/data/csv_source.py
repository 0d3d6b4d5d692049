"""
CSV bar source for offline backtests.

Reads a CSV with timestamp, open, high, low, close, volume columns (the
format written by save_csv and by most exchange exporters).
"""

import csv
import logging
from collections.abc import Iterator, Sequence
from datetime import datetime
from pathlib import Path

from tradesim.core.errors import DataUnavailable
from tradesim.core.models import Bar
from tradesim.data.provider import filter_window

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class CsvBarSource:
    """
    Reads historical bars from a CSV file.

    Usage:
        source = CsvBarSource("data/historical/AAPL_1Day.csv")
        bars = source.get_bars("AAPL", "1Day", limit=500)
    """

    def __init__(self, filepath: str | Path):
        """
        Initialize with path to CSV file.

        Args:
            filepath: Path to the CSV file

        Raises:
            DataUnavailable: File missing or contains no bars
        """
        self.filepath = Path(filepath)
        if not self.filepath.exists():
            raise DataUnavailable(
                f"Historical data file not found: {filepath}", path=str(filepath)
            )

        self._bars: list[Bar] = []
        self._load_data()

    def _load_data(self) -> None:
        """Load CSV data into memory, sorted by timestamp."""
        with self.filepath.open(newline="") as f:
            reader = csv.DictReader(f)
            for line_number, row in enumerate(reader, start=2):
                try:
                    self._bars.append(Bar.from_dict(row))
                except (KeyError, ValueError) as e:
                    raise DataUnavailable(
                        f"Malformed row {line_number} in {self.filepath}: {e}",
                        path=str(self.filepath),
                        line=line_number,
                    ) from e

        if not self._bars:
            raise DataUnavailable(f"No data found in {self.filepath}", path=str(self.filepath))

        self._bars.sort(key=lambda bar: bar.timestamp)
        logger.info(f"Loaded {len(self._bars)} bars from {self.filepath}")

    @property
    def start_time(self) -> datetime:
        """Get the start timestamp of the data."""
        return self._bars[0].timestamp

    @property
    def end_time(self) -> datetime:
        """Get the end timestamp of the data."""
        return self._bars[-1].timestamp

    @property
    def bar_count(self) -> int:
        """Get the number of bars in the data."""
        return len(self._bars)

    def stream(self) -> Iterator[Bar]:
        """Yield bars in chronological order."""
        yield from self._bars

    def get_bars(
        self,
        symbol: str,
        timeframe: str,
        limit: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        """
        Bars inside the window, at most `limit` of the most recent ones.

        The file holds a single instrument and timeframe; symbol and
        timeframe are accepted for interface compatibility.

        Raises:
            DataUnavailable: No bars inside the window
        """
        bars = filter_window(self._bars, start, end)
        if not bars:
            raise DataUnavailable(
                f"No bars in {self.filepath.name} for the requested window",
                symbol=symbol,
                start=start.isoformat() if start else None,
                end=end.isoformat() if end else None,
            )
        return bars[-limit:] if limit > 0 else bars

    def __repr__(self) -> str:
        return (
            f"CsvBarSource({self.filepath.name}, "
            f"{self.bar_count} bars, "
            f"{self.start_time.strftime('%Y-%m-%d %H:%M')} to "
            f"{self.end_time.strftime('%Y-%m-%d %H:%M')})"
        )


def save_csv(bars: Sequence[Bar], filepath: str | Path) -> Path:
    """
    Write bars to CSV.

    Args:
        bars: Bars to save
        filepath: Output path (parent directories are created)

    Returns:
        Path written
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for bar in bars:
            writer.writerow(bar.to_dict())

    logger.info(f"Saved {len(bars)} bars to {path}")
    return path

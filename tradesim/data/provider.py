"""
Market data provider interface.
"""

from datetime import datetime, timezone
from typing import Protocol

from tradesim.core.models import Bar


class MarketDataProvider(Protocol):
    """Anything that can supply historical bars for a symbol."""

    def get_bars(
        self,
        symbol: str,
        timeframe: str,
        limit: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        """
        Fetch bars in ascending timestamp order.

        Raises:
            DataUnavailable: The source has no data for the window
        """
        ...


def align_timezone(value: datetime, reference: datetime) -> datetime:
    """Make `value` comparable with `reference` (naive datetimes are taken as UTC)."""
    if reference.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    if reference.tzinfo is None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def filter_window(bars: list[Bar], start: datetime | None, end: datetime | None) -> list[Bar]:
    """Bars with start <= timestamp <= end (open bounds when None)."""
    if not bars:
        return []

    reference = bars[0].timestamp
    if start is not None:
        start = align_timezone(start, reference)
    if end is not None:
        end = align_timezone(end, reference)

    return [
        bar
        for bar in bars
        if (start is None or bar.timestamp >= start) and (end is None or bar.timestamp <= end)
    ]

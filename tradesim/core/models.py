"""
Core market data models shared by every layer.

Bars are produced externally (CSV files, a market data API) and are never
mutated once loaded.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Side(Enum):
    """Trade direction."""

    LONG = "long"  # Profit when price goes UP
    SHORT = "short"  # Profit when price goes DOWN

    @classmethod
    def from_action(cls, action: str) -> "Side":
        """Map a recommendation action ("buy"/"sell") to a side."""
        if action == "buy":
            return cls.LONG
        if action == "sell":
            return cls.SHORT
        raise ValueError(f"No side for action: {action}")


@dataclass(frozen=True)
class Bar:
    """A single OHLCV sample for a fixed time interval."""

    timestamp: datetime  # Start of the interval
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def is_bullish(self) -> bool:
        """Returns True if close >= open (green candle)."""
        return self.close >= self.open

    @property
    def range(self) -> float:
        """High-low range of the bar."""
        return self.high - self.low

    @classmethod
    def from_dict(cls, data: dict) -> "Bar":
        """Create a bar from a dict with an ISO timestamp and numeric OHLCV fields."""
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            timestamp=timestamp,
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume", 0.0) or 0.0),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def closes(bars: list[Bar]) -> list[float]:
    """Close prices of a bar sequence."""
    return [bar.close for bar in bars]


def volumes(bars: list[Bar]) -> list[float]:
    """Volumes of a bar sequence."""
    return [bar.volume for bar in bars]

"""
Base types for rule-based strategies.

A strategy looks at a bar window and returns a StrategySignal: a direction,
an entry, a stop and a confidence score. StrategyAdvisor turns valid signals
into Recommendations so they can stand in for an LLM advisor.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from tradesim.core.models import Bar

Direction = Literal["long", "short", "none"]


@dataclass(frozen=True)
class StrategySignal:
    """Output of one strategy for one bar window."""

    strategy: str  # Strategy name ("ema_pullback", "mean_reversion")
    direction: Direction
    confidence: float  # 0-100
    reason: str
    is_valid: bool = False  # Confidence reached the strategy's threshold
    entry: float | None = None
    stop_loss: float | None = None

    @classmethod
    def none(cls, strategy: str, reason: str, confidence: float = 0.0) -> "StrategySignal":
        """A signal that does not trade."""
        return cls(strategy=strategy, direction="none", confidence=confidence, reason=reason)


class Strategy(Protocol):
    """A deterministic signal generator over a bar window."""

    name: str
    min_confidence: float

    def analyze(self, bars: Sequence[Bar]) -> StrategySignal: ...


def average_volume(bars: Sequence[Bar]) -> float:
    """Mean volume of a bar slice (0 for an empty slice)."""
    return sum(bar.volume for bar in bars) / len(bars) if bars else 0.0

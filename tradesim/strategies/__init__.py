"""
Trading Strategies Module.

Deterministic, rule-based signal generators and the advisor that wraps them.

Available strategies:
- ema_pullback: Pullback to EMA20/EMA50 in the direction of the EMA trend
- mean_reversion: Fade closes outside the Bollinger Bands at RSI extremes

Usage:
    from tradesim.strategies import StrategyAdvisor, get_strategy

    advisor = StrategyAdvisor([get_strategy("ema_pullback")])
"""

from tradesim.strategies.advisor import StrategyAdvisor
from tradesim.strategies.base import Strategy, StrategySignal
from tradesim.strategies.ema_pullback import EMAPullbackStrategy
from tradesim.strategies.mean_reversion import MeanReversionStrategy

# Registry of all strategies
_STRATEGIES: dict[str, type] = {
    "ema_pullback": EMAPullbackStrategy,
    "mean_reversion": MeanReversionStrategy,
}


def get_strategy(name: str) -> Strategy:
    """
    Create a strategy by name.

    Args:
        name: Strategy name (e.g., "ema_pullback")

    Returns:
        A new strategy instance with default thresholds

    Raises:
        ValueError: If strategy name is not found
    """
    if name not in _STRATEGIES:
        available = ", ".join(_STRATEGIES.keys())
        raise ValueError(f"Unknown strategy: {name}. Available: {available}")
    return _STRATEGIES[name]()


def list_strategies() -> list[str]:
    """Get names of all available strategies."""
    return list(_STRATEGIES.keys())


__all__ = [
    "EMAPullbackStrategy",
    "MeanReversionStrategy",
    "Strategy",
    "StrategyAdvisor",
    "StrategySignal",
    "get_strategy",
    "list_strategies",
]

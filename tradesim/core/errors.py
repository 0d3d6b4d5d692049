"""Error types for the simulation core.

Every error carries a machine-readable ``kind`` and the offending parameters
so callers can surface a structured error object instead of a bare message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class TradeSimError(Exception):
    """Base error with a kind tag and the parameters that caused it."""

    message: str
    kind: str = "tradesim_error"
    params: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for logs and API responses."""
        return {"kind": self.kind, "message": self.message, "params": dict(self.params)}


class ConfigurationError(TradeSimError):
    """Raised for a bad run configuration (fatal, aborts before a run starts)."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message=message, kind="configuration_error", params=params)


class InsufficientData(ConfigurationError):
    """Raised when no bars fall inside the requested backtest window."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message, **params)
        self.kind = "insufficient_data"


class DataUnavailable(TradeSimError):
    """Raised by a market data provider that has no data for a window."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message=message, kind="data_unavailable", params=params)


class InvalidRiskParameter(TradeSimError):
    """Raised when a risk percentage is outside the allowed range."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message=message, kind="invalid_risk_parameter", params=params)


class InvalidStopLoss(TradeSimError):
    """Raised when a stop-loss is unusable (equal to entry, or on the wrong side)."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message=message, kind="invalid_stop_loss", params=params)


class TradeClosedError(TradeSimError):
    """Raised when something tries to mutate a trade that is already closed."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message=message, kind="trade_closed", params=params)


class AdvisoryUnavailable(TradeSimError):
    """Raised when no usable recommendation could be obtained for a bar."""

    def __init__(self, message: str, **params: Any) -> None:
        super().__init__(message=message, kind="advisory_unavailable", params=params)


class BacktestCancelled(TradeSimError):
    """Raised when a run is aborted between bars."""

    def __init__(self, message: str = "Backtest cancelled", **params: Any) -> None:
        super().__init__(message=message, kind="backtest_cancelled", params=params)

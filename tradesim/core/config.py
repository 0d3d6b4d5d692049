"""
Trading limits, thresholds and environment settings.

Centralizes all magic numbers and adjustable parameters for easy tuning.
Secrets and service endpoints come from the environment (``.env`` supported).
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class RiskLimits:
    """Portfolio-wide risk limits enforced by the RiskManager.

    Percentages are expressed in percent (1.0 = 1% of account balance).
    """

    # Per-trade risk budget range
    min_risk_percentage: float = 0.5
    max_risk_percentage: float = 2.0

    # Sum of risk across all open positions plus the new one
    max_total_risk_percentage: float = 6.0

    # Maximum concurrent open positions
    max_positions: int = 3

    # Acceptable reward / risk range for a new position
    min_risk_reward: float = 1.0
    max_risk_reward: float = 4.0


@dataclass(frozen=True)
class PositionLimits:
    """Thresholds used by the PositionManager."""

    # Minimum confidence (0-100) before a stop adjustment is emitted
    min_stop_confidence: float = 70.0

    # Close the position when live reward/risk falls below this
    min_live_risk_reward: float = 0.5

    # Bars searched for a higher low / lower high
    stop_search_bars: int = 10

    # Take-profit ladder: risk multiples and % of position closed at each
    take_profit_multiples: tuple[float, ...] = (1.0, 2.0, 3.0)
    take_profit_allocations: tuple[float, ...] = (40.0, 30.0, 30.0)

    # Keep take-profit targets this far inside an opposing level
    level_buffer_pct: float = 0.5

    # Pivot detection half-window
    pivot_lookback: int = 5


@dataclass(frozen=True)
class EngineDefaults:
    """Defaults for a backtest run."""

    initial_balance: float = 100000.0
    risk_per_trade: float = 1.0  # % of balance when the recommendation has none
    warmup_bars: int = 20  # History needed before the first analysis
    analysis_window: int = 20  # Trailing bars handed to the advisor
    min_confidence: float = 75.0  # Recommendation confidence needed to open


DEFAULT_RISK_LIMITS = RiskLimits()
DEFAULT_POSITION_LIMITS = PositionLimits()
DEFAULT_ENGINE = EngineDefaults()


@dataclass
class Settings:
    """Service endpoints and credentials for the external collaborators."""

    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "mistral"
    alpaca_key_id: str | None = None
    alpaca_secret_key: str | None = None
    alpaca_data_url: str = "https://data.alpaca.markets"
    advisory_timeout: float = 30.0
    advisory_max_retries: int = 3
    advisory_min_interval: float = 0.0  # Seconds between advisory calls

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Settings":
        """
        Load settings from environment variables.

        Args:
            env_file: Optional path to a .env file (defaults to ./.env if present)

        Returns:
            Settings populated from the environment
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        return cls(
            ollama_url=os.getenv("OLLAMA_URL", cls.ollama_url),
            ollama_model=os.getenv("OLLAMA_MODEL", cls.ollama_model),
            alpaca_key_id=os.getenv("APCA_API_KEY_ID"),
            alpaca_secret_key=os.getenv("APCA_API_SECRET_KEY"),
            alpaca_data_url=os.getenv("APCA_DATA_URL", cls.alpaca_data_url),
            advisory_timeout=float(os.getenv("ADVISORY_TIMEOUT", cls.advisory_timeout)),
            advisory_max_retries=int(os.getenv("ADVISORY_MAX_RETRIES", cls.advisory_max_retries)),
            advisory_min_interval=float(
                os.getenv("ADVISORY_MIN_INTERVAL", cls.advisory_min_interval)
            ),
        )

    @property
    def has_alpaca_credentials(self) -> bool:
        """True if both Alpaca keys are configured."""
        return bool(self.alpaca_key_id and self.alpaca_secret_key)

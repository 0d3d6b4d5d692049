"""
Recommendation contract for the advisory service.

The advisor is a black box: all the engine relies on is this structure and
the numeric bounds enforced by validate_recommendation().
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal

from tradesim.core.config import DEFAULT_ENGINE, DEFAULT_RISK_LIMITS, RiskLimits
from tradesim.core.errors import AdvisoryUnavailable
from tradesim.risk.models import ValidationResult

Action = Literal["buy", "sell", "hold"]
Trend = Literal["bullish", "bearish", "neutral"]

VALID_ACTIONS = ("buy", "sell", "hold")
VALID_TRENDS = ("bullish", "bearish", "neutral")

# ```json ... ``` fences some models wrap their answer in
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _optional_float(data: dict, key: str) -> float | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise AdvisoryUnavailable(
            f"Recommendation field '{key}' is not a number", field=key, value=value
        ) from e


def _float_list(values: Any, key: str) -> list[float]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise AdvisoryUnavailable(f"Recommendation field '{key}' must be a list", field=key)
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise AdvisoryUnavailable(
            f"Recommendation field '{key}' contains a non-numeric level", field=key
        ) from e


@dataclass(frozen=True)
class KeyLevels:
    """Support and resistance levels identified by the advisor."""

    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class SignalFlags:
    """Setups the advisor saw in the window."""

    ema_pullback: bool = False
    mean_reversion: bool = False
    breakout: bool = False


@dataclass(frozen=True)
class ChartPattern:
    """A named pattern and where it sits in the window."""

    name: str
    confidence: float
    start_index: int | None = None
    end_index: int | None = None


@dataclass(frozen=True)
class TradeRecommendation:
    """The actionable part of a recommendation."""

    action: Action
    entry_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    risk_percentage: float | None = None
    reasoning: str | None = None
    timeframe: str | None = None

    @property
    def is_actionable(self) -> bool:
        """True for buy/sell with all three prices present."""
        return (
            self.action != "hold"
            and self.entry_price is not None
            and self.stop_loss is not None
            and self.take_profit is not None
        )

    @property
    def risk_reward_ratio(self) -> float | None:
        """Reward / risk distance from entry, None if prices are missing or risk is 0."""
        if self.entry_price is None or self.stop_loss is None or self.take_profit is None:
            return None
        risk = abs(self.entry_price - self.stop_loss)
        if risk == 0:
            return None
        return abs(self.take_profit - self.entry_price) / risk


@dataclass(frozen=True)
class Recommendation:
    """Full advisory output for one analysis window."""

    trend: Trend
    confidence: float  # 0-100
    recommendation: TradeRecommendation
    key_levels: KeyLevels = field(default_factory=KeyLevels)
    signals: SignalFlags = field(default_factory=SignalFlags)
    patterns: list[ChartPattern] = field(default_factory=list)

    @property
    def action(self) -> Action:
        return self.recommendation.action

    @classmethod
    def hold(cls, reasoning: str = "No setup", trend: Trend = "neutral") -> "Recommendation":
        """A recommendation to do nothing."""
        return cls(
            trend=trend,
            confidence=0.0,
            recommendation=TradeRecommendation(action="hold", reasoning=reasoning),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        """
        Build a recommendation from decoded JSON.

        Only the structure is checked here; numeric bounds are checked by
        validate_recommendation().

        Raises:
            AdvisoryUnavailable: Missing or malformed fields
        """
        if not isinstance(data, dict):
            raise AdvisoryUnavailable("Recommendation must be a JSON object")

        trend = data.get("trend")
        if trend not in VALID_TRENDS:
            raise AdvisoryUnavailable(f"Invalid trend: {trend!r}", field="trend", value=trend)

        if data.get("confidence") is None:
            raise AdvisoryUnavailable("Recommendation has no confidence", field="confidence")
        confidence = _optional_float(data, "confidence")

        rec = data.get("recommendation")
        if not isinstance(rec, dict):
            raise AdvisoryUnavailable(
                "Recommendation has no recommendation block", field="recommendation"
            )
        action = rec.get("action")
        if action not in VALID_ACTIONS:
            raise AdvisoryUnavailable(f"Invalid action: {action!r}", field="action", value=action)

        levels = data.get("key_levels") or {}
        signals = data.get("signals") or {}
        patterns = []
        for pattern in data.get("patterns") or []:
            if not isinstance(pattern, dict) or "name" not in pattern:
                continue
            location = pattern.get("location") or {}
            patterns.append(
                ChartPattern(
                    name=str(pattern["name"]),
                    confidence=float(pattern.get("confidence", 0) or 0),
                    start_index=location.get("start_index"),
                    end_index=location.get("end_index"),
                )
            )

        return cls(
            trend=trend,
            confidence=confidence,  # type: ignore[arg-type]
            recommendation=TradeRecommendation(
                action=action,
                entry_price=_optional_float(rec, "entry_price"),
                stop_loss=_optional_float(rec, "stop_loss"),
                take_profit=_optional_float(rec, "take_profit"),
                risk_percentage=_optional_float(rec, "risk_percentage"),
                reasoning=rec.get("reasoning"),
                timeframe=rec.get("timeframe"),
            ),
            key_levels=KeyLevels(
                support=_float_list(levels.get("support"), "key_levels.support"),
                resistance=_float_list(levels.get("resistance"), "key_levels.resistance"),
            ),
            signals=SignalFlags(
                ema_pullback=bool(signals.get("ema_pullback", False)),
                mean_reversion=bool(signals.get("mean_reversion", False)),
                breakout=bool(signals.get("breakout", False)),
            ),
            patterns=patterns,
        )

    @classmethod
    def from_text(cls, text: str) -> "Recommendation":
        """
        Parse a model response.

        Accepts bare JSON or JSON wrapped in a markdown code fence.

        Raises:
            AdvisoryUnavailable: Response is not valid JSON or not a recommendation
        """
        cleaned = text.strip()
        match = _FENCE_RE.match(cleaned)
        if match:
            cleaned = match.group(1)

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise AdvisoryUnavailable(
                f"Failed to parse advisory response: {e}", response=text[:200]
            ) from e

        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON contract shape."""
        rec = self.recommendation
        return {
            "trend": self.trend,
            "confidence": self.confidence,
            "key_levels": {
                "support": list(self.key_levels.support),
                "resistance": list(self.key_levels.resistance),
            },
            "signals": {
                "ema_pullback": self.signals.ema_pullback,
                "mean_reversion": self.signals.mean_reversion,
                "breakout": self.signals.breakout,
            },
            "recommendation": {
                "action": rec.action,
                "entry_price": rec.entry_price,
                "stop_loss": rec.stop_loss,
                "take_profit": rec.take_profit,
                "risk_percentage": rec.risk_percentage,
                "reasoning": rec.reasoning,
                "timeframe": rec.timeframe,
            },
            "patterns": [
                {
                    "name": p.name,
                    "confidence": p.confidence,
                    "location": {"start_index": p.start_index, "end_index": p.end_index},
                }
                for p in self.patterns
            ],
        }


def validate_recommendation(
    recommendation: Recommendation,
    account_balance: float,
    limits: RiskLimits = DEFAULT_RISK_LIMITS,
    default_risk_percentage: float = DEFAULT_ENGINE.risk_per_trade,
) -> ValidationResult:
    """
    Check the numeric bounds of a recommendation before acting on it.

    Args:
        recommendation: Parsed advisory output
        account_balance: Current balance, caps the per-unit risk
        limits: Risk limits for the risk % and reward/risk range
        default_risk_percentage: Risk % assumed when the recommendation has none

    Returns:
        ValidationResult with a reason when rejected
    """
    if not 0 <= recommendation.confidence <= 100:
        return ValidationResult.reject(
            f"Confidence {recommendation.confidence} outside 0-100"
        )

    rec = recommendation.recommendation
    if rec.action not in VALID_ACTIONS:
        return ValidationResult.reject(f"Invalid action: {rec.action}")

    if rec.risk_percentage is not None and not (
        limits.min_risk_percentage <= rec.risk_percentage <= limits.max_risk_percentage
    ):
        return ValidationResult.reject(
            f"Risk percentage {rec.risk_percentage}% outside allowed range "
            f"({limits.min_risk_percentage}%-{limits.max_risk_percentage}%)"
        )

    if rec.action == "hold":
        return ValidationResult.ok()

    if rec.entry_price is None or rec.stop_loss is None or rec.take_profit is None:
        return ValidationResult.reject("Entry, stop loss and take profit are required to trade")

    entry, stop, target = rec.entry_price, rec.stop_loss, rec.take_profit
    if rec.action == "buy" and not stop < entry < target:
        return ValidationResult.reject("Buy requires stop_loss < entry_price < take_profit")
    if rec.action == "sell" and not target < entry < stop:
        return ValidationResult.reject("Sell requires take_profit < entry_price < stop_loss")

    ratio = abs(target - entry) / abs(entry - stop)
    if not limits.min_risk_reward <= ratio <= limits.max_risk_reward:
        return ValidationResult.reject(
            f"Risk-reward ratio {ratio:.2f} outside "
            f"{limits.min_risk_reward}-{limits.max_risk_reward}"
        )

    risk_percentage = rec.risk_percentage or default_risk_percentage
    max_risk_amount = account_balance * risk_percentage / 100
    risk_per_unit = abs(entry - stop)
    if risk_per_unit > max_risk_amount:
        return ValidationResult.reject(
            f"Risk per unit {risk_per_unit:.2f} exceeds risk budget ${max_risk_amount:,.2f}"
        )

    return ValidationResult.ok()

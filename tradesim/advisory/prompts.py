"""
Prompt templates for the LLM advisor.

The model is asked for a single JSON object matching the Recommendation
contract (see tradesim.advisory.models).
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from tradesim.core.config import DEFAULT_ENGINE, DEFAULT_RISK_LIMITS

if TYPE_CHECKING:
    from tradesim.advisory.gateway import AdvisoryRequest
    from tradesim.analysis.technical import TechnicalSignals


SYSTEM_PROMPT = (
    "You are a trading analysis assistant. You respond with a single valid JSON "
    "object only: no explanatory text, no markdown, no backticks."
)


ANALYSIS_PROMPT = """Analyze the technical signals below and respond with a JSON object.

Instrument: {symbol} on the {timeframe} timeframe
Last close: {last_close}

Account Information:
- Balance: ${balance:,.2f}
- Open Positions: {open_count}/{max_positions} maximum
{positions_line}
Technical Analysis:
{technicals}

Trading Parameters:
- Risk per trade: {min_risk}-{max_risk}% (${min_risk_amount:,.2f}-${max_risk_amount:,.2f})
- Risk/Reward: 1:{min_rr:g} to 1:{max_rr:g}
- Stop loss: Technical levels only
- Minimum confidence:
  * Standard trades: {min_confidence:g}%
  * Counter-trend: 90%
  * Mean reversion: 80%

Response Format (use exact structure):
{{
  "trend": "bullish" | "bearish" | "neutral",
  "confidence": <number 0-100>,
  "key_levels": {{
    "support": [<price levels>],
    "resistance": [<price levels>]
  }},
  "signals": {{
    "ema_pullback": <boolean>,
    "mean_reversion": <boolean>,
    "breakout": <boolean>
  }},
  "recommendation": {{
    "action": "buy" | "sell" | "hold",
    "entry_price": <number>,
    "stop_loss": <number>,
    "take_profit": <number>,
    "timeframe": "{timeframe}",
    "reasoning": <string>,
    "risk_percentage": <number {min_risk}-{max_risk}>
  }},
  "patterns": [
    {{
      "name": <string>,
      "confidence": <number 0-100>,
      "location": {{"start_index": <number>, "end_index": <number>}}
    }}
  ]
}}"""


def _levels(values: Sequence[float]) -> str:
    return ", ".join(f"{v:.2f}" for v in values) if values else "none"


def format_technicals(signals: "TechnicalSignals") -> str:
    """Render a TechnicalSignals snapshot as prompt lines (missing indicators are skipped)."""
    lines = [f"- Trend: {signals.trend} (Strength: {signals.strength * 100:.1f}%)"]
    if signals.rsi is not None:
        lines.append(f"- RSI: {signals.rsi:.2f}")
    if signals.macd is not None:
        lines.append("- MACD:")
        lines.append(f"  * Line: {signals.macd.line:.4f}")
        lines.append(f"  * Signal: {signals.macd.signal:.4f}")
        lines.append(f"  * Histogram: {signals.macd.histogram:.4f}")
    if signals.volume is not None:
        lines.append("- Volume:")
        lines.append(f"  * Current: {signals.volume.current:,.0f}")
        lines.append(f"  * Average: {signals.volume.average:,.0f}")
        lines.append(f"  * Trend: {signals.volume.trend}")
    lines.append(f"- Support Levels: {_levels(signals.support)}")
    lines.append(f"- Resistance Levels: {_levels(signals.resistance)}")
    return "\n".join(lines)


def build_analysis_prompt(request: "AdvisoryRequest") -> str:
    """Build the user prompt for one analysis request."""
    limits = DEFAULT_RISK_LIMITS
    positions = request.open_positions
    positions_line = (
        "- Current Positions: "
        + ", ".join(f"{p.side.value} {p.symbol} @ {p.entry_price:.2f}" for p in positions)
        + "\n"
        if positions
        else ""
    )
    last_close = f"{request.current_price:.2f}" if request.current_price is not None else "n/a"

    return ANALYSIS_PROMPT.format(
        symbol=request.symbol,
        timeframe=request.timeframe,
        last_close=last_close,
        balance=request.balance,
        open_count=len(positions),
        max_positions=limits.max_positions,
        positions_line=positions_line,
        technicals=format_technicals(request.technical_signals),
        min_risk=limits.min_risk_percentage,
        max_risk=limits.max_risk_percentage,
        min_risk_amount=request.balance * limits.min_risk_percentage / 100,
        max_risk_amount=request.balance * limits.max_risk_percentage / 100,
        min_rr=limits.min_risk_reward,
        max_rr=limits.max_risk_reward,
        min_confidence=DEFAULT_ENGINE.min_confidence,
    )

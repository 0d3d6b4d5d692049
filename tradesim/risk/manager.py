"""
Risk Manager - translates a risk budget into a position size and gates every
position-affecting action against portfolio limits.

All methods are pure: they calculate or validate, never mutate. The engine and
the position manager route every size and stop decision through here.
"""

import logging
import math
from collections.abc import Sequence

from tradesim.core.config import DEFAULT_RISK_LIMITS, RiskLimits
from tradesim.core.errors import InvalidRiskParameter, InvalidStopLoss
from tradesim.risk.models import (
    PositionSizing,
    PositionSnapshot,
    RiskBearing,
    RiskParameters,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class RiskManager:
    """
    Position sizing and risk validation.

    Usage:
        risk = RiskManager()
        sizing = risk.calculate_position_size(params)
        check = risk.validate_new_position(params, open_positions)
    """

    def __init__(self, limits: RiskLimits = DEFAULT_RISK_LIMITS) -> None:
        """
        Initialize the risk manager.

        Args:
            limits: Portfolio-wide risk limits
        """
        self.limits = limits

    def is_valid_risk_percentage(self, risk_percentage: float) -> bool:
        """True if the per-trade risk is inside the allowed range (inclusive)."""
        return (
            self.limits.min_risk_percentage
            <= risk_percentage
            <= self.limits.max_risk_percentage
        )

    def calculate_position_size(self, params: RiskParameters) -> PositionSizing:
        """
        Calculate position size from a risk budget.

        risk_amount = balance * risk% / 100
        size = floor(risk_amount / |entry - stop|)

        Args:
            params: Risk parameters for the proposed trade

        Returns:
            PositionSizing with size, risk amounts and reward/risk ratio

        Raises:
            InvalidRiskParameter: risk percentage outside the allowed range
            InvalidStopLoss: stop loss equal to entry price
        """
        if not self.is_valid_risk_percentage(params.risk_percentage):
            raise InvalidRiskParameter(
                f"Invalid risk percentage: {params.risk_percentage}%. Must be between "
                f"{self.limits.min_risk_percentage}% and {self.limits.max_risk_percentage}%",
                risk_percentage=params.risk_percentage,
                min_risk_percentage=self.limits.min_risk_percentage,
                max_risk_percentage=self.limits.max_risk_percentage,
            )

        risk_per_unit = params.risk_per_unit
        if risk_per_unit == 0:
            raise InvalidStopLoss(
                "Invalid stop loss: Must be different from entry price",
                entry_price=params.entry_price,
                stop_loss=params.stop_loss,
            )

        risk_amount = params.account_balance * params.risk_percentage / 100
        max_risk_amount = params.account_balance * self.limits.max_risk_percentage / 100
        size = math.floor(risk_amount / risk_per_unit)
        risk_reward_ratio = params.reward_per_unit / risk_per_unit

        logger.debug(
            f"Position size {size} units for entry {params.entry_price}: "
            f"risk ${risk_amount:,.2f}, R:R {risk_reward_ratio:.2f}"
        )

        return PositionSizing(
            size=size,
            risk_amount=risk_amount,
            max_risk_amount=max_risk_amount,
            risk_reward_ratio=risk_reward_ratio,
        )

    def total_risk(self, positions: Sequence[RiskBearing]) -> float:
        """Sum of risk percentages across open positions."""
        return sum(position.risk_percentage for position in positions)

    def validate_new_position(
        self,
        params: RiskParameters,
        open_positions: Sequence[RiskBearing],
    ) -> ValidationResult:
        """
        Check a proposed trade against portfolio limits.

        Checks, in order: position count, per-trade risk range, total risk
        across open positions, reward/risk range.

        Args:
            params: Risk parameters for the proposed trade
            open_positions: Currently open positions (anything with risk_percentage)

        Returns:
            ValidationResult with a reason when rejected
        """
        limits = self.limits

        if len(open_positions) >= limits.max_positions:
            return ValidationResult.reject(
                f"Maximum number of positions ({limits.max_positions}) reached"
            )

        if not self.is_valid_risk_percentage(params.risk_percentage):
            return ValidationResult.reject(
                f"Risk percentage {params.risk_percentage}% outside allowed range "
                f"({limits.min_risk_percentage}%-{limits.max_risk_percentage}%)"
            )

        total = self.total_risk(open_positions) + params.risk_percentage
        if total > limits.max_total_risk_percentage:
            return ValidationResult.reject(
                f"Total risk {total:.2f}% would exceed maximum "
                f"{limits.max_total_risk_percentage}%"
            )

        if params.risk_per_unit == 0:
            return ValidationResult.reject("Invalid stop loss: Must be different from entry price")

        ratio = params.reward_per_unit / params.risk_per_unit
        if ratio < limits.min_risk_reward:
            return ValidationResult.reject(
                f"Risk-reward ratio {ratio:.2f} below minimum {limits.min_risk_reward}"
            )
        if ratio > limits.max_risk_reward:
            return ValidationResult.reject(
                f"Risk-reward ratio {ratio:.2f} above maximum {limits.max_risk_reward}"
            )

        return ValidationResult.ok()

    def validate_stop_loss_modification(
        self,
        position: PositionSnapshot,
        new_stop_loss: float,
    ) -> ValidationResult:
        """
        Check a stop-loss move.

        Direction is inferred from entry vs current price: a position in
        profit above entry is treated as long and may only raise its stop;
        otherwise it is treated as short and may only lower it. The new
        reward/risk (existing target vs new stop) must stay >= the minimum.

        Args:
            position: Position snapshot at the current price
            new_stop_loss: Proposed stop price

        Returns:
            ValidationResult with a reason when rejected
        """
        is_long = position.entry_price < position.current_price
        improving = (
            new_stop_loss > position.stop_loss if is_long else new_stop_loss < position.stop_loss
        )
        if not improving:
            return ValidationResult.reject(
                "Stop loss can only be modified in the direction of profit"
            )

        new_risk = abs(position.entry_price - new_stop_loss)
        reward = abs(position.take_profit - position.entry_price)

        # Stop at breakeven: nothing left at risk
        if new_risk == 0:
            return ValidationResult.ok()

        new_ratio = reward / new_risk
        if new_ratio < self.limits.min_risk_reward:
            return ValidationResult.reject(
                f"New risk-reward ratio {new_ratio:.2f} would be below minimum "
                f"{self.limits.min_risk_reward}"
            )

        return ValidationResult.ok()

"""
Position Sizer

Risk-budgeted contract count with signal-quality and oscillator multipliers
and a hard cap on premium exposure.

Algorithm:
    base risk     = account_size x base_risk_percent (2%)
    adjusted risk = base x quality x oscillator x compression
    contracts     = max(1, floor(adjusted / risk_per_contract))
    cap           = account_size x max_position_percent (5%)
    if contracts x premium x 100 > cap:
        contracts = max(1, floor(cap / (premium x 100)))

Risk per contract is the explicit max loss when given (spreads), otherwise
the premium paid (premium x 100).
"""

import math
from typing import Optional

from loguru import logger

from optengine.config.engine_config import SizingConfig
from optengine.models import OPTION_MULTIPLIER, OscillatorCondition, ValidationError
from optengine.selection.models import PositionSize, RiskLevel, SizingRiskMetrics

logger = logger.bind(component="PositionSizer")

# floor() tolerance for products like 100000 x 0.02 x 1.5
_EPSILON = 1e-9


class PositionSizer:
    """
    Compute contract counts under the account risk budget.

    Attributes:
        config: Sizing configuration
    """

    def __init__(self, config: Optional[SizingConfig] = None):
        self.config = config or SizingConfig()

    def size(
        self,
        account_size: float,
        option_premium: float,
        signal_quality: int,
        oscillator_condition: OscillatorCondition,
        max_loss_per_contract: Optional[float] = None,
    ) -> PositionSize:
        """
        Size a position.

        Args:
            account_size: Account value in dollars
            option_premium: Per-share premium (mid)
            signal_quality: Signal quality tier (1-5)
            oscillator_condition: Current oscillator flags
            max_loss_per_contract: Dollar max loss per contract (default: premium x 100)

        Returns:
            PositionSize with every intermediate multiplier

        Raises:
            ValidationError: If account_size or premium are not positive, or
                signal_quality is outside 1-5
        """
        self._validate_inputs(account_size, option_premium, signal_quality, max_loss_per_contract)

        if oscillator_condition.is_compression and self.config.skip_on_compression:
            logger.info("Trade skipped due to compression conditions")
            return PositionSize(
                contracts=0,
                total_premium=0.0,
                risk_amount=0.0,
                risk_percent=0.0,
                base_risk_amount=0.0,
                adjusted_risk_amount=0.0,
                quality_multiplier=0.0,
                oscillator_multiplier=0.0,
                compression_multiplier=0.0,
                should_skip_trade=True,
                reasoning="Trade skipped due to compression conditions",
            )

        base_risk = account_size * self.config.base_risk_percent
        quality_multiplier = self.config.quality_multipliers.get(signal_quality, 1.0)

        oscillator_multiplier = 1.0
        if oscillator_condition.is_extreme_reversal:
            oscillator_multiplier = self.config.reversal_boost
        elif oscillator_condition.is_zone_reversal:
            oscillator_multiplier = self.config.zone_reversal_boost

        compression_multiplier = self.config.compression_penalty if oscillator_condition.is_compression else 1.0

        adjusted_risk = base_risk * quality_multiplier * oscillator_multiplier * compression_multiplier
        risk_per_contract = max_loss_per_contract or option_premium * OPTION_MULTIPLIER

        contracts = max(1, math.floor(adjusted_risk / risk_per_contract + _EPSILON))
        limited = self.apply_risk_limits(contracts, option_premium, account_size)
        was_capped = limited < contracts
        contracts = limited

        total_premium = contracts * option_premium * OPTION_MULTIPLIER
        risk_amount = contracts * risk_per_contract
        risk_percent = risk_amount / account_size

        reasoning = self._generate_reasoning(
            signal_quality,
            oscillator_condition,
            quality_multiplier,
            oscillator_multiplier,
            compression_multiplier,
            contracts,
            risk_percent,
            was_capped,
        )

        logger.info(
            f"✓ Sized {contracts} contract(s): ${total_premium:,.2f} premium, "
            f"{risk_percent:.2%} account risk{' (capped)' if was_capped else ''}"
        )

        return PositionSize(
            contracts=contracts,
            total_premium=total_premium,
            risk_amount=risk_amount,
            risk_percent=risk_percent,
            base_risk_amount=base_risk,
            adjusted_risk_amount=adjusted_risk,
            quality_multiplier=quality_multiplier,
            oscillator_multiplier=oscillator_multiplier,
            compression_multiplier=compression_multiplier,
            was_capped=was_capped,
            should_skip_trade=False,
            reasoning=reasoning,
        )

    def apply_risk_limits(self, contracts: int, premium: float, account_size: float) -> int:
        """Reduce contracts so total premium stays within the position cap (minimum 1)."""
        max_position_value = account_size * self.config.max_position_percent
        total_value = contracts * premium * OPTION_MULTIPLIER

        if total_value > max_position_value:
            return max(1, math.floor(max_position_value / (premium * OPTION_MULTIPLIER) + _EPSILON))

        return contracts

    @staticmethod
    def calculate_risk_metrics(
        contracts: int,
        premium: float,
        max_loss: float,
        max_profit: Optional[float],
        breakeven: float,
        probability_of_profit: Optional[float] = None,
    ) -> SizingRiskMetrics:
        """
        Dollar risk profile for a sized position.

        Args:
            contracts: Contract count
            premium: Per-share premium
            max_loss: Max loss per contract in dollars
            max_profit: Max profit per contract in dollars (None = unbounded)
            breakeven: Underlying breakeven
            probability_of_profit: Estimate (default 0.5)
        """
        total_premium = contracts * premium * OPTION_MULTIPLIER
        total_max_loss = contracts * max_loss

        risk_reward = None
        total_max_profit = None
        if max_profit is not None:
            total_max_profit = contracts * max_profit
            risk_reward = total_max_profit / total_max_loss if total_max_loss > 0 else 0.0

        return SizingRiskMetrics(
            max_loss=total_max_loss,
            max_profit=total_max_profit,
            breakeven=breakeven,
            probability_of_profit=probability_of_profit if probability_of_profit is not None else 0.5,
            risk_reward_ratio=risk_reward,
            max_loss_percent=total_max_loss / total_premium if total_premium > 0 else 0.0,
        )

    @staticmethod
    def _validate_inputs(
        account_size: float,
        option_premium: float,
        signal_quality: int,
        max_loss_per_contract: Optional[float],
    ) -> None:
        if account_size <= 0:
            raise ValidationError("Account size must be positive", field="account_size", value=account_size)
        if option_premium <= 0:
            raise ValidationError("Option premium must be positive", field="option_premium", value=option_premium)
        if not 1 <= signal_quality <= 5:
            raise ValidationError(
                "Signal quality must be between 1 and 5", field="signal_quality", value=signal_quality
            )
        if max_loss_per_contract is not None and max_loss_per_contract <= 0:
            raise ValidationError(
                "Max loss per contract must be positive",
                field="max_loss_per_contract",
                value=max_loss_per_contract,
            )

    def _generate_reasoning(
        self,
        signal_quality: int,
        oscillator_condition: OscillatorCondition,
        quality_multiplier: float,
        oscillator_multiplier: float,
        compression_multiplier: float,
        contracts: int,
        risk_percent: float,
        was_capped: bool,
    ) -> str:
        reasons = [
            f"Base {self.config.base_risk_percent:.0%} risk with {signal_quality}-star signal "
            f"({quality_multiplier}x quality multiplier)"
        ]

        if oscillator_condition.is_extreme_reversal:
            reasons.append(f"Extreme reversal boost applied ({oscillator_multiplier}x)")
        elif oscillator_condition.is_zone_reversal:
            reasons.append(f"Zone reversal boost applied ({oscillator_multiplier}x)")

        if oscillator_condition.is_compression:
            reasons.append(f"Compression penalty applied ({compression_multiplier}x reduction)")

        if was_capped:
            reasons.append(
                f"Position capped at {self.config.max_position_percent:.0%} maximum account exposure"
            )

        reasons.append(f"Final: {contracts} contract(s) at {risk_percent * 100:.2f}% account risk")
        return ". ".join(reasons)


def validate_position_size(
    size: PositionSize,
    account_size: float,
    max_risk_percent: float = 0.05,
) -> tuple[bool, list[str]]:
    """Check a sized position against account risk rules."""
    violations = []

    if size.risk_percent > max_risk_percent:
        violations.append(
            f"Risk percent {size.risk_percent * 100:.2f}% exceeds max {max_risk_percent * 100:.2f}%"
        )

    if size.contracts <= 0 and not size.should_skip_trade:
        violations.append("Contract count must be positive")

    if size.total_premium > account_size:
        violations.append("Total premium exceeds account size")

    return len(violations) == 0, violations


def calculate_optimal_size(
    account_size: float,
    target_risk_percent: float,
    max_loss_per_contract: float,
) -> int:
    """Contracts for a target risk fraction (minimum 1)."""
    target_risk = account_size * target_risk_percent
    return max(1, math.floor(target_risk / max_loss_per_contract + _EPSILON))


def classify_risk_level(size: PositionSize) -> tuple[RiskLevel, str]:
    """Grade account risk and return a recommendation."""
    if size.risk_percent <= 0.01:
        return RiskLevel.LOW, "Conservative position - consider increasing if high conviction"
    if size.risk_percent <= 0.02:
        return RiskLevel.MODERATE, "Standard risk level - appropriate for most trades"
    if size.risk_percent <= 0.04:
        return RiskLevel.HIGH, "Elevated risk - ensure high conviction and proper stop loss"
    return RiskLevel.AGGRESSIVE, "Aggressive position - monitor closely and consider reducing"

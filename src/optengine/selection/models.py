"""
Selection Data Models

Outputs of the entry path: expiration, strike / spread and position size.
All are plain results for the caller to audit and submit as an order.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from optengine.models import Greeks


class Effectiveness(str, Enum):
    """Qualitative grade for an expiration selection."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RiskLevel(str, Enum):
    """Account risk level of a sized position."""

    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    AGGRESSIVE = "AGGRESSIVE"


@dataclass(slots=True)
class ExpirationSelection:
    """
    Selected expiration.

    Attributes:
        expiration: Chosen expiration date
        days_to_expiration: DTE at market-close granularity
        target_dte: DTE the policy asked for
        dte_deviation: |days_to_expiration - target_dte|
        is_weekly: True for non-monthly expirations
        theta_decay_rate: Relative daily decay estimate
        reasoning: Human-readable rationale (advisory only)
    """

    expiration: date
    days_to_expiration: int
    target_dte: int
    dte_deviation: int
    is_weekly: bool
    theta_decay_rate: float
    reasoning: str = ""


@dataclass(slots=True)
class ExpirationAnalysis:
    """Risk/opportunity breakdown for an expiration selection."""

    effectiveness: Effectiveness
    risks: list[str] = field(default_factory=list)
    opportunities: list[str] = field(default_factory=list)


@dataclass(slots=True)
class StrikeSelection:
    """
    Selected contract for one leg.

    Attributes:
        strike: Chosen strike
        option_symbol: Contract symbol
        actual_delta: Contract delta
        target_delta: Requested delta (signed for the option kind)
        delta_deviation: |actual_delta - target_delta|
        premium: Quote mid
        bid: Best bid
        ask: Best ask
        greeks: Contract Greeks
        reasoning: Human-readable rationale (advisory only)
        volume: Session volume
        open_interest: Open interest
        expiration: Contract expiration
        was_adjusted: Market-condition adjustment moved the pick
    """

    strike: float
    option_symbol: str
    actual_delta: float
    target_delta: float
    delta_deviation: float
    premium: float
    bid: float
    ask: float
    greeks: Greeks
    reasoning: str = ""
    volume: int = 0
    open_interest: int = 0
    expiration: Optional[date] = None
    was_adjusted: bool = False

    @property
    def spread_ratio(self) -> float:
        """Bid/ask spread relative to mid (inf when mid is zero)."""
        mid = (self.bid + self.ask) / 2
        return (self.ask - self.bid) / mid if mid > 0 else float("inf")


@dataclass(slots=True)
class SpreadSelection:
    """
    Two-leg vertical spread.

    The long leg always carries the higher |delta|, so the spread is bought
    for a debit. Dollar fields are per share; multiply by 100 per contract.

    Attributes:
        long_leg: Bought leg
        short_leg: Sold leg
        net_premium: long premium - short premium
        spread_width: |long strike - short strike|
        max_risk: Maximum loss per share
        max_profit: Maximum profit per share
        breakeven: Underlying breakeven at expiration
    """

    long_leg: StrikeSelection
    short_leg: StrikeSelection
    net_premium: float
    spread_width: float
    max_risk: float
    max_profit: float
    breakeven: float


@dataclass(slots=True)
class PositionSize:
    """
    Sized position with every intermediate step kept for audit.

    Attributes:
        contracts: Contracts to buy (0 only when should_skip_trade)
        total_premium: contracts x premium x 100
        risk_amount: contracts x risk per contract
        risk_percent: risk_amount / account_size
        base_risk_amount: account_size x base risk percent
        adjusted_risk_amount: Base risk after all multipliers
        quality_multiplier: Multiplier from signal quality
        oscillator_multiplier: Multiplier from reversal phases
        compression_multiplier: Multiplier from compression
        was_capped: True when the position cap reduced contracts
        should_skip_trade: True when compression skipping is active
        reasoning: Human-readable rationale (advisory only)
    """

    contracts: int
    total_premium: float
    risk_amount: float
    risk_percent: float
    base_risk_amount: float
    adjusted_risk_amount: float
    quality_multiplier: float
    oscillator_multiplier: float
    compression_multiplier: float
    was_capped: bool = False
    should_skip_trade: bool = False
    reasoning: str = ""

    def __post_init__(self):
        """Validate contract count."""
        if self.contracts < 0:
            raise ValueError(f"contracts must be non-negative, got {self.contracts}")


@dataclass(slots=True)
class SizingRiskMetrics:
    """
    Dollar risk profile of a sized position.

    Attributes:
        max_loss: Total maximum loss
        max_profit: Total maximum profit (None = unbounded)
        breakeven: Underlying breakeven
        probability_of_profit: Estimated probability of profit
        risk_reward_ratio: max_profit / max_loss (None when unbounded)
        max_loss_percent: max_loss / total premium
    """

    max_loss: float
    max_profit: Optional[float]
    breakeven: float
    probability_of_profit: float
    risk_reward_ratio: Optional[float]
    max_loss_percent: float

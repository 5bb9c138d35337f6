"""
Exit Data Models and Enums

Exit condition evaluations, the resolved decision and the execution plan
handed to the caller as a closing order.

Priority (highest first):
    STOP_LOSS > DTE_EXIT > EOD_EXIT > THETA_DECAY > IV_CRUSH >
    PROFIT_TARGET_3 > PROFIT_TARGET_2 > PROFIT_TARGET_1 > OSCILLATOR_REVERSAL
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from optengine.config.engine_config import ExitRules
    from optengine.market_calendar import MarketCalendar
    from optengine.models import MarketCondition, Position
    from optengine.monitoring.models import PositionSnapshot


class ExitType(str, Enum):
    """The eight exit conditions (profit target split in three)."""

    STOP_LOSS = "STOP_LOSS"
    PROFIT_TARGET_1 = "PROFIT_TARGET_1"
    PROFIT_TARGET_2 = "PROFIT_TARGET_2"
    PROFIT_TARGET_3 = "PROFIT_TARGET_3"
    DTE_EXIT = "DTE_EXIT"
    THETA_DECAY = "THETA_DECAY"
    IV_CRUSH = "IV_CRUSH"
    EOD_EXIT = "EOD_EXIT"
    OSCILLATOR_REVERSAL = "OSCILLATOR_REVERSAL"


# Highest priority first; resolution picks the earliest fired member
EXIT_PRIORITY: tuple[ExitType, ...] = (
    ExitType.STOP_LOSS,
    ExitType.DTE_EXIT,
    ExitType.EOD_EXIT,
    ExitType.THETA_DECAY,
    ExitType.IV_CRUSH,
    ExitType.PROFIT_TARGET_3,
    ExitType.PROFIT_TARGET_2,
    ExitType.PROFIT_TARGET_1,
    ExitType.OSCILLATOR_REVERSAL,
)


class Urgency(str, Enum):
    """Exit urgency tier."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    IMMEDIATE = "IMMEDIATE"


class OrderType(str, Enum):
    """Closing order type."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"


@dataclass(slots=True)
class ExitCondition:
    """
    One exit condition evaluated against one snapshot.

    Attributes:
        exit_type: Condition type
        triggered: Whether the condition fired
        value: Observed value
        threshold: Threshold it was compared to (None for non-numeric conditions)
        description: Human-readable description (advisory only)
        timestamp: Evaluation instant
    """

    exit_type: ExitType
    triggered: bool
    value: float
    threshold: Optional[float]
    description: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(slots=True)
class ExitDecision:
    """
    Resolved exit for one evaluation.

    Attributes:
        should_exit: True when any condition fired
        exit_type: Winning condition (None when not exiting)
        exit_fraction: Fraction of the ORIGINAL size to close (0-1)
        urgency: Urgency tier of the winner
        reasoning: Rationale (advisory only)
        conditions: Every condition that fired concurrently
        timestamp: Evaluation instant

    Raises:
        ValueError: If exit_fraction is outside 0-1 or an exit has no type
    """

    should_exit: bool
    exit_type: Optional[ExitType] = None
    exit_fraction: float = 0.0
    urgency: Urgency = Urgency.LOW
    reasoning: str = ""
    conditions: list[ExitCondition] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate decision fields."""
        if not 0 <= self.exit_fraction <= 1:
            raise ValueError(f"exit_fraction must be between 0 and 1, got {self.exit_fraction}")
        if self.should_exit and self.exit_type is None:
            raise ValueError("An exit decision requires an exit_type")

    @classmethod
    def no_exit(cls, reasoning: str = "No exit conditions triggered") -> "ExitDecision":
        """Decision for a cycle where nothing fired."""
        return cls(should_exit=False, reasoning=reasoning)

    def __repr__(self) -> str:
        """Return string representation of decision."""
        if not self.should_exit:
            return "ExitDecision(hold)"
        return (
            f"ExitDecision({self.exit_type.value}, fraction={self.exit_fraction:.2f}, "
            f"urgency={self.urgency.value}, fired={len(self.conditions)})"
        )


@dataclass(slots=True)
class ExitExecutionPlan:
    """
    Closing order for the caller to submit.

    Attributes:
        position_id: Position identity
        exit_type: Winning condition
        contracts_to_close: Whole contracts to close
        urgency: Urgency tier
        order_type: MARKET for IMMEDIATE urgency, LIMIT otherwise
        estimated_fill_price: Per-share estimate
        reasoning: Rationale (advisory only)
        exit_fraction: Fraction of the original size this plan targets
        conditions: Conditions that fired with the winner
        timestamp: Plan creation instant
    """

    position_id: str
    exit_type: ExitType
    contracts_to_close: int
    urgency: Urgency
    order_type: OrderType
    estimated_fill_price: float
    reasoning: str
    exit_fraction: float = 1.0
    conditions: list[ExitCondition] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate contract count."""
        if self.contracts_to_close < 0:
            raise ValueError(f"contracts_to_close must be non-negative, got {self.contracts_to_close}")


@dataclass(slots=True)
class ExitTimingEstimate:
    """Heuristic guess at how and when a position will exit."""

    likely_exit_type: ExitType
    estimated_days: int
    confidence: float
    reasoning: str = ""


@dataclass(slots=True)
class ExitContext:
    """Inputs shared by every exit check for one evaluation."""

    position: "Position"
    snapshot: "PositionSnapshot"
    rules: "ExitRules"
    calendar: "MarketCalendar"
    now: datetime
    market_condition: Optional["MarketCondition"] = None

"""
Position Data Models

This module provides the Position aggregate root for an open options trade
and the PositionUpdate record produced by each monitoring refresh.

Ownership:
- Live fields (current_*, pnl_*, days_to_expiration, last_updated) are
  written only by the PositionMonitor refresh cycle
- Target-hit flags, open contract count and status are written only by
  ExitManager.apply_exit()
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

from optengine.models.contracts import OPTION_MULTIPLIER, Direction, Greeks, OptionKind
from optengine.models.errors import ValidationError

if TYPE_CHECKING:
    from optengine.exits.models import ExitCondition


class PositionStatus(str, Enum):
    """Lifecycle status of a position."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"


class VolatilityBias(str, Enum):
    """Volatility exposure of the strategy."""

    LONG_VOL = "LONG_VOL"
    SHORT_VOL = "SHORT_VOL"
    NEUTRAL_VOL = "NEUTRAL_VOL"


class RiskProfile(str, Enum):
    """Risk appetite of the strategy."""

    AGGRESSIVE = "AGGRESSIVE"
    MODERATE = "MODERATE"
    CONSERVATIVE = "CONSERVATIVE"


@dataclass(slots=True)
class StrategyDescriptor:
    """
    Strategy descriptor attached to a position.

    Attributes:
        name: Strategy name (e.g., "LONG_CALL", "BULL_CALL_SPREAD")
        direction: Directional bias
        volatility_bias: Volatility exposure
        risk_profile: Risk appetite
        max_risk: Maximum loss in dollars
        max_profit: Maximum profit in dollars (None = unbounded)
        breakevens: Breakeven underlying prices
    """

    name: str = "LONG_CALL"
    direction: Direction = Direction.BULLISH
    volatility_bias: VolatilityBias = VolatilityBias.LONG_VOL
    risk_profile: RiskProfile = RiskProfile.MODERATE
    max_risk: float = 0.0
    max_profit: Optional[float] = None
    breakevens: list[float] = field(default_factory=list)


@dataclass(slots=True)
class Position:
    """
    Open options trade (aggregate root).

    Created when an entry order is confirmed filled, mutated by the monitor
    (live fields) and the exit manager (flags, contracts, status), and
    archived once status leaves OPEN.

    Attributes:
        symbol: Underlying symbol
        option_symbol: Contract symbol being held
        strike: Strike price
        expiration: Expiration date
        option_kind: CALL or PUT
        entry_price: Per-share fill price
        contracts: Currently open contracts
        entry_greeks: Greeks at entry
        entry_iv: Implied volatility at entry
        entry_underlying_price: Underlying price at entry (0 = first observed)
        strategy: Strategy descriptor
        id: Position identity
        trade_id: External trade identity
        entry_date: Fill timestamp
        entry_contracts: Original contract count (set from contracts if 0)
        current_price/current_greeks/current_iv/current_pnl/pnl_percent: Live snapshot
        realized_pnl: Dollar P&L locked in by partial closes
        days_to_expiration: Live DTE
        max_risk/max_profit/breakeven: Risk fields (max_profit None = unbounded)
        target1_hit/target2_hit/target3_hit: Profit target flags
        exit_conditions: Historical exit-condition evaluations that fired
        order_id: External (brokerage) order identifier
        status: OPEN, CLOSED or EXPIRED
        last_updated: Last live-field update

    Raises:
        ValidationError: If entry_price or contracts are not positive
    """

    symbol: str
    option_symbol: str
    strike: float
    expiration: date
    option_kind: OptionKind
    entry_price: float
    contracts: int
    entry_greeks: Greeks = field(default_factory=Greeks)
    entry_iv: float = 0.0
    entry_underlying_price: float = 0.0
    strategy: StrategyDescriptor = field(default_factory=StrategyDescriptor)
    id: str = field(default_factory=lambda: str(uuid4()))
    trade_id: str = ""
    entry_date: datetime = field(default_factory=datetime.now)
    entry_contracts: int = 0

    current_price: float = 0.0
    current_greeks: Greeks = field(default_factory=Greeks)
    current_iv: float = 0.0
    current_pnl: float = 0.0
    pnl_percent: float = 0.0
    realized_pnl: float = 0.0
    days_to_expiration: int = 0

    max_risk: float = 0.0
    max_profit: Optional[float] = None
    breakeven: float = 0.0

    target1_hit: bool = False
    target2_hit: bool = False
    target3_hit: bool = False
    exit_conditions: list["ExitCondition"] = field(default_factory=list)

    order_id: str = ""
    status: PositionStatus = PositionStatus.OPEN
    last_updated: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate entry data and default derived fields."""
        if self.entry_price <= 0:
            raise ValidationError(
                f"entry_price must be positive, got {self.entry_price}",
                field="entry_price",
                value=self.entry_price,
            )
        if self.contracts <= 0:
            raise ValidationError(
                f"contracts must be positive, got {self.contracts}",
                field="contracts",
                value=self.contracts,
            )

        if self.entry_contracts <= 0:
            self.entry_contracts = self.contracts
        if not self.trade_id:
            self.trade_id = self.id
        if self.current_price == 0.0:
            self.current_price = self.entry_price
        if self.entry_iv == 0.0:
            self.entry_iv = self.entry_greeks.implied_volatility

    @property
    def entry_value(self) -> float:
        """Dollar value paid for the currently open contracts."""
        return self.contracts * self.entry_price * OPTION_MULTIPLIER

    @property
    def original_entry_value(self) -> float:
        """Dollar value paid for the full original size."""
        return self.entry_contracts * self.entry_price * OPTION_MULTIPLIER

    @property
    def is_open(self) -> bool:
        """True while status is OPEN."""
        return self.status == PositionStatus.OPEN

    def to_dict(self) -> dict[str, Any]:
        """Return a flat dict for logging and persistence collaborators."""
        return {
            "id": self.id,
            "trade_id": self.trade_id,
            "symbol": self.symbol,
            "option_symbol": self.option_symbol,
            "strategy": self.strategy.name,
            "direction": self.strategy.direction.value,
            "strike": self.strike,
            "expiration": self.expiration.isoformat(),
            "option_kind": self.option_kind.value,
            "entry_date": self.entry_date.isoformat(),
            "entry_price": self.entry_price,
            "entry_contracts": self.entry_contracts,
            "contracts": self.contracts,
            "entry_iv": self.entry_iv,
            "entry_underlying_price": self.entry_underlying_price,
            "current_price": self.current_price,
            "current_iv": self.current_iv,
            "current_pnl": self.current_pnl,
            "pnl_percent": self.pnl_percent,
            "realized_pnl": self.realized_pnl,
            "days_to_expiration": self.days_to_expiration,
            "target1_hit": self.target1_hit,
            "target2_hit": self.target2_hit,
            "target3_hit": self.target3_hit,
            "order_id": self.order_id,
            "status": self.status.value,
            "last_updated": self.last_updated.isoformat(),
        }

    def __repr__(self) -> str:
        """Return string representation of position."""
        return (
            f"Position({self.id[:8]} {self.symbol} {self.option_kind.value} ${self.strike} "
            f"{self.expiration} x{self.contracts} @ {self.entry_price:.2f}, {self.status.value})"
        )


@dataclass(slots=True)
class PositionUpdate:
    """
    Result of one monitoring refresh.

    Attributes:
        position_id: Position identity
        trade_id: External trade identity
        current_price: Option price used for valuation
        current_greeks: Greeks from the quote (zeros when absent)
        current_pnl: Total P&L in dollars
        pnl_percent: P&L relative to entry value
        days_to_expiration: DTE at market-close granularity
        theta_decay: Theta attribution in dollars
        iv_change: current_iv - entry_iv
        last_updated: Refresh timestamp
    """

    position_id: str
    trade_id: str
    current_price: float
    current_greeks: Greeks
    current_pnl: float
    pnl_percent: float
    days_to_expiration: int
    theta_decay: float
    iv_change: float
    last_updated: datetime = field(default_factory=datetime.now)

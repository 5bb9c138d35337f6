"""
Entry Workflow

Runs the entry path for one signal: expiration -> strike (or spread) ->
size, and builds the Position aggregate once the caller confirms a fill.

Expected selection failures (no data, bad structure, bad input) come back
as an EntryResult carrying the error; callers branch on `result.ok`.

Usage:
    planner = EntryPlanner()
    result = planner.plan_single(chain, market_condition, OptionKind.CALL, account_size=100_000)
    if result.ok and result.plan.should_enter:
        order_id = submit(result.plan)              # caller's brokerage client
        position = build_position(result.plan, fill_price, filled, order_id, strategy)
        await monitor.start_monitoring(position)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from loguru import logger

from optengine.models import (
    OPTION_MULTIPLIER,
    Direction,
    Greeks,
    LifecycleError,
    MarketCondition,
    OptionKind,
    OptionsChain,
    Position,
    StrategyDescriptor,
    ValidationError,
)
from optengine.selection import (
    ExpirationSelection,
    ExpirationSelector,
    PositionSize,
    PositionSizer,
    SpreadSelection,
    StrikeSelection,
    StrikeSelector,
)

logger = logger.bind(component="EntryPlanner")


@dataclass(slots=True)
class EntryPlan:
    """
    Entry instruction for the caller to submit as a brokerage order.

    Exactly one of `selection` (single option) or `spread` is set.

    Attributes:
        symbol: Underlying symbol
        option_kind: CALL or PUT
        underlying_price: Underlying price at planning time
        expiration: Expiration selection
        size: Position size
        selection: Single-option strike selection
        spread: Vertical spread selection
        created_at: Planning instant
    """

    symbol: str
    option_kind: OptionKind
    underlying_price: float
    expiration: ExpirationSelection
    size: PositionSize
    selection: Optional[StrikeSelection] = None
    spread: Optional[SpreadSelection] = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate that exactly one structure is present."""
        if (self.selection is None) == (self.spread is None):
            raise ValueError("EntryPlan requires exactly one of selection or spread")

    @property
    def is_spread(self) -> bool:
        return self.spread is not None

    @property
    def should_enter(self) -> bool:
        """False when sizing decided to skip the trade."""
        return not self.size.should_skip_trade and self.size.contracts > 0

    @property
    def primary_leg(self) -> StrikeSelection:
        """The bought contract (the long leg for spreads)."""
        return self.spread.long_leg if self.spread is not None else self.selection

    @property
    def premium(self) -> float:
        """Per-share debit: contract mid, or net premium for spreads."""
        return self.spread.net_premium if self.spread is not None else self.selection.premium


@dataclass(slots=True)
class EntryResult:
    """
    Outcome of an entry planning attempt.

    Attributes:
        ok: True when a plan was produced
        plan: Entry plan (set when ok)
        error: Selection or sizing error (set when not ok)
    """

    ok: bool
    plan: Optional[EntryPlan] = None
    error: Optional[LifecycleError] = None

    @classmethod
    def success(cls, plan: EntryPlan) -> "EntryResult":
        return cls(ok=True, plan=plan)

    @classmethod
    def failure(cls, error: LifecycleError) -> "EntryResult":
        return cls(ok=False, error=error)


class EntryPlanner:
    """
    Compose the selectors and sizer into an entry plan.

    **Control flow:**
    1. ExpirationSelector picks the expiration for the signal
    2. StrikeSelector picks the contract (or both spread legs) on it
    3. PositionSizer sizes against the premium (net debit for spreads)

    Attributes:
        expiration_selector: Expiration selector
        strike_selector: Strike selector
        position_sizer: Position sizer
    """

    def __init__(
        self,
        expiration_selector: Optional[ExpirationSelector] = None,
        strike_selector: Optional[StrikeSelector] = None,
        position_sizer: Optional[PositionSizer] = None,
    ):
        self.expiration_selector = expiration_selector or ExpirationSelector()
        self.strike_selector = strike_selector or StrikeSelector()
        self.position_sizer = position_sizer or PositionSizer()

    def plan_single(
        self,
        chain: OptionsChain,
        market_condition: MarketCondition,
        option_kind: OptionKind,
        account_size: float,
        target_delta: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> EntryResult:
        """
        Plan a single long option.

        Args:
            chain: Contract catalog snapshot
            market_condition: Current market condition and signal quality
            option_kind: CALL or PUT
            account_size: Account value in dollars
            target_delta: Target delta magnitude (default: configured long delta)
            now: Reference instant (default: now)

        Returns:
            EntryResult with the plan, or the error that prevented one
        """
        target = target_delta if target_delta is not None else self.strike_selector.config.long_option_delta

        try:
            expiration = self._select_expiration(chain, market_condition, now)
            selection = self.strike_selector.select_strike(
                chain, target, option_kind, expiration.expiration, market_condition
            )
            size = self.position_sizer.size(
                account_size,
                selection.premium,
                market_condition.signal_quality,
                market_condition.oscillator_condition(),
            )
            plan = EntryPlan(
                symbol=chain.symbol,
                option_kind=option_kind,
                underlying_price=chain.underlying_price,
                expiration=expiration,
                size=size,
                selection=selection,
                created_at=now or datetime.now(),
            )
        except LifecycleError as e:
            logger.warning(f"No entry plan for {chain.symbol}: {e}")
            return EntryResult.failure(e)

        logger.info(
            f"✓ Planned {option_kind.value} {chain.symbol} {selection.strike} {expiration.expiration}: "
            f"{size.contracts} contract(s) @ {selection.premium:.2f}"
        )
        return EntryResult.success(plan)

    def plan_spread(
        self,
        chain: OptionsChain,
        market_condition: MarketCondition,
        option_kind: OptionKind,
        account_size: float,
        long_delta: Optional[float] = None,
        short_delta: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> EntryResult:
        """
        Plan a debit vertical spread.

        Sizing uses the net debit as both premium and max loss per contract.
        """
        config = self.strike_selector.config
        long_target = long_delta if long_delta is not None else config.spread_long_delta
        short_target = short_delta if short_delta is not None else config.spread_short_delta

        try:
            expiration = self._select_expiration(chain, market_condition, now)
            spread = self.strike_selector.select_spread(
                chain, long_target, short_target, option_kind, expiration.expiration, market_condition
            )
            if spread.net_premium <= 0:
                raise ValidationError(
                    f"Spread net premium must be a debit, got {spread.net_premium:.2f}",
                    field="net_premium",
                    value=spread.net_premium,
                )
            size = self.position_sizer.size(
                account_size,
                spread.net_premium,
                market_condition.signal_quality,
                market_condition.oscillator_condition(),
                max_loss_per_contract=spread.net_premium * OPTION_MULTIPLIER,
            )
            plan = EntryPlan(
                symbol=chain.symbol,
                option_kind=option_kind,
                underlying_price=chain.underlying_price,
                expiration=expiration,
                size=size,
                spread=spread,
                created_at=now or datetime.now(),
            )
        except LifecycleError as e:
            logger.warning(f"No spread plan for {chain.symbol}: {e}")
            return EntryResult.failure(e)

        logger.info(
            f"✓ Planned {option_kind.value} spread {chain.symbol} "
            f"{spread.long_leg.strike}/{spread.short_leg.strike} {expiration.expiration}: "
            f"{size.contracts} contract(s) @ {spread.net_premium:.2f} net"
        )
        return EntryResult.success(plan)

    def _select_expiration(
        self,
        chain: OptionsChain,
        market_condition: MarketCondition,
        now: Optional[datetime],
    ) -> ExpirationSelection:
        return self.expiration_selector.select(
            chain.expirations,
            market_condition.signal_quality,
            market_condition.oscillator_condition(),
            market_condition.iv_rank,
            now=now,
        )


def build_position(
    plan: EntryPlan,
    fill_price: float,
    filled_contracts: int,
    order_id: str,
    strategy: Optional[StrategyDescriptor] = None,
    now: Optional[datetime] = None,
) -> Position:
    """
    Build the Position aggregate after the caller confirms a fill.

    Spread positions are tracked on the long leg's contract symbol; their
    risk fields carry the spread's bounds.

    Args:
        plan: Entry plan that was submitted
        fill_price: Per-share fill price (long-leg fill for spreads)
        filled_contracts: Contracts actually filled
        order_id: Brokerage order identifier
        strategy: Strategy descriptor (default: derived from the plan)
        now: Fill instant (default: now)

    Returns:
        OPEN Position ready for monitoring

    Raises:
        ValidationError: If fill_price or filled_contracts are not positive
    """
    leg = plan.primary_leg
    strategy = strategy or _default_strategy(plan)
    size = filled_contracts * OPTION_MULTIPLIER

    if plan.spread is not None:
        max_risk = plan.spread.max_risk * size
        max_profit: Optional[float] = plan.spread.max_profit * size
        breakeven = plan.spread.breakeven
    elif plan.option_kind == OptionKind.CALL:
        max_risk = fill_price * size
        max_profit = None
        breakeven = leg.strike + fill_price
    else:
        max_risk = fill_price * size
        max_profit = max(0.0, leg.strike - fill_price) * size
        breakeven = leg.strike - fill_price

    position = Position(
        symbol=plan.symbol,
        option_symbol=leg.option_symbol,
        strike=leg.strike,
        expiration=leg.expiration or plan.expiration.expiration,
        option_kind=plan.option_kind,
        entry_price=fill_price,
        contracts=filled_contracts,
        entry_greeks=Greeks(
            delta=leg.greeks.delta,
            gamma=leg.greeks.gamma,
            theta=leg.greeks.theta,
            vega=leg.greeks.vega,
            rho=leg.greeks.rho,
            implied_volatility=leg.greeks.implied_volatility,
        ),
        entry_iv=leg.greeks.implied_volatility,
        entry_underlying_price=plan.underlying_price,
        strategy=strategy,
        entry_date=now or datetime.now(),
        max_risk=max_risk,
        max_profit=max_profit,
        breakeven=breakeven,
        order_id=order_id,
    )

    logger.info(f"✓ Built position {position}")
    return position


def _default_strategy(plan: EntryPlan) -> StrategyDescriptor:
    bullish = plan.option_kind == OptionKind.CALL
    if plan.spread is not None:
        name = "BULL_CALL_SPREAD" if bullish else "BEAR_PUT_SPREAD"
    else:
        name = "LONG_CALL" if bullish else "LONG_PUT"

    return StrategyDescriptor(
        name=name,
        direction=Direction.BULLISH if bullish else Direction.BEARISH,
    )

"""
Position fixtures for monitoring and exit tests.

The default position is 10 SPY 2026-04-01 495 calls bought at 5.00 on
2026-03-02 10:00 with the underlying at 500.00 (entry value $5,000).

make_snapshot() builds a snapshot with P&L and theta consistent with the
position, so exit thresholds can be driven by option price alone.
"""

from datetime import date, datetime
from typing import Optional

import pytest

from optengine.models import (
    OPTION_MULTIPLIER,
    Direction,
    Greeks,
    OptionKind,
    Position,
    StrategyDescriptor,
)
from optengine.monitoring.models import PnLCalculation, PositionSnapshot, RiskMetrics

ENTRY_TIME = datetime(2026, 3, 2, 10, 0)
POSITION_EXPIRATION = date(2026, 4, 1)
OPTION_SYMBOL = "SPY260401C00495000"

ENTRY_GREEKS = Greeks(delta=0.65, gamma=0.03, theta=-0.08, vega=0.15, rho=0.05, implied_volatility=0.25)


def make_position(
    contracts: int = 10,
    entry_price: float = 5.0,
    direction: Direction = Direction.BULLISH,
    **overrides,
) -> Position:
    """Open long call position with sensible defaults."""
    values = dict(
        symbol="SPY",
        option_symbol=OPTION_SYMBOL,
        strike=495.0,
        expiration=POSITION_EXPIRATION,
        option_kind=OptionKind.CALL,
        entry_price=entry_price,
        contracts=contracts,
        entry_greeks=Greeks(
            delta=ENTRY_GREEKS.delta,
            gamma=ENTRY_GREEKS.gamma,
            theta=ENTRY_GREEKS.theta,
            vega=ENTRY_GREEKS.vega,
            rho=ENTRY_GREEKS.rho,
            implied_volatility=ENTRY_GREEKS.implied_volatility,
        ),
        entry_underlying_price=500.0,
        strategy=StrategyDescriptor(name="LONG_CALL", direction=direction),
        entry_date=ENTRY_TIME,
    )
    values.update(overrides)
    return Position(**values)


def make_snapshot(
    position: Position,
    option_price: float,
    dte: int = 30,
    implied_volatility: float = 0.25,
    theta: float = -0.08,
    delta: float = 0.65,
    bid: Optional[float] = None,
    ask: Optional[float] = None,
    underlying_price: float = 500.0,
    timestamp: datetime = ENTRY_TIME,
) -> PositionSnapshot:
    """Snapshot whose P&L and theta follow from the option price and Greeks."""
    size = position.contracts * OPTION_MULTIPLIER
    total = (option_price - position.entry_price) * size

    return PositionSnapshot(
        position_id=position.id,
        underlying_price=underlying_price,
        option_price=option_price,
        bid=bid if bid is not None else option_price - 0.05,
        ask=ask if ask is not None else option_price + 0.05,
        greeks=Greeks(delta=delta, gamma=0.03, theta=theta, vega=0.15, implied_volatility=implied_volatility),
        implied_volatility=implied_volatility,
        days_to_expiration=dte,
        pnl=PnLCalculation(
            total=total,
            intrinsic_value=max(0.0, underlying_price - position.strike) * size,
            time_value=0.0,
            volatility_pnl=0.0,
            theta_decay=0.0,
            delta_contribution=0.0,
            gamma_effect=0.0,
            vega_effect=0.0,
        ),
        risk_metrics=RiskMetrics(
            delta_exposure=delta * size * underlying_price,
            gamma_risk=0.03 * size * underlying_price,
            theta_decay=abs(theta * size),
            vega_risk=abs(0.15 * size),
            portfolio_delta=delta * size,
            portfolio_gamma=0.03 * size,
        ),
        timestamp=timestamp,
    )


@pytest.fixture
def position():
    """10 x SPY 495 call @ 5.00, bullish."""
    return make_position()


@pytest.fixture
def entry_time():
    """Instant the default position was filled."""
    return ENTRY_TIME

"""
Monitoring Data Models

Per-refresh snapshot, Greek-attributed P&L, per-position risk metrics,
alerts and portfolio aggregates.

Snapshots are ephemeral: each refresh supersedes the previous one and the
monitor keeps only the latest per position for change detection.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from optengine.models import Greeks


class AlertType(str, Enum):
    """Monitoring alert type."""

    GREEKS_CHANGE = "GREEKS_CHANGE"
    RISK_THRESHOLD = "RISK_THRESHOLD"
    DTE_WARNING = "DTE_WARNING"
    THETA_DECAY = "THETA_DECAY"
    API_ERROR = "API_ERROR"


class AlertSeverity(str, Enum):
    """Monitoring alert severity."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(slots=True)
class PnLCalculation:
    """
    P&L for the open contracts, attributed by Greek.

    Attribution uses ENTRY Greeks as a linear approximation; it drifts for
    large underlying moves and is not a re-pricing.

    Attributes:
        total: (current - entry) x contracts x 100
        intrinsic_value: Intrinsic value of the open contracts
        time_value: Extrinsic value of the open contracts
        volatility_pnl: P&L attributed to the IV change (equals vega_effect)
        theta_decay: entry_theta x days_elapsed x contracts x 100
        delta_contribution: underlying_move x entry_delta x contracts x 100
        gamma_effect: 0.5 x entry_gamma x move^2 x contracts x 100
        vega_effect: entry_vega x (current_iv - entry_iv) x contracts x 100
    """

    total: float
    intrinsic_value: float
    time_value: float
    volatility_pnl: float
    theta_decay: float
    delta_contribution: float
    gamma_effect: float
    vega_effect: float


@dataclass(slots=True)
class RiskMetrics:
    """
    Per-position dollar risk, summable across positions.

    Attributes:
        delta_exposure: delta x contracts x 100 x underlying
        gamma_risk: gamma x contracts x 100 x underlying
        theta_decay: |theta x contracts x 100|, dollars lost per day
        vega_risk: |vega x contracts x 100|
        portfolio_delta: delta x contracts x 100 (share equivalent)
        portfolio_gamma: gamma x contracts x 100
    """

    delta_exposure: float
    gamma_risk: float
    theta_decay: float
    vega_risk: float
    portfolio_delta: float
    portfolio_gamma: float


@dataclass(slots=True)
class PositionSnapshot:
    """
    Point-in-time read of a position produced by one refresh.

    Attributes:
        position_id: Position identity
        underlying_price: Underlying last (or close)
        option_price: Option last (or mid when no last)
        bid: Option bid
        ask: Option ask
        greeks: Current Greeks (zeros when the quote has none)
        implied_volatility: Current implied volatility
        days_to_expiration: DTE at market-close granularity
        pnl: Attributed P&L
        risk_metrics: Dollar risk
        timestamp: Refresh instant
    """

    position_id: str
    underlying_price: float
    option_price: float
    bid: float
    ask: float
    greeks: Greeks
    implied_volatility: float
    days_to_expiration: int
    pnl: PnLCalculation
    risk_metrics: RiskMetrics
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def mid(self) -> float:
        """Quote mid, falling back to option_price for a one-sided quote."""
        if self.bid > 0 and self.ask > 0:
            return (self.bid + self.ask) / 2
        return self.option_price


@dataclass(slots=True)
class MonitoringAlert:
    """
    Alert delivered to subscribers.

    Attributes:
        position_id: Position identity
        alert_type: Alert type
        severity: Alert severity
        message: Human-readable message
        timestamp: When the alert was raised
        data: Alert-specific values
    """

    position_id: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate alert message."""
        if not self.message or not self.message.strip():
            raise ValueError("Alert message cannot be empty")

    def __repr__(self) -> str:
        """Return string representation of alert."""
        return (
            f"MonitoringAlert({self.position_id[:8]} {self.alert_type.value} "
            f"{self.severity.value}: {self.message})"
        )


@dataclass(slots=True)
class PortfolioRisk:
    """
    Read-only sum over the latest snapshots of all monitored positions.

    Snapshots may come from slightly different instants.
    """

    net_delta: float = 0.0
    net_gamma: float = 0.0
    net_theta: float = 0.0
    net_vega: float = 0.0
    total_notional: float = 0.0
    position_count: int = 0


@dataclass(slots=True)
class MonitoringStats:
    """Operational counters for the monitor."""

    active_positions: int = 0
    total_delta_exposure: float = 0.0
    total_gamma_risk: float = 0.0
    total_theta_decay: float = 0.0
    update_interval_seconds: float = 0.0

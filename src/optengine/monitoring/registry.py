"""
Position Registry

Owned registry of monitored positions and their latest snapshot. Passed
explicitly to anything that needs portfolio-wide aggregation.

Aggregation is read-only and tolerates snapshots taken at slightly
different instants.
"""

from typing import Iterator, Optional

from optengine.models import Position, PositionNotFoundError
from optengine.monitoring.models import MonitoringStats, PortfolioRisk, PositionSnapshot


class PositionRegistry:
    """
    Positions under monitoring keyed by position id.

    Example:
        registry = PositionRegistry()
        monitor = PositionMonitor(source, registry=registry)
        ...
        risk = registry.portfolio_risk()
    """

    def __init__(self):
        self._positions: dict[str, Position] = {}
        self._snapshots: dict[str, PositionSnapshot] = {}

    def add(self, position: Position) -> None:
        """Register a position (replaces any entry with the same id)."""
        self._positions[position.id] = position
        self._snapshots.pop(position.id, None)

    def remove(self, position_id: str) -> Optional[Position]:
        """Discard a position and its snapshot; returns the position if present."""
        self._snapshots.pop(position_id, None)
        return self._positions.pop(position_id, None)

    def get(self, position_id: str) -> Position:
        """
        Look up a position.

        Raises:
            PositionNotFoundError: If the id is not registered
        """
        try:
            return self._positions[position_id]
        except KeyError:
            raise PositionNotFoundError(position_id) from None

    def get_snapshot(self, position_id: str) -> Optional[PositionSnapshot]:
        """Latest snapshot, or None before the first successful refresh."""
        return self._snapshots.get(position_id)

    def set_snapshot(self, position_id: str, snapshot: PositionSnapshot) -> None:
        """Replace the latest snapshot for a registered position."""
        if position_id not in self._positions:
            raise PositionNotFoundError(position_id)
        self._snapshots[position_id] = snapshot

    def positions(self) -> list[Position]:
        """All registered positions."""
        return list(self._positions.values())

    def snapshots(self) -> list[PositionSnapshot]:
        """Latest snapshot of every position that has one."""
        return list(self._snapshots.values())

    def __contains__(self, position_id: object) -> bool:
        return position_id in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def portfolio_risk(self) -> PortfolioRisk:
        """
        Sum risk over the latest snapshots.

        net_delta/net_gamma are share-equivalent, net_theta is dollars per
        day, total_notional is the sum of |delta exposure|.
        """
        risk = PortfolioRisk()
        for snapshot in self.snapshots():
            metrics = snapshot.risk_metrics
            risk.net_delta += metrics.portfolio_delta
            risk.net_gamma += metrics.portfolio_gamma
            risk.net_theta += metrics.theta_decay
            risk.net_vega += metrics.vega_risk
            risk.total_notional += abs(metrics.delta_exposure)
            risk.position_count += 1
        return risk

    def monitoring_stats(self, update_interval_seconds: float = 0.0) -> MonitoringStats:
        """Operational counters over the latest snapshots."""
        stats = MonitoringStats(
            active_positions=len(self._positions),
            update_interval_seconds=update_interval_seconds,
        )
        for snapshot in self.snapshots():
            stats.total_delta_exposure += snapshot.risk_metrics.delta_exposure
            stats.total_gamma_risk += snapshot.risk_metrics.gamma_risk
            stats.total_theta_decay += snapshot.risk_metrics.theta_decay
        return stats

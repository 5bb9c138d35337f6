"""
Position Monitor

Owns open positions for their lifetime: refreshes each from live quotes on
its own asyncio task, derives Greek-attributed P&L and risk metrics, raises
alerts on significant changes and feeds every fresh snapshot to the exit
manager.

Concurrency model:
- One task per position; a failure in one never touches another
- Refreshes of one position are serialized by a per-position asyncio.Lock,
  so they never overlap
- Live fields of a Position are written only inside its refresh
- Subscriber callbacks (sync or async) run outside the lock; failures are
  logged, never propagated
- stop_monitoring() discards state immediately and waits for the cancelled
  task at most stop_timeout_seconds

Usage:
    >>> monitor = PositionMonitor(quote_source, exit_manager=ExitManager())
    >>> monitor.on_alert(print)
    >>> monitor.on_exit_plan(submit_closing_order)
    >>> await monitor.start_monitoring(position)
    >>> # Later:
    >>> await monitor.stop_all()
"""

import asyncio
import inspect
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from loguru import logger

from optengine.config.engine_config import MonitoringConfig
from optengine.exits.models import Urgency
from optengine.market_calendar import MarketCalendar
from optengine.models import (
    OPTION_MULTIPLIER,
    Greeks,
    MarketCondition,
    OptionKind,
    Position,
    PositionNotFoundError,
    PositionUpdate,
    TransientFetchError,
)
from optengine.monitoring.models import (
    AlertSeverity,
    AlertType,
    MonitoringAlert,
    MonitoringStats,
    PnLCalculation,
    PortfolioRisk,
    PositionSnapshot,
    RiskMetrics,
)
from optengine.monitoring.quote_source import MarketConditionFeed, OptionQuote, QuoteSource, UnderlyingQuote
from optengine.monitoring.registry import PositionRegistry
from optengine.monitoring.retry import fetch_with_retry

if TYPE_CHECKING:
    from optengine.exits.exit_manager import ExitManager
    from optengine.exits.models import ExitExecutionPlan

logger = logger.bind(component="PositionMonitor")

AlertCallback = Callable[[MonitoringAlert], Union[None, Awaitable[None]]]
ExitPlanCallback = Callable[["ExitExecutionPlan"], Union[None, Awaitable[None]]]


class PositionMonitor:
    """
    Continuously refresh open positions.

    **Per refresh:**
    1. Fetch option and underlying quotes (retry with backoff, timeout)
    2. Greeks from the quote (zeros when absent, never fails the refresh)
    3. DTE at market-close granularity
    4. P&L attributed from ENTRY Greeks and risk metrics
    5. Write live fields, store the snapshot, compare with the previous one
    6. Evaluate exits on the fresh snapshot (when an exit manager is set)

    **Alerts:**
    - GREEKS_CHANGE (MEDIUM): |delta change| > significant_greeks_change
    - DTE_WARNING (HIGH): DTE crosses from above to at/below the threshold
    - THETA_DECAY (HIGH): daily theta > threshold x entry value while losing
    - RISK_THRESHOLD (CRITICAL): an exit resolved with IMMEDIATE urgency
    - API_ERROR (HIGH): a refresh failed; the snapshot stays stale

    Attributes:
        quote_source: Quote/Greeks collaborator
        registry: Positions and latest snapshots
        config: Monitoring configuration
        exit_manager: Optional exit manager evaluated every refresh
        market_feed: Optional market-condition feed for oscillator exits
        calendar: Market calendar for DTE
    """

    def __init__(
        self,
        quote_source: QuoteSource,
        registry: Optional[PositionRegistry] = None,
        config: Optional[MonitoringConfig] = None,
        exit_manager: Optional["ExitManager"] = None,
        market_feed: Optional[MarketConditionFeed] = None,
        calendar: Optional[MarketCalendar] = None,
    ):
        self.quote_source = quote_source
        self.registry = registry if registry is not None else PositionRegistry()
        self.config = config or MonitoringConfig()
        self.exit_manager = exit_manager
        self.market_feed = market_feed
        self.calendar = calendar or MarketCalendar()

        self._tasks: dict[str, asyncio.Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._alert_callbacks: list[AlertCallback] = []
        self._exit_callbacks: list[ExitPlanCallback] = []

        logger.debug(f"PositionMonitor initialized (interval={self.config.update_interval_seconds}s)")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_monitoring(self, position: Position) -> None:
        """
        Register a filled position and start its refresh task.

        Performs an initial refresh; a failed initial fetch raises an
        API_ERROR alert but monitoring still starts.

        Raises:
            ValueError: If the position is not OPEN
        """
        if not position.is_open:
            raise ValueError(f"Cannot monitor position {position.id} with status {position.status.value}")

        if position.id in self.registry:
            logger.warning(f"Position {position.id[:8]} already monitored")
            return

        self.registry.add(position)
        self._locks[position.id] = asyncio.Lock()

        try:
            await self.update_position(position.id)
        except TransientFetchError as e:
            await self._emit_api_error(position.id, e)

        if position.id not in self.registry:
            # Stopped or closed during the initial refresh
            return

        self._tasks[position.id] = asyncio.create_task(
            self._monitor_loop(position.id), name=f"monitor-{position.id[:8]}"
        )

        logger.info(
            f"✓ Started monitoring {position.symbol} {position.option_symbol} "
            f"x{position.contracts} ({position.id[:8]})"
        )

    async def stop_monitoring(self, position_id: str) -> bool:
        """
        Stop monitoring and discard the position's state.

        Never blocks longer than stop_timeout_seconds.

        Returns:
            True if the position was being monitored
        """
        task = self._tasks.pop(position_id, None)
        self._locks.pop(position_id, None)
        position = self.registry.remove(position_id)

        if task is not None and not task.done():
            task.cancel()
            if task is not asyncio.current_task():
                done, _ = await asyncio.wait({task}, timeout=self.config.stop_timeout_seconds)
                if not done:
                    logger.warning(f"Refresh task for {position_id[:8]} did not stop within timeout")

        if position is None and task is None:
            return False

        logger.info(f"Stopped monitoring {position_id[:8]}")
        return True

    async def stop_all(self) -> None:
        """Stop every monitored position (shutdown)."""
        position_ids = set(self._tasks) | {p.id for p in self.registry.positions()}
        for position_id in position_ids:
            await self.stop_monitoring(position_id)
        logger.info(f"✓ Stopped monitoring {len(position_ids)} position(s)")

    async def _monitor_loop(self, position_id: str) -> None:
        """Refresh one position every update_interval_seconds until stopped."""
        while True:
            try:
                await asyncio.sleep(self.config.update_interval_seconds)
                await self.update_position(position_id)

                position = self.registry.get(position_id)
                if not position.is_open:
                    logger.info(f"Position {position_id[:8]} is {position.status.value}, ending monitoring")
                    self._discard(position_id)
                    break

            except asyncio.CancelledError:
                logger.debug(f"Monitoring loop cancelled for {position_id[:8]}")
                break

            except PositionNotFoundError:
                break

            except TransientFetchError as e:
                await self._emit_api_error(position_id, e)

            except Exception as e:
                logger.error(f"Error refreshing {position_id[:8]}: {e}")
                await self._emit_api_error(position_id, e)

    def _discard(self, position_id: str) -> None:
        self._tasks.pop(position_id, None)
        self._locks.pop(position_id, None)
        self.registry.remove(position_id)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def update_position(self, position_id: str) -> PositionUpdate:
        """
        Refresh one position now.

        Args:
            position_id: Position identity

        Returns:
            PositionUpdate for this refresh

        Raises:
            PositionNotFoundError: If the position is not monitored
            TransientFetchError: If quotes could not be fetched or priced
        """
        position = self.registry.get(position_id)
        lock = self._locks.setdefault(position_id, asyncio.Lock())

        alerts: list[MonitoringAlert] = []
        plan = None

        async with lock:
            option_quote, underlying_quote = await self._fetch_quotes(position)

            if position_id not in self.registry:
                raise PositionNotFoundError(position_id)

            now = datetime.now()
            snapshot = self._build_snapshot(position, option_quote, underlying_quote, now)
            previous = self.registry.get_snapshot(position_id)

            position.current_price = snapshot.option_price
            position.current_greeks = snapshot.greeks
            position.current_iv = snapshot.implied_volatility
            position.current_pnl = snapshot.pnl.total
            position.pnl_percent = snapshot.pnl.total / position.entry_value if position.entry_value > 0 else 0.0
            position.days_to_expiration = snapshot.days_to_expiration
            position.last_updated = now
            self.registry.set_snapshot(position_id, snapshot)

            alerts.extend(self._detect_alerts(position, previous, snapshot))

            if self.exit_manager is not None:
                if now.date() > position.expiration:
                    self.exit_manager.mark_expired(position, now)
                else:
                    market_condition = await self._fetch_market_condition(position.symbol)
                    decision = self.exit_manager.evaluate(position, snapshot, market_condition, now=now)
                    if decision.should_exit:
                        plan = self.exit_manager.create_execution_plan(decision, position, snapshot)

        if plan is not None and plan.urgency == Urgency.IMMEDIATE:
            alerts.append(
                MonitoringAlert(
                    position_id=position_id,
                    alert_type=AlertType.RISK_THRESHOLD,
                    severity=AlertSeverity.CRITICAL,
                    message=f"Immediate exit required: {plan.exit_type.value}",
                    timestamp=now,
                    data={"exit_type": plan.exit_type.value, "contracts_to_close": plan.contracts_to_close},
                )
            )

        for alert in alerts:
            await self._emit_alert(alert)
        if plan is not None:
            await self._emit_exit_plan(plan)

        logger.debug(
            f"Refreshed {position.symbol} {position_id[:8]}: price={snapshot.option_price:.2f} "
            f"P&L={snapshot.pnl.total:+.2f} DTE={snapshot.days_to_expiration}"
        )

        return PositionUpdate(
            position_id=position_id,
            trade_id=position.trade_id,
            current_price=snapshot.option_price,
            current_greeks=snapshot.greeks,
            current_pnl=snapshot.pnl.total,
            pnl_percent=position.pnl_percent,
            days_to_expiration=snapshot.days_to_expiration,
            theta_decay=snapshot.pnl.theta_decay,
            iv_change=snapshot.implied_volatility - position.entry_iv,
            last_updated=now,
        )

    def _build_snapshot(
        self,
        position: Position,
        option_quote: OptionQuote,
        underlying_quote: UnderlyingQuote,
        now: datetime,
    ) -> PositionSnapshot:
        option_price = option_quote.price
        underlying_price = underlying_quote.price
        if option_price <= 0 or underlying_price <= 0:
            raise TransientFetchError(
                f"No usable price for {position.option_symbol} "
                f"(option={option_price}, underlying={underlying_price})",
                symbol=position.option_symbol,
            )

        if not option_quote.has_greeks:
            logger.warning(f"No Greeks for {position.option_symbol}, using zeros")

        if position.entry_underlying_price <= 0:
            position.entry_underlying_price = underlying_price

        greeks = option_quote.greeks
        return PositionSnapshot(
            position_id=position.id,
            underlying_price=underlying_price,
            option_price=option_price,
            bid=option_quote.bid,
            ask=option_quote.ask,
            greeks=greeks,
            implied_volatility=greeks.implied_volatility,
            days_to_expiration=self.calendar.days_to_expiration(position.expiration, now=now),
            pnl=self.calculate_pnl(position, option_price, underlying_price, greeks.implied_volatility, now=now),
            risk_metrics=self.calculate_risk_metrics(position, greeks, underlying_price),
            timestamp=now,
        )

    # ------------------------------------------------------------------
    # Calculations
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_pnl(
        position: Position,
        option_price: float,
        underlying_price: float,
        current_iv: float,
        now: Optional[datetime] = None,
    ) -> PnLCalculation:
        """
        P&L of the open contracts attributed by Greek.

        Attribution is a linear approximation from ENTRY Greeks, not a
        re-pricing, and drifts for large underlying moves. A missing current
        IV (0) attributes nothing to vega.
        """
        now = now or datetime.now()
        size = position.contracts * OPTION_MULTIPLIER
        entry = position.entry_greeks

        total = (option_price - position.entry_price) * size

        if position.option_kind == OptionKind.CALL:
            intrinsic_per_share = max(0.0, underlying_price - position.strike)
        else:
            intrinsic_per_share = max(0.0, position.strike - underlying_price)
        time_value_per_share = max(0.0, option_price - intrinsic_per_share)

        entry_underlying = position.entry_underlying_price or underlying_price
        move = underlying_price - entry_underlying
        days_elapsed = max(0.0, (now - position.entry_date).total_seconds() / 86400)

        delta_contribution = move * entry.delta * size
        theta_decay = entry.theta * days_elapsed * size
        gamma_effect = 0.5 * entry.gamma * move ** 2 * size
        vega_effect = entry.vega * (current_iv - position.entry_iv) * size if current_iv > 0 else 0.0

        return PnLCalculation(
            total=total,
            intrinsic_value=intrinsic_per_share * size,
            time_value=time_value_per_share * size,
            volatility_pnl=vega_effect,
            theta_decay=theta_decay,
            delta_contribution=delta_contribution,
            gamma_effect=gamma_effect,
            vega_effect=vega_effect,
        )

    @staticmethod
    def calculate_risk_metrics(position: Position, greeks: Greeks, underlying_price: float) -> RiskMetrics:
        """Dollar risk for the open contracts from current Greeks."""
        size = position.contracts * OPTION_MULTIPLIER
        notional = size * underlying_price

        return RiskMetrics(
            delta_exposure=greeks.delta * notional,
            gamma_risk=greeks.gamma * notional,
            theta_decay=abs(greeks.theta * size),
            vega_risk=abs(greeks.vega * size),
            portfolio_delta=greeks.delta * size,
            portfolio_gamma=greeks.gamma * size,
        )

    def _detect_alerts(
        self,
        position: Position,
        previous: Optional[PositionSnapshot],
        current: PositionSnapshot,
    ) -> list[MonitoringAlert]:
        alerts = []

        if previous is not None:
            delta_change = current.greeks.delta - previous.greeks.delta
            if abs(delta_change) > self.config.significant_greeks_change:
                alerts.append(
                    MonitoringAlert(
                        position_id=position.id,
                        alert_type=AlertType.GREEKS_CHANGE,
                        severity=AlertSeverity.MEDIUM,
                        message=(
                            f"Significant delta change: {delta_change:+.3f} "
                            f"({previous.greeks.delta:.3f} -> {current.greeks.delta:.3f})"
                        ),
                        timestamp=current.timestamp,
                        data={
                            "previous_delta": previous.greeks.delta,
                            "current_delta": current.greeks.delta,
                            "delta_change": delta_change,
                        },
                    )
                )

            threshold = self.config.dte_warning_threshold
            if previous.days_to_expiration > threshold >= current.days_to_expiration:
                alerts.append(
                    MonitoringAlert(
                        position_id=position.id,
                        alert_type=AlertType.DTE_WARNING,
                        severity=AlertSeverity.HIGH,
                        message=f"Position approaching expiration: {current.days_to_expiration} days remaining",
                        timestamp=current.timestamp,
                        data={"days_to_expiration": current.days_to_expiration},
                    )
                )

        theta_now = self._theta_breach(position, current)
        theta_before = previous is not None and self._theta_breach(position, previous)
        if theta_now and not theta_before:
            theta_percent = current.risk_metrics.theta_decay / position.entry_value
            alerts.append(
                MonitoringAlert(
                    position_id=position.id,
                    alert_type=AlertType.THETA_DECAY,
                    severity=AlertSeverity.HIGH,
                    message=f"Excessive theta decay while losing: {theta_percent:.1%} per day",
                    timestamp=current.timestamp,
                    data={
                        "daily_theta": current.risk_metrics.theta_decay,
                        "theta_percent": theta_percent,
                        "total_pnl": current.pnl.total,
                    },
                )
            )

        return alerts

    def _theta_breach(self, position: Position, snapshot: PositionSnapshot) -> bool:
        entry_value = position.entry_value
        if entry_value <= 0 or snapshot.pnl.total >= 0:
            return False
        return snapshot.risk_metrics.theta_decay / entry_value > self.config.theta_alert_threshold

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_quotes(self, position: Position) -> tuple[OptionQuote, UnderlyingQuote]:
        """Fetch both quotes concurrently; a failure cancels the other fetch."""
        fetches = [
            asyncio.ensure_future(self._fetch_option_quote(position.option_symbol)),
            asyncio.ensure_future(self._fetch_underlying_quote(position.symbol)),
        ]
        try:
            option_quote, underlying_quote = await asyncio.gather(*fetches)
        except BaseException:
            for fetch in fetches:
                fetch.cancel()
            raise
        return option_quote, underlying_quote

    async def _fetch_option_quote(self, symbol: str) -> OptionQuote:
        return await fetch_with_retry(
            lambda: self.quote_source.get_option_quote(symbol),
            symbol,
            max_retries=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
            timeout=self.config.fetch_timeout_seconds,
        )

    async def _fetch_underlying_quote(self, symbol: str) -> UnderlyingQuote:
        return await fetch_with_retry(
            lambda: self.quote_source.get_underlying_quote(symbol),
            symbol,
            max_retries=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
            timeout=self.config.fetch_timeout_seconds,
        )

    async def _fetch_market_condition(self, symbol: str) -> Optional[MarketCondition]:
        if self.market_feed is None:
            return None
        try:
            return await asyncio.wait_for(
                self.market_feed.get_market_condition(symbol),
                timeout=self.config.fetch_timeout_seconds,
            )
        except Exception as e:
            logger.warning(f"Market condition unavailable for {symbol}: {e}")
            return None

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def on_alert(self, callback: AlertCallback) -> None:
        """Subscribe to alerts (sync or async callback)."""
        self._alert_callbacks.append(callback)

    def on_exit_plan(self, callback: ExitPlanCallback) -> None:
        """Subscribe to exit execution plans (sync or async callback)."""
        self._exit_callbacks.append(callback)

    async def _emit_alert(self, alert: MonitoringAlert) -> None:
        log = logger.warning if alert.severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL) else logger.info
        log(f"Alert {alert.alert_type.value} ({alert.severity.value}) for {alert.position_id[:8]}: {alert.message}")
        for callback in list(self._alert_callbacks):
            await self._invoke(callback, alert)

    async def _emit_exit_plan(self, plan: "ExitExecutionPlan") -> None:
        for callback in list(self._exit_callbacks):
            await self._invoke(callback, plan)

    async def _emit_api_error(self, position_id: str, error: Exception) -> None:
        await self._emit_alert(
            MonitoringAlert(
                position_id=position_id,
                alert_type=AlertType.API_ERROR,
                severity=AlertSeverity.HIGH,
                message=f"Failed to update position: {error}",
                data={"error": str(error), "error_type": type(error).__name__},
            )
        )

    @staticmethod
    async def _invoke(callback: Callable[[Any], Any], payload: Any) -> None:
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Subscriber callback {getattr(callback, '__name__', callback)!r} failed: {e}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_snapshot(self, position_id: str) -> Optional[PositionSnapshot]:
        """Latest snapshot, or None if unknown or not yet refreshed."""
        return self.registry.get_snapshot(position_id)

    def get_active_positions(self) -> list[Position]:
        """Positions currently monitored."""
        return self.registry.positions()

    def is_monitoring(self, position_id: str) -> bool:
        """True while the position has a live refresh task."""
        task = self._tasks.get(position_id)
        return task is not None and not task.done()

    def portfolio_risk(self) -> PortfolioRisk:
        """Portfolio aggregation over the registry."""
        return self.registry.portfolio_risk()

    def get_monitoring_stats(self) -> MonitoringStats:
        """Operational counters."""
        return self.registry.monitoring_stats(self.config.update_interval_seconds)

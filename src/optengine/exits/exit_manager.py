"""
Exit Manager

Evaluates every exit check against a position's latest snapshot, resolves
the winner by fixed priority and turns it into a closing execution plan.

Key patterns:
- Checks run in priority order; a failing check is logged and skipped
- evaluate() never raises: a missing or malformed snapshot yields no exit
- Close fractions are expressed against the ORIGINAL size (entry_contracts)
- apply_exit() is the only writer of target-hit flags, realized P&L, open contracts and status

Usage:
    manager = ExitManager()
    decision = manager.evaluate(position, snapshot, market_condition)
    if decision.should_exit:
        plan = manager.create_execution_plan(decision, position, snapshot)
        # submit plan as a closing order, then on fill:
        manager.apply_exit(position, plan)
"""

import math
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from loguru import logger

from optengine.config.engine_config import ExitRules
from optengine.exits.models import (
    EXIT_PRIORITY,
    ExitCondition,
    ExitContext,
    ExitDecision,
    ExitExecutionPlan,
    ExitTimingEstimate,
    ExitType,
    OrderType,
    Urgency,
)
from optengine.exits.rules import ExitCheck, default_checks
from optengine.market_calendar import MarketCalendar
from optengine.models import OPTION_MULTIPLIER, MarketCondition, Position, PositionStatus

if TYPE_CHECKING:
    from optengine.monitoring.models import PositionSnapshot

logger = logger.bind(component="ExitManager")

# ceil() tolerance for products like 10 x 0.3
_EPSILON = 1e-9

_FULL_CLOSE_URGENCY = {
    ExitType.STOP_LOSS: Urgency.IMMEDIATE,
    ExitType.DTE_EXIT: Urgency.IMMEDIATE,
    ExitType.EOD_EXIT: Urgency.IMMEDIATE,
    ExitType.THETA_DECAY: Urgency.HIGH,
    ExitType.IV_CRUSH: Urgency.HIGH,
    ExitType.PROFIT_TARGET_3: Urgency.MEDIUM,
}


class ExitManager:
    """
    Resolve exit conditions into close instructions.

    **Priority (highest first):**
    STOP_LOSS > DTE_EXIT > EOD_EXIT > THETA_DECAY > IV_CRUSH >
    PROFIT_TARGET_3 > PROFIT_TARGET_2 > PROFIT_TARGET_1 > OSCILLATOR_REVERSAL

    **Close fractions (of the original size):**
    - STOP_LOSS, DTE_EXIT, EOD_EXIT: 100%, IMMEDIATE
    - THETA_DECAY, IV_CRUSH: 100%, HIGH
    - PROFIT_TARGET_3: 100%, MEDIUM
    - PROFIT_TARGET_1: partial_exit_t1_percent, MEDIUM
    - PROFIT_TARGET_2: partial_exit_t2_percent of the remainder after target 1, MEDIUM
    - OSCILLATOR_REVERSAL: oscillator_exit_percent, LOW

    Attributes:
        rules: Exit thresholds
        calendar: Market calendar (EOD exit)
        checks: Exit checks, sorted by priority
    """

    def __init__(
        self,
        rules: Optional[ExitRules] = None,
        calendar: Optional[MarketCalendar] = None,
        checks: Optional[list[ExitCheck]] = None,
    ):
        """
        Initialize exit manager.

        Raises:
            ValueError: If rules are invalid
        """
        self.rules = rules or ExitRules()
        self.calendar = calendar or MarketCalendar()
        self.checks = sorted(checks, key=lambda c: c.priority) if checks else default_checks()
        self._stats: dict[str, int] = {t.value: 0 for t in ExitType}

        errors = self.rules.validate()
        if errors:
            raise ValueError("Invalid exit rules:\n" + "\n".join(f"  - {e}" for e in errors))

        logger.debug(f"ExitManager initialized with {len(self.checks)} checks")

    def evaluate(
        self,
        position: Position,
        snapshot: Optional["PositionSnapshot"],
        market_condition: Optional[MarketCondition] = None,
        now: Optional[datetime] = None,
    ) -> ExitDecision:
        """
        Evaluate all exit checks and resolve by priority.

        Never raises: an unavailable or malformed snapshot yields no exit.

        Args:
            position: Position with current flags
            snapshot: Most recent snapshot for the position
            market_condition: Live market condition (oscillator reversal)
            now: Evaluation instant (default: now)

        Returns:
            ExitDecision
        """
        now = now or datetime.now()

        if snapshot is None:
            return ExitDecision.no_exit("No snapshot available")
        if not position.is_open or position.contracts <= 0:
            return ExitDecision.no_exit(f"Position is {position.status.value}")

        try:
            context = ExitContext(
                position=position,
                snapshot=snapshot,
                rules=self.rules,
                calendar=self.calendar,
                now=now,
                market_condition=market_condition,
            )

            fired: list[ExitCondition] = []
            for check in self.checks:
                try:
                    conditions = check.evaluate(context)
                except Exception as e:
                    logger.error(f"Error evaluating exit check {check.name} for {position.id[:8]}: {e}")
                    continue
                fired.extend(c for c in conditions if c.triggered)

            decision = self.resolve(fired, position)

        except Exception as e:
            logger.error(f"Exit evaluation failed for {position.id[:8]}: {e}")
            return ExitDecision.no_exit(f"Exit evaluation failed: {e}")

        if decision.should_exit:
            self._stats[decision.exit_type.value] += 1
            logger.info(
                f"Exit triggered for {position.symbol} {position.id[:8]}: {decision.exit_type.value} "
                f"→ close {decision.exit_fraction:.0%} ({decision.urgency.value})"
            )

        return decision

    def resolve(self, conditions: list[ExitCondition], position: Position) -> ExitDecision:
        """
        Pick the highest-priority fired condition.

        Args:
            conditions: Conditions that fired
            position: Position (for target 2 remainder)

        Returns:
            ExitDecision carrying every fired condition
        """
        fired = [c for c in conditions if c.triggered]
        if not fired:
            return ExitDecision.no_exit()

        by_type = {}
        for condition in fired:
            by_type.setdefault(condition.exit_type, condition)

        winner = next(by_type[t] for t in EXIT_PRIORITY if t in by_type)
        fraction, urgency = self.close_fraction(winner.exit_type, position)

        return ExitDecision(
            should_exit=True,
            exit_type=winner.exit_type,
            exit_fraction=fraction,
            urgency=urgency,
            reasoning=self._generate_reasoning(winner, fired),
            conditions=fired,
        )

    def close_fraction(self, exit_type: ExitType, position: Position) -> tuple[float, Urgency]:
        """
        Fraction of the original size to close, and urgency.

        Target 2 closes partial_exit_t2_percent of what is left after
        target 1, i.e. t2 x (1 - t1) of the original size.
        """
        if exit_type in _FULL_CLOSE_URGENCY:
            return 1.0, _FULL_CLOSE_URGENCY[exit_type]

        if exit_type == ExitType.PROFIT_TARGET_1:
            return self.rules.partial_exit_t1_percent, Urgency.MEDIUM

        if exit_type == ExitType.PROFIT_TARGET_2:
            remaining = 1 - self.rules.partial_exit_t1_percent if position.target1_hit else 1.0
            return self.rules.partial_exit_t2_percent * remaining, Urgency.MEDIUM

        if exit_type == ExitType.OSCILLATOR_REVERSAL:
            return self.rules.oscillator_exit_percent, Urgency.LOW

        return 1.0, Urgency.MEDIUM

    def create_execution_plan(
        self,
        decision: ExitDecision,
        position: Position,
        snapshot: "PositionSnapshot",
    ) -> ExitExecutionPlan:
        """
        Convert a decision into a closing order.

        contracts_to_close = min(open contracts, ceil(entry_contracts x fraction)).
        IMMEDIATE urgency uses a MARKET order filled at price x (1 - slippage);
        otherwise a LIMIT order at the quote mid.

        Raises:
            ValueError: If the decision is not an exit
        """
        if not decision.should_exit or decision.exit_type is None:
            raise ValueError("Cannot create an execution plan for a non-exit decision")

        if decision.exit_fraction >= 1.0:
            contracts_to_close = position.contracts
        else:
            wanted = math.ceil(position.entry_contracts * decision.exit_fraction - _EPSILON)
            contracts_to_close = min(position.contracts, max(1, wanted))

        if decision.urgency == Urgency.IMMEDIATE:
            order_type = OrderType.MARKET
            fill_price = snapshot.option_price * (1 - self.rules.market_order_slippage)
        else:
            order_type = OrderType.LIMIT
            fill_price = snapshot.mid

        plan = ExitExecutionPlan(
            position_id=position.id,
            exit_type=decision.exit_type,
            contracts_to_close=contracts_to_close,
            urgency=decision.urgency,
            order_type=order_type,
            estimated_fill_price=fill_price,
            reasoning=decision.reasoning,
            exit_fraction=decision.exit_fraction,
            conditions=list(decision.conditions),
        )

        logger.info(
            f"✓ Exit plan for {position.symbol} {position.id[:8]}: {order_type.value} "
            f"close {contracts_to_close}/{position.contracts} @ ~{fill_price:.2f}"
        )
        return plan

    def apply_exit(
        self,
        position: Position,
        plan: ExitExecutionPlan,
        now: Optional[datetime] = None,
        fill_price: Optional[float] = None,
    ) -> Position:
        """
        Record a filled closing order on the position.

        Sets the profit target flag, books realized P&L, reduces open
        contracts, appends the fired conditions to history and marks the
        position CLOSED when flat.

        Args:
            position: Position the plan was created for
            plan: Filled execution plan
            now: Fill instant (default: now)
            fill_price: Actual per-share fill (default: the plan's estimate)

        Raises:
            ValueError: If the plan belongs to another position
        """
        if plan.position_id != position.id:
            raise ValueError(f"Plan for {plan.position_id} applied to position {position.id}")

        price = plan.estimated_fill_price if fill_price is None else fill_price
        closed = min(plan.contracts_to_close, position.contracts)
        position.realized_pnl += (price - position.entry_price) * closed * OPTION_MULTIPLIER

        if plan.exit_type == ExitType.PROFIT_TARGET_1:
            position.target1_hit = True
        elif plan.exit_type == ExitType.PROFIT_TARGET_2:
            position.target2_hit = True
        elif plan.exit_type == ExitType.PROFIT_TARGET_3:
            position.target3_hit = True

        position.contracts = max(0, position.contracts - plan.contracts_to_close)
        position.exit_conditions.extend(plan.conditions)
        position.last_updated = now or datetime.now()

        if position.contracts == 0:
            position.status = PositionStatus.CLOSED
            logger.info(f"✓ Position {position.symbol} {position.id[:8]} closed ({plan.exit_type.value})")
        else:
            logger.info(
                f"Partial exit on {position.symbol} {position.id[:8]}: "
                f"{position.contracts}/{position.entry_contracts} contracts remain"
            )

        return position

    def mark_expired(self, position: Position, now: Optional[datetime] = None) -> Position:
        """Mark an open position EXPIRED once its expiration date has passed."""
        if position.is_open:
            position.status = PositionStatus.EXPIRED
            position.last_updated = now or datetime.now()
            logger.warning(f"Position {position.symbol} {position.id[:8]} expired with {position.contracts} open")
        return position

    def estimate_exit_timing(self, position: Position, snapshot: "PositionSnapshot") -> ExitTimingEstimate:
        """
        Heuristic guess at the likely exit.

        Near target 1 (over 80% of it): PROFIT_TARGET_1 within 2 days.
        Within 2 days of the DTE threshold: DTE_EXIT.
        Otherwise THETA_DECAY around half the remaining DTE.
        """
        dte = snapshot.days_to_expiration
        entry_value = position.entry_value
        profit_percent = snapshot.pnl.total / entry_value if entry_value > 0 else 0.0

        if profit_percent > self.rules.profit_target_1_percent * 0.8:
            return ExitTimingEstimate(
                likely_exit_type=ExitType.PROFIT_TARGET_1,
                estimated_days=min(2, dte),
                confidence=0.7,
                reasoning=f"Profit {profit_percent:.1%} approaching target 1",
            )

        if dte <= self.rules.dte_exit_threshold + 2:
            return ExitTimingEstimate(
                likely_exit_type=ExitType.DTE_EXIT,
                estimated_days=max(0, dte - self.rules.dte_exit_threshold),
                confidence=0.9,
                reasoning=f"{dte} DTE approaching exit threshold",
            )

        return ExitTimingEstimate(
            likely_exit_type=ExitType.THETA_DECAY,
            estimated_days=dte // 2,
            confidence=0.5,
            reasoning="No target in reach, time decay dominates",
        )

    def get_exit_stats(self) -> dict[str, int]:
        """Trigger counts per exit type."""
        return dict(self._stats)

    @staticmethod
    def _generate_reasoning(primary: ExitCondition, fired: list[ExitCondition]) -> str:
        reasons = [primary.description]

        secondary = [c.exit_type.value for c in fired if c.exit_type != primary.exit_type][:2]
        if secondary:
            reasons.append(f"Additional conditions: {', '.join(secondary)}")

        return ". ".join(reasons)

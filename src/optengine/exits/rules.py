"""
Exit Condition Checks

One class per exit condition. Each check reads an ExitContext and returns
the conditions it evaluated (triggered or not); the ExitManager keeps the
triggered ones and resolves them by EXIT_PRIORITY.

Checks:
- StopLoss (1): realized + unrealized loss >= original entry value x stop_loss_percent
- DTEExit (2): DTE <= dte_exit_threshold
- EODExit (3): market open and 0 < minutes to close <= eod_exit_minutes
- ThetaDecay (4): daily theta > threshold x entry value while P&L < 0
- IVCrush (5): (entry_iv - current_iv) / entry_iv > iv_crush_threshold
- ProfitTarget (6): targets 1/2/3 in strict sequence
- OscillatorReversal (9): reversal opposite to the position's direction

Key patterns:
- Protocol-based checks (duck-typing, no inheritance required)
- Pure functions of the context, no I/O, no mutation
"""

from typing import Protocol, runtime_checkable

from optengine.exits.models import ExitCondition, ExitContext, ExitType
from optengine.models import Direction, OscillatorPhase


@runtime_checkable
class ExitCheck(Protocol):
    """
    Exit check protocol.

    Attributes:
        priority: Evaluation order (lower first)
        name: Unique check name
    """

    priority: int
    name: str

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        """Evaluate the check and return its conditions."""
        ...


class StopLossCheck:
    """Stop loss: realized plus unrealized loss reaches stop_loss_percent of the original entry value."""

    priority = 1
    name = "stop_loss"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        entry_value = context.position.original_entry_value
        threshold = context.rules.stop_loss_percent

        loss = abs(min(0.0, context.snapshot.pnl.total + context.position.realized_pnl))
        loss_percent = loss / entry_value if entry_value > 0 else 0.0

        return [
            ExitCondition(
                exit_type=ExitType.STOP_LOSS,
                triggered=loss_percent >= threshold,
                value=loss_percent,
                threshold=threshold,
                description=f"Stop loss: {loss_percent:.1%} loss (threshold {threshold:.0%})",
                timestamp=context.now,
            )
        ]


class ProfitTargetCheck:
    """
    Profit targets 1/2/3.

    Strict sequence: target 2 requires target1_hit, target 3 requires
    target2_hit. A target already hit never fires again.
    """

    priority = 6
    name = "profit_target"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        position = context.position
        rules = context.rules
        entry_value = position.entry_value

        profit = max(0.0, context.snapshot.pnl.total)
        profit_percent = profit / entry_value if entry_value > 0 else 0.0

        targets = (
            (ExitType.PROFIT_TARGET_1, rules.profit_target_1_percent, True, position.target1_hit),
            (ExitType.PROFIT_TARGET_2, rules.profit_target_2_percent, position.target1_hit, position.target2_hit),
            (ExitType.PROFIT_TARGET_3, rules.profit_target_3_percent, position.target2_hit, position.target3_hit),
        )

        conditions = []
        for number, (exit_type, threshold, unlocked, already_hit) in enumerate(targets, start=1):
            conditions.append(
                ExitCondition(
                    exit_type=exit_type,
                    triggered=unlocked and not already_hit and profit_percent >= threshold,
                    value=profit_percent,
                    threshold=threshold,
                    description=f"Profit target {number}: {profit_percent:.1%} profit (target {threshold:.0%})",
                    timestamp=context.now,
                )
            )
        return conditions


class DTEExitCheck:
    """Close ahead of expiration."""

    priority = 2
    name = "dte_exit"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        dte = context.snapshot.days_to_expiration
        threshold = context.rules.dte_exit_threshold

        return [
            ExitCondition(
                exit_type=ExitType.DTE_EXIT,
                triggered=dte <= threshold,
                value=dte,
                threshold=threshold,
                description=f"DTE exit: {dte} days to expiration (threshold {threshold})",
                timestamp=context.now,
            )
        ]


class ThetaDecayCheck:
    """Excessive daily theta while losing."""

    priority = 4
    name = "theta_decay"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        entry_value = context.position.entry_value
        threshold = context.rules.theta_decay_threshold

        daily_theta = context.snapshot.risk_metrics.theta_decay
        theta_percent = daily_theta / entry_value if entry_value > 0 else 0.0
        losing = context.snapshot.pnl.total < 0

        return [
            ExitCondition(
                exit_type=ExitType.THETA_DECAY,
                triggered=theta_percent > threshold and losing,
                value=theta_percent,
                threshold=threshold,
                description=f"Excessive theta decay: {theta_percent:.1%}/day while losing",
                timestamp=context.now,
            )
        ]


class IVCrushCheck:
    """Relative implied volatility drop since entry."""

    priority = 5
    name = "iv_crush"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        entry_iv = context.position.entry_iv
        current_iv = context.snapshot.implied_volatility
        threshold = context.rules.iv_crush_threshold

        # No IV on either side (missing Greeks) means no reading, not a crush
        if entry_iv <= 0 or current_iv <= 0:
            crush = 0.0
        else:
            crush = (entry_iv - current_iv) / entry_iv

        return [
            ExitCondition(
                exit_type=ExitType.IV_CRUSH,
                triggered=crush > threshold,
                value=crush,
                threshold=threshold,
                description=f"IV crush: {crush:.1%} drop from entry IV {entry_iv:.1%}",
                timestamp=context.now,
            )
        ]


class EODExitCheck:
    """Close shortly before the regular session ends."""

    priority = 3
    name = "eod_exit"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        threshold = context.rules.eod_exit_minutes
        minutes = context.calendar.minutes_to_close(context.now)
        market_open = context.calendar.is_market_open(context.now)

        return [
            ExitCondition(
                exit_type=ExitType.EOD_EXIT,
                triggered=market_open and 0 < minutes <= threshold,
                value=minutes,
                threshold=threshold,
                description=f"EOD exit: {round(minutes)} minutes to market close",
                timestamp=context.now,
            )
        ]


class OscillatorReversalCheck:
    """
    Reversal against the position's directional bias.

    With a reversal direction from the feed, fires on an extreme or zone
    reversal pointing opposite to the position. Without one, an extreme
    reversal counts against any directional position.
    """

    priority = 9
    name = "oscillator_reversal"

    def evaluate(self, context: ExitContext) -> list[ExitCondition]:
        condition = context.market_condition
        if condition is None:
            return []

        direction = context.position.strategy.direction

        triggered = False
        if direction != Direction.NEUTRAL:
            if condition.reversal_direction is not None:
                opposite = condition.reversal_direction not in (direction, Direction.NEUTRAL)
                triggered = condition.is_reversal and opposite
            else:
                triggered = condition.oscillator_phase == OscillatorPhase.EXTREME_REVERSAL

        return [
            ExitCondition(
                exit_type=ExitType.OSCILLATOR_REVERSAL,
                triggered=triggered,
                value=condition.oscillator_value,
                threshold=None,
                description=(
                    f"Oscillator reversal detected: {condition.oscillator_phase.value} "
                    f"against {direction.value} position"
                ),
                timestamp=context.now,
            )
        ]


def default_checks() -> list[ExitCheck]:
    """All exit checks, sorted by priority."""
    checks = [
        StopLossCheck(),
        DTEExitCheck(),
        EODExitCheck(),
        ThetaDecayCheck(),
        IVCrushCheck(),
        ProfitTargetCheck(),
        OscillatorReversalCheck(),
    ]
    return sorted(checks, key=lambda c: c.priority)

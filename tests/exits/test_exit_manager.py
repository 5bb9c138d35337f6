"""
Unit Tests for ExitManager

Test cases:
- Priority resolution across concurrently fired conditions
- Close fractions, urgency and order type in execution plans
- Profit target sequence with partial exits
- Robustness (missing snapshot, failing check, invalid rules)
- Position bookkeeping (apply_exit, mark_expired)
- Exit timing estimate and statistics
"""

from datetime import datetime
from itertools import combinations

import pytest

from optengine.exits import (
    EXIT_PRIORITY,
    ExitCondition,
    ExitDecision,
    ExitExecutionPlan,
    ExitManager,
    ExitRules,
    ExitType,
    OrderType,
    StopLossCheck,
    Urgency,
)
from optengine.models import Direction, MarketCondition, OscillatorPhase, PositionStatus
from tests.fixtures.position_fixtures import ENTRY_TIME, make_position, make_snapshot

NEAR_CLOSE = datetime(2026, 3, 2, 15, 45)


@pytest.fixture
def manager():
    return ExitManager()


def fired_condition(exit_type: ExitType) -> ExitCondition:
    return ExitCondition(
        exit_type=exit_type,
        triggered=True,
        value=1.0,
        threshold=0.5,
        description=f"{exit_type.value} fired",
        timestamp=ENTRY_TIME,
    )


class TestPriorityResolution:
    """Test that the highest-priority fired condition always wins."""

    @pytest.mark.parametrize("higher,lower", list(combinations(EXIT_PRIORITY, 2)))
    def test_pairwise(self, manager, position, higher, lower):
        decision = manager.resolve([fired_condition(lower), fired_condition(higher)], position)

        assert decision.exit_type == higher
        assert len(decision.conditions) == 2

    def test_nothing_fired(self, manager, position):
        decision = manager.resolve([], position)

        assert decision.should_exit is False
        assert decision.exit_type is None

    def test_stop_loss_beats_everything(self, manager, position):
        """Stop loss, DTE, EOD, theta and IV crush all at once resolve to stop loss."""
        snapshot = make_snapshot(position, 0.40, dte=2, theta=-0.60, implied_volatility=0.10)
        decision = manager.evaluate(position, snapshot, now=NEAR_CLOSE)

        assert decision.exit_type == ExitType.STOP_LOSS
        assert {c.exit_type for c in decision.conditions} == {
            ExitType.STOP_LOSS,
            ExitType.DTE_EXIT,
            ExitType.EOD_EXIT,
            ExitType.THETA_DECAY,
            ExitType.IV_CRUSH,
        }
        assert "Additional conditions: DTE_EXIT, EOD_EXIT" in decision.reasoning

    def test_dte_beats_profit(self, manager, position):
        decision = manager.evaluate(position, make_snapshot(position, 7.50, dte=3), now=ENTRY_TIME)
        assert decision.exit_type == ExitType.DTE_EXIT

    def test_quiet_position_holds(self, manager, position):
        decision = manager.evaluate(position, make_snapshot(position, 5.20), now=ENTRY_TIME)

        assert decision.should_exit is False
        assert decision.reasoning == "No exit conditions triggered"


class TestExecutionPlans:
    """Test close fractions, urgency and order types."""

    def test_stop_loss_market_order(self, manager, position):
        """Stop loss closes everything at market with 2% slippage."""
        snapshot = make_snapshot(position, 0.40)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        plan = manager.create_execution_plan(decision, position, snapshot)

        assert decision.urgency == Urgency.IMMEDIATE
        assert decision.exit_fraction == 1.0
        assert plan.order_type == OrderType.MARKET
        assert plan.contracts_to_close == 10
        assert plan.estimated_fill_price == pytest.approx(0.40 * 0.98)

    def test_eod_exit_is_immediate(self, manager, position):
        snapshot = make_snapshot(position, 5.20)
        decision = manager.evaluate(position, snapshot, now=NEAR_CLOSE)

        assert decision.exit_type == ExitType.EOD_EXIT
        assert decision.urgency == Urgency.IMMEDIATE

    def test_theta_decay_high_urgency_limit(self, manager, position):
        snapshot = make_snapshot(position, 4.00, theta=-0.60)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        plan = manager.create_execution_plan(decision, position, snapshot)

        assert decision.exit_type == ExitType.THETA_DECAY
        assert decision.urgency == Urgency.HIGH
        assert plan.order_type == OrderType.LIMIT
        assert plan.contracts_to_close == 10
        assert plan.estimated_fill_price == pytest.approx(4.00)

    def test_iv_crush_full_close(self, manager, position):
        snapshot = make_snapshot(position, 4.00, implied_volatility=0.15)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)

        assert decision.exit_type == ExitType.IV_CRUSH
        assert decision.exit_fraction == 1.0
        assert decision.urgency == Urgency.HIGH

    def test_oscillator_reversal_half_low(self, manager, position):
        condition = MarketCondition(
            oscillator_phase=OscillatorPhase.EXTREME_REVERSAL,
            reversal_direction=Direction.BEARISH,
        )
        snapshot = make_snapshot(position, 5.20)
        decision = manager.evaluate(position, snapshot, market_condition=condition, now=ENTRY_TIME)
        plan = manager.create_execution_plan(decision, position, snapshot)

        assert decision.exit_type == ExitType.OSCILLATOR_REVERSAL
        assert decision.exit_fraction == 0.5
        assert decision.urgency == Urgency.LOW
        assert plan.contracts_to_close == 5

    def test_close_capped_at_open_contracts(self, manager):
        """Fractions apply to the original size but never exceed what is open."""
        position = make_position(contracts=2, entry_contracts=10)
        snapshot = make_snapshot(position, 5.20)
        decision = ExitDecision(
            should_exit=True,
            exit_type=ExitType.OSCILLATOR_REVERSAL,
            exit_fraction=0.5,
            urgency=Urgency.LOW,
        )

        assert manager.create_execution_plan(decision, position, snapshot).contracts_to_close == 2

    def test_small_fraction_closes_at_least_one(self, manager):
        position = make_position(contracts=1)
        snapshot = make_snapshot(position, 5.20)
        decision = ExitDecision(
            should_exit=True,
            exit_type=ExitType.PROFIT_TARGET_1,
            exit_fraction=0.1,
            urgency=Urgency.MEDIUM,
        )

        assert manager.create_execution_plan(decision, position, snapshot).contracts_to_close == 1

    def test_non_exit_decision_rejected(self, manager, position):
        with pytest.raises(ValueError):
            manager.create_execution_plan(ExitDecision.no_exit(), position, make_snapshot(position, 5.0))


class TestProfitTargetSequence:
    """Test targets 1 -> 2 -> 3 with partial exits on a 10-contract position."""

    def test_full_sequence(self, manager, position):
        # Target 1 at +50%: close 5 of 10
        snapshot = make_snapshot(position, 7.50)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        plan = manager.create_execution_plan(decision, position, snapshot)

        assert decision.exit_type == ExitType.PROFIT_TARGET_1
        assert decision.urgency == Urgency.MEDIUM
        assert plan.order_type == OrderType.LIMIT
        assert plan.contracts_to_close == 5
        assert plan.estimated_fill_price == pytest.approx(7.50)

        manager.apply_exit(position, plan)
        assert position.target1_hit is True
        assert position.contracts == 5
        assert position.status == PositionStatus.OPEN

        # Target 2 at +100%: 60% of the remaining half, 3 of the original 10
        snapshot = make_snapshot(position, 10.00)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        plan = manager.create_execution_plan(decision, position, snapshot)

        assert decision.exit_type == ExitType.PROFIT_TARGET_2
        assert decision.exit_fraction == pytest.approx(0.3)
        assert plan.contracts_to_close == 3

        manager.apply_exit(position, plan)
        assert position.target2_hit is True
        assert position.contracts == 2

        # Target 3 at +200%: close the rest
        snapshot = make_snapshot(position, 15.00)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        plan = manager.create_execution_plan(decision, position, snapshot)

        assert decision.exit_type == ExitType.PROFIT_TARGET_3
        assert decision.urgency == Urgency.MEDIUM
        assert plan.contracts_to_close == 2

        manager.apply_exit(position, plan)
        assert position.target3_hit is True
        assert position.contracts == 0
        assert position.status == PositionStatus.CLOSED

    def test_target_one_not_refired(self, manager, position):
        snapshot = make_snapshot(position, 7.50)
        plan = manager.create_execution_plan(manager.evaluate(position, snapshot, now=ENTRY_TIME), position, snapshot)
        manager.apply_exit(position, plan)

        decision = manager.evaluate(position, make_snapshot(position, 7.50), now=ENTRY_TIME)
        assert decision.should_exit is False


class TestRobustness:
    """Test that evaluation never raises."""

    def test_missing_snapshot(self, manager, position):
        decision = manager.evaluate(position, None, now=ENTRY_TIME)

        assert decision.should_exit is False
        assert decision.reasoning == "No snapshot available"

    def test_closed_position(self, manager, position):
        position.status = PositionStatus.CLOSED
        decision = manager.evaluate(position, make_snapshot(position, 0.40), now=ENTRY_TIME)
        assert decision.should_exit is False

    def test_failing_check_is_skipped(self, position):
        class BrokenCheck:
            priority = 0
            name = "broken"

            def evaluate(self, context):
                raise RuntimeError("boom")

        manager = ExitManager(checks=[BrokenCheck(), StopLossCheck()])
        decision = manager.evaluate(position, make_snapshot(position, 0.40), now=ENTRY_TIME)

        assert decision.exit_type == ExitType.STOP_LOSS

    def test_malformed_snapshot(self, manager, position):
        decision = manager.evaluate(position, object(), now=ENTRY_TIME)
        assert decision.should_exit is False

    def test_invalid_rules_rejected(self):
        with pytest.raises(ValueError, match="Invalid exit rules"):
            ExitManager(ExitRules(stop_loss_percent=1.5))

    def test_invalid_decision_fraction(self):
        with pytest.raises(ValueError):
            ExitDecision(should_exit=True, exit_type=ExitType.STOP_LOSS, exit_fraction=1.5)

    def test_exit_requires_type(self):
        with pytest.raises(ValueError):
            ExitDecision(should_exit=True)


class TestBookkeeping:
    """Test apply_exit and mark_expired."""

    def test_apply_exit_wrong_position(self, manager, position):
        plan = ExitExecutionPlan(
            position_id="other",
            exit_type=ExitType.STOP_LOSS,
            contracts_to_close=10,
            urgency=Urgency.IMMEDIATE,
            order_type=OrderType.MARKET,
            estimated_fill_price=0.39,
            reasoning="",
        )
        with pytest.raises(ValueError):
            manager.apply_exit(position, plan)

    def test_apply_exit_records_conditions(self, manager, position):
        snapshot = make_snapshot(position, 0.40, dte=2)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        manager.apply_exit(position, manager.create_execution_plan(decision, position, snapshot))

        assert position.status == PositionStatus.CLOSED
        assert {c.exit_type for c in position.exit_conditions} == {ExitType.STOP_LOSS, ExitType.DTE_EXIT}

    def test_apply_exit_books_realized_pnl(self, manager, position):
        """Estimated fill by default, the actual fill when given."""
        snapshot = make_snapshot(position, 7.50)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        manager.apply_exit(position, manager.create_execution_plan(decision, position, snapshot))

        assert position.realized_pnl == pytest.approx(1250.0)

        snapshot = make_snapshot(position, 10.00)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        manager.apply_exit(position, manager.create_execution_plan(decision, position, snapshot), fill_price=9.80)

        assert position.realized_pnl == pytest.approx(1250.0 + 3 * 480.0)
        assert position.to_dict()["realized_pnl"] == pytest.approx(2690.0)

    def test_banked_profit_holds_off_stop_loss(self, manager, position):
        """After target 1, the open half collapsing is judged on the whole trade."""
        snapshot = make_snapshot(position, 7.50)
        decision = manager.evaluate(position, snapshot, now=ENTRY_TIME)
        manager.apply_exit(position, manager.create_execution_plan(decision, position, snapshot))

        decision = manager.evaluate(position, make_snapshot(position, 0.40), now=ENTRY_TIME)

        assert ExitType.STOP_LOSS not in {c.exit_type for c in decision.conditions}

    def test_mark_expired(self, manager, position):
        manager.mark_expired(position, now=datetime(2026, 4, 2, 9, 0))

        assert position.status == PositionStatus.EXPIRED
        assert position.contracts == 10

    def test_mark_expired_leaves_closed(self, manager, position):
        position.status = PositionStatus.CLOSED
        manager.mark_expired(position)
        assert position.status == PositionStatus.CLOSED


class TestTimingAndStats:
    """Test exit timing estimate and trigger statistics."""

    def test_near_target_one(self, manager, position):
        estimate = manager.estimate_exit_timing(position, make_snapshot(position, 7.25))

        assert estimate.likely_exit_type == ExitType.PROFIT_TARGET_1
        assert estimate.estimated_days == 2

    def test_near_dte_threshold(self, manager, position):
        estimate = manager.estimate_exit_timing(position, make_snapshot(position, 5.00, dte=4))

        assert estimate.likely_exit_type == ExitType.DTE_EXIT
        assert estimate.estimated_days == 1

    def test_time_decay_default(self, manager, position):
        estimate = manager.estimate_exit_timing(position, make_snapshot(position, 5.00, dte=30))

        assert estimate.likely_exit_type == ExitType.THETA_DECAY
        assert estimate.estimated_days == 15

    def test_stats_count_triggers(self, manager, position):
        manager.evaluate(position, make_snapshot(position, 0.40), now=ENTRY_TIME)
        manager.evaluate(position, make_snapshot(position, 7.50), now=ENTRY_TIME)
        manager.evaluate(position, make_snapshot(position, 5.20), now=ENTRY_TIME)

        stats = manager.get_exit_stats()
        assert stats["STOP_LOSS"] == 1
        assert stats["PROFIT_TARGET_1"] == 1
        assert sum(stats.values()) == 2

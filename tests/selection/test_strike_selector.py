"""
Unit Tests for StrikeSelector

Test cases:
- Delta targeting for calls and puts (puts matched on negative delta)
- Filtering of contracts without delta or with a one-sided quote
- Market-condition strike adjustment (reversal, compression, high IV)
- Vertical spread selection and structure validation
- Selection validation and scoring helpers
"""

from datetime import date

import pytest

from optengine.config import SelectionConfig
from optengine.models import (
    Greeks,
    InvalidSpreadStructure,
    InvalidStructureError,
    MarketCondition,
    NoContractsAvailable,
    NoDataError,
    OptionKind,
    OptionsChain,
    OscillatorCondition,
    OscillatorPhase,
)
from optengine.selection import (
    StrikeSelection,
    StrikeSelector,
    greeks_quality,
    score_strike_selection,
    validate_strike_selection,
)
from tests.fixtures.chain_fixtures import CHAIN_EXPIRATION, make_contract


@pytest.fixture
def selector():
    return StrikeSelector()


def make_selection(**overrides) -> StrikeSelection:
    values = dict(
        strike=495.0,
        option_symbol="SPY260401C00495000",
        actual_delta=0.65,
        target_delta=0.65,
        delta_deviation=0.0,
        premium=12.40,
        bid=12.30,
        ask=12.50,
        greeks=Greeks(delta=0.65, gamma=0.02, theta=-0.12, vega=0.35, implied_volatility=0.22),
    )
    values.update(overrides)
    return StrikeSelection(**values)


class TestSelectStrike:
    """Test single-contract selection."""

    def test_call_exact_delta(self, selector, spy_chain, neutral_condition):
        """0.65 delta call target picks the 495 strike with zero deviation."""
        selection = selector.select_strike(spy_chain, 0.65, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

        assert selection.strike == 495.0
        assert selection.option_symbol == "SPY260401C00495000"
        assert selection.actual_delta == pytest.approx(0.65)
        assert selection.delta_deviation == pytest.approx(0.0)
        assert selection.premium == pytest.approx(12.40)
        assert selection.was_adjusted is False
        assert "Excellent delta accuracy (within 0.05)" in selection.reasoning

    def test_put_matches_negative_delta(self, selector, spy_chain, neutral_condition):
        """A 0.30 put target is matched against -0.30."""
        selection = selector.select_strike(spy_chain, 0.30, OptionKind.PUT, CHAIN_EXPIRATION, neutral_condition)

        assert selection.strike == 490.0
        assert selection.target_delta == pytest.approx(-0.30)
        assert selection.actual_delta == pytest.approx(-0.30)
        assert selection.delta_deviation == pytest.approx(0.0)

    def test_negative_put_target_is_accepted(self, selector, spy_chain, neutral_condition):
        """Signed put targets give the same result as magnitudes."""
        signed = selector.select_strike(spy_chain, -0.65, OptionKind.PUT, CHAIN_EXPIRATION, neutral_condition)
        assert signed.strike == 510.0

    def test_between_strikes_picks_closest(self, selector, spy_chain, neutral_condition):
        """0.58 target lies between 0.65 and 0.55; the nearer 0.55 wins."""
        selection = selector.select_strike(spy_chain, 0.58, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

        assert selection.strike == 500.0
        assert selection.delta_deviation == pytest.approx(0.03)
        assert "Excellent delta accuracy (within 0.05)" in selection.reasoning

    def test_deviation_never_beaten(self, selector, spy_chain, neutral_condition):
        """No surviving candidate is closer to the target than the pick."""
        target = 0.40
        selection = selector.select_strike(spy_chain, target, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

        candidates = selector.filter_candidates(spy_chain, OptionKind.CALL, CHAIN_EXPIRATION)
        assert all(abs(c.greeks.delta - target) >= selection.delta_deviation - 1e-12 for c in candidates)

    def test_filters_missing_delta_and_zero_bid(self, selector, spy_chain):
        """Contracts without delta or with a zero bid are never candidates."""
        candidates = selector.filter_candidates(spy_chain, OptionKind.CALL, CHAIN_EXPIRATION)
        strikes = {c.strike for c in candidates}

        assert 496.0 not in strikes
        assert 494.0 not in strikes
        assert len(candidates) == 7

    @pytest.mark.parametrize("raw_delta", [float("nan"), "n/a"])
    def test_unusable_payload_delta_never_selected(
        self, selector, spy_chain_payload, neutral_condition, raw_delta
    ):
        """A contract whose feed delta is NaN or garbage is not a zero-delta candidate."""
        payload = dict(spy_chain_payload, puts=[])
        payload["calls"] = [dict(payload["calls"][2], greeks={"delta": raw_delta, "gamma": 0.02})]
        chain = OptionsChain.from_dict(payload)

        assert selector.filter_candidates(chain, OptionKind.CALL, CHAIN_EXPIRATION) == []
        with pytest.raises(NoContractsAvailable):
            selector.select_strike(chain, 0.05, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

    @pytest.mark.parametrize("first_strike,second_strike", [(505, 495), (495, 505)])
    def test_delta_tie_keeps_input_order(self, selector, neutral_condition, first_strike, second_strike):
        """Equally distant deltas resolve to the contract listed first."""
        deltas = {495: 0.75, 505: 0.25}
        chain = OptionsChain(
            symbol="SPY",
            underlying_price=500.0,
            calls=[
                make_contract(first_strike, deltas[first_strike], 6.0, OptionKind.CALL),
                make_contract(second_strike, deltas[second_strike], 6.0, OptionKind.CALL),
            ],
            expirations=[CHAIN_EXPIRATION],
        )

        selection = selector.select_strike(chain, 0.50, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

        assert selection.strike == first_strike
        assert selection.delta_deviation == pytest.approx(0.25)
        assert selection.was_adjusted is False

    def test_unknown_expiration_raises(self, selector, spy_chain, neutral_condition):
        """No contracts on the expiration is a NoDataError."""
        with pytest.raises(NoContractsAvailable) as exc_info:
            selector.select_strike(spy_chain, 0.65, OptionKind.CALL, date(2026, 3, 20), neutral_condition)

        assert isinstance(exc_info.value, NoDataError)
        assert exc_info.value.symbol == "SPY"

    def test_extreme_reversal_moves_toward_atm(self, selector, spy_chain, extreme_reversal_condition):
        """Deep ITM pick is pulled 30% toward the money and re-resolved."""
        selection = selector.select_strike(
            spy_chain, 0.80, OptionKind.CALL, CHAIN_EXPIRATION, extreme_reversal_condition
        )

        # 485 -> 485 + 15 x 0.3 = 489.5 -> closest listed strike 490
        assert selection.strike == 490.0
        assert selection.was_adjusted is True
        assert selection.delta_deviation == pytest.approx(0.08)
        assert "Strike adjusted more aggressively due to extreme reversal signal" in selection.reasoning

    def test_small_adjustment_keeps_delta_pick(self, selector, spy_chain, extreme_reversal_condition):
        """Adjustment that resolves back to the same contract is not an adjustment."""
        selection = selector.select_strike(
            spy_chain, 0.65, OptionKind.CALL, CHAIN_EXPIRATION, extreme_reversal_condition
        )

        assert selection.strike == 495.0
        assert selection.was_adjusted is False

    def test_accepts_iso_expiration(self, selector, spy_chain, neutral_condition):
        selection = selector.select_strike(spy_chain, 0.65, OptionKind.CALL, "2026-04-01", neutral_condition)
        assert selection.expiration == CHAIN_EXPIRATION


class TestAdjustStrike:
    """Test market-condition strike adjustment."""

    def test_no_condition_keeps_strike(self, selector):
        assert selector.adjust_strike(495.0, 500.0, OscillatorCondition.neutral(), 45) == 495.0

    def test_extreme_reversal_toward_atm(self, selector):
        """ITM call strike moves 30% of its distance toward the money."""
        condition = OscillatorCondition(is_extreme_reversal=True)
        assert selector.adjust_strike(490.0, 500.0, condition, 45) == 493.0
        assert selector.adjust_strike(510.0, 500.0, condition, 45) == 507.0

    def test_compression_away_from_atm(self, selector):
        """Compression moves the strike 20% further from the money."""
        condition = OscillatorCondition(is_compression=True)
        assert selector.adjust_strike(510.0, 500.0, condition, 45) == 512.0
        assert selector.adjust_strike(490.0, 500.0, condition, 45) == 488.0

    def test_high_iv_nudges_outward(self, selector):
        """IV rank above 70 nudges the strike 10% further from the money."""
        assert selector.adjust_strike(510.0, 500.0, OscillatorCondition.neutral(), 80) == 511.0

    def test_adjustments_compound(self, selector):
        """High IV applies on top of the reversal adjustment."""
        condition = OscillatorCondition(is_extreme_reversal=True)
        # 490 -> 493 (reversal) -> 493 - 0.7 = 492.3 -> 492.5
        assert selector.adjust_strike(490.0, 500.0, condition, 80) == 492.5

    @pytest.mark.parametrize("base", [471.0, 483.3, 497.7, 503.1, 519.9, 533.4])
    @pytest.mark.parametrize(
        "condition",
        [
            OscillatorCondition.neutral(),
            OscillatorCondition(is_extreme_reversal=True),
            OscillatorCondition(is_compression=True),
        ],
    )
    def test_result_on_increment(self, selector, base, condition):
        """Result is always a multiple of the 0.5 strike increment."""
        adjusted = selector.adjust_strike(base, 500.0, condition, 85)
        assert (adjusted / 0.5) == pytest.approx(round(adjusted / 0.5))

    def test_rounds_half_up(self):
        """Exact midpoints round up."""
        selector = StrikeSelector(SelectionConfig(strike_increment=1.0))
        assert selector.adjust_strike(492.5, 500.0, OscillatorCondition.neutral(), 45) == 493.0


class TestSelectSpread:
    """Test vertical spread selection."""

    def test_call_debit_spread(self, selector, spy_chain, neutral_condition):
        """0.65/0.30 call spread buys 495 and sells 515."""
        spread = selector.select_spread(spy_chain, 0.65, 0.30, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

        assert spread.long_leg.strike == 495.0
        assert spread.short_leg.strike == 515.0
        assert spread.net_premium == pytest.approx(9.20)
        assert spread.spread_width == pytest.approx(20.0)
        assert spread.max_risk == pytest.approx(9.20)
        assert spread.max_profit == pytest.approx(10.80)
        assert spread.breakeven == pytest.approx(504.20)

    def test_put_debit_spread(self, selector, spy_chain, neutral_condition):
        """0.65/0.30 put spread buys 510 and sells 490."""
        spread = selector.select_spread(spy_chain, 0.65, 0.30, OptionKind.PUT, CHAIN_EXPIRATION, neutral_condition)

        assert spread.long_leg.strike == 510.0
        assert spread.short_leg.strike == 490.0
        assert spread.net_premium == pytest.approx(9.00)
        assert spread.breakeven == pytest.approx(501.00)
        assert abs(spread.long_leg.actual_delta) > abs(spread.short_leg.actual_delta)

    def test_inverted_call_spread_raises(self, selector, spy_chain, neutral_condition):
        """Long leg further OTM than the short leg is rejected."""
        with pytest.raises(InvalidSpreadStructure) as exc_info:
            selector.select_spread(spy_chain, 0.30, 0.65, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)

        assert isinstance(exc_info.value, InvalidStructureError)
        assert exc_info.value.long_strike == 515.0
        assert exc_info.value.short_strike == 495.0

    def test_same_leg_spread_raises(self, selector, spy_chain, neutral_condition):
        """Both targets resolving to one strike is not a spread."""
        with pytest.raises(InvalidSpreadStructure):
            selector.select_spread(spy_chain, 0.65, 0.64, OptionKind.CALL, CHAIN_EXPIRATION, neutral_condition)


class TestValidateSpreadStructure:
    """Test spread ordering rules directly."""

    def test_put_long_strike_must_be_higher(self):
        long_leg = make_selection(strike=490.0, actual_delta=-0.60)
        short_leg = make_selection(strike=500.0, actual_delta=-0.40)

        with pytest.raises(InvalidSpreadStructure, match="Invalid put spread structure"):
            StrikeSelector.validate_spread_structure(long_leg, short_leg, OptionKind.PUT)

    def test_long_delta_must_exceed_short(self):
        long_leg = make_selection(strike=495.0, actual_delta=0.30)
        short_leg = make_selection(strike=500.0, actual_delta=0.40)

        with pytest.raises(InvalidSpreadStructure, match="delta structure"):
            StrikeSelector.validate_spread_structure(long_leg, short_leg, OptionKind.CALL)

    def test_valid_structure_passes(self):
        long_leg = make_selection(strike=495.0, actual_delta=0.65)
        short_leg = make_selection(strike=515.0, actual_delta=0.30)
        StrikeSelector.validate_spread_structure(long_leg, short_leg, OptionKind.CALL)


class TestSelectionHelpers:
    """Test validation and scoring."""

    def test_validate_accepts_good_selection(self):
        assert validate_strike_selection(make_selection()) is True

    def test_validate_rejects_wide_deviation(self):
        assert validate_strike_selection(make_selection(delta_deviation=0.16)) is False

    def test_validate_rejects_wide_spread(self):
        """Spread over 10% of mid is rejected."""
        selection = make_selection(premium=1.0, bid=0.90, ask=1.15)
        assert validate_strike_selection(selection) is False

    def test_validate_rejects_insane_greeks(self):
        """Positive theta on a long option is physically implausible."""
        greeks = Greeks(delta=0.65, gamma=0.02, theta=0.05, vega=0.35, implied_volatility=0.22)
        assert validate_strike_selection(make_selection(greeks=greeks)) is False

    def test_greeks_quality_penalizes_extremes(self):
        assert greeks_quality(Greeks(delta=0.5, gamma=0.02, theta=-0.1, vega=0.3, implied_volatility=0.2)) == 1.0
        assert greeks_quality(Greeks(delta=0.97, implied_volatility=0.01)) == pytest.approx(0.9 * 0.8)

    def test_score_perfect_selection(self):
        """Zero deviation and clean Greeks lose points only to the spread."""
        selection = make_selection(premium=10.0, bid=9.95, ask=10.05)
        # spread ratio 0.01 -> spread score 0.8 -> 0.94
        assert score_strike_selection(selection) == 94

    def test_score_degrades_with_deviation(self):
        good = score_strike_selection(make_selection())
        worse = score_strike_selection(make_selection(delta_deviation=0.10))
        assert worse < good


class TestPutSelectionsWithHighIV:
    """Test condition-driven selection on puts."""

    def test_high_iv_rank_reasoning(self, selector, spy_chain):
        condition = MarketCondition(oscillator_phase=OscillatorPhase.TRENDING, iv_rank=85, signal_quality=5)
        selection = selector.select_strike(spy_chain, 0.45, OptionKind.PUT, CHAIN_EXPIRATION, condition)

        assert "High IV rank (85) - slightly more conservative selection" in selection.reasoning
        assert "5-star signal quality - high conviction selection" in selection.reasoning

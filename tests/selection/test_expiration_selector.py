"""
Unit Tests for ExpirationSelector

Test cases:
- Target DTE policy (extreme reversal > compression > quality tier)
- Closest expiration by DTE, first minimum wins ties
- Weekly vs monthly classification
- Theta decay rate estimate
- Validation, scoring and analysis helpers
"""

from datetime import date, datetime

import pytest

from optengine.config import ExpirationConfig
from optengine.models import NoExpirationsAvailable, OscillatorCondition
from optengine.selection import (
    Effectiveness,
    ExpirationSelection,
    ExpirationSelector,
    analyze_expiration_selection,
    score_expiration_selection,
    validate_expiration_selection,
)
from tests.fixtures.chain_fixtures import EXPIRATION_DTE, NOW

EXTREME = OscillatorCondition(is_extreme_reversal=True)
COMPRESSION = OscillatorCondition(is_compression=True)
NEUTRAL = OscillatorCondition.neutral()


@pytest.fixture
def selector():
    return ExpirationSelector()


def make_selection(**overrides) -> ExpirationSelection:
    values = dict(
        expiration=date(2026, 4, 1),
        days_to_expiration=30,
        target_dte=30,
        dte_deviation=0,
        is_weekly=False,
        theta_decay_rate=0.04,
    )
    values.update(overrides)
    return ExpirationSelection(**values)


class TestTargetDTE:
    """Test target DTE policy."""

    @pytest.mark.parametrize(
        "quality,expected",
        [(5, 14), (4, 30), (3, 30), (2, 45), (1, 45)],
    )
    def test_quality_tiers(self, selector, quality, expected):
        """Quality tier maps to its configured DTE."""
        assert selector.calculate_target_dte(quality, NEUTRAL) == expected

    def test_extreme_reversal_top_quality(self, selector):
        """Extreme reversal with a 5-star signal targets 7 DTE."""
        assert selector.calculate_target_dte(5, EXTREME) == 7

    def test_extreme_reversal_lower_quality(self, selector):
        """Extreme reversal below 5 stars targets 14 DTE."""
        assert selector.calculate_target_dte(4, EXTREME) == 14
        assert selector.calculate_target_dte(1, EXTREME) == 14

    def test_extreme_reversal_overrides_compression(self, selector):
        """Extreme reversal wins when both flags are set."""
        both = OscillatorCondition(is_extreme_reversal=True, is_compression=True)
        assert selector.calculate_target_dte(3, both) == 14

    def test_compression(self, selector):
        """Compression targets 45 DTE regardless of quality."""
        assert selector.calculate_target_dte(5, COMPRESSION) == 45

    def test_unknown_quality_uses_default(self):
        """Quality missing from the table falls back to default_dte."""
        selector = ExpirationSelector(ExpirationConfig(quality_dte={5: 10}, default_dte=21))
        assert selector.calculate_target_dte(3, NEUTRAL) == 21


class TestSelect:
    """Test full expiration selection."""

    def test_four_star_selects_30_dte(self, selector, spy_chain):
        """4-star neutral signal picks the 30 DTE expiration exactly."""
        selection = selector.select(spy_chain.expirations, 4, NEUTRAL, iv_rank=45, now=NOW)

        assert selection.expiration == date(2026, 4, 1)
        assert selection.days_to_expiration == 30
        assert selection.target_dte == 30
        assert selection.dte_deviation == 0
        assert "Perfect match: selected 30 DTE exactly matches target" in selection.reasoning
        assert "4-star moderate-confidence signal targeting 30 DTE" in selection.reasoning

    def test_five_star_selects_14_dte(self, selector, spy_chain):
        """5-star signal picks the 14 DTE expiration."""
        selection = selector.select(spy_chain.expirations, 5, NEUTRAL, iv_rank=45, now=NOW)

        assert selection.expiration == date(2026, 3, 16)
        assert selection.days_to_expiration == 14

    def test_extreme_reversal_selects_7_dte(self, selector, spy_chain):
        """5-star extreme reversal picks 7 DTE for leverage."""
        selection = selector.select(spy_chain.expirations, 5, EXTREME, iv_rank=45, now=NOW)

        assert selection.expiration == date(2026, 3, 9)
        assert "Extreme reversal detected - using 7 DTE for maximum leverage" in selection.reasoning

    def test_compression_selects_45_dte(self, selector, spy_chain):
        """Compression extends to 45 DTE."""
        selection = selector.select(spy_chain.expirations, 4, COMPRESSION, iv_rank=45, now=NOW)

        assert selection.expiration == date(2026, 4, 16)
        assert "Compression phase - extending to 45 DTE" in selection.reasoning

    def test_accepts_iso_strings(self, selector):
        """Expirations may be ISO date strings."""
        selection = selector.select(["2026-03-16", "2026-04-01"], 4, NEUTRAL, iv_rank=20, now=NOW)
        assert selection.expiration == date(2026, 4, 1)

    def test_best_available_reasoning(self, selector):
        """Large deviation is reported as best available."""
        selection = selector.select([date(2026, 3, 6)], 2, NEUTRAL, iv_rank=45, now=NOW)

        assert selection.days_to_expiration == 4
        assert selection.dte_deviation == 41
        assert "Best available: 4 DTE deviates 41 days from target" in selection.reasoning

    def test_empty_expirations_raise(self, selector):
        """No expirations is a NoDataError."""
        with pytest.raises(NoExpirationsAvailable):
            selector.select([], 4, NEUTRAL, iv_rank=45, now=NOW)


class TestFindClosestExpiration:
    """Test closest-expiration search."""

    def test_minimizes_deviation(self, selector):
        """Every expiration is within the deviation of the chosen one."""
        chosen = selector.find_closest_expiration(list(EXPIRATION_DTE), 20, now=NOW)

        assert chosen == date(2026, 3, 20)
        chosen_deviation = abs(EXPIRATION_DTE[chosen] - 20)
        assert all(abs(dte - 20) >= chosen_deviation for dte in EXPIRATION_DTE.values())

    def test_tie_first_wins(self, selector):
        """Equal deviations resolve to the first encountered."""
        first, second = date(2026, 3, 9), date(2026, 3, 13)  # 7 and 11 DTE

        assert selector.find_closest_expiration([first, second], 9, now=NOW) == first
        assert selector.find_closest_expiration([second, first], 9, now=NOW) == second

    def test_empty_raises(self, selector):
        with pytest.raises(NoExpirationsAvailable):
            selector.find_closest_expiration([], 30, now=NOW)

    def test_dte_pinned_to_close(self, selector):
        """After the bell the same day still counts as the reference day."""
        late = datetime(2026, 3, 2, 17, 30)
        chosen = selector.find_closest_expiration([date(2026, 3, 16)], 14, now=late)
        assert selector.calendar.days_to_expiration(chosen, now=late) == 14


class TestWeeklyClassification:
    """Test weekly vs monthly expiration classification."""

    def test_lone_third_friday_is_monthly(self, selector):
        """Only expiration of its month inside day 15-21 is monthly."""
        expirations = [date(2026, 3, 20), date(2026, 4, 17)]
        assert selector.is_weekly_expiration(date(2026, 3, 20), expirations) is False

    def test_outside_monthly_window_is_weekly(self, selector):
        """Day outside 15-21 is weekly."""
        assert selector.is_weekly_expiration(date(2026, 3, 6), [date(2026, 3, 6)]) is True

    def test_crowded_month_is_weekly(self, selector, spy_chain):
        """A month with several expirations is treated as weekly."""
        assert selector.is_weekly_expiration(date(2026, 3, 20), spy_chain.expirations) is True


class TestThetaDecayRate:
    """Test theta decay rate estimate."""

    def test_30_dte(self):
        """At 30 DTE there is no acceleration."""
        rate = ExpirationSelector.estimate_theta_decay_rate(30, 50)
        assert rate == pytest.approx((1 / 30) * 1.25)

    def test_short_dated_accelerates(self):
        """Below 30 DTE decay accelerates by sqrt(30/DTE)."""
        rate = ExpirationSelector.estimate_theta_decay_rate(7, 0)
        assert rate == pytest.approx((1 / 7) * (30 / 7) ** 0.5)

    def test_zero_dte_treated_as_one(self):
        """DTE 0 does not divide by zero."""
        rate = ExpirationSelector.estimate_theta_decay_rate(0, 0)
        assert rate == pytest.approx(30 ** 0.5)


class TestSelectionHelpers:
    """Test validation, scoring and analysis."""

    def test_validate_accepts_close_match(self):
        assert validate_expiration_selection(make_selection()) is True

    def test_validate_rejects_large_deviation(self):
        assert validate_expiration_selection(make_selection(dte_deviation=8)) is False

    def test_validate_rejects_expired(self):
        assert validate_expiration_selection(make_selection(days_to_expiration=0)) is False

    def test_score_exact_match_capped(self):
        """Exact match bonus is capped at 100."""
        assert score_expiration_selection(make_selection()) == 100

    def test_score_penalizes_deviation(self):
        """Each day of deviation costs 5 points."""
        assert score_expiration_selection(make_selection(dte_deviation=3, days_to_expiration=33)) == 85

    def test_score_penalizes_short_dated_miss(self):
        """Sub-3 DTE when 7+ was targeted costs 20 more."""
        selection = make_selection(days_to_expiration=2, target_dte=7, dte_deviation=5)
        assert score_expiration_selection(selection) == 55

    def test_analysis_short_dated(self):
        """Short-dated weekly expiration is graded on its gamma risk."""
        selection = make_selection(days_to_expiration=5, dte_deviation=2, is_weekly=True, theta_decay_rate=0.49)
        analysis = analyze_expiration_selection(selection)

        assert "High gamma risk and rapid theta decay" in analysis.risks
        assert "Weekly expiration - higher gamma risk" in analysis.risks
        assert analysis.effectiveness == Effectiveness.MEDIUM

    def test_analysis_monthly_close_match(self):
        """Monthly close match with manageable decay grades HIGH."""
        analysis = analyze_expiration_selection(make_selection())
        assert analysis.effectiveness == Effectiveness.HIGH

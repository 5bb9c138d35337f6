"""
Expiration Selector

Computes a target days-to-expiration from signal quality and oscillator
condition, then picks the closest available expiration.

Target DTE policy (first match wins):
1. Extreme reversal: 7 DTE for a 5-star signal, 14 DTE otherwise
2. Compression: 45 DTE for breakout development
3. Signal quality tier: 5->14, 4->30, 3->30, 2->45, 1->45 (default 30)

Usage:
    selector = ExpirationSelector()
    selection = selector.select(chain.expirations, 4, OscillatorCondition.neutral(), iv_rank=45)
"""

import math
from datetime import date, datetime
from typing import Iterable, Optional

from loguru import logger

from optengine.config.engine_config import ExpirationConfig
from optengine.market_calendar import MarketCalendar
from optengine.models import NoExpirationsAvailable, OscillatorCondition, parse_date
from optengine.selection.models import Effectiveness, ExpirationAnalysis, ExpirationSelection

logger = logger.bind(component="ExpirationSelector")


class ExpirationSelector:
    """
    Select an expiration matching the signal's timing profile.

    Attributes:
        config: Expiration policy configuration
        calendar: Market calendar for DTE at close granularity
    """

    def __init__(
        self,
        config: Optional[ExpirationConfig] = None,
        calendar: Optional[MarketCalendar] = None,
    ):
        self.config = config or ExpirationConfig()
        self.calendar = calendar or MarketCalendar()

    def select(
        self,
        available_expirations: Iterable,
        signal_quality: int,
        oscillator_condition: OscillatorCondition,
        iv_rank: float,
        now: Optional[datetime] = None,
    ) -> ExpirationSelection:
        """
        Select the expiration closest to the target DTE.

        Args:
            available_expirations: Dates or ISO date strings
            signal_quality: Signal quality tier (1-5)
            oscillator_condition: Current oscillator flags
            iv_rank: IV rank (0-100)
            now: Reference instant (default: now)

        Returns:
            ExpirationSelection

        Raises:
            NoExpirationsAvailable: If no expirations were provided
        """
        expirations = [parse_date(e) for e in available_expirations]
        target_dte = self.calculate_target_dte(signal_quality, oscillator_condition)

        selected = self.find_closest_expiration(expirations, target_dte, now=now)
        actual_dte = self.calendar.days_to_expiration(selected, now=now)
        deviation = abs(actual_dte - target_dte)
        is_weekly = self.is_weekly_expiration(selected, expirations)
        theta_rate = self.estimate_theta_decay_rate(actual_dte, iv_rank)

        reasoning = self._generate_reasoning(
            signal_quality, oscillator_condition, target_dte, actual_dte, deviation, is_weekly
        )

        logger.info(
            f"Selected expiration {selected} ({actual_dte} DTE, target {target_dte}, "
            f"{'weekly' if is_weekly else 'monthly'})"
        )

        return ExpirationSelection(
            expiration=selected,
            days_to_expiration=actual_dte,
            target_dte=target_dte,
            dte_deviation=deviation,
            is_weekly=is_weekly,
            theta_decay_rate=theta_rate,
            reasoning=reasoning,
        )

    def calculate_target_dte(self, signal_quality: int, oscillator_condition: OscillatorCondition) -> int:
        """
        Target DTE for a signal.

        Extreme reversal overrides everything, then compression, then quality.
        """
        if oscillator_condition.is_extreme_reversal:
            if signal_quality >= 5:
                return self.config.extreme_reversal_top_dte
            return self.config.extreme_reversal_dte

        if oscillator_condition.is_compression:
            return self.config.compression_dte

        return self.config.quality_dte.get(signal_quality, self.config.default_dte)

    def find_closest_expiration(
        self,
        expirations: Iterable,
        target_dte: int,
        now: Optional[datetime] = None,
    ) -> date:
        """
        Expiration minimizing |DTE - target_dte|; first encountered wins ties.

        Raises:
            NoExpirationsAvailable: If expirations is empty
        """
        expirations = [parse_date(e) for e in expirations]
        if not expirations:
            raise NoExpirationsAvailable()

        closest = expirations[0]
        smallest = abs(self.calendar.days_to_expiration(closest, now=now) - target_dte)

        for expiration in expirations[1:]:
            deviation = abs(self.calendar.days_to_expiration(expiration, now=now) - target_dte)
            if deviation < smallest:
                smallest = deviation
                closest = expiration

        return closest

    def is_weekly_expiration(self, selected, all_expirations: Iterable) -> bool:
        """
        True unless the expiration is the only one in its month and falls in
        the monthly window (3rd Friday, day 15-21).
        """
        selected = parse_date(selected)
        in_monthly_window = self.config.monthly_day_min <= selected.day <= self.config.monthly_day_max

        same_month = [
            e for e in (parse_date(x) for x in all_expirations)
            if e.year == selected.year and e.month == selected.month
        ]

        return not in_monthly_window or len(same_month) > 1

    @staticmethod
    def estimate_theta_decay_rate(dte: int, iv_rank: float) -> float:
        """
        Relative daily theta decay estimate.

        rate = (1/DTE) x (1 + iv_rank/100 x 0.5) x sqrt(30/DTE) below 30 DTE.
        DTE 0 is treated as 1.
        """
        dte = max(1, dte)
        base_rate = 1 / dte
        iv_multiplier = 1 + (iv_rank / 100) * 0.5
        acceleration = math.sqrt(30 / dte) if dte <= 30 else 1.0
        return base_rate * iv_multiplier * acceleration

    def _generate_reasoning(
        self,
        signal_quality: int,
        oscillator_condition: OscillatorCondition,
        target_dte: int,
        actual_dte: int,
        deviation: int,
        is_weekly: bool,
    ) -> str:
        reasons = []

        if oscillator_condition.is_extreme_reversal:
            reasons.append(f"Extreme reversal detected - using {target_dte} DTE for maximum leverage")
        elif oscillator_condition.is_compression:
            reasons.append(f"Compression phase - extending to {target_dte} DTE for breakout development")
        else:
            if signal_quality >= 5:
                description = "high-confidence"
            elif signal_quality >= 4:
                description = "moderate-confidence"
            else:
                description = "lower-confidence"
            reasons.append(f"{signal_quality}-star {description} signal targeting {target_dte} DTE")

        if deviation == 0:
            reasons.append(f"Perfect match: selected {actual_dte} DTE exactly matches target")
        elif deviation <= 3:
            reasons.append(f"Close match: {actual_dte} DTE within {deviation} days of target")
        else:
            reasons.append(f"Best available: {actual_dte} DTE deviates {deviation} days from target")

        if is_weekly:
            reasons.append("Weekly expiration selected for tighter timing")
        else:
            reasons.append("Monthly expiration selected for standard timing")

        return ". ".join(reasons)


def validate_expiration_selection(selection: ExpirationSelection) -> bool:
    """Check deviation <= 7 days, DTE > 0 and 0 <= theta rate <= 1."""
    if selection.dte_deviation > 7:
        logger.warning(f"DTE deviation {selection.dte_deviation} exceeds 7 days")
        return False

    if selection.days_to_expiration <= 0:
        logger.warning(f"Expiration {selection.expiration} has no days remaining")
        return False

    if not 0 <= selection.theta_decay_rate <= 1:
        logger.warning(f"Theta decay rate {selection.theta_decay_rate:.3f} out of range")
        return False

    return True


def score_expiration_selection(selection: ExpirationSelection) -> int:
    """
    Quality score (0-100).

    -5 per day of deviation (max 30), +10 for an exact match, -20 for
    sub-3 DTE when 7+ was targeted, -15 for 60+ DTE when under 45 was targeted.
    """
    score = 100
    score -= min(selection.dte_deviation * 5, 30)

    if selection.dte_deviation == 0:
        score += 10

    if selection.days_to_expiration < 3 and selection.target_dte >= 7:
        score -= 20

    if selection.days_to_expiration > 60 and selection.target_dte < 45:
        score -= 15

    return max(0, min(100, score))


def analyze_expiration_selection(selection: ExpirationSelection) -> ExpirationAnalysis:
    """Grade an expiration selection by its risks and opportunities."""
    risks = []
    opportunities = []

    if selection.days_to_expiration <= 7:
        risks.append("High gamma risk and rapid theta decay")
        opportunities.append("Maximum leverage for quick moves")
    elif selection.days_to_expiration >= 45:
        risks.append("Higher premium cost and slower response to moves")
        opportunities.append("More time for thesis to develop")

    if selection.theta_decay_rate > 0.1:
        risks.append("Significant daily time decay")
    else:
        opportunities.append("Manageable time decay rate")

    if selection.is_weekly:
        risks.append("Weekly expiration - higher gamma risk")
        opportunities.append("Tighter timing for precise entries")

    close_match = selection.dte_deviation <= 5
    if len(opportunities) > len(risks) and close_match:
        effectiveness = Effectiveness.HIGH
    elif len(opportunities) >= len(risks) or close_match:
        effectiveness = Effectiveness.MEDIUM
    else:
        effectiveness = Effectiveness.LOW

    return ExpirationAnalysis(effectiveness=effectiveness, risks=risks, opportunities=opportunities)

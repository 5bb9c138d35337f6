"""
Strike Selector

Delta-targeted contract selection with market-condition strike adjustment.

Selection:
1. Filter contracts by kind and expiration, keeping those with a numeric
   delta and a two-sided quote (bid > 0, ask > 0)
2. Pick the contract minimizing |delta - target| (first minimum wins)
3. Adjust that strike for oscillator and IV conditions
4. Re-resolve to the contract whose strike is closest to the adjusted strike

Targets are given as magnitudes; put targets are matched against -|target|.

Usage:
    selector = StrikeSelector()
    selection = selector.select_strike(chain, 0.65, OptionKind.CALL, expiry, condition)
"""

import math
from datetime import date
from typing import Optional

from loguru import logger

from optengine.config.engine_config import SelectionConfig
from optengine.models import (
    Greeks,
    InvalidSpreadStructure,
    MarketCondition,
    NoContractsAvailable,
    OptionContract,
    OptionKind,
    OptionsChain,
    OscillatorCondition,
    OscillatorPhase,
    parse_date,
)
from optengine.selection.models import SpreadSelection, StrikeSelection

logger = logger.bind(component="StrikeSelector")


class StrikeSelector:
    """
    Select strikes by delta for single options and vertical spreads.

    Attributes:
        config: Selection configuration (delta targets, adjustment factors)
    """

    def __init__(self, config: Optional[SelectionConfig] = None):
        self.config = config or SelectionConfig()

    def select_strike(
        self,
        chain: OptionsChain,
        target_delta: float,
        option_kind: OptionKind,
        expiration,
        market_condition: MarketCondition,
    ) -> StrikeSelection:
        """
        Select the contract closest to target delta, adjusted for conditions.

        Args:
            chain: Contract catalog snapshot
            target_delta: Target delta magnitude (e.g., 0.65)
            option_kind: CALL or PUT
            expiration: Expiration date or ISO string
            market_condition: Current market condition

        Returns:
            StrikeSelection

        Raises:
            NoContractsAvailable: If no contract survives filtering
        """
        expiration = parse_date(expiration)
        target = self._signed_target(target_delta, option_kind)

        logger.info(
            f"Selecting {option_kind.value} strike for {chain.symbol} {expiration}, target delta: {target:+.2f}"
        )

        candidates = self.filter_candidates(chain, option_kind, expiration)
        if not candidates:
            raise NoContractsAvailable(chain.symbol, option_kind.value, expiration.isoformat())

        delta_pick = self.find_closest_delta(candidates, target)
        chosen = delta_pick

        adjusted_strike = self.adjust_strike(
            delta_pick.strike,
            chain.underlying_price,
            market_condition.oscillator_condition(),
            market_condition.iv_rank,
        )
        if adjusted_strike != delta_pick.strike:
            adjusted = self.find_closest_strike(candidates, adjusted_strike)
            if adjusted is not None:
                chosen = adjusted

        was_adjusted = chosen is not delta_pick
        deviation = abs(chosen.greeks.delta - target)

        selection = StrikeSelection(
            strike=chosen.strike,
            option_symbol=chosen.symbol,
            actual_delta=chosen.greeks.delta,
            target_delta=target,
            delta_deviation=deviation,
            premium=chosen.mid,
            bid=chosen.bid,
            ask=chosen.ask,
            greeks=Greeks(
                delta=chosen.greeks.delta,
                gamma=chosen.greeks.gamma,
                theta=chosen.greeks.theta,
                vega=chosen.greeks.vega,
                rho=chosen.greeks.rho,
                implied_volatility=chosen.greeks.implied_volatility,
            ),
            reasoning=self._generate_reasoning(chosen, target, deviation, market_condition, was_adjusted),
            volume=chosen.volume,
            open_interest=chosen.open_interest,
            expiration=chosen.expiration,
            was_adjusted=was_adjusted,
        )

        logger.info(
            f"✓ Selected strike {chosen.strike} with delta {chosen.greeks.delta:.3f} "
            f"(target: {target:+.3f}, deviation: {deviation:.4f})"
        )
        return selection

    def select_spread(
        self,
        chain: OptionsChain,
        long_delta: float,
        short_delta: float,
        option_kind: OptionKind,
        expiration,
        market_condition: MarketCondition,
    ) -> SpreadSelection:
        """
        Select both legs of a vertical spread.

        Raises:
            NoContractsAvailable: If either leg has no candidate
            InvalidSpreadStructure: If strikes or deltas are ordered incorrectly
        """
        logger.info(
            f"Selecting {option_kind.value} spread for {chain.symbol}, "
            f"long delta: {long_delta}, short delta: {short_delta}"
        )

        long_leg = self.select_strike(chain, long_delta, option_kind, expiration, market_condition)
        short_leg = self.select_strike(chain, short_delta, option_kind, expiration, market_condition)

        self.validate_spread_structure(long_leg, short_leg, option_kind)

        net_premium = long_leg.premium - short_leg.premium
        spread_width = abs(long_leg.strike - short_leg.strike)
        max_risk = max(0.0, net_premium)
        max_profit = max(0.0, spread_width - net_premium)

        if option_kind == OptionKind.CALL:
            breakeven = long_leg.strike + net_premium
        else:
            breakeven = long_leg.strike - net_premium

        logger.info(
            f"✓ Selected spread {long_leg.strike}/{short_leg.strike}, "
            f"net premium: {net_premium:.2f}, max risk: {max_risk:.2f}"
        )

        return SpreadSelection(
            long_leg=long_leg,
            short_leg=short_leg,
            net_premium=net_premium,
            spread_width=spread_width,
            max_risk=max_risk,
            max_profit=max_profit,
            breakeven=breakeven,
        )

    def adjust_strike(
        self,
        base_strike: float,
        underlying_price: float,
        oscillator_condition: OscillatorCondition,
        iv_rank: float,
    ) -> float:
        """
        Move a strike relative to at-the-money for market conditions.

        Extreme reversal moves toward ATM (more aggressive), compression moves
        away (more conservative). High IV rank then nudges the possibly
        adjusted strike further from ATM. Result is rounded half-up to the
        strike increment.
        """
        adjusted = base_strike

        if oscillator_condition.is_extreme_reversal:
            shift = abs(base_strike - underlying_price) * self.config.reversal_adjustment
            adjusted = base_strike - shift if base_strike > underlying_price else base_strike + shift
            logger.debug(f"Extreme reversal: strike {base_strike} -> {adjusted:.2f} (toward ATM)")

        elif oscillator_condition.is_compression:
            shift = abs(base_strike - underlying_price) * self.config.compression_adjustment
            adjusted = base_strike + shift if base_strike > underlying_price else base_strike - shift
            logger.debug(f"Compression: strike {base_strike} -> {adjusted:.2f} (away from ATM)")

        if iv_rank > self.config.high_iv_rank:
            shift = abs(adjusted - underlying_price) * self.config.high_iv_adjustment
            adjusted = adjusted + shift if adjusted > underlying_price else adjusted - shift
            logger.debug(f"High IV rank ({iv_rank}): strike -> {adjusted:.2f}")

        increment = self.config.strike_increment
        return math.floor(adjusted / increment + 0.5) * increment

    def filter_candidates(
        self,
        chain: OptionsChain,
        option_kind: OptionKind,
        expiration: date,
    ) -> list[OptionContract]:
        """Contracts of the kind and expiration with numeric delta and a two-sided quote."""
        expiration = parse_date(expiration)
        return [
            c for c in chain.contracts_for(option_kind)
            if c.expiration == expiration
            and isinstance(c.greeks.delta, (int, float))
            and not math.isnan(c.greeks.delta)
            and c.bid > 0
            and c.ask > 0
        ]

    @staticmethod
    def find_closest_delta(candidates: list[OptionContract], target_delta: float) -> OptionContract:
        """Linear scan for minimal |delta - target|; first minimum wins."""
        if not candidates:
            raise ValueError("No candidates for delta targeting")

        best = candidates[0]
        smallest = abs(best.greeks.delta - target_delta)
        for contract in candidates[1:]:
            deviation = abs(contract.greeks.delta - target_delta)
            if deviation < smallest:
                smallest = deviation
                best = contract
        return best

    @staticmethod
    def find_closest_strike(candidates: list[OptionContract], target_strike: float) -> Optional[OptionContract]:
        """Linear scan for minimal |strike - target|; None for an empty list."""
        if not candidates:
            return None

        best = candidates[0]
        smallest = abs(best.strike - target_strike)
        for contract in candidates[1:]:
            difference = abs(contract.strike - target_strike)
            if difference < smallest:
                smallest = difference
                best = contract
        return best

    @staticmethod
    def validate_spread_structure(
        long_leg: StrikeSelection,
        short_leg: StrikeSelection,
        option_kind: OptionKind,
    ) -> None:
        """
        Enforce vertical spread ordering.

        Raises:
            InvalidSpreadStructure: call long strike >= short strike, put long
                strike <= short strike, or |long delta| <= |short delta|
        """
        legs = dict(
            long_strike=long_leg.strike,
            short_strike=short_leg.strike,
            long_delta=long_leg.actual_delta,
            short_delta=short_leg.actual_delta,
        )

        if option_kind == OptionKind.CALL and long_leg.strike >= short_leg.strike:
            raise InvalidSpreadStructure(
                f"Invalid call spread structure: long strike ({long_leg.strike}) "
                f"must be lower than short strike ({short_leg.strike})",
                **legs,
            )

        if option_kind == OptionKind.PUT and long_leg.strike <= short_leg.strike:
            raise InvalidSpreadStructure(
                f"Invalid put spread structure: long strike ({long_leg.strike}) "
                f"must be higher than short strike ({short_leg.strike})",
                **legs,
            )

        if abs(long_leg.actual_delta) <= abs(short_leg.actual_delta):
            raise InvalidSpreadStructure(
                f"Invalid spread delta structure: long leg delta ({long_leg.actual_delta}) "
                f"must exceed short leg delta ({short_leg.actual_delta}) in magnitude",
                **legs,
            )

    @staticmethod
    def _signed_target(target_delta: float, option_kind: OptionKind) -> float:
        magnitude = abs(target_delta)
        return -magnitude if option_kind == OptionKind.PUT else magnitude

    def _generate_reasoning(
        self,
        contract: OptionContract,
        target_delta: float,
        deviation: float,
        market_condition: MarketCondition,
        was_adjusted: bool,
    ) -> str:
        reasons = [
            f"Selected strike {contract.strike} with delta {contract.greeks.delta:.3f} (target: {target_delta:.3f})"
        ]

        if deviation < 0.05:
            reasons.append("Excellent delta accuracy (within 0.05)")
        elif deviation < 0.10:
            reasons.append("Good delta accuracy (within 0.10)")
        else:
            reasons.append(f"Delta deviation: {deviation:.3f} - closest available option")

        if was_adjusted:
            if market_condition.oscillator_phase == OscillatorPhase.EXTREME_REVERSAL:
                reasons.append("Strike adjusted more aggressively due to extreme reversal signal")
            elif market_condition.oscillator_phase == OscillatorPhase.COMPRESSION:
                reasons.append("Strike adjusted more conservatively due to compression conditions")

        if market_condition.iv_rank > self.config.high_iv_rank:
            reasons.append(f"High IV rank ({market_condition.iv_rank:.0f}) - slightly more conservative selection")
        elif market_condition.iv_rank < 30:
            reasons.append(f"Low IV rank ({market_condition.iv_rank:.0f}) - favorable for long options")

        if market_condition.signal_quality == 5:
            reasons.append("5-star signal quality - high conviction selection")
        elif market_condition.signal_quality >= 4:
            reasons.append(f"{market_condition.signal_quality}-star signal quality - good conviction")

        if contract.volume > 100 and contract.open_interest > 500:
            reasons.append("Good liquidity (high volume and open interest)")
        elif contract.volume < 10 or contract.open_interest < 50:
            reasons.append("Lower liquidity - monitor bid/ask spreads closely")

        return ". ".join(reasons)


def validate_strike_selection(
    selection: StrikeSelection,
    max_delta_deviation: float = 0.15,
    max_spread_ratio: float = 0.10,
) -> bool:
    """Reject wide deviation, wide spreads or physically insane Greeks."""
    if selection.delta_deviation > max_delta_deviation:
        logger.warning(
            f"Delta deviation {selection.delta_deviation:.3f} exceeds maximum {max_delta_deviation}"
        )
        return False

    if selection.spread_ratio > max_spread_ratio:
        logger.warning(
            f"Bid/ask spread too wide: {selection.spread_ratio:.3f} ({selection.ask - selection.bid:.2f})"
        )
        return False

    if not selection.greeks.is_sane():
        logger.warning(f"Invalid Greeks values detected for {selection.option_symbol}")
        return False

    return True


def greeks_quality(greeks: Greeks) -> float:
    """
    Greeks quality factor (0-1).

    Extreme values that suggest stale or invalid data each cost 10%,
    implausible IV costs 20%.
    """
    quality = 1.0
    if abs(greeks.delta) > 0.95:
        quality *= 0.9
    if greeks.gamma > 0.5:
        quality *= 0.9
    if greeks.theta < -1.0:
        quality *= 0.9
    if greeks.vega > 2.0:
        quality *= 0.9
    if greeks.implied_volatility > 3.0 or greeks.implied_volatility < 0.05:
        quality *= 0.8
    return quality


def score_strike_selection(selection: StrikeSelection) -> int:
    """
    Quality score (0-100) blending delta accuracy (40%), spread
    tightness (30%) and Greeks quality (30%).
    """
    score = 100.0

    delta_accuracy = max(0.0, 1 - selection.delta_deviation / 0.2)
    score *= 0.4 + 0.6 * delta_accuracy

    spread_score = max(0.0, 1 - selection.spread_ratio / 0.05)
    score *= 0.7 + 0.3 * spread_score

    score *= 0.7 + 0.3 * greeks_quality(selection.greeks)

    return round(score)

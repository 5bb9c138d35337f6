#!/usr/bin/env python3
"""
Plan an Entry from a Chain Snapshot

Loads an options chain snapshot (JSON), runs expiration selection, strike
selection and sizing, and prints the resulting entry plan.

Usage:
    # Single long call at the configured delta
    python scripts/plan_entry.py chain.json --account-size 100000 --quality 4

    # Put debit spread during an extreme reversal
    python scripts/plan_entry.py chain.json --kind put --spread --phase EXTREME_REVERSAL

    # Custom config and a fixed reference time
    python scripts/plan_entry.py chain.json --config config/options_engine.yaml --now 2026-03-02T10:00:00

The chain file may carry a "market_condition" object; command line options
override its fields.
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

from optengine.config import load_engine_config
from optengine.log_setup import configure_logging
from optengine.market_calendar import MarketCalendar
from optengine.models import MarketCondition, OptionKind, OptionsChain, OscillatorPhase
from optengine.selection import ExpirationSelector, PositionSizer, StrikeSelector
from optengine.workflows import EntryPlan, EntryPlanner


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Plan an options entry from a chain snapshot",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("chain", type=str, help="Path to chain snapshot JSON file")
    parser.add_argument("--config", type=str, default=None, help="Path to engine config file")
    parser.add_argument("--account-size", type=float, default=100_000.0, help="Account value in dollars")
    parser.add_argument("--kind", choices=["call", "put"], default="call", help="Option kind")
    parser.add_argument("--spread", action="store_true", help="Plan a debit vertical spread")
    parser.add_argument("--delta", type=float, default=None, help="Target delta (long leg for spreads)")
    parser.add_argument("--short-delta", type=float, default=None, help="Short leg delta for spreads")
    parser.add_argument("--quality", type=int, default=None, help="Signal quality (1-5)")
    parser.add_argument(
        "--phase",
        choices=[p.value for p in OscillatorPhase],
        default=None,
        help="Oscillator phase",
    )
    parser.add_argument("--iv-rank", type=float, default=None, help="IV rank (0-100)")
    parser.add_argument("--now", type=str, default=None, help="Reference time (ISO format)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    return parser.parse_args()


def build_market_condition(payload: dict, args: argparse.Namespace) -> MarketCondition:
    """Merge the snapshot's market condition with command line overrides."""
    data = dict(payload.get("market_condition") or {})
    data.setdefault("iv_rank", payload.get("iv_rank", 50.0))
    if args.quality is not None:
        data["signal_quality"] = args.quality
    if args.phase is not None:
        data["oscillator_phase"] = args.phase
    if args.iv_rank is not None:
        data["iv_rank"] = args.iv_rank
    return MarketCondition.from_dict(data)


def print_plan(plan: EntryPlan) -> None:
    """Log the plan in a readable block."""
    expiration = plan.expiration
    size = plan.size

    logger.info("=" * 60)
    logger.info(f"Entry plan: {plan.symbol} {plan.option_kind.value.upper()}{' SPREAD' if plan.is_spread else ''}")
    logger.info("=" * 60)
    logger.info(
        f"Expiration: {expiration.expiration} ({expiration.days_to_expiration} DTE, "
        f"target {expiration.target_dte}, {'weekly' if expiration.is_weekly else 'monthly'})"
    )
    logger.info(f"  {expiration.reasoning}")

    if plan.spread is not None:
        spread = plan.spread
        for label, leg in (("Long", spread.long_leg), ("Short", spread.short_leg)):
            logger.info(
                f"{label} leg: {leg.option_symbol} strike {leg.strike} "
                f"delta {leg.actual_delta:+.3f} mid {leg.premium:.2f}"
            )
        logger.info(
            f"Net premium: {spread.net_premium:.2f}  width: {spread.spread_width:.2f}  "
            f"max risk: {spread.max_risk:.2f}  max profit: {spread.max_profit:.2f}  "
            f"breakeven: {spread.breakeven:.2f}"
        )
    else:
        selection = plan.selection
        logger.info(
            f"Contract: {selection.option_symbol} strike {selection.strike} "
            f"delta {selection.actual_delta:+.3f} (target {selection.target_delta:+.2f}) mid {selection.premium:.2f}"
        )
        logger.info(f"  {selection.reasoning}")

    if size.should_skip_trade:
        logger.warning(f"Sizing: {size.reasoning}")
        return

    logger.info(
        f"Size: {size.contracts} contract(s), premium ${size.total_premium:,.2f}, "
        f"risk {size.risk_percent:.2%}{' (capped)' if size.was_capped else ''}"
    )
    logger.info(f"  {size.reasoning}")


def main() -> int:
    """Main entry point for entry planning."""
    args = parse_args()

    try:
        config = load_engine_config(args.config)
    except ValueError as e:
        logger.error(f"Failed to load config: {e}")
        return 1

    if args.verbose:
        config.logging.level = "DEBUG"
    configure_logging(config.logging)

    chain_path = Path(args.chain)
    if not chain_path.exists():
        logger.error(f"Chain file not found: {chain_path}")
        return 1

    try:
        with open(chain_path) as f:
            payload = json.load(f)
        chain = OptionsChain.from_dict(payload)
        market_condition = build_market_condition(payload, args)
        now = datetime.fromisoformat(args.now) if args.now else None
    except (json.JSONDecodeError, KeyError, ValueError) as e:
        logger.error(f"Failed to load chain snapshot: {e}")
        return 1

    planner = EntryPlanner(
        expiration_selector=ExpirationSelector(config.expiration, MarketCalendar()),
        strike_selector=StrikeSelector(config.selection),
        position_sizer=PositionSizer(config.sizing),
    )

    kind = OptionKind(args.kind)
    if args.spread:
        result = planner.plan_spread(
            chain,
            market_condition,
            kind,
            args.account_size,
            long_delta=args.delta,
            short_delta=args.short_delta,
            now=now,
        )
    else:
        result = planner.plan_single(chain, market_condition, kind, args.account_size, target_delta=args.delta, now=now)

    if not result.ok:
        logger.error(f"No entry plan: {result.error}")
        return 2

    print_plan(result.plan)
    return 0


if __name__ == "__main__":
    sys.exit(main())

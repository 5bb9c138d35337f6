"""Test fixtures for the lifecycle engine tests.

This package provides reusable test fixtures for:
- Options chain snapshots and market conditions
- Open positions and monitoring snapshots

Fixtures are auto-discovered by pytest through conftest.py.
"""

from tests.fixtures.chain_fixtures import (
    compression_condition,
    extreme_reversal_condition,
    neutral_condition,
    now,
    spy_chain,
    spy_chain_payload,
)
from tests.fixtures.position_fixtures import (
    entry_time,
    position,
)

__all__ = [
    # Chain fixtures
    "compression_condition",
    "extreme_reversal_condition",
    "neutral_condition",
    "now",
    "spy_chain",
    "spy_chain_payload",
    # Position fixtures
    "entry_time",
    "position",
]

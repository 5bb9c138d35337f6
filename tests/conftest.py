"""Shared pytest fixtures for lifecycle engine tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Import all fixtures for global availability
from tests.fixtures.chain_fixtures import *
from tests.fixtures.position_fixtures import *


@pytest.fixture
def clean_env(monkeypatch):
    """
    Remove every OPTENGINE_* variable for the duration of a test.

    Example:
        def test_defaults(clean_env):
            config = load_engine_config("/nonexistent.yaml")
    """
    from optengine.config.loader import ENV_MAPPING

    for env_var in ENV_MAPPING:
        monkeypatch.delenv(env_var, raising=False)
    return monkeypatch

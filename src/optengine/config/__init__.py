"""
Configuration

Dataclass config sections, YAML loading and environment overrides.
"""

from optengine.config.engine_config import (
    EngineConfig,
    ExitRules,
    ExpirationConfig,
    LoggingConfig,
    MonitoringConfig,
    SelectionConfig,
    SizingConfig,
)
from optengine.config.loader import load_engine_config, merge_config_with_env

__all__ = [
    "EngineConfig",
    "ExitRules",
    "ExpirationConfig",
    "LoggingConfig",
    "MonitoringConfig",
    "SelectionConfig",
    "SizingConfig",
    "load_engine_config",
    "merge_config_with_env",
]

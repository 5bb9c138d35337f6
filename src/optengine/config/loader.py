"""
Configuration Loader Module

Loads EngineConfig from YAML with environment variable overrides.

Config location: config/options_engine.yaml
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from optengine.config.engine_config import EngineConfig

logger = logger.bind(component="ConfigLoader")

# env var -> (section, key, type)
ENV_MAPPING = {
    "OPTENGINE_BASE_RISK_PERCENT": ("sizing", "base_risk_percent", float),
    "OPTENGINE_MAX_POSITION_PERCENT": ("sizing", "max_position_percent", float),
    "OPTENGINE_SKIP_ON_COMPRESSION": ("sizing", "skip_on_compression", bool),
    "OPTENGINE_LONG_OPTION_DELTA": ("selection", "long_option_delta", float),
    "OPTENGINE_STOP_LOSS_PERCENT": ("exits", "stop_loss_percent", float),
    "OPTENGINE_DTE_EXIT_THRESHOLD": ("exits", "dte_exit_threshold", int),
    "OPTENGINE_EOD_EXIT_MINUTES": ("exits", "eod_exit_minutes", float),
    "OPTENGINE_UPDATE_INTERVAL": ("monitoring", "update_interval_seconds", float),
    "OPTENGINE_FETCH_TIMEOUT": ("monitoring", "fetch_timeout_seconds", float),
    "OPTENGINE_RETRY_ATTEMPTS": ("monitoring", "retry_attempts", int),
    "OPTENGINE_LOG_LEVEL": ("logging", "level", str),
    "OPTENGINE_LOG_FILE": ("logging", "log_file", str),
}


def merge_config_with_env(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge configuration with environment variables.

    Environment variables override config file settings.

    Examples:
        OPTENGINE_BASE_RISK_PERCENT=0.01
        OPTENGINE_SKIP_ON_COMPRESSION=true
        OPTENGINE_LOG_LEVEL=DEBUG

    Args:
        config_data: Configuration data from file

    Returns:
        Merged configuration with env vars applied

    Raises:
        ValueError: If an env var cannot be converted to its type
    """
    for env_var, (section, key, value_type) in ENV_MAPPING.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue

        if value_type is bool:
            value = env_value.lower() in ("true", "1", "yes", "on")
        else:
            try:
                value = value_type(env_value)
            except ValueError as e:
                raise ValueError(f"Invalid value for {env_var}: {env_value!r}") from e

        config_data.setdefault(section, {})
        if config_data[section] is None:
            config_data[section] = {}
        config_data[section][key] = value

        logger.debug(f"Overriding {section}.{key} from env: {env_var}")

    return config_data


def load_engine_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration from YAML file.

    Missing or empty files fall back to defaults; env overrides apply either way.

    Args:
        config_path: Path to config file (default: config/options_engine.yaml)

    Returns:
        Validated EngineConfig

    Raises:
        ValueError: If configuration is invalid or the YAML cannot be parsed
    """
    if config_path is None:
        project_root = Path(__file__).parent.parent.parent.parent
        config_path = project_root / "config" / "options_engine.yaml"

    config_file = Path(config_path)
    data: Dict[str, Any] = {}

    if not config_file.exists():
        logger.warning(f"Engine config file not found: {config_file}, using defaults")
    else:
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML config: {e}") from e

        if not data:
            logger.warning(f"Empty config file: {config_file}, using defaults")
            data = {}

    data = merge_config_with_env(data)
    config = EngineConfig.from_dict(data)

    errors = config.validate()
    if errors:
        error_msg = "Configuration validation errors:\n" + "\n".join(f"  - {e}" for e in errors)
        logger.error(error_msg)
        raise ValueError(error_msg)

    logger.info(f"✓ Loaded engine config from {config_file}")
    logger.debug(f"  Base risk: {config.sizing.base_risk_percent:.1%}, cap: {config.sizing.max_position_percent:.1%}")
    logger.debug(f"  Stop loss: {config.exits.stop_loss_percent:.0%}, DTE exit: {config.exits.dte_exit_threshold}")
    logger.debug(f"  Update interval: {config.monitoring.update_interval_seconds}s")

    return config

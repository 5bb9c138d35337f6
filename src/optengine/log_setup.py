"""
Logging setup for loguru sinks.

Usage:
    from optengine.config import load_engine_config
    from optengine.log_setup import configure_logging

    config = load_engine_config()
    configure_logging(config.logging)
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from optengine.config.engine_config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Replace loguru's default handler with the engine's sinks.

    Always adds a stderr sink; adds a rotating file sink when log_file is set.

    Args:
        config: Logging configuration (default: LoggingConfig())
    """
    config = config or LoggingConfig()
    sink_config = config.get_log_config()

    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=sink_config["level"],
        format=sink_config["format"],
    )

    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(config.log_file, **sink_config)
        logger.info(f"✓ File logging enabled: {config.log_file}")

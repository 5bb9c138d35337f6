"""
Engine Configuration

Dataclass configuration sections for every lifecycle component.

Schema (config/options_engine.yaml):
- selection: delta targets and strike adjustment factors
- expiration: DTE targets per signal quality and oscillator condition
- sizing: risk budget, position cap and multipliers
- exits: exit thresholds and partial-close fractions
- monitoring: refresh interval, alert thresholds, fetch retry policy
- logging: loguru sink settings
"""

from dataclasses import dataclass, field, fields
from typing import Any, List, Optional


def _default_quality_dte() -> dict[int, int]:
    return {5: 14, 4: 30, 3: 30, 2: 45, 1: 45}


def _default_quality_multipliers() -> dict[int, float]:
    return {1: 0.5, 2: 0.75, 3: 1.0, 4: 1.0, 5: 1.5}


@dataclass(slots=True)
class SelectionConfig:
    """
    Strike selection configuration.

    Attributes:
        long_option_delta: Target delta for single long options (0.65)
        spread_long_delta: Target delta for the spread's long leg (0.65)
        spread_short_delta: Target delta for the spread's short leg (0.30)
        reversal_adjustment: Fraction of ATM distance to move toward ATM on extreme reversal
        compression_adjustment: Fraction of ATM distance to move away from ATM on compression
        high_iv_rank: IV rank above which the high-IV nudge applies
        high_iv_adjustment: Extra fraction of ATM distance to move away on high IV
        strike_increment: Rounding increment for adjusted strikes
        max_delta_deviation: Validation limit on |delta - target|
        max_spread_ratio: Validation limit on (ask - bid) / mid
    """

    long_option_delta: float = 0.65
    spread_long_delta: float = 0.65
    spread_short_delta: float = 0.30
    reversal_adjustment: float = 0.30
    compression_adjustment: float = 0.20
    high_iv_rank: float = 70.0
    high_iv_adjustment: float = 0.10
    strike_increment: float = 0.5
    max_delta_deviation: float = 0.15
    max_spread_ratio: float = 0.10

    def validate(self) -> List[str]:
        """Return validation errors (empty if valid)."""
        errors = []
        for name in ("long_option_delta", "spread_long_delta", "spread_short_delta"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                errors.append(f"{name} must be in (0, 1]: {value}")
        if self.spread_short_delta >= self.spread_long_delta:
            errors.append("spread_short_delta must be lower than spread_long_delta")
        for name in ("reversal_adjustment", "compression_adjustment", "high_iv_adjustment"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                errors.append(f"{name} must be in [0, 1): {value}")
        if self.strike_increment <= 0:
            errors.append(f"strike_increment must be positive: {self.strike_increment}")
        return errors


@dataclass(slots=True)
class ExpirationConfig:
    """
    Expiration selection configuration.

    Attributes:
        quality_dte: Target DTE per signal quality tier
        default_dte: Target DTE for an unrecognized tier
        extreme_reversal_top_dte: Target DTE on extreme reversal with a 5-star signal
        extreme_reversal_dte: Target DTE on extreme reversal otherwise
        compression_dte: Target DTE during compression
        monthly_day_min: First day-of-month of the monthly window
        monthly_day_max: Last day-of-month of the monthly window
    """

    quality_dte: dict[int, int] = field(default_factory=_default_quality_dte)
    default_dte: int = 30
    extreme_reversal_top_dte: int = 7
    extreme_reversal_dte: int = 14
    compression_dte: int = 45
    monthly_day_min: int = 15
    monthly_day_max: int = 21

    def validate(self) -> List[str]:
        """Return validation errors (empty if valid)."""
        errors = []
        for quality, dte in self.quality_dte.items():
            if dte < 0:
                errors.append(f"quality_dte[{quality}] must be >= 0: {dte}")
        if not 1 <= self.monthly_day_min <= self.monthly_day_max <= 31:
            errors.append("monthly window must satisfy 1 <= min <= max <= 31")
        return errors


@dataclass(slots=True)
class SizingConfig:
    """
    Position sizing configuration.

    Attributes:
        base_risk_percent: Account fraction risked per trade (0.02)
        max_position_percent: Account fraction cap on total premium (0.05)
        quality_multipliers: Risk multiplier per signal quality tier
        reversal_boost: Multiplier on extreme reversal (1.5)
        zone_reversal_boost: Multiplier on zone reversal (1.25)
        compression_penalty: Multiplier during compression (0.5)
        skip_on_compression: Return a zero-contract result during compression
    """

    base_risk_percent: float = 0.02
    max_position_percent: float = 0.05
    quality_multipliers: dict[int, float] = field(default_factory=_default_quality_multipliers)
    reversal_boost: float = 1.5
    zone_reversal_boost: float = 1.25
    compression_penalty: float = 0.5
    skip_on_compression: bool = False

    def validate(self) -> List[str]:
        """Return validation errors (empty if valid)."""
        errors = []
        if not 0 < self.base_risk_percent <= 1:
            errors.append(f"base_risk_percent must be in (0, 1]: {self.base_risk_percent}")
        if not 0 < self.max_position_percent <= 1:
            errors.append(f"max_position_percent must be in (0, 1]: {self.max_position_percent}")
        previous = 0.0
        for quality in sorted(self.quality_multipliers):
            multiplier = self.quality_multipliers[quality]
            if multiplier <= 0:
                errors.append(f"quality_multipliers[{quality}] must be positive: {multiplier}")
            if multiplier < previous:
                errors.append("quality_multipliers must be non-decreasing in quality")
            previous = multiplier
        if self.compression_penalty <= 0:
            errors.append(f"compression_penalty must be positive: {self.compression_penalty}")
        return errors


@dataclass(slots=True)
class ExitRules:
    """
    Exit condition thresholds and partial-close policy.

    Attributes:
        stop_loss_percent: Loss fraction of entry value that stops out (0.90)
        profit_target_1_percent: Profit fraction for target 1 (0.50)
        profit_target_2_percent: Profit fraction for target 2 (1.00)
        profit_target_3_percent: Profit fraction for target 3 (2.00)
        dte_exit_threshold: Close when DTE <= this (3)
        theta_decay_threshold: Daily theta as fraction of entry value (0.10)
        iv_crush_threshold: Relative IV drop from entry (0.30)
        eod_exit_minutes: Close this many minutes before the bell (30)
        partial_exit_t1_percent: Fraction of original size closed at target 1 (0.50)
        partial_exit_t2_percent: Fraction of the remainder closed at target 2 (0.60)
        oscillator_exit_percent: Fraction closed on oscillator reversal (0.50)
        market_order_slippage: Slippage assumed for MARKET exits (0.02)
    """

    stop_loss_percent: float = 0.90
    profit_target_1_percent: float = 0.50
    profit_target_2_percent: float = 1.00
    profit_target_3_percent: float = 2.00
    dte_exit_threshold: int = 3
    theta_decay_threshold: float = 0.10
    iv_crush_threshold: float = 0.30
    eod_exit_minutes: float = 30
    partial_exit_t1_percent: float = 0.50
    partial_exit_t2_percent: float = 0.60
    oscillator_exit_percent: float = 0.50
    market_order_slippage: float = 0.02

    def validate(self) -> List[str]:
        """Return validation errors (empty if valid)."""
        errors = []
        if not 0 < self.stop_loss_percent <= 1:
            errors.append("Stop loss percent must be between 0 and 100%")
        if self.profit_target_1_percent <= 0:
            errors.append("Profit target 1 must be positive")
        if self.profit_target_2_percent <= self.profit_target_1_percent:
            errors.append("Profit target 2 must be higher than target 1")
        if self.profit_target_3_percent <= self.profit_target_2_percent:
            errors.append("Profit target 3 must be higher than target 2")
        if not 0 <= self.dte_exit_threshold <= 30:
            errors.append("DTE exit threshold must be between 0 and 30 days")
        for name in ("partial_exit_t1_percent", "partial_exit_t2_percent", "oscillator_exit_percent"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                errors.append(f"{name} must be in (0, 1]: {value}")
        if not 0 <= self.market_order_slippage < 1:
            errors.append(f"market_order_slippage must be in [0, 1): {self.market_order_slippage}")
        return errors


@dataclass(slots=True)
class MonitoringConfig:
    """
    Position monitoring configuration.

    Attributes:
        update_interval_seconds: Seconds between refreshes per position (30)
        significant_greeks_change: Delta change that raises GREEKS_CHANGE (0.05)
        dte_warning_threshold: DTE at or below which DTE_WARNING fires (3)
        theta_alert_threshold: Daily theta fraction of entry value for THETA_DECAY (0.10)
        fetch_timeout_seconds: Timeout for each quote request
        retry_attempts: Attempts per quote request before giving up
        retry_base_delay: Initial backoff delay in seconds
        stop_timeout_seconds: Upper bound on waiting for a cancelled refresh task
    """

    update_interval_seconds: float = 30
    significant_greeks_change: float = 0.05
    dte_warning_threshold: int = 3
    theta_alert_threshold: float = 0.10
    fetch_timeout_seconds: float = 5.0
    retry_attempts: int = 3
    retry_base_delay: float = 0.5
    stop_timeout_seconds: float = 5.0

    def validate(self) -> List[str]:
        """Return validation errors (empty if valid)."""
        errors = []
        if self.update_interval_seconds < 5:
            errors.append("Update interval must be at least 5 seconds")
        if not 0.01 <= self.significant_greeks_change <= 0.5:
            errors.append("Significant Greeks change must be between 1% and 50%")
        if self.retry_attempts < 1:
            errors.append("retry_attempts must be at least 1")
        if self.fetch_timeout_seconds <= 0:
            errors.append("fetch_timeout_seconds must be positive")
        return errors


@dataclass(slots=True)
class LoggingConfig:
    """
    Logging configuration for loguru.

    Attributes:
        level: Minimum level for all sinks
        log_file: Optional rotating file sink path
        rotation: Rotation policy for the file sink
        retention: Retention policy for the file sink
        compression: Compression for rotated files
    """

    level: str = "INFO"
    log_file: Optional[str] = None
    rotation: str = "10 MB"
    retention: str = "10 days"
    compression: str = "zip"

    def validate(self) -> List[str]:
        """Return validation errors (empty if valid)."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            return [f"Invalid log level: {self.level}. Must be one of {valid_levels}"]
        return []

    def get_log_config(self) -> dict:
        """
        Get file sink configuration for loguru.

        Returns:
            Dictionary with loguru add() keyword arguments
        """
        return {
            "rotation": self.rotation,
            "retention": self.retention,
            "compression": self.compression,
            "level": self.level.upper(),
            "format": (
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            ),
        }


def _build(section_cls, data: Optional[dict]):
    """Instantiate a section from a dict, ignoring unknown keys."""
    data = data or {}
    known = {f.name for f in fields(section_cls)}
    kwargs: dict[str, Any] = {k: v for k, v in data.items() if k in known}

    # YAML gives int keys for quality maps only when unquoted; normalize
    for map_key in ("quality_dte", "quality_multipliers"):
        if map_key in kwargs:
            kwargs[map_key] = {int(k): v for k, v in kwargs[map_key].items()}

    return section_cls(**kwargs)


@dataclass(slots=True)
class EngineConfig:
    """Complete lifecycle engine configuration."""

    selection: SelectionConfig = field(default_factory=SelectionConfig)
    expiration: ExpirationConfig = field(default_factory=ExpirationConfig)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    exits: ExitRules = field(default_factory=ExitRules)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        """Create config from dictionary with nested dataclass instantiation."""
        return cls(
            selection=_build(SelectionConfig, data.get("selection")),
            expiration=_build(ExpirationConfig, data.get("expiration")),
            sizing=_build(SizingConfig, data.get("sizing")),
            exits=_build(ExitRules, data.get("exits")),
            monitoring=_build(MonitoringConfig, data.get("monitoring")),
            logging=_build(LoggingConfig, data.get("logging")),
        )

    def validate(self) -> List[str]:
        """
        Validate every section.

        Returns:
            List of validation errors prefixed by section (empty if valid)
        """
        errors = []
        for section in ("selection", "expiration", "sizing", "exits", "monitoring", "logging"):
            errors.extend(f"{section}: {e}" for e in getattr(self, section).validate())
        return errors

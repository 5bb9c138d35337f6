"""
Entry Selection

Expiration selection, delta-targeted strike selection and position sizing.
"""

from optengine.selection.expiration_selector import (
    ExpirationSelector,
    analyze_expiration_selection,
    score_expiration_selection,
    validate_expiration_selection,
)
from optengine.selection.models import (
    Effectiveness,
    ExpirationAnalysis,
    ExpirationSelection,
    PositionSize,
    RiskLevel,
    SizingRiskMetrics,
    SpreadSelection,
    StrikeSelection,
)
from optengine.selection.position_sizer import (
    PositionSizer,
    calculate_optimal_size,
    classify_risk_level,
    validate_position_size,
)
from optengine.selection.strike_selector import (
    StrikeSelector,
    greeks_quality,
    score_strike_selection,
    validate_strike_selection,
)

__all__ = [
    "Effectiveness",
    "ExpirationAnalysis",
    "ExpirationSelection",
    "ExpirationSelector",
    "PositionSize",
    "PositionSizer",
    "RiskLevel",
    "SizingRiskMetrics",
    "SpreadSelection",
    "StrikeSelection",
    "StrikeSelector",
    "analyze_expiration_selection",
    "calculate_optimal_size",
    "classify_risk_level",
    "greeks_quality",
    "score_expiration_selection",
    "score_strike_selection",
    "validate_expiration_selection",
    "validate_position_size",
    "validate_strike_selection",
]

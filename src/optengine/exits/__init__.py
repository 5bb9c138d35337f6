"""
Exit Management

Exit condition checks, priority resolution and closing execution plans.
"""

from optengine.config.engine_config import ExitRules
from optengine.exits.exit_manager import ExitManager
from optengine.exits.models import (
    EXIT_PRIORITY,
    ExitCondition,
    ExitContext,
    ExitDecision,
    ExitExecutionPlan,
    ExitTimingEstimate,
    ExitType,
    OrderType,
    Urgency,
)
from optengine.exits.rules import (
    DTEExitCheck,
    EODExitCheck,
    ExitCheck,
    IVCrushCheck,
    OscillatorReversalCheck,
    ProfitTargetCheck,
    StopLossCheck,
    ThetaDecayCheck,
    default_checks,
)

__all__ = [
    "EXIT_PRIORITY",
    "DTEExitCheck",
    "EODExitCheck",
    "ExitCheck",
    "ExitCondition",
    "ExitContext",
    "ExitDecision",
    "ExitExecutionPlan",
    "ExitManager",
    "ExitRules",
    "ExitTimingEstimate",
    "ExitType",
    "IVCrushCheck",
    "OrderType",
    "OscillatorReversalCheck",
    "ProfitTargetCheck",
    "StopLossCheck",
    "ThetaDecayCheck",
    "Urgency",
    "default_checks",
]

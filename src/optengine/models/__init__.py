"""
Core Data Models

Exports contract catalog models, the Position aggregate and the error taxonomy.
"""

from optengine.models.contracts import (
    OPTION_MULTIPLIER,
    Direction,
    Greeks,
    MarketCondition,
    OptionContract,
    OptionKind,
    OptionsChain,
    OscillatorCondition,
    OscillatorPhase,
    VolatilityRegime,
    parse_date,
)
from optengine.models.errors import (
    InvalidSpreadStructure,
    InvalidStructureError,
    LifecycleError,
    NoContractsAvailable,
    NoDataError,
    NoExpirationsAvailable,
    PositionNotFoundError,
    TransientFetchError,
    ValidationError,
)
from optengine.models.position import (
    Position,
    PositionStatus,
    PositionUpdate,
    RiskProfile,
    StrategyDescriptor,
    VolatilityBias,
)

__all__ = [
    # Contracts
    "OPTION_MULTIPLIER",
    "Direction",
    "Greeks",
    "MarketCondition",
    "OptionContract",
    "OptionKind",
    "OptionsChain",
    "OscillatorCondition",
    "OscillatorPhase",
    "VolatilityRegime",
    "parse_date",
    # Position
    "Position",
    "PositionStatus",
    "PositionUpdate",
    "RiskProfile",
    "StrategyDescriptor",
    "VolatilityBias",
    # Errors
    "LifecycleError",
    "ValidationError",
    "NoDataError",
    "NoContractsAvailable",
    "NoExpirationsAvailable",
    "InvalidStructureError",
    "InvalidSpreadStructure",
    "TransientFetchError",
    "PositionNotFoundError",
]

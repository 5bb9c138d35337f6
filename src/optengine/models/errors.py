"""
Lifecycle Engine Exceptions

Error taxonomy shared by the selectors, sizer, monitor and exit manager.

Categories:
- ValidationError: bad caller input, rejected before anything is mutated
- NoDataError: empty contract/expiration set, no position is created
- InvalidStructureError: spread legs violate ordering invariants
- TransientFetchError: quote/catalog fetch failed during monitoring
- PositionNotFoundError: unknown position id passed to the monitor

Example:
    >>> try:
    ...     selector.select_strike(chain, 0.65, OptionKind.CALL, expiry, condition)
    ... except NoContractsAvailable as e:
    ...     print(f"No data: {e.symbol} {e.option_kind}")
"""

from typing import Any, Optional


class LifecycleError(Exception):
    """
    Base class for all lifecycle engine errors.

    Attributes:
        message: Human-readable error message
        details: Optional structured context for logging
    """

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return user-friendly string representation."""
        return self.message


class ValidationError(LifecycleError, ValueError):
    """
    Raised for invalid caller input (non-positive account size or premium,
    signal quality outside 1-5, quotes violating ask >= bid >= 0).

    Attributes:
        field: Name of the offending input
        value: Offending value
    """

    def __init__(self, message: str, *, field: Optional[str] = None, value: Any = None):
        super().__init__(message, details={"field": field, "value": value})
        self.field = field
        self.value = value

    def __repr__(self) -> str:
        """Return string representation of exception."""
        return f"ValidationError(field={self.field}, value={self.value!r})"


class NoDataError(LifecycleError):
    """Raised when the catalog has nothing to select from."""


class NoContractsAvailable(NoDataError):
    """
    Raised when no contract survives filtering for a kind/expiration.

    Attributes:
        symbol: Underlying symbol
        option_kind: "call" or "put"
        expiration: Requested expiration (ISO date)
    """

    def __init__(self, symbol: str, option_kind: str, expiration: str):
        super().__init__(
            f"No {option_kind} contracts available for {symbol} expiring {expiration}",
            details={"symbol": symbol, "option_kind": option_kind, "expiration": expiration},
        )
        self.symbol = symbol
        self.option_kind = option_kind
        self.expiration = expiration


class NoExpirationsAvailable(NoDataError):
    """Raised when the available expiration list is empty."""

    def __init__(self, message: str = "No available expirations provided"):
        super().__init__(message)


class InvalidStructureError(LifecycleError):
    """Raised when a multi-leg structure violates its ordering invariants."""


class InvalidSpreadStructure(InvalidStructureError):
    """
    Raised when a spread's strikes or deltas are ordered incorrectly.

    Attributes:
        long_strike: Strike of the long leg
        short_strike: Strike of the short leg
        long_delta: Delta of the long leg
        short_delta: Delta of the short leg
    """

    def __init__(
        self,
        message: str,
        *,
        long_strike: float,
        short_strike: float,
        long_delta: float,
        short_delta: float,
    ):
        super().__init__(
            message,
            details={
                "long_strike": long_strike,
                "short_strike": short_strike,
                "long_delta": long_delta,
                "short_delta": short_delta,
            },
        )
        self.long_strike = long_strike
        self.short_strike = short_strike
        self.long_delta = long_delta
        self.short_delta = short_delta

    def __repr__(self) -> str:
        """Return string representation of exception."""
        return (
            f"InvalidSpreadStructure(long={self.long_strike}@{self.long_delta:.3f}, "
            f"short={self.short_strike}@{self.short_delta:.3f})"
        )


class TransientFetchError(LifecycleError):
    """
    Raised when a quote or catalog fetch fails during monitoring.

    The monitor converts this into an API_ERROR alert and leaves the
    position's snapshot stale until the next successful cycle.

    Attributes:
        symbol: Symbol whose quote could not be fetched
    """

    def __init__(self, message: str, *, symbol: Optional[str] = None):
        super().__init__(message, details={"symbol": symbol})
        self.symbol = symbol


class PositionNotFoundError(LifecycleError, KeyError):
    """Raised when a position id is not under active monitoring."""

    def __init__(self, position_id: str):
        super().__init__(
            f"Position {position_id} not found in active monitoring",
            details={"position_id": position_id},
        )
        self.position_id = position_id

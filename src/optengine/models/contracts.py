"""
Contract Catalog Data Models

This module provides data models for option contracts, chain snapshots and
market conditions consumed by the selectors.
Uses dataclasses with slots=True for performance (internal data, validated on entry).

Key patterns:
- dataclass(slots=True) for performance
- __post_init__ validation for data integrity
- Tolerant from_dict() constructors for external payloads
- Enums subclass str so they serialize as plain values

Contract invariants:
- ask >= bid >= 0
- |delta| <= 1
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from loguru import logger

from optengine.models.errors import ValidationError

logger = logger.bind(component="ContractModels")

OPTION_MULTIPLIER = 100


class OptionKind(str, Enum):
    """Option kind enum (call or put)."""

    CALL = "call"
    PUT = "put"


class OscillatorPhase(str, Enum):
    """
    Oscillator phase enum.

    Phase reported by the market-condition feed for the underlying.
    """

    EXTREME_REVERSAL = "EXTREME_REVERSAL"
    ZONE_REVERSAL = "ZONE_REVERSAL"
    TRENDING = "TRENDING"
    COMPRESSION = "COMPRESSION"


class VolatilityRegime(str, Enum):
    """Volatility regime enum."""

    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"


class Direction(str, Enum):
    """Directional bias of a position or of a reversal signal."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


def parse_date(value: Any) -> date:
    """
    Coerce an expiration value to a date.

    Accepts date, datetime, or ISO "YYYY-MM-DD" strings.

    Raises:
        ValidationError: If value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as e:
            raise ValidationError(f"Invalid date: {value!r}", field="date", value=value) from e
    raise ValidationError(f"Unsupported date value: {value!r}", field="date", value=value)


def coerce_float(value: Any) -> float:
    """Return value as float, treating None and garbage as 0.0."""
    if value is None:
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(result) else result


def parse_delta(value: Any) -> float:
    """Return a contract delta as float, NaN when missing or not numeric."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


@dataclass(slots=True)
class Greeks:
    """
    Option sensitivities plus implied volatility.

    Attributes:
        delta: Price sensitivity to a $1 underlying move
        gamma: Delta sensitivity to a $1 underlying move
        theta: Price change per calendar day (negative for long options)
        vega: Price change per 1.0 change in implied volatility
        rho: Price sensitivity to rates
        implied_volatility: Implied volatility (decimal, 0.25 = 25%)
    """

    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0
    implied_volatility: float = 0.0

    @classmethod
    def zero(cls) -> "Greeks":
        """Return an all-zero Greeks block."""
        return cls()

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Greeks":
        """
        Build Greeks from a quote payload.

        A missing or null block yields all zeros. Tradier reports implied
        volatility as `mid_iv`; `implied_volatility` and `iv` are also accepted.
        """
        if not data:
            return cls.zero()

        iv = data.get("implied_volatility")
        if iv is None:
            iv = data.get("mid_iv", data.get("iv"))

        return cls(
            delta=coerce_float(data.get("delta")),
            gamma=coerce_float(data.get("gamma")),
            theta=coerce_float(data.get("theta")),
            vega=coerce_float(data.get("vega")),
            rho=coerce_float(data.get("rho")),
            implied_volatility=coerce_float(iv),
        )

    def is_sane(self) -> bool:
        """Check physical sanity: |delta|<=1, gamma>=0, theta<=0, vega>=0."""
        return (
            abs(self.delta) <= 1
            and self.gamma >= 0
            and self.theta <= 0
            and self.vega >= 0
        )


@dataclass(slots=True)
class OptionContract:
    """
    Single option contract within a chain snapshot.

    Immutable per snapshot; discarded once a newer snapshot is fetched.

    Attributes:
        symbol: OCC contract symbol (e.g., "SPY260320C00495000")
        strike: Strike price
        expiration: Expiration date
        option_kind: CALL or PUT
        bid: Best bid
        ask: Best ask
        last: Last trade price
        volume: Session volume
        open_interest: Open interest
        greeks: Greeks block (delta may be NaN when the feed has none)
        intrinsic_value: Per-share intrinsic value
        time_value: Per-share extrinsic value
        days_to_expiration: Calendar days to expiration

    Raises:
        ValidationError: If ask < bid, bid < 0, or |delta| > 1
    """

    symbol: str
    strike: float
    expiration: date
    option_kind: OptionKind
    bid: float
    ask: float
    last: float = 0.0
    volume: int = 0
    open_interest: int = 0
    greeks: Greeks = field(default_factory=Greeks)
    intrinsic_value: float = 0.0
    time_value: float = 0.0
    days_to_expiration: int = 0

    def __post_init__(self):
        """Validate quote and Greeks invariants."""
        if self.bid < 0:
            raise ValidationError(
                f"{self.symbol}: bid must be non-negative, got {self.bid}",
                field="bid",
                value=self.bid,
            )

        if self.ask < self.bid:
            raise ValidationError(
                f"{self.symbol}: ask ({self.ask}) must be >= bid ({self.bid})",
                field="ask",
                value=self.ask,
            )

        # NaN delta is allowed here; the strike selector filters it out
        if not math.isnan(self.greeks.delta) and abs(self.greeks.delta) > 1:
            raise ValidationError(
                f"{self.symbol}: |delta| must be <= 1, got {self.greeks.delta}",
                field="delta",
                value=self.greeks.delta,
            )

    @property
    def mid(self) -> float:
        """Mid-point of bid and ask."""
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> float:
        """Absolute bid/ask spread."""
        return self.ask - self.bid

    @property
    def spread_ratio(self) -> float:
        """Bid/ask spread relative to mid (inf when mid is zero)."""
        mid = self.mid
        return self.spread / mid if mid > 0 else math.inf

    @classmethod
    def from_dict(cls, data: dict, option_kind: Optional[OptionKind] = None) -> "OptionContract":
        """
        Build a contract from a chain payload entry.

        Delta is kept as NaN when the Greeks block lacks it or reports a
        non-numeric value, so that the strike selector can exclude the
        contract instead of treating it as 0.
        """
        kind = option_kind or OptionKind(str(data.get("option_kind", data.get("option_type", "call"))).lower())
        greeks_data = data.get("greeks")
        greeks = Greeks.from_dict(greeks_data)
        greeks.delta = parse_delta((greeks_data or {}).get("delta"))

        return cls(
            symbol=data["symbol"],
            strike=float(data["strike"]),
            expiration=parse_date(data.get("expiration") or data.get("expiration_date")),
            option_kind=kind,
            bid=coerce_float(data.get("bid")),
            ask=coerce_float(data.get("ask")),
            last=coerce_float(data.get("last")),
            volume=int(data.get("volume") or 0),
            open_interest=int(data.get("open_interest") or 0),
            greeks=greeks,
            intrinsic_value=coerce_float(data.get("intrinsic_value")),
            time_value=coerce_float(data.get("time_value")),
            days_to_expiration=int(data.get("days_to_expiration") or 0),
        )

    def __repr__(self) -> str:
        """Return string representation of contract."""
        return (
            f"OptionContract({self.symbol} {self.option_kind.value} ${self.strike} "
            f"{self.expiration} bid={self.bid} ask={self.ask} delta={self.greeks.delta:.3f})"
        )


@dataclass(slots=True)
class OptionsChain:
    """
    Contract catalog snapshot for one underlying.

    Supplied by an external collaborator and consumed read-only.

    Attributes:
        symbol: Underlying symbol
        underlying_price: Underlying price at fetch time
        calls: Call contracts
        puts: Put contracts
        expirations: Available expiration dates
        iv_rank: IV rank (0-100)
        iv_percentile: IV percentile (0-100)
        fetched_at: When the snapshot was taken
    """

    symbol: str
    underlying_price: float
    calls: list[OptionContract] = field(default_factory=list)
    puts: list[OptionContract] = field(default_factory=list)
    expirations: list[date] = field(default_factory=list)
    iv_rank: float = 0.0
    iv_percentile: float = 0.0
    fetched_at: datetime = field(default_factory=datetime.now)

    def contracts_for(self, option_kind: OptionKind) -> list[OptionContract]:
        """Return the contract list for the given kind."""
        return self.calls if option_kind == OptionKind.CALL else self.puts

    @classmethod
    def from_dict(cls, data: dict) -> "OptionsChain":
        """
        Build a chain snapshot from a JSON-like payload.

        Contracts whose quote violates the contract invariants are skipped
        with a warning rather than failing the whole snapshot.
        """
        calls = cls._parse_contracts(data.get("calls") or [], OptionKind.CALL)
        puts = cls._parse_contracts(data.get("puts") or [], OptionKind.PUT)

        expirations = [parse_date(e) for e in data.get("expirations") or []]
        if not expirations:
            expirations = sorted({c.expiration for c in calls + puts})

        fetched_at = data.get("fetched_at")
        if isinstance(fetched_at, str):
            fetched_at = datetime.fromisoformat(fetched_at)

        return cls(
            symbol=data["symbol"],
            underlying_price=float(data["underlying_price"]),
            calls=calls,
            puts=puts,
            expirations=expirations,
            iv_rank=coerce_float(data.get("iv_rank")),
            iv_percentile=coerce_float(data.get("iv_percentile")),
            fetched_at=fetched_at or datetime.now(),
        )

    @staticmethod
    def _parse_contracts(entries: list[dict], kind: OptionKind) -> list[OptionContract]:
        contracts = []
        for entry in entries:
            try:
                contracts.append(OptionContract.from_dict(entry, kind))
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed {kind.value} contract {entry.get('symbol')}: {e}")
        return contracts


@dataclass(slots=True)
class OscillatorCondition:
    """
    Oscillator flags derived from the market-condition feed.

    Attributes:
        is_extreme_reversal: Oscillator leaving an extreme zone
        is_zone_reversal: Oscillator reversing inside a zone
        is_compression: Oscillator compressed (range contraction)
        oscillator_value: Raw oscillator reading
    """

    is_extreme_reversal: bool = False
    is_zone_reversal: bool = False
    is_compression: bool = False
    oscillator_value: float = 0.0

    @classmethod
    def neutral(cls) -> "OscillatorCondition":
        """Return a condition with no flags set."""
        return cls()


@dataclass(slots=True)
class MarketCondition:
    """
    Market-condition feed reading for an underlying.

    Attributes:
        oscillator_phase: Current oscillator phase
        iv_rank: IV rank (0-100)
        volatility_regime: HIGH, NORMAL or LOW
        signal_quality: Signal quality tier (1-5)
        reversal_direction: Direction the reversal points to, when known
        oscillator_value: Raw oscillator reading

    Raises:
        ValidationError: If iv_rank or signal_quality are out of range
    """

    oscillator_phase: OscillatorPhase = OscillatorPhase.TRENDING
    iv_rank: float = 50.0
    volatility_regime: VolatilityRegime = VolatilityRegime.NORMAL
    signal_quality: int = 3
    reversal_direction: Optional[Direction] = None
    oscillator_value: float = 0.0

    def __post_init__(self):
        """Validate ranges."""
        if not 0 <= self.iv_rank <= 100:
            raise ValidationError(
                f"iv_rank must be between 0 and 100, got {self.iv_rank}",
                field="iv_rank",
                value=self.iv_rank,
            )
        if not 1 <= self.signal_quality <= 5:
            raise ValidationError(
                f"signal_quality must be between 1 and 5, got {self.signal_quality}",
                field="signal_quality",
                value=self.signal_quality,
            )

    @property
    def is_reversal(self) -> bool:
        """True for extreme or zone reversal phases."""
        return self.oscillator_phase in (
            OscillatorPhase.EXTREME_REVERSAL,
            OscillatorPhase.ZONE_REVERSAL,
        )

    def oscillator_condition(self) -> OscillatorCondition:
        """Derive oscillator flags from the phase."""
        return OscillatorCondition(
            is_extreme_reversal=self.oscillator_phase == OscillatorPhase.EXTREME_REVERSAL,
            is_zone_reversal=self.oscillator_phase == OscillatorPhase.ZONE_REVERSAL,
            is_compression=self.oscillator_phase == OscillatorPhase.COMPRESSION,
            oscillator_value=self.oscillator_value,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "MarketCondition":
        """Build a market condition from a feed payload."""
        reversal = data.get("reversal_direction")
        return cls(
            oscillator_phase=OscillatorPhase(data.get("oscillator_phase", "TRENDING")),
            iv_rank=float(data.get("iv_rank", 50.0)),
            volatility_regime=VolatilityRegime(data.get("volatility_regime", "NORMAL")),
            signal_quality=int(data.get("signal_quality", 3)),
            reversal_direction=Direction(reversal) if reversal else None,
            oscillator_value=float(data.get("oscillator_value", 0.0)),
        )

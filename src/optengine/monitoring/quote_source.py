"""
Quote Source Interfaces

Protocols for the external market-data collaborators consumed by the
monitor, tolerant quote models, and an in-memory implementation used for
paper runs, the CLI and tests.

Key patterns:
- Protocol-based collaborators (duck-typing, no inheritance required)
- A null or missing Greeks block is all zeros, never a hard failure
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union, runtime_checkable

from loguru import logger

from optengine.models import Greeks, MarketCondition, TransientFetchError
from optengine.models.contracts import coerce_float

logger = logger.bind(component="QuoteSource")


@dataclass(slots=True)
class OptionQuote:
    """
    Contract quote from the market-data source.

    Attributes:
        symbol: Contract symbol
        last: Last trade price
        bid: Best bid
        ask: Best ask
        greeks: Greeks block (zeros when absent)
        has_greeks: False when the source sent no Greeks block
    """

    symbol: str
    last: float = 0.0
    bid: float = 0.0
    ask: float = 0.0
    greeks: Greeks = field(default_factory=Greeks)
    has_greeks: bool = True

    @property
    def price(self) -> float:
        """Last trade, falling back to mid when there is none."""
        if self.last > 0:
            return self.last
        return (self.bid + self.ask) / 2

    @classmethod
    def from_dict(cls, symbol: str, data: dict) -> "OptionQuote":
        """Build from a `{last, bid, ask, greeks{delta,gamma,theta,vega,rho,mid_iv}}` payload."""
        greeks_data = data.get("greeks")
        return cls(
            symbol=symbol,
            last=coerce_float(data.get("last")),
            bid=coerce_float(data.get("bid")),
            ask=coerce_float(data.get("ask")),
            greeks=Greeks.from_dict(greeks_data),
            has_greeks=bool(greeks_data),
        )


@dataclass(slots=True)
class UnderlyingQuote:
    """
    Underlying quote from the market-data source.

    Attributes:
        symbol: Underlying symbol
        last: Last trade price
        close: Previous close
    """

    symbol: str
    last: float = 0.0
    close: float = 0.0

    @property
    def price(self) -> float:
        """Last trade, falling back to close."""
        return self.last if self.last > 0 else self.close

    @classmethod
    def from_dict(cls, symbol: str, data: dict) -> "UnderlyingQuote":
        """Build from a `{last, close}` payload."""
        return cls(symbol=symbol, last=coerce_float(data.get("last")), close=coerce_float(data.get("close")))


@runtime_checkable
class QuoteSource(Protocol):
    """
    Quote/Greeks source protocol.

    Implementations raise on failure; the monitor retries and converts
    exhausted retries into API_ERROR alerts.
    """

    async def get_option_quote(self, symbol: str) -> OptionQuote:
        """Fetch the current quote and Greeks for a contract."""
        ...

    async def get_underlying_quote(self, symbol: str) -> UnderlyingQuote:
        """Fetch the current quote for an underlying."""
        ...


@runtime_checkable
class MarketConditionFeed(Protocol):
    """Market-condition feed protocol (oscillator phase, IV rank, quality)."""

    async def get_market_condition(self, symbol: str) -> Optional[MarketCondition]:
        """Fetch the latest market condition for an underlying."""
        ...


class InMemoryQuoteSource:
    """
    Quote source and market-condition feed backed by dictionaries.

    Quotes may be set as models or raw payload dicts. A symbol with no quote
    raises TransientFetchError, as a failing upstream would.

    Example:
        source = InMemoryQuoteSource()
        source.set_underlying_quote("SPY", {"last": 500.0, "close": 498.5})
        source.set_option_quote("SPY260320C00495000", {"last": 12.4, "bid": 12.3, "ask": 12.5})
    """

    def __init__(self):
        self._option_quotes: dict[str, OptionQuote] = {}
        self._underlying_quotes: dict[str, UnderlyingQuote] = {}
        self._conditions: dict[str, MarketCondition] = {}
        self.request_count = 0

    def set_option_quote(self, symbol: str, quote: Union[OptionQuote, dict[str, Any]]) -> None:
        """Store or replace a contract quote."""
        if isinstance(quote, dict):
            quote = OptionQuote.from_dict(symbol, quote)
        self._option_quotes[symbol] = quote

    def set_underlying_quote(self, symbol: str, quote: Union[UnderlyingQuote, dict[str, Any]]) -> None:
        """Store or replace an underlying quote."""
        if isinstance(quote, dict):
            quote = UnderlyingQuote.from_dict(symbol, quote)
        self._underlying_quotes[symbol] = quote

    def set_market_condition(self, symbol: str, condition: MarketCondition) -> None:
        """Store or replace the market condition for an underlying."""
        self._conditions[symbol] = condition

    def remove_option_quote(self, symbol: str) -> None:
        """Drop a contract quote so later fetches fail."""
        self._option_quotes.pop(symbol, None)

    async def get_option_quote(self, symbol: str) -> OptionQuote:
        self.request_count += 1
        try:
            return self._option_quotes[symbol]
        except KeyError:
            raise TransientFetchError(f"No quote available for {symbol}", symbol=symbol) from None

    async def get_underlying_quote(self, symbol: str) -> UnderlyingQuote:
        self.request_count += 1
        try:
            return self._underlying_quotes[symbol]
        except KeyError:
            raise TransientFetchError(f"No underlying quote available for {symbol}", symbol=symbol) from None

    async def get_market_condition(self, symbol: str) -> Optional[MarketCondition]:
        return self._conditions.get(symbol)

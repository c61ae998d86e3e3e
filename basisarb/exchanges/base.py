"""Base venue interface for the basis arbitrage bot."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.types import FILLED_STATUSES, Market, OrderSide, PriceQuote, SymbolFilters


class VenueError(Exception):
    """HTTP or venue-level failure."""

    def __init__(self, message: str, status: Optional[int] = None,
                 code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.code = code
        self.payload = payload


class MissingCredentialsError(VenueError):
    """Signed call attempted without an API key/secret."""


@dataclass(frozen=True)
class BookTicker:
    """Best bid/ask for a symbol."""
    symbol: str
    bid: float
    ask: float

    @property
    def is_valid(self) -> bool:
        return self.bid > 0 and self.ask > 0


@dataclass(frozen=True)
class SymbolInfo:
    """Exchange metadata for one symbol."""
    symbol: str
    status: str
    base_asset: str
    quote_asset: str
    filters: SymbolFilters

    @property
    def is_trading(self) -> bool:
        return self.status == "TRADING"


@dataclass(frozen=True)
class OrderResult:
    """Venue acknowledgement of a market order."""
    order_id: Optional[str]
    status: str
    executed_qty: float = 0.0
    cummulative_quote_qty: float = 0.0
    avg_price: float = 0.0
    fills: Tuple[Dict[str, Any], ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_filled(self) -> bool:
        return self.status in FILLED_STATUSES


class VenueClient(ABC):
    """Market data accessors and order sink for a spot + perpetual venue.

    Every outbound call of an implementation goes through its rate limiter.
    """

    name = "venue"

    @property
    @abstractmethod
    def has_credentials(self) -> bool:
        """Whether signed endpoints can be called."""

    @abstractmethod
    async def get_market_prices(self, symbol: str) -> PriceQuote:
        """Last spot and perpetual prices for a symbol."""

    @abstractmethod
    async def get_book_tickers(self) -> Dict[str, BookTicker]:
        """Best bid/ask for every spot symbol."""

    @abstractmethod
    async def get_quote_volumes(self) -> Dict[str, float]:
        """24h quote volume for every spot symbol."""

    @abstractmethod
    async def get_spot_symbols(self) -> List[SymbolInfo]:
        """Spot exchange info."""

    @abstractmethod
    async def get_futures_symbols(self) -> List[SymbolInfo]:
        """Perpetual exchange info."""

    @abstractmethod
    async def get_symbol_filters(self, symbol: str) -> Optional[SymbolFilters]:
        """Spot trading filters for one symbol, None if unknown."""

    @abstractmethod
    async def get_funding_rate_bps_per_8h(self, symbol: str) -> float:
        """Current funding rate, 0 on failure."""

    @abstractmethod
    async def get_borrow_apr_pct(self, asset: str) -> float:
        """Margin borrow APR in percent, 0 on failure."""

    @abstractmethod
    async def get_available_capital(self) -> float:
        """Available perpetual wallet balance in the settlement asset, 0 if none."""

    @abstractmethod
    async def get_spot_balance(self, asset: str) -> float:
        """Free spot balance of an asset."""

    @abstractmethod
    async def get_spot_portfolio_value(self) -> float:
        """Spot holdings valued in the settlement asset."""

    @abstractmethod
    async def place_market_order(self, market: Market, symbol: str, side: OrderSide,
                                 quantity: Optional[str] = None,
                                 quote_quantity: Optional[str] = None,
                                 reduce_only: bool = False,
                                 borrow: bool = False) -> OrderResult:
        """Place one market order. Never retried by the client."""

    async def close(self) -> None:
        """Release network resources."""

"""Binance venue client backed by ccxt."""

from typing import Any, Dict, List, Optional

import ccxt.pro as ccxt
from ccxt.base.errors import BaseError as CcxtError
from loguru import logger

from ..config import VenueConfig, VenueContext
from ..core.types import Market, OrderSide, PriceQuote, SymbolFilters
from .base import BookTicker, OrderResult, SymbolInfo, VenueClient, VenueError
from .binance import parse_order, parse_symbol_info
from .filters import parse_filters
from .rate_limiter import RateLimiter

MS_PER_YEAR = 365 * 24 * 60 * 60 * 1000


class CcxtBinanceVenue(VenueClient):
    """Spot and USD-M futures through two ccxt clients sharing one limiter."""

    name = "binance-ccxt"

    def __init__(self, context: VenueContext, settings: VenueConfig,
                 limiter: Optional[RateLimiter] = None,
                 spot: Optional[Any] = None, futures: Optional[Any] = None):
        self.context = context
        self.settings = settings
        self.limiter = limiter or RateLimiter(
            settings.max_requests_per_minute, settings.rate_limit_safety_factor
        )

        # Pacing is done by our limiter, not ccxt's
        options = {"enableRateLimit": False, "timeout": settings.timeout_ms}
        if context.has_credentials:
            options.update({"apiKey": context.api_key, "secret": context.api_secret})

        self.spot = spot or ccxt.binance({**options, "options": {"defaultType": "spot"}})
        self.futures = futures or ccxt.binanceusdm(dict(options))
        if context.testnet:
            self.spot.set_sandbox_mode(True)
            self.futures.set_sandbox_mode(True)
        self._markets_loaded = False

    @property
    def has_credentials(self) -> bool:
        return self.context.has_credentials

    async def _call(self, fn, *args, **kwargs) -> Any:
        try:
            return await self.limiter.schedule(fn, *args, **kwargs)
        except CcxtError as e:
            raise VenueError(f"{type(e).__name__}: {e}") from e

    async def _ensure_markets(self) -> None:
        if self._markets_loaded:
            return
        await self._call(self.spot.load_markets)
        await self._call(self.futures.load_markets)
        self._markets_loaded = True

    def _unified(self, exchange: Any, symbol_id: str) -> str:
        markets = exchange.markets_by_id.get(symbol_id)
        if not markets:
            raise VenueError(f"Unknown symbol {symbol_id} on {exchange.id}")
        return markets[0]["symbol"]

    async def get_market_prices(self, symbol: str) -> PriceQuote:
        await self._ensure_markets()
        spot = await self._call(self.spot.fetch_ticker, self._unified(self.spot, symbol))
        fut = await self._call(self.futures.fetch_ticker, self._unified(self.futures, symbol))
        quote = PriceQuote(
            symbol=symbol,
            spot_price=float(spot.get("last") or "nan"),
            derivative_price=float(fut.get("last") or "nan"),
        )
        if not quote.is_valid:
            raise VenueError(f"Invalid prices for {symbol}")
        return quote

    async def get_book_tickers(self) -> Dict[str, BookTicker]:
        tickers = await self._call(self.spot.fetch_bids_asks)
        books = {}
        for ticker in tickers.values():
            symbol_id = ticker.get("info", {}).get("symbol")
            if symbol_id:
                books[symbol_id] = BookTicker(symbol_id, float(ticker.get("bid") or 0), float(ticker.get("ask") or 0))
        return books

    async def get_quote_volumes(self) -> Dict[str, float]:
        tickers = await self._call(self.spot.fetch_tickers)
        return {
            t["info"]["symbol"]: float(t.get("quoteVolume") or 0)
            for t in tickers.values() if t.get("info", {}).get("symbol")
        }

    async def get_spot_symbols(self) -> List[SymbolInfo]:
        await self._ensure_markets()
        return [parse_symbol_info(m["info"]) for m in self.spot.markets.values() if m.get("spot")]

    async def get_futures_symbols(self) -> List[SymbolInfo]:
        await self._ensure_markets()
        return [
            parse_symbol_info(m["info"]) for m in self.futures.markets.values()
            if m.get("swap") and m.get("linear")
        ]

    async def get_symbol_filters(self, symbol: str) -> Optional[SymbolFilters]:
        await self._ensure_markets()
        markets = self.spot.markets_by_id.get(symbol)
        if not markets:
            return None
        return parse_filters(symbol, markets[0]["info"].get("filters", []))

    async def get_funding_rate_bps_per_8h(self, symbol: str) -> float:
        try:
            await self._ensure_markets()
            data = await self._call(self.futures.fetch_funding_rate, self._unified(self.futures, symbol))
            return float(data.get("fundingRate") or 0) * 10000
        except Exception as e:
            logger.warning(f"Funding rate unavailable for {symbol}, using 0: {e}")
            return 0.0

    async def get_borrow_apr_pct(self, asset: str) -> float:
        if not self.has_credentials:
            return 0.0
        try:
            data = await self._call(self.spot.fetch_cross_borrow_rate, asset)
            period = float(data.get("period") or 86400000)
            return float(data.get("rate") or 0) * (MS_PER_YEAR / period) * 100
        except Exception as e:
            logger.warning(f"Borrow rate unavailable for {asset}, using 0: {e}")
            return 0.0

    async def get_available_capital(self) -> float:
        if not self.has_credentials:
            return self.settings.paper_capital
        balance = await self._call(self.futures.fetch_balance)
        return float(balance.get("free", {}).get(self.settings.balance_asset) or 0)

    async def get_spot_balance(self, asset: str) -> float:
        if not self.has_credentials:
            return self.settings.paper_capital if asset == self.settings.balance_asset else 0.0
        balance = await self._call(self.spot.fetch_balance)
        return float(balance.get("free", {}).get(asset) or 0)

    async def get_spot_portfolio_value(self) -> float:
        if not self.has_credentials:
            return 0.0
        balance = await self._call(self.spot.fetch_balance)
        tickers = await self._call(self.spot.fetch_tickers)
        settle = self.settings.balance_asset
        prices = {
            t["info"]["symbol"]: float(t.get("last") or 0)
            for t in tickers.values() if t.get("info", {}).get("symbol")
        }
        total = 0.0
        for asset, amount in (balance.get("total") or {}).items():
            if not amount:
                continue
            total += float(amount) if asset == settle else float(amount) * prices.get(f"{asset}{settle}", 0.0)
        return total

    async def place_market_order(self, market: Market, symbol: str, side: OrderSide,
                                 quantity: Optional[str] = None,
                                 quote_quantity: Optional[str] = None,
                                 reduce_only: bool = False,
                                 borrow: bool = False) -> OrderResult:
        await self._ensure_markets()
        exchange = self.futures if market is Market.FUTURES else self.spot
        params: Dict[str, Any] = {}
        amount = float(quantity) if quantity is not None else None
        if amount is None:
            if quote_quantity is None or market is Market.FUTURES:
                raise ValueError("Market order needs a quantity (or a quote quantity on spot)")
            params["quoteOrderQty"] = quote_quantity
        if market is Market.FUTURES and reduce_only:
            params["reduceOnly"] = True
        if market is Market.MARGIN:
            params["marginMode"] = "cross"
            params["sideEffectType"] = "MARGIN_BUY" if borrow else "NO_SIDE_EFFECT"

        order = await self._call(
            exchange.create_order, self._unified(exchange, symbol), "market",
            side.value.lower(), amount, None, params,
        )
        info = order.get("info") or {}
        if info.get("status"):
            result = parse_order(info)
        else:
            status = "FILLED" if order.get("status") == "closed" else str(order.get("status") or "").upper()
            result = OrderResult(
                order_id=str(order.get("id")) if order.get("id") is not None else None,
                status=status,
                executed_qty=float(order.get("filled") or 0),
                cummulative_quote_qty=float(order.get("cost") or 0),
                avg_price=float(order.get("average") or 0),
                fills=tuple(order.get("trades") or ()),
                raw=order,
            )
        logger.info(f"{market.value} {side.value} {symbol} -> order {result.order_id} {result.status}")
        return result

    async def close(self) -> None:
        for exchange in (self.spot, self.futures):
            try:
                await exchange.close()
            except Exception as e:
                logger.error(f"Error closing {exchange.id}: {e}")

"""Binance spot, margin and USD-M futures REST client."""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp
from loguru import logger

from ..config import VenueConfig, VenueContext
from ..core.types import Market, OrderSide, PriceQuote, SymbolFilters
from .base import BookTicker, OrderResult, SymbolInfo, VenueClient, VenueError
from .filters import parse_filters
from .rate_limiter import RateLimiter
from .signing import RequestSigner


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_symbol_info(raw: Dict[str, Any]) -> SymbolInfo:
    return SymbolInfo(
        symbol=raw.get("symbol", ""),
        status=raw.get("status", raw.get("contractStatus", "")),
        base_asset=raw.get("baseAsset", ""),
        quote_asset=raw.get("quoteAsset", ""),
        filters=parse_filters(raw.get("symbol", ""), raw.get("filters", [])),
    )


def parse_order(raw: Dict[str, Any]) -> OrderResult:
    """Normalize spot, margin and futures order acknowledgements."""
    executed = _float(raw.get("executedQty"))
    quote = _float(raw.get("cummulativeQuoteQty", raw.get("cumQuote")))
    avg_price = _float(raw.get("avgPrice"))
    if not avg_price and executed > 0:
        avg_price = quote / executed
    order_id = raw.get("orderId")
    return OrderResult(
        order_id=str(order_id) if order_id is not None else None,
        status=raw.get("status", ""),
        executed_qty=executed,
        cummulative_quote_qty=quote,
        avg_price=avg_price,
        fills=tuple(raw.get("fills", ())),
        raw=raw,
    )


class BinanceRestClient(VenueClient):
    """Binance venue client over aiohttp."""

    name = "binance"

    def __init__(self, context: VenueContext, settings: VenueConfig,
                 limiter: Optional[RateLimiter] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.context = context
        self.settings = settings
        self.limiter = limiter or RateLimiter(
            settings.max_requests_per_minute, settings.rate_limit_safety_factor
        )
        self.signer = RequestSigner(context.api_key, context.api_secret, settings.recv_window_ms)
        self._session = session
        self._owns_session = session is None

    @property
    def has_credentials(self) -> bool:
        return self.context.has_credentials

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.info("Binance REST session closed")

    async def _request(self, base_url: str, method: str, path: str,
                       params: Optional[Dict[str, Any]] = None, signed: bool = False) -> Any:
        return await self.limiter.schedule(self._send, base_url, method, path, params, signed)

    async def _send(self, base_url: str, method: str, path: str,
                    params: Optional[Dict[str, Any]], signed: bool) -> Any:
        session = await self._get_session()
        headers: Dict[str, str] = {}
        if signed:
            query = self.signer.build_query(params)
            headers.update(self.signer.headers())
        else:
            query = urlencode({k: v for k, v in (params or {}).items() if v is not None})

        kwargs: Dict[str, Any] = {"headers": headers}
        if method == "POST":
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            kwargs["data"] = query
        elif query:
            kwargs["params"] = query

        url = f"{base_url}{path}"
        try:
            async with session.request(method, url, **kwargs) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    payload = None
                    code = None
                    message = text
                    try:
                        payload = json.loads(text)
                        code = payload.get("code")
                        message = payload.get("msg", text)
                    except (ValueError, AttributeError):
                        pass
                    raise VenueError(f"HTTP {resp.status} {path}: {message}",
                                     status=resp.status, code=code, payload=payload)
                return json.loads(text) if text else {}
        except asyncio.TimeoutError as e:
            raise VenueError(f"Timeout calling {path}") from e
        except aiohttp.ClientError as e:
            raise VenueError(f"Network error calling {path}: {e}") from e

    async def _spot(self, method: str, path: str, params=None, signed: bool = False) -> Any:
        return await self._request(self.context.spot_base_url, method, path, params, signed)

    async def _futures(self, method: str, path: str, params=None, signed: bool = False) -> Any:
        return await self._request(self.context.futures_base_url, method, path, params, signed)

    # Market data

    async def get_market_prices(self, symbol: str) -> PriceQuote:
        spot = await self._spot("GET", "/api/v3/ticker/price", {"symbol": symbol})
        fut = await self._futures("GET", "/fapi/v1/ticker/price", {"symbol": symbol})
        quote = PriceQuote(
            symbol=symbol,
            spot_price=_float(spot.get("price"), float("nan")),
            derivative_price=_float(fut.get("price"), float("nan")),
        )
        if not quote.is_valid:
            raise VenueError(f"Invalid prices for {symbol}: spot={spot}, futures={fut}")
        return quote

    async def get_book_tickers(self) -> Dict[str, BookTicker]:
        rows = await self._spot("GET", "/api/v3/ticker/bookTicker")
        return {
            row["symbol"]: BookTicker(row["symbol"], _float(row.get("bidPrice")), _float(row.get("askPrice")))
            for row in rows
        }

    async def get_quote_volumes(self) -> Dict[str, float]:
        rows = await self._spot("GET", "/api/v3/ticker/24hr")
        return {row["symbol"]: _float(row.get("quoteVolume")) for row in rows}

    async def get_spot_symbols(self) -> List[SymbolInfo]:
        info = await self._spot("GET", "/api/v3/exchangeInfo")
        return [parse_symbol_info(raw) for raw in info.get("symbols", [])]

    async def get_futures_symbols(self) -> List[SymbolInfo]:
        info = await self._futures("GET", "/fapi/v1/exchangeInfo")
        return [
            parse_symbol_info(raw) for raw in info.get("symbols", [])
            if raw.get("contractType", "PERPETUAL") == "PERPETUAL"
        ]

    async def get_symbol_filters(self, symbol: str) -> Optional[SymbolFilters]:
        info = await self._spot("GET", "/api/v3/exchangeInfo", {"symbol": symbol})
        for raw in info.get("symbols", []):
            if raw.get("symbol") == symbol:
                return parse_filters(symbol, raw.get("filters", []))
        return None

    async def get_funding_rate_bps_per_8h(self, symbol: str) -> float:
        try:
            data = await self._futures("GET", "/fapi/v1/premiumIndex", {"symbol": symbol})
            return _float(data.get("lastFundingRate")) * 10000
        except Exception as e:
            logger.warning(f"Funding rate unavailable for {symbol}, using 0: {e}")
            return 0.0

    async def get_borrow_apr_pct(self, asset: str) -> float:
        if not self.has_credentials:
            return 0.0
        try:
            rows = await self._spot(
                "GET", "/sapi/v1/margin/next-hourly-interest-rate",
                {"assets": asset, "isIsolated": False}, signed=True,
            )
            for row in rows:
                if row.get("asset") == asset:
                    return _float(row.get("nextHourlyInterestRate")) * 24 * 365 * 100
            return 0.0
        except Exception as e:
            logger.warning(f"Borrow rate unavailable for {asset}, using 0: {e}")
            return 0.0

    # Account

    async def get_available_capital(self) -> float:
        if not self.has_credentials:
            return self.settings.paper_capital
        rows = await self._futures("GET", "/fapi/v2/balance", signed=True)
        for row in rows:
            if row.get("asset") == self.settings.balance_asset:
                return _float(row.get("availableBalance"))
        return 0.0

    async def _spot_balances(self) -> List[Dict[str, Any]]:
        account = await self._spot("GET", "/api/v3/account", signed=True)
        return account.get("balances", [])

    async def get_spot_balance(self, asset: str) -> float:
        if not self.has_credentials:
            return self.settings.paper_capital if asset == self.settings.balance_asset else 0.0
        for row in await self._spot_balances():
            if row.get("asset") == asset:
                return _float(row.get("free"))
        return 0.0

    async def get_spot_portfolio_value(self) -> float:
        if not self.has_credentials:
            return 0.0
        balances = await self._spot_balances()
        prices = {
            row["symbol"]: _float(row.get("price"))
            for row in await self._spot("GET", "/api/v3/ticker/price")
        }
        settle = self.settings.balance_asset
        total = 0.0
        for row in balances:
            amount = _float(row.get("free")) + _float(row.get("locked"))
            if amount <= 0:
                continue
            if row.get("asset") == settle:
                total += amount
            else:
                total += amount * prices.get(f"{row.get('asset')}{settle}", 0.0)
        return total

    # Orders

    async def place_market_order(self, market: Market, symbol: str, side: OrderSide,
                                 quantity: Optional[str] = None,
                                 quote_quantity: Optional[str] = None,
                                 reduce_only: bool = False,
                                 borrow: bool = False) -> OrderResult:
        params: Dict[str, Any] = {"symbol": symbol, "side": side.value, "type": "MARKET"}
        if quantity is not None:
            params["quantity"] = quantity
        elif quote_quantity is not None and market is not Market.FUTURES:
            params["quoteOrderQty"] = quote_quantity
        else:
            raise ValueError("Market order needs a quantity (or a quote quantity on spot)")

        if market is Market.FUTURES:
            if reduce_only:
                params["reduceOnly"] = True
            params["newOrderRespType"] = "RESULT"
            raw = await self._futures("POST", "/fapi/v1/order", params, signed=True)
        elif market is Market.MARGIN:
            params["sideEffectType"] = "MARGIN_BUY" if borrow else "NO_SIDE_EFFECT"
            params["newOrderRespType"] = "FULL"
            raw = await self._spot("POST", "/sapi/v1/margin/order", params, signed=True)
        else:
            params["newOrderRespType"] = "FULL"
            raw = await self._spot("POST", "/api/v3/order", params, signed=True)

        result = parse_order(raw)
        logger.info(
            f"{market.value} {side.value} {symbol} -> order {result.order_id} "
            f"{result.status} executed={result.executed_qty}"
        )
        return result

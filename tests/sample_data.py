"""Sample market data and venue doubles for testing the bot."""

from unittest.mock import AsyncMock, Mock

from basisarb.core.types import PriceQuote, SymbolFilters
from basisarb.exchanges.base import BookTicker, OrderResult, SymbolInfo
from basisarb.exchanges.filters import parse_filters

# Raw exchangeInfo entries as returned by /api/v3/exchangeInfo
SAMPLE_EXCHANGE_INFO = {
    "symbols": [
        {
            "symbol": "BTCUSDT",
            "status": "TRADING",
            "baseAsset": "BTC",
            "quoteAsset": "USDT",
            "filters": [
                {"filterType": "PRICE_FILTER", "minPrice": "0.01", "maxPrice": "1000000", "tickSize": "0.01"},
                {"filterType": "LOT_SIZE", "minQty": "0.00001", "maxQty": "9000", "stepSize": "0.00001"},
                {"filterType": "NOTIONAL", "minNotional": "5.00000000", "applyMinToMarket": True},
            ],
        },
        {
            "symbol": "ETHUSDT",
            "status": "TRADING",
            "baseAsset": "ETH",
            "quoteAsset": "USDT",
            "filters": [
                {"filterType": "PRICE_FILTER", "tickSize": "0.01"},
                {"filterType": "LOT_SIZE", "minQty": "0.0001", "stepSize": "0.0001"},
                {"filterType": "MIN_NOTIONAL", "minNotional": "10"},
            ],
        },
        {
            "symbol": "ETHBTC",
            "status": "TRADING",
            "baseAsset": "ETH",
            "quoteAsset": "BTC",
            "filters": [
                {"filterType": "LOT_SIZE", "minQty": "0.0001", "stepSize": "0.0001"},
                {"filterType": "NOTIONAL", "minNotional": "0.0001"},
            ],
        },
        {
            "symbol": "LUNAUSDT",
            "status": "BREAK",
            "baseAsset": "LUNA",
            "quoteAsset": "USDT",
            "filters": [],
        },
    ]
}

SAMPLE_BOOKS = {
    "BTCUSDT": BookTicker("BTCUSDT", 40000.0, 40001.0),
    "ETHUSDT": BookTicker("ETHUSDT", 2000.0, 2001.0),
    "ETHBTC": BookTicker("ETHBTC", 0.05, 0.0501),
}

SAMPLE_VOLUMES = {
    "BTCUSDT": 5_000_000.0,
    "ETHUSDT": 3_000_000.0,
    "ETHBTC": 800_000.0,
    "LUNAUSDT": 9_000_000.0,
}


def symbol_info(symbol, base, quote, status="TRADING", filters=None):
    return SymbolInfo(
        symbol=symbol,
        status=status,
        base_asset=base,
        quote_asset=quote,
        filters=filters or SymbolFilters(symbol=symbol),
    )


def sample_symbols():
    """SymbolInfo list parsed from SAMPLE_EXCHANGE_INFO."""
    return [
        SymbolInfo(
            symbol=raw["symbol"],
            status=raw["status"],
            base_asset=raw["baseAsset"],
            quote_asset=raw["quoteAsset"],
            filters=parse_filters(raw["symbol"], raw["filters"]),
        )
        for raw in SAMPLE_EXCHANGE_INFO["symbols"]
    ]


def filled(qty, quote_qty=0.0, order_id="1", fills=(), status="FILLED"):
    return OrderResult(
        order_id=order_id,
        status=status,
        executed_qty=qty,
        cummulative_quote_qty=quote_qty,
        avg_price=quote_qty / qty if qty else 0.0,
        fills=tuple(fills),
    )


def make_venue(spot=100.0, derivative=101.0, capital=1000.0, credentials=True,
               funding=0.0, borrow=0.0, filters=None):
    """AsyncMock venue with sensible defaults for a single pair."""
    venue = Mock()
    venue.has_credentials = credentials
    venue.get_available_capital = AsyncMock(return_value=capital)
    venue.get_market_prices = AsyncMock(
        side_effect=lambda symbol: PriceQuote(symbol, spot, derivative)
    )
    venue.get_funding_rate_bps_per_8h = AsyncMock(return_value=funding)
    venue.get_borrow_apr_pct = AsyncMock(return_value=borrow)
    venue.get_spot_portfolio_value = AsyncMock(return_value=50.0)
    venue.get_spot_balance = AsyncMock(return_value=capital)
    venue.get_symbol_filters = AsyncMock(return_value=filters)
    venue.get_spot_symbols = AsyncMock(return_value=[])
    venue.get_futures_symbols = AsyncMock(return_value=[])
    venue.get_quote_volumes = AsyncMock(return_value={})
    venue.get_book_tickers = AsyncMock(return_value={})
    venue.place_market_order = AsyncMock(return_value=filled(1.0, 100.0))
    venue.close = AsyncMock()
    return venue

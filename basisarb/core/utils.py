"""Utility functions for the trading bot."""

from typing import Iterable

KNOWN_QUOTE_ASSETS = ("USDT", "BUSD", "USDC", "BTC", "ETH", "EUR", "BRL", "TRY", "BNB")


def base_asset(symbol: str, quotes: Iterable[str] = KNOWN_QUOTE_ASSETS) -> str:
    """Infer the base asset of a concatenated symbol such as BTCUSDT."""
    for quote in quotes:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)]
    return symbol


def format_bps(bps: float) -> str:
    """Format basis points with appropriate precision."""
    if abs(bps) >= 100:
        return f"{bps:.0f} bps"
    elif abs(bps) >= 10:
        return f"{bps:.1f} bps"
    else:
        return f"{bps:.2f} bps"


def format_usdt(amount: float) -> str:
    """Format USDT amount with appropriate precision."""
    if abs(amount) >= 1000:
        return f"${amount:,.0f}"
    elif abs(amount) >= 100:
        return f"${amount:.1f}"
    elif abs(amount) >= 10:
        return f"${amount:.2f}"
    else:
        return f"${amount:.4f}"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))

"""Trading filters and precision handling for Binance symbols."""

from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from ..core.types import SymbolFilters


def _positive(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_filters(symbol: str, filters: Iterable[Dict[str, Any]]) -> SymbolFilters:
    """Build SymbolFilters from a Binance exchangeInfo filter list."""
    min_notional = step_size = min_qty = tick_size = None
    for f in filters or ():
        kind = f.get("filterType")
        if kind == "LOT_SIZE":
            step_size = _positive(f.get("stepSize"))
            min_qty = _positive(f.get("minQty"))
        elif kind in ("MIN_NOTIONAL", "NOTIONAL"):
            # Spot uses minNotional, futures uses notional
            min_notional = _positive(f.get("minNotional", f.get("notional")))
        elif kind == "PRICE_FILTER":
            tick_size = _positive(f.get("tickSize"))
    return SymbolFilters(
        symbol=symbol,
        min_notional=min_notional,
        step_size=step_size,
        min_qty=min_qty,
        tick_size=tick_size,
    )


def quantize_qty(filters: Optional[SymbolFilters], qty: float) -> Decimal:
    """Floor quantity to the step size; 0 when below the minimum quantity."""
    try:
        qty_decimal = Decimal(str(qty))
    except InvalidOperation:
        return Decimal("0")
    if not qty_decimal.is_finite() or qty_decimal <= 0:
        return Decimal("0")

    if filters and filters.step_size:
        step = Decimal(str(filters.step_size))
        qty_decimal = (qty_decimal / step).quantize(Decimal("1"), ROUND_DOWN) * step
    if filters and filters.min_qty and qty_decimal < Decimal(str(filters.min_qty)):
        return Decimal("0")
    return qty_decimal.quantize(Decimal("0.00000001"), ROUND_DOWN)


def round_price(filters: Optional[SymbolFilters], price: float) -> Decimal:
    """Round price down to the tick size."""
    price_decimal = Decimal(str(price))
    if filters and filters.tick_size:
        tick = Decimal(str(filters.tick_size))
        price_decimal = (price_decimal / tick).quantize(Decimal("1"), ROUND_DOWN) * tick
    return price_decimal


def meets_min_notional(filters: Optional[SymbolFilters], notional: float) -> bool:
    """Check notional against the symbol's minimum, if it has one."""
    if not filters or not filters.min_notional:
        return True
    return Decimal(str(notional)) >= Decimal(str(filters.min_notional))


def format_decimal(value: Decimal) -> str:
    """Plain decimal string without exponent or trailing zeros."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_quantity(qty: float, precision: int = 6) -> str:
    """Truncate quantity to the venue's decimal precision."""
    try:
        qty_decimal = Decimal(str(qty))
    except InvalidOperation:
        return "0"
    if not qty_decimal.is_finite() or qty_decimal <= 0:
        return "0"
    exponent = Decimal(1).scaleb(-precision)
    return format_decimal(qty_decimal.quantize(exponent, ROUND_DOWN))

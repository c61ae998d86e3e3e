"""Spot to perpetual execution planning."""

from dataclasses import dataclass
from typing import Optional, Tuple

from loguru import logger

from ...core.types import LegResult, Market, OrderSide, Side, SymbolFilters, TradeIntent
from ...exchanges.filters import format_decimal, format_quantity, meets_min_notional, quantize_qty


@dataclass(frozen=True)
class ExecutionLeg:
    """Single market order of a spot/perp trade."""
    market: Market
    symbol: str
    side: OrderSide
    quantity: str
    reduce_only: bool = False
    borrow: bool = False


@dataclass(frozen=True)
class ExecutionPlan:
    """Entry legs in placement order; the perp leg goes first."""
    intent: TradeIntent
    first: ExecutionLeg
    second: ExecutionLeg
    quantity: str

    def compensation_for(self, first_result: LegResult, precision: int = 6) -> ExecutionLeg:
        """Reduce-only order flattening whatever the first leg filled."""
        filled = first_result.executed_qty
        quantity = format_quantity(filled, precision) if filled > 0 else self.quantity
        return ExecutionLeg(
            market=self.first.market,
            symbol=self.first.symbol,
            side=self.first.side.opposite(),
            quantity=quantity,
            reduce_only=True,
        )


class SpotPerpPlanner:
    """Turns a TradeIntent into venue orders."""

    def __init__(self, quantity_precision: int = 6):
        self.quantity_precision = quantity_precision

    def create_execution_plan(self, intent: TradeIntent,
                              filters: Optional[SymbolFilters]) -> Tuple[Optional[ExecutionPlan], str]:
        """Return (plan, "") or (None, rejection reason)."""
        if intent.side is Side.NONE:
            return None, "no side to execute"

        quantity = format_quantity(intent.amount, self.quantity_precision)
        if filters is not None:
            quantized = quantize_qty(filters, float(quantity))
            if quantized <= 0:
                return None, (
                    f"quantity {quantity} below minimum "
                    f"(minQty={filters.min_qty}, stepSize={filters.step_size})"
                )
            quantity = format_decimal(quantized)
            notional = float(quantity) * intent.buy_price
            if not meets_min_notional(filters, notional):
                return None, f"notional {notional:.4f} below minimum {filters.min_notional}"

        if float(quantity) <= 0:
            return None, f"quantity {intent.amount} rounds to zero"

        if intent.side is Side.LONG_SPOT_SHORT_PERP:
            first = ExecutionLeg(Market.FUTURES, intent.symbol, OrderSide.SELL, quantity)
            second = ExecutionLeg(Market.SPOT, intent.symbol, OrderSide.BUY, quantity)
        else:
            first = ExecutionLeg(Market.FUTURES, intent.symbol, OrderSide.BUY, quantity)
            second = ExecutionLeg(Market.MARGIN, intent.symbol, OrderSide.SELL, quantity, borrow=True)

        logger.debug(f"Planned {intent.side.value} {intent.symbol}: qty={quantity}")
        return ExecutionPlan(intent=intent, first=first, second=second, quantity=quantity), ""

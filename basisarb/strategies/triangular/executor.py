"""Sequential three-leg triangular execution."""

import time
from typing import List, Optional, Tuple

from loguru import logger

from ...config import TriangularConfig
from ...core.types import (
    ExecutionOutcome, FailureKind, LegResult, Market, MidLegSide, OrderSide, TriangularRoute,
)
from ...exchanges.base import OrderResult, VenueClient
from ...exchanges.filters import format_decimal, format_quantity, meets_min_notional, quantize_qty

QUOTE_PRECISION = 8


def net_received(result: OrderResult, asset: str, gross: float) -> float:
    """Gross amount received less commissions charged in that asset."""
    commission = sum(
        float(fill.get("commission", 0) or 0)
        for fill in result.fills
        if fill.get("commissionAsset") == asset
    )
    return max(0.0, gross - commission)


class LegAborted(Exception):
    """A leg after the first could not be placed or filled."""


class TriangularExecutor:
    """Buys the first asset, converts it on the cross pair, sells the second asset.

    Only pre-trade checks can abort without leaving holdings behind; any later
    abort leaves a residual position that is reported for manual handling.
    """

    def __init__(self, venue: VenueClient, config: TriangularConfig):
        self.venue = venue
        self.config = config

    async def execute(self, route: TriangularRoute, budget: float) -> ExecutionOutcome:
        started = time.time()
        settle, first_asset, second_asset = route.assets
        first_symbol, cross_symbol, last_symbol = route.leg_symbols
        legs: List[LegResult] = []

        try:
            balance = await self.venue.get_spot_balance(settle)
            first_filters = await self.venue.get_symbol_filters(first_symbol)
        except Exception as e:
            return self._outcome(route, started, False, legs, failure=FailureKind.PRE_TRADE_REJECTED,
                                 error=f"pre-trade data unavailable: {e}")

        spend = min(balance * self.config.balance_safety_fraction, budget)
        if spend < self.config.min_spend:
            return self._outcome(route, started, False, legs, failure=FailureKind.PRE_TRADE_REJECTED,
                                 error=f"spend {spend:.2f} {settle} below minimum {self.config.min_spend}")
        if not meets_min_notional(first_filters, spend):
            return self._outcome(route, started, False, legs, failure=FailureKind.PRE_TRADE_REJECTED,
                                 error=f"spend {spend:.2f} below {first_symbol} min notional {first_filters.min_notional}")

        if not self.venue.has_credentials:
            final = spend * route.factor
            logger.info(f"Simulated triangle {route.description}: {spend:.2f} -> {final:.4f} {settle}")
            return self._outcome(route, started, final > spend, legs, spend=spend, final=final,
                                 failure=None if final > spend else FailureKind.UNPROFITABLE,
                                 simulated=True)

        # Leg 1: settlement -> first asset
        leg1, result1 = await self._place(Market.SPOT, first_symbol, OrderSide.BUY,
                                          quote_quantity=format_quantity(spend, QUOTE_PRECISION))
        legs.append(leg1)
        if not leg1.success:
            return self._outcome(route, started, False, legs, spend=spend,
                                 failure=FailureKind.FIRST_LEG_FAILED, error=leg1.error)
        held_first = net_received(result1, first_asset, result1.executed_qty)

        try:
            # Leg 2: first asset -> second asset on the cross pair
            cross_filters = await self.venue.get_symbol_filters(cross_symbol)
            if route.direction is MidLegSide.SELL_BASE:
                qty = quantize_qty(cross_filters, held_first)
                if qty <= 0:
                    raise LegAborted(f"{held_first} {first_asset} quantizes to zero on {cross_symbol}")
                leg2, result2 = await self._place(Market.SPOT, cross_symbol, OrderSide.SELL,
                                                  quantity=format_decimal(qty))
                gross_second = result2.cummulative_quote_qty if result2 else 0.0
            else:
                if held_first <= 0 or not meets_min_notional(cross_filters, held_first):
                    raise LegAborted(f"{held_first} {first_asset} below {cross_symbol} min notional")
                leg2, result2 = await self._place(Market.SPOT, cross_symbol, OrderSide.BUY,
                                                  quote_quantity=format_quantity(held_first, QUOTE_PRECISION))
                gross_second = result2.executed_qty if result2 else 0.0
            legs.append(leg2)
            if not leg2.success:
                raise LegAborted(f"leg 2 failed: {leg2.error}")
            held_second = net_received(result2, second_asset, gross_second)

            # Leg 3: second asset -> settlement
            last_filters = await self.venue.get_symbol_filters(last_symbol)
            qty = quantize_qty(last_filters, held_second)
            if qty <= 0:
                raise LegAborted(f"{held_second} {second_asset} quantizes to zero on {last_symbol}")
            leg3, result3 = await self._place(Market.SPOT, last_symbol, OrderSide.SELL,
                                              quantity=format_decimal(qty))
            legs.append(leg3)
            if not leg3.success:
                raise LegAborted(f"leg 3 failed: {leg3.error}")
        except Exception as e:
            held = second_asset if len(legs) >= 2 and legs[1].success else first_asset
            error = f"triangle {route.description} aborted holding {held}: {e}"
            logger.critical(f"MANUAL INTERVENTION REQUIRED: {error}")
            return self._outcome(route, started, False, legs, spend=spend,
                                 failure=FailureKind.RESIDUAL_POSITION, error=error)

        final = net_received(result3, settle, result3.cummulative_quote_qty)
        success = final > spend
        logger.info(
            f"Triangle {route.description} completed: spent {spend:.4f}, received {final:.4f} {settle}"
        )
        return self._outcome(route, started, success, legs, spend=spend, final=final,
                             failure=None if success else FailureKind.UNPROFITABLE,
                             error=None if success else "completed below amount spent")

    async def _place(self, market: Market, symbol: str, side: OrderSide,
                     quantity: Optional[str] = None,
                     quote_quantity: Optional[str] = None) -> Tuple[LegResult, Optional[OrderResult]]:
        t0 = time.time()
        requested = float(quantity if quantity is not None else quote_quantity)
        try:
            result = await self.venue.place_market_order(
                market, symbol, side, quantity=quantity, quote_quantity=quote_quantity,
            )
        except Exception as e:
            logger.error(f"Order {side.value} {symbol} failed: {e}")
            leg = LegResult(symbol=symbol, market=market, side=side, requested_qty=requested,
                            success=False, error=str(e), latency_ms=int((time.time() - t0) * 1000))
            return leg, None

        success = result.is_filled and result.executed_qty > 0
        leg = LegResult(
            symbol=symbol,
            market=market,
            side=side,
            requested_qty=requested,
            success=success,
            order_id=result.order_id,
            status=result.status,
            executed_qty=result.executed_qty,
            quote_qty=result.cummulative_quote_qty,
            avg_price=result.avg_price,
            fills=result.fills,
            error=None if success else f"order status {result.status or 'unknown'}",
            latency_ms=int((time.time() - t0) * 1000),
        )
        return leg, result

    def _outcome(self, route: TriangularRoute, started: float, success: bool, legs,
                 spend: float = 0.0, final: float = 0.0, failure: Optional[FailureKind] = None,
                 error: Optional[str] = None, simulated: bool = False) -> ExecutionOutcome:
        if failure is FailureKind.PRE_TRADE_REJECTED:
            logger.info(f"Triangle {route.description} rejected: {error}")
        return ExecutionOutcome(
            kind="triangular",
            symbol=route.leg_symbols[0],
            success=success,
            realized_profit=final - spend if final else 0.0,
            executed_at=int(time.time() * 1000),
            leg_results=tuple(legs),
            failure=failure,
            error=error,
            latency_ms=int((time.time() - started) * 1000),
            simulated=simulated,
            metadata={
                "route": route.description,
                "legs": route.leg_symbols,
                "direction": route.direction.value,
                "expected_net_bps": round(route.expected_net_bps, 4),
                "spend": spend,
                "final": final,
            },
        )

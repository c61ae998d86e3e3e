"""Two-leg spot/perp execution with a single compensating order."""

import time
from enum import Enum
from typing import Optional

from loguru import logger

from ...core.edge import calculate_profit
from ...core.types import ExecutionOutcome, FailureKind, LegResult, RollbackResult, TradeIntent
from ...exchanges.base import VenueClient
from .planner import ExecutionLeg, ExecutionPlan, SpotPerpPlanner


class ExecutionState(Enum):
    IDLE = "idle"
    FIRST_LEG_PLACED = "first_leg_placed"
    COMPLETED = "completed"
    COMPENSATION_PLACED = "compensation_placed"


def _now_ms() -> int:
    return int(time.time() * 1000)


class SpotPerpExecutor:
    """Places the perp leg, then the spot leg; flattens the perp leg if the spot leg fails.

    The compensating order is attempted exactly once. If it fails too, the
    outcome is marked for manual intervention and nothing is retried.
    """

    def __init__(self, venue: VenueClient, planner: Optional[SpotPerpPlanner] = None):
        self.venue = venue
        self.planner = planner or SpotPerpPlanner()
        self.state = ExecutionState.IDLE

    async def execute(self, intent: TradeIntent) -> ExecutionOutcome:
        started = time.time()
        self.state = ExecutionState.IDLE

        if not self.venue.has_credentials:
            return self._simulate(intent, started)

        try:
            filters = await self.venue.get_symbol_filters(intent.symbol)
        except Exception as e:
            return self._rejected(intent, f"filters unavailable: {e}", started)

        plan, reason = self.planner.create_execution_plan(intent, filters)
        if plan is None:
            return self._rejected(intent, reason, started)

        first = await self._place(plan.first)
        if not first.success and first.executed_qty <= 0:
            logger.warning(f"First leg failed for {intent.symbol}, nothing to unwind: {first.error}")
            return self._outcome(intent, started, False, (first,),
                                 failure=FailureKind.FIRST_LEG_FAILED, error=first.error)
        self.state = ExecutionState.FIRST_LEG_PLACED

        if not first.success:
            # Partial fill on an unfilled status still leaves a position open
            logger.error(
                f"First leg for {intent.symbol} ended {first.status} with {first.executed_qty} filled; "
                f"compensating"
            )
            return await self._compensate(intent, plan, started, first, (first,),
                                          cause=f"first leg incomplete: {first.error}")

        second = await self._place(plan.second)
        if second.success:
            self.state = ExecutionState.COMPLETED
            profit = calculate_profit(intent)
            logger.info(f"Executed {intent.side.value} {intent.symbol} qty={plan.quantity}, est. profit {profit:.4f}")
            return self._outcome(intent, started, True, (first, second), realized_profit=profit)

        logger.error(f"Second leg failed for {intent.symbol}: {second.error}; compensating first leg")
        return await self._compensate(intent, plan, started, first, (first, second),
                                      cause=f"second leg failed: {second.error}")

    async def _compensate(self, intent: TradeIntent, plan: ExecutionPlan, started: float,
                          first: LegResult, legs, cause: str) -> ExecutionOutcome:
        """Place the single reduce-only order flattening what the first leg filled."""
        compensation = await self._place(plan.compensation_for(first, self.planner.quantity_precision))
        self.state = ExecutionState.COMPENSATION_PLACED
        rollback = RollbackResult(
            attempted=True,
            success=compensation.success,
            leg=compensation,
            error=compensation.error,
        )

        if compensation.success:
            failure = FailureKind.LEG_FAILED_COMPENSATED
            error = cause
        else:
            failure = FailureKind.LEG_FAILED_COMPENSATION_FAILED
            error = f"{cause}; compensation failed: {compensation.error}"
            logger.critical(
                f"MANUAL INTERVENTION REQUIRED: open {plan.first.market.value} position on "
                f"{intent.symbol} ({plan.first.side.value} {first.executed_qty or plan.quantity}). {error}"
            )

        return self._outcome(intent, started, False, legs,
                             rollback=rollback, failure=failure, error=error)

    async def _place(self, leg: ExecutionLeg) -> LegResult:
        t0 = time.time()
        try:
            result = await self.venue.place_market_order(
                leg.market, leg.symbol, leg.side,
                quantity=leg.quantity, reduce_only=leg.reduce_only, borrow=leg.borrow,
            )
        except Exception as e:
            logger.error(f"Order {leg.market.value} {leg.side.value} {leg.symbol} {leg.quantity} failed: {e}")
            return LegResult(
                symbol=leg.symbol, market=leg.market, side=leg.side,
                requested_qty=float(leg.quantity), success=False, error=str(e),
                latency_ms=int((time.time() - t0) * 1000),
            )

        success = result.is_filled
        return LegResult(
            symbol=leg.symbol,
            market=leg.market,
            side=leg.side,
            requested_qty=float(leg.quantity),
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

    def _simulate(self, intent: TradeIntent, started: float) -> ExecutionOutcome:
        profit = calculate_profit(intent)
        logger.info(f"Simulated {intent.side.value} {intent.symbol}: profit {profit:.4f} (no API credentials)")
        return self._outcome(
            intent, started, profit > 0, (), realized_profit=profit, simulated=True,
            failure=None if profit > 0 else FailureKind.UNPROFITABLE,
        )

    def _rejected(self, intent: TradeIntent, reason: str, started: float) -> ExecutionOutcome:
        logger.info(f"Pre-trade rejection for {intent.symbol}: {reason}")
        return self._outcome(intent, started, False, (),
                             failure=FailureKind.PRE_TRADE_REJECTED, error=reason)

    def _outcome(self, intent: TradeIntent, started: float, success: bool, legs,
                 realized_profit: float = 0.0, rollback: Optional[RollbackResult] = None,
                 failure: Optional[FailureKind] = None, error: Optional[str] = None,
                 simulated: bool = False) -> ExecutionOutcome:
        return ExecutionOutcome(
            kind="directional",
            symbol=intent.symbol,
            success=success,
            realized_profit=realized_profit,
            executed_at=_now_ms(),
            leg_results=tuple(legs),
            rollback=rollback,
            failure=failure,
            error=error,
            latency_ms=int((time.time() - started) * 1000),
            simulated=simulated,
            metadata={
                "side": intent.side.value,
                "amount": intent.amount,
                "buy_price": intent.buy_price,
                "sell_price": intent.sell_price,
                "state": self.state.value,
            },
        )

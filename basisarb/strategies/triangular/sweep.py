"""Triangular sweep: scan the spot book, threshold, optionally execute."""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from loguru import logger

from ...config import Config, TriangularConfig
from ...core.events import emit_event
from ...core.triangle import find_best_route
from ...core.types import ExecutionOutcome, TriangularRoute
from ...core.utils import clamp, format_bps
from ...exchanges.base import VenueClient
from .executor import TriangularExecutor

RouteExecutor = Callable[[TriangularRoute, float], Awaitable[ExecutionOutcome]]

MIN_FIXED_BUDGET = 10.0
MAX_FIXED_BUDGET = 2000.0


def compute_budget(config: TriangularConfig) -> float:
    """Dynamic budgets are bounded only by balance; fixed ones are clamped.

    An unset fixed budget falls back to the liquidity floor before clamping.
    """
    if config.budget_use_dynamic:
        return float("inf")
    return clamp(config.budget_fixed or config.min_quote_volume, MIN_FIXED_BUDGET, MAX_FIXED_BUDGET)


@dataclass(frozen=True)
class SweepResult:
    route: Optional[TriangularRoute]
    actionable: bool
    outcome: Optional[ExecutionOutcome] = None


class TriangularSweep:
    """One triangular pass per cycle.

    `execute` lets the caller wrap the three-leg execution, for example so it
    survives cancellation of the loop.
    """

    async def run(self, config: Config, venue: VenueClient, dry_run: bool,
                  execute: Optional[RouteExecutor] = None) -> SweepResult:
        tri = config.triangular
        symbols = await venue.get_spot_symbols()
        volumes = await venue.get_quote_volumes()
        books = await venue.get_book_tickers()

        route = find_best_route(
            symbols, volumes, books,
            settlement_asset=tri.settlement_asset,
            min_quote_volume=tri.min_quote_volume,
            fee_bps=config.fees.spot_taker_bps,
            slippage_bps=config.strategy.slippage_bps_per_leg,
        )
        if route is None:
            logger.info("Triangular: no eligible route")
            return SweepResult(route=None, actionable=False)

        actionable = route.expected_net_bps >= tri.min_profit_bps
        emit_event("triangular", {
            "route": route.description,
            "legs": ",".join(route.leg_symbols),
            "direction": route.direction.value,
            "expected_net_bps": round(route.expected_net_bps, 4),
            "min_profit_bps": tri.min_profit_bps,
            "actionable": actionable,
            "dry_run": dry_run,
        })
        if not actionable:
            logger.info(f"Triangular best {route.description} at {format_bps(route.expected_net_bps)}, below threshold")
            return SweepResult(route=route, actionable=False)
        if dry_run:
            logger.info(f"[DRY RUN] Triangular {route.description} at {format_bps(route.expected_net_bps)}")
            return SweepResult(route=route, actionable=True)

        budget = compute_budget(tri)
        if execute is None:
            execute = TriangularExecutor(venue, tri).execute
        outcome = await execute(route, budget)
        return SweepResult(route=route, actionable=True, outcome=outcome)

"""Multi-symbol spot/perp basis sweep."""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from ...config import Config
from ...core.decision import DecisionParams, build_trade_intent, compute_metrics, decide_side
from ...core.events import emit_event
from ...core.types import EdgeMetrics, ExecutionOutcome, PriceQuote, Side, TradeIntent
from ...core.utils import format_bps
from ...exchanges.base import SymbolInfo, VenueClient

Executor = Callable[[TradeIntent], Awaitable[ExecutionOutcome]]


@dataclass(frozen=True)
class ScanHit:
    """Actionable candidate found by the sweep."""
    quote: PriceQuote
    side: Side
    metrics: EdgeMetrics

    @property
    def net_bps(self) -> float:
        return self.metrics.net_for(self.side)


@dataclass
class ScanReport:
    candidates: List[str] = field(default_factory=list)
    hits: List[ScanHit] = field(default_factory=list)
    outcomes: List[ExecutionOutcome] = field(default_factory=list)


def select_candidates(spot_symbols: List[SymbolInfo], futures_symbols: List[SymbolInfo],
                      volumes: dict, settlement_asset: str, min_quote_volume: float,
                      max_symbols: int) -> List[str]:
    """Liquid settlement-quoted spot symbols that also list a perpetual, by volume descending."""
    perps = {s.symbol for s in futures_symbols if s.is_trading}
    eligible = [
        s.symbol for s in spot_symbols
        if s.is_trading
        and s.quote_asset == settlement_asset
        and s.symbol in perps
        and volumes.get(s.symbol, 0.0) >= min_quote_volume
    ]
    # sorted() is stable, so equal volumes keep exchange order
    eligible = sorted(eligible, key=lambda sym: volumes.get(sym, 0.0), reverse=True)
    return eligible[:max_symbols]


class SpotPerpScanner:
    """Sweeps liquid symbols for basis trades.

    A hit must pass the per-direction thresholds and the scanner profit floor.
    """

    async def scan(self, config: Config, venue: VenueClient, capital: float,
                   dry_run: bool, execute: Optional[Executor] = None) -> ScanReport:
        scanner = config.scanner
        report = ScanReport()

        spot_symbols = await venue.get_spot_symbols()
        futures_symbols = await venue.get_futures_symbols()
        volumes = await venue.get_quote_volumes()
        report.candidates = select_candidates(
            spot_symbols, futures_symbols, volumes,
            config.venue.balance_asset, scanner.min_quote_volume, scanner.max_symbols,
        )
        params = DecisionParams.from_config(config)
        logger.info(f"Spot/perp sweep over {len(report.candidates)} symbols")

        for symbol in report.candidates:
            try:
                quote = await venue.get_market_prices(symbol)
            except Exception as e:
                logger.debug(f"Sweep skipping {symbol}: {e}")
                continue

            funding = await venue.get_funding_rate_bps_per_8h(symbol)
            metrics = compute_metrics(quote.spot_price, quote.derivative_price, params, funding, 0.0)
            side = decide_side(quote.spot_price, quote.derivative_price, params, funding, 0.0, metrics=metrics)
            if side is Side.NONE:
                continue

            hit = ScanHit(quote=quote, side=side, metrics=metrics)
            if hit.net_bps < scanner.min_profit_bps:
                continue
            report.hits.append(hit)
            emit_event("sweep_hit", {
                "symbol": symbol,
                "chosen": side.value,
                "net_bps": round(hit.net_bps, 4),
                "min_profit_bps": scanner.min_profit_bps,
                "dry_run": dry_run,
            })
            logger.info(f"Sweep hit {symbol} {side.value} at {format_bps(hit.net_bps)}")

            if dry_run or execute is None:
                continue

            intent = build_trade_intent(quote, side, capital / quote.spot_price,
                                        config.strategy.exchange_fee_percentage)
            outcome = await execute(intent)
            report.outcomes.append(outcome)
            if outcome.success:
                break

        return report

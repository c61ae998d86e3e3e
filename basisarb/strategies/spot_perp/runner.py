"""Scheduling loop for the spot/perp basis strategy and its secondary sweeps."""

import asyncio
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Dict, Optional

from loguru import logger

from ...config import Config
from ...core.decision import (
    DecisionParams, build_trade_intent, compute_metrics, decide_side, no_trade_reason,
)
from ...core.events import cycle_event, emit_event
from ...core.types import EdgeMetrics, ExecutionOutcome, FailureKind, PriceQuote, Side
from ...core.utils import base_asset, format_bps, format_usdt
from ...exchanges.base import VenueClient
from ...exchanges.registry import VenueClientCache
from ...notify.telegram import TelegramNotifier
from ...storage.journal import TradeJournal
from ...storage.state import BotState
from ..triangular.executor import TriangularExecutor
from ..triangular.sweep import TriangularSweep
from .executor import SpotPerpExecutor
from .planner import SpotPerpPlanner
from .scanner import SpotPerpScanner


class CyclePhase(Enum):
    IDLE = "idle"
    FETCH_CAPITAL = "fetch_capital"
    FETCH_PRICES = "fetch_prices"
    COMPUTE = "compute"
    DECIDE = "decide"
    EXECUTE = "execute"
    RECORD = "record"
    SWEEP = "sweep"
    SLEEP = "sleep"
    STOPPED = "stopped"


@dataclass(frozen=True)
class CycleReport:
    """What one primary-pair cycle did."""
    symbol: str
    skipped: Optional[str] = None
    quote: Optional[PriceQuote] = None
    metrics: Optional[EdgeMetrics] = None
    side: Side = Side.NONE
    reason: Optional[str] = None
    dry_run: bool = True
    outcome: Optional[ExecutionOutcome] = None


class BasisRunner:
    """Single-flow polling loop: capital, prices, edge, decision, execution, sleep.

    A stop request interrupts the sleep immediately but never an execution
    that has already placed a leg.
    """

    def __init__(self, config: Config, state: Optional[BotState] = None,
                 clients: Optional[VenueClientCache] = None,
                 journal: Optional[TradeJournal] = None,
                 notifier: Optional[TelegramNotifier] = None):
        self._config = config
        self._pending_config: Optional[Config] = None
        self.state = state or BotState(max_trades=config.storage.max_trade_history)
        self.clients = clients or VenueClientCache()
        self.journal = journal
        self.notifier = notifier
        self.scanner = SpotPerpScanner()
        self.triangular = TriangularSweep()

        self.phase = CyclePhase.IDLE
        self.cycles = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def update_config(self, config: Config) -> None:
        """Queue a new config snapshot; it takes effect at the next cycle."""
        self._pending_config = config
        logger.info("Configuration update queued for next cycle")

    async def start(self) -> None:
        """Start the loop in a background task."""
        if self.is_running:
            logger.warning("Runner already started")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run_forever())

    def request_stop(self) -> None:
        """Signal the loop to stop after the current step."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        """Stop the loop and wait for it, including any in-flight execution."""
        self.request_stop()
        if self._task is not None:
            try:
                await self._task
            except Exception as e:
                logger.error(f"Runner exited with error: {e}")
            self._task = None
        if self._inflight is not None and not self._inflight.done():
            await self._inflight
        logger.info("Runner stopped")

    async def join(self) -> None:
        """Wait until the loop exits through request_stop."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def close(self) -> None:
        await self.clients.close()
        if self.notifier:
            await self.notifier.close()

    def get_status(self) -> Dict[str, Any]:
        snapshot = self.state.snapshot()
        return {
            "running": self.is_running,
            "phase": self.phase.value,
            "cycles": self.cycles,
            "trading_pair": self._config.strategy.trading_pair,
            "dry_run": not self._config.strategy.place_orders,
            "last_message": snapshot.status.last_message,
            "last_error": snapshot.status.last_error,
            "total_trades": snapshot.metrics.total_trades,
            "total_pnl": snapshot.metrics.total_pnl,
        }

    async def run_forever(self) -> None:
        """Run cycles until a stop is requested."""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        config = self._config
        self.state.set_running(True, config.strategy.trading_pair,
                               int(config.strategy.check_interval_seconds * 1000))
        logger.info(
            f"Starting basis loop on {config.strategy.trading_pair} "
            f"({'LIVE' if config.strategy.place_orders else 'DRY RUN'})"
        )

        try:
            while not self._stop_event.is_set():
                if self._pending_config is not None:
                    self._config, self._pending_config = self._pending_config, None
                    logger.info("Applied updated configuration")

                try:
                    report = await self.run_cycle()
                    if report.skipped is None:
                        await self.run_sweeps(report)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.exception(f"Cycle failed: {e}")
                    self.state.record_error(str(e))

                # Errors from the wait itself end the loop
                await self._sleep(self._config.strategy.check_interval_seconds)
        finally:
            self.phase = CyclePhase.STOPPED
            self.state.set_running(False)

    async def _sleep(self, seconds: float) -> None:
        self.phase = CyclePhase.SLEEP
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_cycle(self) -> CycleReport:
        """One primary-pair cycle against a single fresh snapshot."""
        config = self._config
        strategy = config.strategy
        symbol = strategy.trading_pair
        dry_run = not strategy.place_orders
        self.cycles += 1
        self.state.mark_cycle()

        venue = await self.clients.get(config)

        self.phase = CyclePhase.FETCH_CAPITAL
        capital = await venue.get_available_capital()
        if not math.isfinite(capital) or capital <= 0:
            spot_value = await self._spot_value(venue)
            self.state.update_balances(spot_value, 0.0, 0.0)
            message = f"No {config.venue.balance_asset} available in futures wallet"
            logger.warning(f"{message}, skipping cycle")
            self.state.set_message(message)
            return CycleReport(symbol=symbol, skipped="no_capital", dry_run=dry_run)

        self.phase = CyclePhase.FETCH_PRICES
        try:
            quote = await asyncio.wait_for(
                venue.get_market_prices(symbol), timeout=config.venue.timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.warning(f"Price fetch for {symbol} timed out, skipping cycle")
            self.state.set_message(f"Price fetch timed out for {symbol}")
            return CycleReport(symbol=symbol, skipped="price_timeout", dry_run=dry_run)
        except Exception as e:
            logger.warning(f"Price fetch for {symbol} failed, skipping cycle: {e}")
            self.state.set_message(f"Prices unavailable for {symbol}")
            return CycleReport(symbol=symbol, skipped="price_unavailable", dry_run=dry_run)

        if not quote.is_valid:
            logger.warning(f"Invalid prices for {symbol}: {quote}")
            return CycleReport(symbol=symbol, skipped="invalid_price", dry_run=dry_run)

        spot_value = await self._spot_value(venue)
        self.state.update_balances(spot_value, capital, quote.spot_price)

        amount = capital / quote.spot_price
        if not math.isfinite(amount) or amount <= 0:
            logger.warning(f"Invalid trade amount {amount} for {symbol}")
            return CycleReport(symbol=symbol, skipped="invalid_amount", quote=quote, dry_run=dry_run)

        self.phase = CyclePhase.COMPUTE
        params = DecisionParams.from_config(config)
        funding = await venue.get_funding_rate_bps_per_8h(symbol)
        borrow = await venue.get_borrow_apr_pct(base_asset(symbol)) if strategy.spot_margin_enabled else 0.0
        metrics = compute_metrics(quote.spot_price, quote.derivative_price, params, funding, borrow)

        self.phase = CyclePhase.DECIDE
        side = decide_side(quote.spot_price, quote.derivative_price, params, funding, borrow, metrics=metrics)
        event = cycle_event(quote, metrics, params, side, dry_run, capital)

        if side is Side.NONE:
            reason = no_trade_reason(quote.spot_price, quote.derivative_price, params, metrics, borrow)
            event["reason_if_none"] = reason
            emit_event("cycle", event)
            self.state.set_message(
                f"{symbol}: no trade ({reason}), basis {format_bps(metrics.basis_bps)}, "
                f"long {format_bps(metrics.net_long_carry_bps)}, reverse {format_bps(metrics.net_reverse_carry_bps)}"
            )
            return CycleReport(symbol=symbol, quote=quote, metrics=metrics, reason=reason, dry_run=dry_run)

        intent = build_trade_intent(quote, side, amount, strategy.exchange_fee_percentage)
        event["action"] = "DRY_RUN_ENTER" if dry_run else "LIVE_ENTER"
        emit_event("cycle", event)
        edge = format_bps(metrics.net_for(side))
        if dry_run:
            self.state.set_message(f"[DRY RUN] {symbol} {side.value} at {edge} on {format_usdt(capital)}")
            return CycleReport(symbol=symbol, quote=quote, metrics=metrics, side=side, dry_run=True)

        self.phase = CyclePhase.EXECUTE
        logger.info(f"Entering {side.value} on {symbol} at {edge} with {format_usdt(capital)}")
        executor = SpotPerpExecutor(venue, SpotPerpPlanner(config.venue.quantity_precision))
        outcome = await self._execute_shielded(executor.execute(intent))

        if outcome.success:
            capital_after = await venue.get_available_capital()
            self.state.update_balances(await self._spot_value(venue), capital_after, quote.spot_price)
        return CycleReport(symbol=symbol, quote=quote, metrics=metrics, side=side,
                           dry_run=False, outcome=outcome)

    async def run_sweeps(self, report: CycleReport) -> None:
        """Secondary passes, each guarded on its own."""
        config = self._config
        dry_run = not config.strategy.place_orders
        venue = await self.clients.get(config)
        self.phase = CyclePhase.SWEEP

        if config.scanner.multi_pair_scan_enabled:
            try:
                capital = self.state.snapshot().balances.futures_available
                executor = SpotPerpExecutor(venue, SpotPerpPlanner(config.venue.quantity_precision))
                await self.scanner.scan(
                    config, venue, capital, dry_run,
                    execute=lambda intent: self._execute_shielded(executor.execute(intent)),
                )
            except Exception as e:
                logger.warning(f"Spot/perp sweep failed: {e}")

        if config.triangular.enabled:
            try:
                triangle = TriangularExecutor(venue, config.triangular)
                await self.triangular.run(
                    config, venue, dry_run,
                    execute=lambda route, budget: self._execute_shielded(triangle.execute(route, budget)),
                )
            except Exception as e:
                logger.warning(f"Triangular sweep failed: {e}")

    async def _execute_shielded(self, execution: Awaitable[ExecutionOutcome]) -> ExecutionOutcome:
        """Run an execution to completion even if this task is cancelled, then record it."""
        self._inflight = asyncio.ensure_future(execution)
        try:
            outcome = await asyncio.shield(self._inflight)
        except asyncio.CancelledError:
            logger.warning("Cancelled during execution, waiting for in-flight trade to settle")
            outcome = await self._inflight
            await self._record(outcome)
            raise
        finally:
            if self._inflight is not None and self._inflight.done():
                self._inflight = None
        await self._record(outcome)
        return outcome

    async def _record(self, outcome: ExecutionOutcome) -> None:
        self.phase = CyclePhase.RECORD
        emit_event("execution", outcome.to_event())
        if outcome.failure is FailureKind.PRE_TRADE_REJECTED:
            # Skipped before any order; not a trade
            self.state.set_message(f"{outcome.symbol}: skipped ({outcome.error})")
            return
        self.state.record_outcome(outcome)
        if self.journal:
            await self.journal.journal_outcome(outcome)

        if outcome.requires_manual_intervention:
            logger.critical(f"Manual intervention required for {outcome.symbol}: {outcome.error}")
            if self.notifier:
                await self.notifier.notify_critical(outcome)
        elif self.notifier:
            await self.notifier.notify_trade(outcome)

    async def _spot_value(self, venue: VenueClient) -> float:
        try:
            return await venue.get_spot_portfolio_value()
        except Exception as e:
            logger.warning(f"Spot balance unavailable: {e}")
            return 0.0

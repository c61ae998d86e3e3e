"""Test the scheduling loop."""

import asyncio
import time
from unittest.mock import AsyncMock, Mock

import pytest

from basisarb.config import Config
from basisarb.core.decision import NoTradeReason
from basisarb.core.types import ExecutionOutcome, FailureKind, Side, SymbolFilters
from basisarb.exchanges.base import BookTicker, VenueError
from basisarb.exchanges.registry import VenueClientCache
from basisarb.strategies.spot_perp.runner import BasisRunner, CycleReport

from sample_data import filled, make_venue, symbol_info


def make_config(**strategy):
    values = dict(check_interval_seconds=0.01)
    values.update(strategy)
    return (
        Config()
        .with_updates("strategy", **values)
        .with_updates("scanner", multi_pair_scan_enabled=False)
        .with_updates("triangular", enabled=False)
    )


def make_runner(venue, config=None, **kwargs):
    clients = VenueClientCache(factories={"rest": lambda context, settings, limiter: venue})
    return BasisRunner(config or make_config(), clients=clients, **kwargs)


class TestRunCycle:
    """Test a single primary-pair cycle."""

    def test_dry_run_long_carry(self):
        venue = make_venue(spot=100.0, derivative=101.0, capital=1000.0)
        runner = make_runner(venue)

        report = asyncio.run(runner.run_cycle())

        assert report.skipped is None
        assert report.side is Side.LONG_SPOT_SHORT_PERP
        assert report.dry_run is True
        assert report.outcome is None
        venue.place_market_order.assert_not_awaited()
        snapshot = runner.state.snapshot()
        assert snapshot.status.last_message.startswith("[DRY RUN] BTCUSDT")
        assert snapshot.balances.futures_available == 1000.0
        assert snapshot.balances.spot_value == 50.0

    def test_no_trade_reason(self):
        venue = make_venue(spot=100.0, derivative=100.01)
        runner = make_runner(venue)

        report = asyncio.run(runner.run_cycle())

        assert report.side is Side.NONE
        assert report.reason == NoTradeReason.BASIS_CONDITION_NOT_MET
        assert "no trade" in runner.state.snapshot().status.last_message

    def test_no_capital_skips(self):
        venue = make_venue(capital=0.0)
        runner = make_runner(venue)

        report = asyncio.run(runner.run_cycle())

        assert report.skipped == "no_capital"
        venue.get_market_prices.assert_not_awaited()

    def test_price_timeout_skips(self):
        venue = make_venue()

        async def slow(symbol):
            await asyncio.sleep(1)

        venue.get_market_prices = AsyncMock(side_effect=slow)
        runner = make_runner(venue, make_config().with_updates("venue", timeout_ms=10))

        report = asyncio.run(runner.run_cycle())

        assert report.skipped == "price_timeout"

    def test_price_failure_skips(self):
        venue = make_venue()
        venue.get_market_prices = AsyncMock(side_effect=VenueError("ticker down"))
        runner = make_runner(venue)

        report = asyncio.run(runner.run_cycle())

        assert report.skipped == "price_unavailable"

    def test_live_execution_recorded(self):
        venue = make_venue(spot=100.0, derivative=101.0, capital=1000.0)
        venue.place_market_order = AsyncMock(side_effect=[filled(10.0, 1010.0), filled(10.0, 1000.0)])
        journal = Mock()
        journal.journal_outcome = AsyncMock(return_value=True)
        runner = make_runner(venue, make_config(place_orders=True), journal=journal)

        report = asyncio.run(runner.run_cycle())

        assert report.outcome.success is True
        assert venue.place_market_order.await_count == 2
        journal.journal_outcome.assert_awaited_once_with(report.outcome)
        snapshot = runner.state.snapshot()
        assert snapshot.metrics.total_trades == 1
        assert snapshot.trades[0].symbol == "BTCUSDT"

    def test_failed_compensation_alerts(self):
        venue = make_venue(spot=100.0, derivative=101.0, capital=1000.0)
        venue.place_market_order = AsyncMock(side_effect=[
            filled(10.0, 1010.0), VenueError("spot rejected"), VenueError("futures rejected"),
        ])
        notifier = Mock()
        notifier.notify_critical = AsyncMock(return_value=True)
        notifier.notify_trade = AsyncMock(return_value=True)
        runner = make_runner(venue, make_config(place_orders=True), notifier=notifier)

        report = asyncio.run(runner.run_cycle())

        assert report.outcome.failure is FailureKind.LEG_FAILED_COMPENSATION_FAILED
        notifier.notify_critical.assert_awaited_once()
        notifier.notify_trade.assert_not_awaited()
        assert runner.state.snapshot().metrics.critical_events == 1


class TestRunLoop:
    """Test loop control, resilience and cancellation."""

    def test_cycle_errors_do_not_stop_loop(self):
        venue = make_venue()
        venue.get_available_capital = AsyncMock(side_effect=RuntimeError("wallet endpoint broke"))
        runner = make_runner(venue)

        async def run():
            await runner.start()
            await asyncio.sleep(0.1)
            assert runner.is_running
            await runner.stop()

        asyncio.run(run())

        snapshot = runner.state.snapshot()
        assert snapshot.metrics.failed_cycles >= 2
        assert snapshot.status.last_error == "wallet endpoint broke"
        assert snapshot.status.running is False

    def test_stop_interrupts_sleep(self):
        venue = make_venue(spot=100.0, derivative=100.0)
        runner = make_runner(venue, make_config(check_interval_seconds=60))

        async def run():
            await runner.start()
            await asyncio.sleep(0.05)
            started = time.monotonic()
            await runner.stop()
            return time.monotonic() - started

        elapsed = asyncio.run(run())

        assert elapsed < 1.0
        assert runner.is_running is False
        assert runner.cycles == 1

    def test_update_config_applies_next_cycle(self):
        venue = make_venue()
        runner = make_runner(venue, make_config(check_interval_seconds=0.02))

        async def run():
            await runner.start()
            await asyncio.sleep(0.01)
            runner.update_config(runner.config.with_updates("strategy", trading_pair="ETHUSDT"))
            await asyncio.sleep(0.1)
            await runner.stop()

        asyncio.run(run())

        assert runner.config.strategy.trading_pair == "ETHUSDT"
        symbols = [call.args[0] for call in venue.get_market_prices.await_args_list]
        assert symbols[0] == "BTCUSDT"
        assert symbols[-1] == "ETHUSDT"

    def test_inflight_execution_survives_cancel(self):
        venue = make_venue()
        runner = make_runner(venue)

        async def slow_execution():
            await asyncio.sleep(0.05)
            return ExecutionOutcome(kind="directional", symbol="BTCUSDT", success=True,
                                    realized_profit=1.0, executed_at=int(time.time() * 1000))

        async def run():
            task = asyncio.create_task(runner._execute_shielded(slow_execution()))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        snapshot = runner.state.snapshot()
        assert snapshot.metrics.total_trades == 1
        assert snapshot.metrics.total_pnl == pytest.approx(1.0)

    def test_sweep_failures_are_contained(self):
        venue = make_venue()
        venue.get_spot_symbols = AsyncMock(side_effect=VenueError("exchangeInfo down"))
        config = (
            make_config()
            .with_updates("scanner", multi_pair_scan_enabled=True)
            .with_updates("triangular", enabled=True)
        )
        runner = make_runner(venue, config)

        async def run():
            report = await runner.run_cycle()
            await runner.run_sweeps(report)

        asyncio.run(run())

        assert venue.get_spot_symbols.await_count == 2

    def test_get_status(self):
        runner = make_runner(make_venue())

        status = runner.get_status()

        assert status["running"] is False
        assert status["dry_run"] is True
        assert status["trading_pair"] == "BTCUSDT"


def make_triangle_venue():
    """Live venue offering a profitable USDT -> A -> B -> USDT triangle."""
    venue = make_venue()
    venue.get_spot_balance = AsyncMock(return_value=100.0)
    filters = {
        "AUSDT": SymbolFilters("AUSDT", min_notional=5.0, step_size=0.01),
        "AB": SymbolFilters("AB", min_notional=0.1, step_size=0.01),
        "BUSDT": SymbolFilters("BUSDT", min_notional=5.0, step_size=0.1),
    }
    venue.get_symbol_filters = AsyncMock(side_effect=lambda symbol: filters.get(symbol))
    venue.get_spot_symbols = AsyncMock(return_value=[
        symbol_info("AUSDT", "A", "USDT"),
        symbol_info("AB", "A", "B"),
        symbol_info("BUSDT", "B", "USDT"),
    ])
    venue.get_quote_volumes = AsyncMock(return_value={"AUSDT": 1e6, "AB": 1e6, "BUSDT": 1e6})
    venue.get_book_tickers = AsyncMock(return_value={
        "AUSDT": BookTicker("AUSDT", 1.0, 1.0),
        "AB": BookTicker("AB", 2.2, 10.0),
        "BUSDT": BookTicker("BUSDT", 0.5, 0.5),
    })
    return venue


class TestSweepExecution:
    """Test how sweep executions are recorded."""

    def test_triangle_survives_cancel_mid_chain(self):
        venue = make_triangle_venue()
        responses = [
            filled(90.0, 90.0, fills=[{"commission": "0.5", "commissionAsset": "A"}]),
            filled(89.5, 179.05),
            filled(179.0, 91.0),
        ]
        placed = []

        async def place(market, symbol, side, **kwargs):
            placed.append(symbol)
            if len(placed) == 2:
                await asyncio.sleep(0.05)
            return responses[len(placed) - 1]

        venue.place_market_order = AsyncMock(side_effect=place)
        config = make_config(place_orders=True).with_updates("triangular", enabled=True)
        runner = make_runner(venue, config)

        async def run():
            task = asyncio.create_task(runner.run_sweeps(CycleReport(symbol="BTCUSDT")))
            for _ in range(100):
                if len(placed) == 2:
                    break
                await asyncio.sleep(0.005)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert placed == ["AUSDT", "AB", "BUSDT"]
        snapshot = runner.state.snapshot()
        assert snapshot.metrics.total_trades == 1
        assert snapshot.trades[0].kind == "triangular"
        assert snapshot.trades[0].success is True

    def test_live_triangle_recorded_once(self):
        venue = make_triangle_venue()
        venue.place_market_order = AsyncMock(side_effect=[
            filled(90.0, 90.0, fills=[{"commission": "0.5", "commissionAsset": "A"}]),
            filled(89.5, 179.05),
            filled(179.0, 91.0),
        ])
        journal = Mock()
        journal.journal_outcome = AsyncMock(return_value=True)
        config = make_config(place_orders=True).with_updates("triangular", enabled=True)
        runner = make_runner(venue, config, journal=journal)

        asyncio.run(runner.run_sweeps(CycleReport(symbol="BTCUSDT")))

        assert runner.state.snapshot().metrics.total_trades == 1
        journal.journal_outcome.assert_awaited_once()

    def test_pre_trade_rejection_is_not_a_trade(self):
        journal = Mock()
        journal.journal_outcome = AsyncMock(return_value=True)
        notifier = Mock()
        notifier.notify_critical = AsyncMock(return_value=True)
        notifier.notify_trade = AsyncMock(return_value=True)
        runner = make_runner(make_venue(), journal=journal, notifier=notifier)
        outcome = ExecutionOutcome(
            kind="triangular", symbol="AUSDT", success=False, realized_profit=0.0, executed_at=0,
            failure=FailureKind.PRE_TRADE_REJECTED, error="spend 4.50 USDT below minimum 10.0",
        )

        async def run():
            for _ in range(3):
                await runner._record(outcome)

        asyncio.run(run())

        snapshot = runner.state.snapshot()
        assert snapshot.metrics.total_trades == 0
        assert snapshot.trades == ()
        assert "below minimum" in snapshot.status.last_message
        journal.journal_outcome.assert_not_awaited()
        notifier.notify_trade.assert_not_awaited()
        notifier.notify_critical.assert_not_awaited()

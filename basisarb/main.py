"""Main entry point for the basis arbitrage bot."""

import asyncio
import signal
import sys
from typing import Optional

import click
from dotenv import load_dotenv
from loguru import logger

# uvloop is not available on Windows
try:
    import uvloop
    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False

from .config import Config, LoggingConfig, get_config
from .core.decision import DecisionParams, compute_metrics, decide_side, no_trade_reason
from .core.triangle import find_best_route
from .core.utils import format_bps
from .exchanges.registry import VenueClientCache
from .notify.telegram import TelegramNotifier
from .storage.db import Database
from .storage.journal import TradeJournal
from .strategies.spot_perp.runner import BasisRunner


def setup_logging(config: LoggingConfig, level_override: Optional[str] = None) -> None:
    """Configure loguru sinks."""
    level = level_override or config.level
    logger.remove()
    logger.add(sys.stderr, level=level,
               format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")
    if config.log_file:
        logger.add(config.log_file, level="DEBUG", rotation="10 MB", retention=5,
                   serialize=config.json_logs,
                   format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}")


def _load(config_path: str) -> Config:
    load_dotenv()
    return get_config(config_path)


async def _run_bot(runner: BasisRunner, database: Optional[Database]) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_stop)
        except NotImplementedError:
            pass  # Windows

    if database:
        await database.connect()
    try:
        await runner.start()
        await runner.join()
        await runner.stop()
    finally:
        await runner.close()
        if database:
            await database.disconnect()
        snapshot = runner.state.snapshot()
        logger.info(
            f"Session summary: {snapshot.metrics.total_trades} trades, "
            f"PnL ${snapshot.metrics.total_pnl:.4f}, {snapshot.metrics.failed_cycles} failed cycles"
        )


@click.group()
def cli():
    """Spot/perp basis and triangular arbitrage bot."""
    pass


@cli.command()
@click.option('--config', 'config_path', default='config.yaml', help='Path to config file')
@click.option('--live/--dry-run', default=None, help='Override strategy.place_orders')
@click.option('--symbol', help='Override the primary trading pair')
@click.option('--interval', type=float, help='Override the poll interval in seconds')
@click.option('--log-level', help='Override the console log level')
def run(config_path, live, symbol, interval, log_level):
    """Run the arbitrage loop until interrupted."""
    config = _load(config_path)
    overrides = {}
    if live is not None:
        overrides["place_orders"] = live
    if symbol:
        overrides["trading_pair"] = symbol.upper()
    if interval:
        overrides["check_interval_seconds"] = interval
    if overrides:
        config = config.with_updates("strategy", **overrides)

    setup_logging(config.logging, log_level)

    # Use uvloop on Linux for better performance
    if sys.platform != "win32" and UVLOOP_AVAILABLE:
        uvloop.install()

    if config.strategy.place_orders and not config.venue.has_credentials:
        logger.warning("Live mode requested without API credentials, executions will be simulated")

    database = Database(config.storage.db_path) if config.storage.enabled else None
    journal = TradeJournal(database) if database else None
    notifier = TelegramNotifier(config.alerts) if config.alerts else None
    runner = BasisRunner(config, journal=journal, notifier=notifier)

    try:
        asyncio.run(_run_bot(runner, database))
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Bot failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--config', 'config_path', default='config.yaml', help='Path to config file')
@click.option('--symbol', help='Pair to evaluate (default: strategy.trading_pair)')
def scan(config_path, symbol):
    """Evaluate the primary pair and the best triangle once, without trading."""
    config = _load(config_path)
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    symbol = (symbol or config.strategy.trading_pair).upper()

    async def run_scan():
        clients = VenueClientCache()
        try:
            venue = await clients.get(config)
            quote = await venue.get_market_prices(symbol)
            funding = await venue.get_funding_rate_bps_per_8h(symbol)
            params = DecisionParams.from_config(config)
            metrics = compute_metrics(quote.spot_price, quote.derivative_price, params, funding)
            side = decide_side(quote.spot_price, quote.derivative_price, params, funding, metrics=metrics)
            print(f"\n=== {symbol} ===")
            print(f"Spot: {quote.spot_price}  Perp: {quote.derivative_price}")
            print(f"Basis: {format_bps(metrics.basis_bps)}  Funding: {format_bps(metrics.funding_bps)}")
            print(f"Net long carry: {format_bps(metrics.net_long_carry_bps)}")
            print(f"Net reverse carry: {format_bps(metrics.net_reverse_carry_bps)}")
            if side.value == "none":
                print(f"Decision: none ({no_trade_reason(quote.spot_price, quote.derivative_price, params, metrics)})")
            else:
                print(f"Decision: {side.value}")

            if config.triangular.enabled:
                route = find_best_route(
                    await venue.get_spot_symbols(), await venue.get_quote_volumes(),
                    await venue.get_book_tickers(), config.triangular.settlement_asset,
                    config.triangular.min_quote_volume, config.fees.spot_taker_bps,
                    config.strategy.slippage_bps_per_leg,
                )
                print("\n=== Triangular ===")
                if route is None:
                    print("No eligible route")
                else:
                    print(f"Best: {route.description} via {', '.join(route.leg_symbols)}")
                    print(f"Expected: {format_bps(route.expected_net_bps)} ({route.direction.value})")
        finally:
            await clients.close()

    asyncio.run(run_scan())


@cli.command()
@click.option('--config', 'config_path', default='config.yaml', help='Path to config file')
@click.option('--days', default=7, type=int, help='Number of days to report (default: 7)')
def report(config_path, days):
    """Generate trading report."""
    config = _load(config_path)

    async def generate_report():
        logger.remove()
        logger.add(sys.stderr, level="WARNING")
        db = Database(config.storage.db_path)
        journal = TradeJournal(db)
        try:
            await db.connect()
            print(await journal.generate_report(days))
        finally:
            await db.disconnect()

    asyncio.run(generate_report())


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

"""Trade journaling and reporting."""

from datetime import datetime
from typing import Any, Dict

from loguru import logger

from ..core.types import ExecutionOutcome
from .db import Database


class TradeJournal:
    """Handles trade journaling and reporting."""

    def __init__(self, database: Database):
        self.database = database

    async def journal_outcome(self, outcome: ExecutionOutcome) -> bool:
        """Persist an execution outcome; failures are logged, never raised."""
        try:
            row_id = await self.database.insert_outcome(outcome)
            logger.debug(f"Journaled {outcome.kind} outcome for {outcome.symbol} (row {row_id})")
            return bool(row_id)
        except Exception as e:
            logger.error(f"Failed to journal outcome: {e}")
            return False

    async def generate_report(self, days: int) -> str:
        """Generate trading report for last N days."""
        try:
            summary = (await self.database.get_performance_summary(days))["summary"]
            trades = await self.database.get_recent_trades(10)
        except Exception as e:
            logger.error(f"Failed to generate report: {e}")
            return f"Error generating report: {e}"

        report = f"""
=== TRADING REPORT (Last {days} days) ===
Performance Summary:
- Total Trades: {summary['total_trades']}
- Win Rate: {summary['win_rate']:.2%}
- Total PnL: ${summary['total_pnl']:.4f}
- Average Latency: {summary['avg_latency_ms']:.1f} ms
- Manual Interventions: {summary['critical_events']}

Recent Trades:
"""
        for trade in trades:
            when = datetime.fromtimestamp(trade["ts"] / 1000).strftime("%Y-%m-%d %H:%M:%S")
            result = "OK" if trade["success"] else (trade["failure"] or "FAILED")
            tag = " (sim)" if trade["simulated"] else ""
            report += f"- {when} {trade['kind']} {trade['symbol']} {trade['side']}: {result} ${trade['pnl']:.4f}{tag}\n"
        return report

    async def get_performance_summary(self, days: int) -> Dict[str, Any]:
        return await self.database.get_performance_summary(days)

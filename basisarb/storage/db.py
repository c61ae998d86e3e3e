"""SQLite persistence for execution outcomes."""

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ..core.types import ExecutionOutcome


class Database:
    """SQLite database interface."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.connection: Optional[sqlite3.Connection] = None

    async def connect(self):
        """Connect to database."""
        try:
            if self.db_path.parent and not self.db_path.parent.exists():
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.connection = sqlite3.connect(self.db_path)
            await self._create_tables()
            logger.info(f"Connected to database: {self.db_path}")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self):
        """Disconnect from database."""
        if self.connection:
            self.connection.close()
            self.connection = None
            logger.info("Disconnected from database")

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        if not self.connection:
            return

        cursor = self.connection.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts INTEGER NOT NULL,
                kind TEXT NOT NULL,
                symbol TEXT NOT NULL,
                side TEXT,
                success INTEGER NOT NULL,
                pnl_usdt REAL NOT NULL,
                latency_ms INTEGER NOT NULL,
                failure TEXT,
                simulated INTEGER NOT NULL,
                manual_intervention INTEGER NOT NULL,
                legs TEXT,
                error TEXT
            )
        """)
        self.connection.commit()

    async def insert_outcome(self, outcome: ExecutionOutcome) -> int:
        """Insert an execution outcome."""
        if not self.connection:
            return 0

        legs = [
            {
                "symbol": leg.symbol,
                "market": leg.market.value,
                "side": leg.side.value,
                "order_id": leg.order_id,
                "status": leg.status,
                "executed_qty": leg.executed_qty,
                "quote_qty": leg.quote_qty,
                "error": leg.error,
            }
            for leg in outcome.leg_results
        ]
        if outcome.rollback and outcome.rollback.leg:
            rb = outcome.rollback.leg
            legs.append({
                "symbol": rb.symbol, "market": rb.market.value, "side": rb.side.value,
                "order_id": rb.order_id, "status": rb.status, "executed_qty": rb.executed_qty,
                "compensation": True, "error": rb.error,
            })

        try:
            cursor = self.connection.cursor()
            cursor.execute("""
                INSERT INTO trades (ts, kind, symbol, side, success, pnl_usdt, latency_ms,
                                    failure, simulated, manual_intervention, legs, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                outcome.executed_at,
                outcome.kind,
                outcome.symbol,
                str(outcome.metadata.get("side", outcome.metadata.get("route", ""))),
                int(outcome.success),
                outcome.realized_profit,
                outcome.latency_ms,
                outcome.failure.value if outcome.failure else None,
                int(outcome.simulated),
                int(outcome.requires_manual_intervention),
                json.dumps(legs),
                outcome.error or "",
            ))
            self.connection.commit()
            return cursor.lastrowid
        except Exception as e:
            logger.error(f"Failed to insert outcome: {e}")
            return 0

    async def get_performance_summary(self, days: int) -> Dict[str, Any]:
        """Get performance summary for last N days."""
        empty = {
            "total_trades": 0, "win_rate": 0.0, "total_pnl": 0.0,
            "avg_latency_ms": 0.0, "critical_events": 0,
        }
        if not self.connection:
            return {"summary": empty}

        cutoff = int(time.time() * 1000) - days * 24 * 60 * 60 * 1000
        cursor = self.connection.cursor()
        cursor.execute("""
            SELECT COUNT(*), SUM(success), SUM(pnl_usdt), AVG(latency_ms), SUM(manual_intervention)
            FROM trades
            WHERE ts > ?
        """, (cutoff,))
        total, wins, pnl, latency, critical = cursor.fetchone()
        if not total:
            return {"summary": empty}
        return {
            "summary": {
                "total_trades": total,
                "win_rate": (wins or 0) / total,
                "total_pnl": pnl or 0.0,
                "avg_latency_ms": latency or 0.0,
                "critical_events": critical or 0,
            }
        }

    async def get_recent_trades(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get most recent trades, newest first."""
        if not self.connection:
            return []

        cursor = self.connection.cursor()
        cursor.execute("""
            SELECT id, ts, kind, symbol, side, success, pnl_usdt, failure, simulated, error
            FROM trades
            ORDER BY ts DESC, id DESC
            LIMIT ?
        """, (limit,))
        columns = ["id", "ts", "kind", "symbol", "side", "success", "pnl", "failure", "simulated", "error"]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

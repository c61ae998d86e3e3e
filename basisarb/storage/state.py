"""In-memory bot state with push-based observers."""

import time
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional, Tuple

from loguru import logger

from ..core.types import ExecutionOutcome


@dataclass(frozen=True)
class TradeRecord:
    """One executed (or simulated) trade as shown to observers."""
    id: int
    ts: int
    kind: str
    symbol: str
    side: str
    success: bool
    profit: float
    latency_ms: int
    failure: Optional[str] = None
    error: Optional[str] = None
    simulated: bool = False
    manual_intervention: bool = False


@dataclass(frozen=True)
class Balances:
    spot_value: float = 0.0
    futures_available: float = 0.0
    last_price: float = 0.0
    updated_at: int = 0


@dataclass(frozen=True)
class Metrics:
    total_pnl: float = 0.0
    daily_pnl: float = 0.0
    total_trades: int = 0
    success_rate: float = 0.0
    avg_latency_ms: float = 0.0
    active_pairs: int = 0
    failed_cycles: int = 0
    critical_events: int = 0


@dataclass(frozen=True)
class Status:
    running: bool = False
    trading_pair: str = ""
    poll_interval_ms: int = 0
    last_cycle_at: Optional[int] = None
    last_trade_at: Optional[int] = None
    last_message: str = ""
    last_error: Optional[str] = None


@dataclass(frozen=True)
class StateSnapshot:
    balances: Balances
    trades: Tuple[TradeRecord, ...]
    metrics: Metrics
    status: Status


Listener = Callable[[StateSnapshot], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class BotState:
    """Owns balances, trade history, metrics and status.

    Only the scheduling loop writes; observers receive immutable snapshots.
    """

    def __init__(self, max_trades: int = 200):
        self.max_trades = max_trades
        self._balances = Balances()
        self._trades: Deque[TradeRecord] = deque(maxlen=max_trades)
        self._status = Status()
        self._next_id = 1
        self._total_trades = 0
        self._successful_trades = 0
        self._total_pnl = 0.0
        self._total_latency_ms = 0
        self._failed_cycles = 0
        self._critical_events = 0
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            balances=self._balances,
            trades=tuple(self._trades),
            metrics=self._metrics(),
            status=self._status,
        )

    def _metrics(self) -> Metrics:
        today = datetime.now(timezone.utc).date()
        todays = [
            t for t in self._trades
            if datetime.fromtimestamp(t.ts / 1000, timezone.utc).date() == today
        ]
        total = self._total_trades
        return Metrics(
            total_pnl=self._total_pnl,
            daily_pnl=sum(t.profit for t in todays),
            total_trades=total,
            success_rate=self._successful_trades / total if total else 0.0,
            avg_latency_ms=self._total_latency_ms / total if total else 0.0,
            active_pairs=len({t.symbol for t in todays}),
            failed_cycles=self._failed_cycles,
            critical_events=self._critical_events,
        )

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"State listener failed: {e}")

    def set_running(self, running: bool, trading_pair: Optional[str] = None,
                    poll_interval_ms: Optional[int] = None) -> None:
        changes = {"running": running}
        if trading_pair is not None:
            changes["trading_pair"] = trading_pair
        if poll_interval_ms is not None:
            changes["poll_interval_ms"] = poll_interval_ms
        self._status = replace(self._status, **changes)
        self._emit()

    def mark_cycle(self) -> None:
        self._status = replace(self._status, last_cycle_at=_now_ms())
        self._emit()

    def set_message(self, message: str) -> None:
        self._status = replace(self._status, last_message=message)
        self._emit()

    def record_error(self, error: str, failed_cycle: bool = True) -> None:
        if failed_cycle:
            self._failed_cycles += 1
        self._status = replace(self._status, last_error=error, last_message=f"Error: {error}")
        self._emit()

    def update_balances(self, spot_value: float, futures_available: float, last_price: float) -> None:
        self._balances = Balances(
            spot_value=spot_value,
            futures_available=futures_available,
            last_price=last_price,
            updated_at=_now_ms(),
        )
        self._emit()

    def record_outcome(self, outcome: ExecutionOutcome) -> TradeRecord:
        """Append an execution outcome to history, newest first."""
        record = TradeRecord(
            id=self._next_id,
            ts=outcome.executed_at,
            kind=outcome.kind,
            symbol=outcome.symbol,
            side=str(outcome.metadata.get("side", outcome.metadata.get("route", ""))),
            success=outcome.success,
            profit=outcome.realized_profit,
            latency_ms=outcome.latency_ms,
            failure=outcome.failure.value if outcome.failure else None,
            error=outcome.error,
            simulated=outcome.simulated,
            manual_intervention=outcome.requires_manual_intervention,
        )
        self._next_id += 1
        self._trades.appendleft(record)

        self._total_trades += 1
        self._total_pnl += outcome.realized_profit
        self._total_latency_ms += outcome.latency_ms
        if outcome.success:
            self._successful_trades += 1
        if outcome.requires_manual_intervention:
            self._critical_events += 1
            message = f"CRITICAL {outcome.symbol}: {outcome.error}"
        elif outcome.success:
            message = f"Trade {outcome.symbol} profit {outcome.realized_profit:.4f}"
        else:
            message = f"Trade {outcome.symbol} failed: {outcome.error or 'unprofitable'}"

        self._status = replace(self._status, last_trade_at=outcome.executed_at, last_message=message)
        self._emit()
        return record

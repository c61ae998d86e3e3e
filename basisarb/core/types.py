"""
Shared types and data structures for the basis arbitrage bot.
Everything here is immutable once built.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class Side(Enum):
    """Directional verdict for a spot/perp pair."""
    LONG_SPOT_SHORT_PERP = "long_spot_short_perp"  # buy spot, sell perp
    SHORT_SPOT_LONG_PERP = "short_spot_long_perp"  # borrow-sell spot, buy perp
    NONE = "none"


class Market(Enum):
    """Venue leg an order is routed to."""
    SPOT = "spot"
    MARGIN = "margin"
    FUTURES = "futures"


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"

    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class MidLegSide(Enum):
    """How the middle leg of a triangle converts the first asset into the second."""
    SELL_BASE = "sell_base"  # cross pair is FIRST/SECOND, sell FIRST at bid
    BUY_BASE = "buy_base"    # cross pair is SECOND/FIRST, buy SECOND with FIRST at ask


class FailureKind(Enum):
    """Why an execution attempt did not succeed."""
    PRE_TRADE_REJECTED = "pre_trade_rejected"
    FIRST_LEG_FAILED = "first_leg_failed"
    LEG_FAILED_COMPENSATED = "leg_failed_compensated"
    LEG_FAILED_COMPENSATION_FAILED = "leg_failed_compensation_failed"
    RESIDUAL_POSITION = "residual_position"
    UNPROFITABLE = "unprofitable"


FILLED_STATUSES = ("FILLED", "PARTIALLY_FILLED")


@dataclass(frozen=True)
class PriceQuote:
    """Spot and perpetual prices for one symbol, fetched in the same cycle."""
    symbol: str
    spot_price: float
    derivative_price: float
    ts: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def is_valid(self) -> bool:
        return all(
            math.isfinite(p) and p > 0
            for p in (self.spot_price, self.derivative_price)
        )


@dataclass(frozen=True)
class FeeSchedule:
    """Taker fees per leg in basis points."""
    spot_taker_bps: float = 10.0
    derivative_taker_bps: float = 4.0

    @property
    def total_bps(self) -> float:
        return self.spot_taker_bps + self.derivative_taker_bps


@dataclass(frozen=True)
class EdgeMetrics:
    """Net edge breakdown for one spot/perp observation."""
    basis_bps: float = 0.0
    fees_bps: float = 0.0
    slippage_bps: float = 0.0
    funding_bps: float = 0.0
    borrow_bps: float = 0.0
    net_long_carry_bps: float = 0.0
    net_reverse_carry_bps: float = 0.0

    def net_for(self, side: Side) -> float:
        if side is Side.LONG_SPOT_SHORT_PERP:
            return self.net_long_carry_bps
        if side is Side.SHORT_SPOT_LONG_PERP:
            return self.net_reverse_carry_bps
        return 0.0


@dataclass(frozen=True)
class TradeIntent:
    """Fully specified directional trade; never mutated after construction."""
    symbol: str
    side: Side
    buy_price: float
    sell_price: float
    amount: float
    fee_rate: float
    spread_signed: float

    @property
    def notional(self) -> float:
        return self.amount * self.buy_price


@dataclass(frozen=True)
class TriangularRoute:
    """Best three-leg route found in a scan."""
    leg_symbols: Tuple[str, str, str]
    assets: Tuple[str, str, str]  # settlement, first, second
    direction: MidLegSide
    expected_net_bps: float
    factor: float

    @property
    def description(self) -> str:
        settle, first, second = self.assets
        return f"{settle}->{first}->{second}->{settle}"


@dataclass(frozen=True)
class SymbolFilters:
    """Exchange-enforced trading filters for one symbol."""
    symbol: str
    min_notional: Optional[float] = None
    step_size: Optional[float] = None
    min_qty: Optional[float] = None
    tick_size: Optional[float] = None


@dataclass(frozen=True)
class LegResult:
    """Captured result of one placed (or attempted) order."""
    symbol: str
    market: Market
    side: OrderSide
    requested_qty: float
    success: bool
    order_id: Optional[str] = None
    status: str = ""
    executed_qty: float = 0.0
    quote_qty: float = 0.0
    avg_price: float = 0.0
    fills: Tuple[Dict[str, Any], ...] = ()
    error: Optional[str] = None
    latency_ms: int = 0


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of the single compensating order for a failed trade."""
    attempted: bool
    success: bool
    leg: Optional[LegResult] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one execution attempt, appended to trade history."""
    kind: str  # directional | triangular
    symbol: str
    success: bool
    realized_profit: float
    executed_at: int
    leg_results: Tuple[LegResult, ...] = ()
    rollback: Optional[RollbackResult] = None
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    latency_ms: int = 0
    simulated: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def requires_manual_intervention(self) -> bool:
        return self.failure in (
            FailureKind.LEG_FAILED_COMPENSATION_FAILED,
            FailureKind.RESIDUAL_POSITION,
        )

    def to_event(self) -> Dict[str, Any]:
        """Flat key-value view for structured logging."""
        return {
            "ts": self.executed_at,
            "kind": self.kind,
            "symbol": self.symbol,
            "success": self.success,
            "realized_profit": round(self.realized_profit, 8),
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
            "legs": len(self.leg_results),
            "rollback_attempted": bool(self.rollback and self.rollback.attempted),
            "rollback_success": bool(self.rollback and self.rollback.success),
            "manual_intervention": self.requires_manual_intervention,
            "simulated": self.simulated,
            "latency_ms": self.latency_ms,
        }

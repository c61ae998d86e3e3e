"""Core decision logic for basis and triangular arbitrage."""

from .types import (
    EdgeMetrics, ExecutionOutcome, FailureKind, FeeSchedule, LegResult, PriceQuote,
    RollbackResult, Side, SymbolFilters, TradeIntent, TriangularRoute,
)
from .edge import calculate_profit, compute_net_edge
from .decision import DecisionParams, NoTradeReason, decide_side, no_trade_reason

"""Structured per-cycle and per-execution events."""

import json
import time
from typing import Any, Dict, Optional

from loguru import logger

from .types import EdgeMetrics, PriceQuote, Side


def emit_event(kind: str, payload: Dict[str, Any]) -> None:
    """Log one flat key-value record; fields are also bound for serialized sinks."""
    record = {"event": kind, **payload}
    logger.bind(**record).info(json.dumps(record, default=str, sort_keys=False))


def cycle_event(quote: PriceQuote, metrics: EdgeMetrics, params, side: Side,
                dry_run: bool, notional: float, ts: Optional[int] = None) -> Dict[str, Any]:
    """Payload describing one decision cycle."""
    return {
        "ts": ts if ts is not None else int(time.time() * 1000),
        "symbol": quote.symbol,
        "spot": quote.spot_price,
        "fut": quote.derivative_price,
        "basis_bps": round(metrics.basis_bps, 4),
        "fees_bps": round(metrics.fees_bps, 4),
        "slippage_bps": round(metrics.slippage_bps, 4),
        "funding_bps": round(metrics.funding_bps, 4),
        "borrow_bps": round(metrics.borrow_bps, 4),
        "net_longcarry_bps": round(metrics.net_long_carry_bps, 4),
        "net_reverse_bps": round(metrics.net_reverse_carry_bps, 4),
        "min_long_bps": params.min_spread_bps_long_carry,
        "min_reverse_bps": params.min_spread_bps_reverse,
        "allow_reverse": params.allow_reverse,
        "spot_margin_enabled": params.spot_margin_enabled,
        "chosen": side.value,
        "dry_run": dry_run,
        "notional_usdt": round(notional, 4),
    }

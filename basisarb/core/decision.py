"""Side selection and no-trade classification for spot/perp basis trades."""

from dataclasses import dataclass
from typing import Optional

from .edge import compute_net_edge, sanitize
from .types import EdgeMetrics, FeeSchedule, PriceQuote, Side, TradeIntent


class NoTradeReason:
    BASIS_FLAT = "basis_flat"
    LONG_EDGE_BELOW_THRESHOLD = "long_edge_below_threshold"
    REVERSE_DISABLED = "reverse_disabled"
    REVERSE_BLOCKED_NO_MARGIN = "reverse_blocked_no_margin"
    REVERSE_BORROW_APR_EXCEEDS = "reverse_borrow_apr_exceeds"
    REVERSE_EDGE_BELOW_THRESHOLD = "reverse_edge_below_threshold"
    BASIS_CONDITION_NOT_MET = "basis_condition_not_met"


@dataclass(frozen=True)
class DecisionParams:
    """Thresholds and feature flags consulted by the side policy."""
    fees: FeeSchedule
    slippage_bps_per_leg: float = 5.0
    consider_funding: bool = True
    funding_horizon_hours: float = 8.0
    min_spread_bps_long_carry: float = 5.0
    min_spread_bps_reverse: float = 5.0
    allow_reverse: bool = True
    spot_margin_enabled: bool = False
    max_borrow_apr_pct: float = 25.0

    @classmethod
    def from_config(cls, config) -> "DecisionParams":
        """Build from the main config."""
        strategy = config.strategy
        return cls(
            fees=FeeSchedule(config.fees.spot_taker_bps, config.fees.futures_taker_bps),
            slippage_bps_per_leg=strategy.slippage_bps_per_leg,
            consider_funding=strategy.consider_funding,
            funding_horizon_hours=strategy.funding_horizon_hours,
            min_spread_bps_long_carry=strategy.min_spread_bps_long_carry,
            min_spread_bps_reverse=strategy.min_spread_bps_reverse,
            allow_reverse=strategy.allow_reverse,
            spot_margin_enabled=strategy.spot_margin_enabled,
            max_borrow_apr_pct=strategy.max_borrow_apr_pct,
        )


def compute_metrics(spot: float, derivative: float, params: DecisionParams,
                    funding_rate_bps_per_8h: float = 0.0, borrow_apr_pct: float = 0.0) -> EdgeMetrics:
    return compute_net_edge(
        spot, derivative, params.fees, params.slippage_bps_per_leg,
        params.consider_funding, funding_rate_bps_per_8h,
        params.funding_horizon_hours, borrow_apr_pct,
    )


def decide_side(spot: float, derivative: float, params: DecisionParams,
                funding_rate_bps_per_8h: float = 0.0, borrow_apr_pct: float = 0.0,
                metrics: Optional[EdgeMetrics] = None) -> Side:
    """Pick the direction to trade, first match wins."""
    spot = sanitize(spot)
    derivative = sanitize(derivative)
    if spot <= 0 or derivative <= 0:
        return Side.NONE

    if metrics is None:
        metrics = compute_metrics(spot, derivative, params, funding_rate_bps_per_8h, borrow_apr_pct)
    borrow_apr = max(0.0, sanitize(borrow_apr_pct))

    if derivative > spot and metrics.net_long_carry_bps >= params.min_spread_bps_long_carry:
        return Side.LONG_SPOT_SHORT_PERP

    if (
        derivative < spot
        and params.allow_reverse
        and params.spot_margin_enabled
        and borrow_apr <= params.max_borrow_apr_pct
        and metrics.net_reverse_carry_bps >= params.min_spread_bps_reverse
    ):
        return Side.SHORT_SPOT_LONG_PERP

    return Side.NONE


def no_trade_reason(spot: float, derivative: float, params: DecisionParams,
                    metrics: EdgeMetrics, borrow_apr_pct: float = 0.0) -> str:
    """Explain a NONE verdict.

    The edge-below-threshold reasons are reserved for a raw basis that clears
    the threshold but is eaten by costs; a raw basis that is already short of
    it reports basis_condition_not_met.
    """
    spot = sanitize(spot)
    derivative = sanitize(derivative)
    if spot <= 0 or derivative <= 0:
        return NoTradeReason.BASIS_CONDITION_NOT_MET
    if derivative == spot:
        return NoTradeReason.BASIS_FLAT

    if derivative > spot:
        if metrics.net_long_carry_bps < params.min_spread_bps_long_carry:
            if metrics.basis_bps >= params.min_spread_bps_long_carry:
                return NoTradeReason.LONG_EDGE_BELOW_THRESHOLD
        return NoTradeReason.BASIS_CONDITION_NOT_MET

    if not params.allow_reverse:
        return NoTradeReason.REVERSE_DISABLED
    if not params.spot_margin_enabled:
        return NoTradeReason.REVERSE_BLOCKED_NO_MARGIN
    if max(0.0, sanitize(borrow_apr_pct)) > params.max_borrow_apr_pct:
        return NoTradeReason.REVERSE_BORROW_APR_EXCEEDS
    if metrics.net_reverse_carry_bps < params.min_spread_bps_reverse:
        if -metrics.basis_bps >= params.min_spread_bps_reverse:
            return NoTradeReason.REVERSE_EDGE_BELOW_THRESHOLD
    return NoTradeReason.BASIS_CONDITION_NOT_MET


def build_trade_intent(quote: PriceQuote, side: Side, amount: float, fee_rate: float) -> TradeIntent:
    """Long carry buys spot and sells perp; reverse carry buys perp and sells spot."""
    if side is Side.LONG_SPOT_SHORT_PERP:
        buy_price, sell_price = quote.spot_price, quote.derivative_price
    elif side is Side.SHORT_SPOT_LONG_PERP:
        buy_price, sell_price = quote.derivative_price, quote.spot_price
    else:
        raise ValueError("Cannot build a trade intent for Side.NONE")

    return TradeIntent(
        symbol=quote.symbol,
        side=side,
        buy_price=buy_price,
        sell_price=sell_price,
        amount=amount,
        fee_rate=fee_rate,
        spread_signed=quote.derivative_price - quote.spot_price,
    )

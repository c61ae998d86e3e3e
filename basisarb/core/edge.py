"""Net edge calculation for spot/perp basis trades."""

import math

from .types import EdgeMetrics, FeeSchedule, TradeIntent


HOURS_PER_YEAR = 24 * 365
FUNDING_PERIOD_HOURS = 8


def sanitize(value) -> float:
    """Coerce non-numeric or non-finite values to 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def compute_net_edge(spot: float, derivative: float, fees: FeeSchedule,
                     slippage_bps_per_leg: float, consider_funding: bool,
                     funding_rate_bps_per_8h: float, funding_horizon_hours: float,
                     borrow_apr_pct: float = 0.0) -> EdgeMetrics:
    """Compute basis, carry costs and net edge for both directions.

    A non-positive spot price yields an all-zero result.
    """
    spot = sanitize(spot)
    derivative = sanitize(derivative)
    if spot <= 0 or derivative <= 0:
        return EdgeMetrics()

    horizon = max(0.0, sanitize(funding_horizon_hours))
    borrow_apr = max(0.0, sanitize(borrow_apr_pct))
    funding_rate = sanitize(funding_rate_bps_per_8h)

    basis_bps = (derivative - spot) / spot * 10000
    fees_bps = sanitize(fees.spot_taker_bps) + sanitize(fees.derivative_taker_bps)
    slippage_bps = 2 * sanitize(slippage_bps_per_leg)
    funding_bps = funding_rate * (horizon / FUNDING_PERIOD_HOURS) if consider_funding else 0.0
    borrow_bps = borrow_apr * 100 * (horizon / HOURS_PER_YEAR) if borrow_apr > 0 else 0.0

    return EdgeMetrics(
        basis_bps=basis_bps,
        fees_bps=fees_bps,
        slippage_bps=slippage_bps,
        funding_bps=funding_bps,
        borrow_bps=borrow_bps,
        net_long_carry_bps=basis_bps - fees_bps - slippage_bps + funding_bps,
        net_reverse_carry_bps=-basis_bps - fees_bps - slippage_bps - borrow_bps - funding_bps,
    )


def calculate_profit(intent: TradeIntent) -> float:
    """Estimate profit of a directional trade in quote units.

    |spread| x amount less taker fees charged on both legs. Invalid inputs give 0.
    """
    values = (intent.buy_price, intent.sell_price, intent.amount, intent.fee_rate, intent.spread_signed)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
        return 0.0
    if intent.amount <= 0 or intent.buy_price <= 0 or intent.sell_price <= 0:
        return 0.0

    gross = abs(intent.spread_signed) * intent.amount
    fees = (intent.buy_price + intent.sell_price) * intent.amount * intent.fee_rate
    return gross - fees

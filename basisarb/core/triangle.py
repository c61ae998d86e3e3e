"""Triangular route scanning over a book ticker snapshot."""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from ..exchanges.base import BookTicker, SymbolInfo
from .types import MidLegSide, TriangularRoute


def route_factor(first: BookTicker, cross: BookTicker, last: BookTicker,
                 direction: MidLegSide, fee_bps: float, slippage_bps: float) -> float:
    """Settlement units returned per settlement unit spent on a three-leg route.

    Each leg pays the taker fee; slippage raises every ask and lowers every bid.
    """
    fee_factor = 1 - fee_bps / 10000
    slip = slippage_bps / 10000

    qty_first = 1 / (first.ask * (1 + slip)) * fee_factor
    if direction is MidLegSide.SELL_BASE:
        qty_second = qty_first * cross.bid * (1 - slip) * fee_factor
    else:
        qty_second = qty_first / (cross.ask * (1 + slip)) * fee_factor
    return qty_second * last.bid * (1 - slip) * fee_factor


def _eligible(info: SymbolInfo, volumes: Mapping[str, float], books: Mapping[str, BookTicker],
              min_quote_volume: float) -> bool:
    book = books.get(info.symbol)
    return (
        info.is_trading
        and volumes.get(info.symbol, 0.0) >= min_quote_volume
        and book is not None
        and book.is_valid
    )


def find_best_route(symbols: Iterable[SymbolInfo], volumes: Mapping[str, float],
                    books: Mapping[str, BookTicker], settlement_asset: str,
                    min_quote_volume: float, fee_bps: float,
                    slippage_bps: float) -> Optional[TriangularRoute]:
    """Return the route with the highest multiplier, or None if no triangle exists.

    Ties keep the first route found. Iteration follows the symbol list order so
    a fixed snapshot always yields the same answer.
    """
    direct: Dict[str, str] = {}
    cross_pairs: Dict[Tuple[str, str], str] = {}
    for info in symbols:
        if not _eligible(info, volumes, books, min_quote_volume):
            continue
        if info.quote_asset == settlement_asset:
            direct.setdefault(info.base_asset, info.symbol)
        elif info.base_asset != settlement_asset:
            cross_pairs.setdefault((info.base_asset, info.quote_asset), info.symbol)

    bases: List[str] = list(direct)
    best: Optional[TriangularRoute] = None
    evaluated = 0

    for i, asset_a in enumerate(bases):
        for asset_b in bases[i + 1:]:
            for base, quote in ((asset_a, asset_b), (asset_b, asset_a)):
                cross = cross_pairs.get((base, quote))
                if cross is None:
                    continue
                # Holding base and selling it on the cross pair, or holding
                # quote and buying base with it.
                candidates = (
                    (base, quote, MidLegSide.SELL_BASE),
                    (quote, base, MidLegSide.BUY_BASE),
                )
                for first, second, direction in candidates:
                    legs = (direct[first], cross, direct[second])
                    factor = route_factor(
                        books[legs[0]], books[legs[1]], books[legs[2]],
                        direction, fee_bps, slippage_bps,
                    )
                    evaluated += 1
                    if best is None or factor > best.factor:
                        best = TriangularRoute(
                            leg_symbols=legs,
                            assets=(settlement_asset, first, second),
                            direction=direction,
                            expected_net_bps=(factor - 1) * 10000,
                            factor=factor,
                        )

    logger.debug(
        f"Triangular scan: {len(bases)} bases, {len(cross_pairs)} cross pairs, "
        f"{evaluated} routes evaluated"
    )
    return best

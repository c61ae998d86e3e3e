"""Test triangular route discovery and edge calculation."""

import pytest

from basisarb.core.triangle import find_best_route, route_factor
from basisarb.core.types import MidLegSide
from basisarb.exchanges.base import BookTicker

from sample_data import SAMPLE_BOOKS, SAMPLE_VOLUMES, sample_symbols, symbol_info


def triangle_symbols():
    return [
        symbol_info("AUSDT", "A", "USDT"),
        symbol_info("AB", "A", "B"),
        symbol_info("BUSDT", "B", "USDT"),
    ]


VOLUMES = {"AUSDT": 1_000_000.0, "AB": 1_000_000.0, "BUSDT": 1_000_000.0}


class TestRouteFactor:
    """Test the three-leg compounding formula."""

    def test_hand_computed_chain(self):
        first = BookTicker("AUSDT", 0.99, 1.0)
        cross = BookTicker("AB", 2.0, 2.02)
        last = BookTicker("BUSDT", 0.5, 0.505)

        factor = route_factor(first, cross, last, MidLegSide.SELL_BASE, fee_bps=10, slippage_bps=0)

        # 1 USDT -> 0.999 A -> 1.998 * 0.999 B -> 0.999 * 0.999 * 0.999 USDT
        assert factor == pytest.approx(0.999 ** 3)
        assert (factor - 1) * 10000 == pytest.approx(-29.97001)

    def test_slippage_worsens_every_leg(self):
        first = BookTicker("AUSDT", 1.0, 1.0)
        cross = BookTicker("AB", 2.0, 2.0)
        last = BookTicker("BUSDT", 0.5, 0.5)

        factor = route_factor(first, cross, last, MidLegSide.SELL_BASE, fee_bps=0, slippage_bps=10)

        assert factor == pytest.approx(0.999 * 0.999 / 1.001)

    def test_buy_base_divides_by_cross_ask(self):
        first = BookTicker("BUSDT", 0.5, 0.5)
        cross = BookTicker("AB", 1.9, 1.0)
        last = BookTicker("AUSDT", 1.0, 1.0)

        factor = route_factor(first, cross, last, MidLegSide.BUY_BASE, fee_bps=0, slippage_bps=0)

        assert factor == pytest.approx(2.0)


class TestFindBestRoute:
    """Test route search over a snapshot."""

    def test_hand_computed_route(self):
        books = {
            "AUSDT": BookTicker("AUSDT", 0.99, 1.0),
            "AB": BookTicker("AB", 2.0, 2.02),
            "BUSDT": BookTicker("BUSDT", 0.5, 0.505),
        }

        route = find_best_route(triangle_symbols(), VOLUMES, books, "USDT", 100_000, 10, 0)

        assert route is not None
        assert route.leg_symbols == ("AUSDT", "AB", "BUSDT")
        assert route.assets == ("USDT", "A", "B")
        assert route.direction is MidLegSide.SELL_BASE
        assert route.factor == pytest.approx(0.999 ** 3)
        assert route.expected_net_bps == pytest.approx(-29.97001)
        assert route.description == "USDT->A->B->USDT"

    def test_buy_base_route_selected_when_better(self):
        books = {
            "AUSDT": BookTicker("AUSDT", 1.0, 1.0),
            "AB": BookTicker("AB", 1.9, 1.0),
            "BUSDT": BookTicker("BUSDT", 0.5, 0.5),
        }

        route = find_best_route(triangle_symbols(), VOLUMES, books, "USDT", 100_000, 0, 0)

        assert route.direction is MidLegSide.BUY_BASE
        assert route.leg_symbols == ("BUSDT", "AB", "AUSDT")
        assert route.assets == ("USDT", "B", "A")
        assert route.factor == pytest.approx(2.0)

    def test_deterministic_for_fixed_snapshot(self):
        first = find_best_route(sample_symbols(), SAMPLE_VOLUMES, SAMPLE_BOOKS, "USDT", 100_000, 10, 5)
        second = find_best_route(sample_symbols(), SAMPLE_VOLUMES, SAMPLE_BOOKS, "USDT", 100_000, 10, 5)

        assert first is not None
        assert first == second
        assert set(first.leg_symbols) == {"ETHUSDT", "ETHBTC", "BTCUSDT"}

    def test_ties_keep_first_route(self):
        symbols = triangle_symbols() + [
            symbol_info("CUSDT", "C", "USDT"),
            symbol_info("CD", "C", "D"),
            symbol_info("DUSDT", "D", "USDT"),
        ]
        volumes = {s.symbol: 1_000_000.0 for s in symbols}
        books = {
            "AUSDT": BookTicker("AUSDT", 1.0, 1.0),
            "AB": BookTicker("AB", 2.0, 4.0),
            "BUSDT": BookTicker("BUSDT", 0.5, 0.5),
            "CUSDT": BookTicker("CUSDT", 1.0, 1.0),
            "CD": BookTicker("CD", 2.0, 4.0),
            "DUSDT": BookTicker("DUSDT", 0.5, 0.5),
        }

        route = find_best_route(symbols, volumes, books, "USDT", 100_000, 0, 0)

        assert route.factor == pytest.approx(1.0)
        assert route.leg_symbols == ("AUSDT", "AB", "BUSDT")

    def test_liquidity_floor_excludes_cross_pair(self):
        books = {
            "AUSDT": BookTicker("AUSDT", 1.0, 1.0),
            "AB": BookTicker("AB", 2.0, 2.0),
            "BUSDT": BookTicker("BUSDT", 0.5, 0.5),
        }
        volumes = dict(VOLUMES, AB=50_000.0)

        assert find_best_route(triangle_symbols(), volumes, books, "USDT", 100_000, 0, 0) is None

    def test_non_trading_symbols_excluded(self):
        symbols = [
            symbol_info("AUSDT", "A", "USDT"),
            symbol_info("AB", "A", "B", status="BREAK"),
            symbol_info("BUSDT", "B", "USDT"),
        ]
        books = {
            "AUSDT": BookTicker("AUSDT", 1.0, 1.0),
            "AB": BookTicker("AB", 2.0, 2.0),
            "BUSDT": BookTicker("BUSDT", 0.5, 0.5),
        }

        assert find_best_route(symbols, VOLUMES, books, "USDT", 100_000, 0, 0) is None

    def test_missing_or_empty_book_excluded(self):
        books = {
            "AUSDT": BookTicker("AUSDT", 1.0, 1.0),
            "AB": BookTicker("AB", 0.0, 2.0),
            "BUSDT": BookTicker("BUSDT", 0.5, 0.5),
        }

        assert find_best_route(triangle_symbols(), VOLUMES, books, "USDT", 100_000, 0, 0) is None

    def test_no_symbols(self):
        assert find_best_route([], {}, {}, "USDT", 0, 10, 5) is None

"""Test trading filters and precision handling."""

from decimal import Decimal

import pytest

from basisarb.core.types import SymbolFilters
from basisarb.exchanges.filters import (
    format_decimal, format_quantity, meets_min_notional, parse_filters, quantize_qty, round_price,
)

from sample_data import SAMPLE_EXCHANGE_INFO


def raw_filters(symbol):
    for raw in SAMPLE_EXCHANGE_INFO["symbols"]:
        if raw["symbol"] == symbol:
            return raw["filters"]
    raise KeyError(symbol)


class TestParseFilters:
    """Test exchangeInfo filter parsing."""

    def test_notional_filter(self):
        filters = parse_filters("BTCUSDT", raw_filters("BTCUSDT"))

        assert filters.symbol == "BTCUSDT"
        assert filters.min_notional == 5.0
        assert filters.step_size == 0.00001
        assert filters.min_qty == 0.00001
        assert filters.tick_size == 0.01

    def test_legacy_min_notional_filter(self):
        filters = parse_filters("ETHUSDT", raw_filters("ETHUSDT"))

        assert filters.min_notional == 10.0
        assert filters.step_size == 0.0001

    def test_futures_notional_key(self):
        filters = parse_filters("BTCUSDT", [{"filterType": "MIN_NOTIONAL", "notional": "100"}])

        assert filters.min_notional == 100.0

    def test_empty_and_zero_filters(self):
        filters = parse_filters("X", [{"filterType": "LOT_SIZE", "minQty": "0", "stepSize": "0.00000000"}])

        assert filters == SymbolFilters(symbol="X")
        assert parse_filters("X", None) == SymbolFilters(symbol="X")


class TestQuantize:
    """Test quantity quantization."""

    def setup_method(self):
        self.filters = SymbolFilters("ETHUSDT", min_notional=10.0, step_size=0.001, min_qty=0.01, tick_size=0.01)

    def test_floors_to_step(self):
        assert quantize_qty(self.filters, 1.23456) == Decimal("1.234")

    def test_below_min_qty_is_zero(self):
        assert quantize_qty(self.filters, 0.0099) == Decimal("0")

    def test_without_filters(self):
        assert quantize_qty(None, 0.123456789) == Decimal("0.12345678")

    @pytest.mark.parametrize("qty", [0, -1, float("nan"), float("inf")])
    def test_invalid_quantity(self, qty):
        assert quantize_qty(self.filters, qty) == Decimal("0")

    def test_round_price(self):
        assert round_price(self.filters, 2000.129) == Decimal("2000.12")

    def test_min_notional(self):
        assert meets_min_notional(self.filters, 10.0)
        assert not meets_min_notional(self.filters, 9.99)
        assert meets_min_notional(None, 0.01)


class TestFormatting:

    def test_format_quantity_truncates(self):
        assert format_quantity(0.123456789, 6) == "0.123456"
        assert format_quantity(1.5, 6) == "1.5"
        assert format_quantity(2.0, 3) == "2"

    def test_format_quantity_invalid(self):
        assert format_quantity(0) == "0"
        assert format_quantity(float("nan")) == "0"

    def test_format_decimal(self):
        assert format_decimal(Decimal("1.2300")) == "1.23"
        assert format_decimal(Decimal("1E-7")) == "0.0000001"
        assert format_decimal(Decimal("100")) == "100"

"""Tests for price parsing and the MAP -> Jobber -> Retail cascade."""

from decimal import Decimal

import pytest

from catalogworker.sync.models import CatalogRecord, PriceTier
from catalogworker.sync.pricing import PriceResolver, has_map_price, parse_price


class TestParsePrice:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("42.50", Decimal("42.50")),
            ("$25.00", Decimal("25.00")),
            ("$1,299.99", Decimal("1299.99")),
            (" 19.99 ", Decimal("19.99")),
            ("10 USD", Decimal("10.00")),
            ("USD 12.00", Decimal("12.00")),
            ("usd12", Decimal("12.00")),
            ("3.456", Decimal("3.46")),
            (7, Decimal("7.00")),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_price(value) == expected

    @pytest.mark.parametrize(
        "value",
        ["0", "0.00", "-5", "", None, "N/A", "$", "NaN", "inf", "USD", "1E+30", "9" * 30],
    )
    def test_absent(self, value):
        assert parse_price(value) is None


class TestPriceCascade:
    """MAP first, then Jobber, then Retail; zero means absent."""

    @pytest.fixture
    def resolver(self):
        return PriceResolver()

    def test_map_wins(self, resolver):
        resolved = resolver.resolve(CatalogRecord(map_price="30", jobber_price="25", retail_price="40"))
        assert resolved.price == Decimal("30.00")
        assert resolved.tier == PriceTier.MAP

    def test_zero_map_falls_to_jobber(self, resolver):
        resolved = resolver.resolve(CatalogRecord(map_price="0", jobber_price="42.50"))
        assert resolved.price == Decimal("42.50")
        assert resolved.tier == PriceTier.JOBBER

    def test_zero_map_and_jobber_fall_to_retail(self, resolver):
        resolved = resolver.resolve(CatalogRecord(map_price="0", jobber_price="0", retail_price="19.99"))
        assert resolved.price == Decimal("19.99")
        assert resolved.tier == PriceTier.RETAIL

    def test_no_usable_price_keeps_cost_and_inventory(self, resolver):
        resolved = resolver.resolve(
            CatalogRecord(
                map_price="0",
                jobber_price="0",
                retail_price="0",
                cost="12.00",
                locations={"NV": 4},
            )
        )
        assert resolved.price is None
        assert resolved.tier == PriceTier.NONE
        assert resolved.cost == Decimal("12.00")
        assert resolved.inventory_qty == 4

    def test_cost_independent_of_price(self, resolver):
        resolved = resolver.resolve(CatalogRecord(map_price="10", cost="abc"))
        assert resolved.price == Decimal("10.00")
        assert resolved.cost is None

    def test_deterministic(self, resolver):
        rec = CatalogRecord(map_price="0", jobber_price="$25.00", locations={"NV": 3, "KY": 2})
        assert resolver.resolve(rec) == resolver.resolve(rec)
        assert resolver.resolve(rec).fingerprint() == resolver.resolve(rec).fingerprint()


class TestHasMapPrice:
    def test_values(self):
        assert has_map_price(CatalogRecord(map_price="5"))
        assert not has_map_price(CatalogRecord(map_price="0"))
        assert not has_map_price(CatalogRecord())

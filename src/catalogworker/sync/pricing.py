"""
Price Resolver.

Price cascade: MAP, then Jobber, then Retail; the first tier that parses to
a positive amount wins. With no usable tier the price is left alone, but
cost and inventory are still resolved.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from .models import CatalogRecord, PriceTier, ResolvedValues

_PRICE_NOISE = re.compile(r"[\s,$€£¥]")

CENTS = Decimal("0.01")


def parse_price(value: Any) -> Optional[Decimal]:
    """Parse a feed price. Non-numeric, zero or negative amounts are None."""
    if value is None:
        return None
    cleaned = _PRICE_NOISE.sub("", str(value)).upper()
    if cleaned.startswith("USD"):
        cleaned = cleaned[3:]
    elif cleaned.endswith("USD"):
        cleaned = cleaned[:-3]
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits to hold cents
        return None


class PriceResolver:
    """Computes the effective price, cost and inventory for a matched record."""

    def resolve_price(self, record: CatalogRecord) -> tuple[Optional[Decimal], PriceTier]:
        for tier, raw in (
            (PriceTier.MAP, record.map_price),
            (PriceTier.JOBBER, record.jobber_price),
            (PriceTier.RETAIL, record.retail_price),
        ):
            price = parse_price(raw)
            if price is not None:
                return price, tier
        return None, PriceTier.NONE

    def resolve(self, record: CatalogRecord) -> ResolvedValues:
        price, tier = self.resolve_price(record)
        return ResolvedValues(
            price=price,
            cost=parse_price(record.cost),
            inventory_qty=record.total_inventory,
            tier=tier,
        )


def has_map_price(record: CatalogRecord) -> bool:
    return parse_price(record.map_price) is not None

"""Shared fixtures: an in-memory shop implementing the catalog contracts."""

from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from catalogworker.sync.models import (
    CatalogPage,
    InternalProduct,
    InternalVariant,
    ProductStatus,
)


class FakeShop:
    """Catalog source and mutation target backed by a list of products.

    `errors` maps a method name to the user errors it returns;
    `raises` maps a method name to an exception it raises.
    """

    def __init__(self, products: List[InternalProduct], location: Optional[str] = "loc-1"):
        self.products = products
        self.location = location
        self.calls: List[tuple] = []
        self.errors: Dict[str, List[str]] = {}
        self.raises: Dict[str, Exception] = {}
        self.pages_requested: List[Optional[str]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    def called(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    async def fetch_products(self, cursor, page_size):
        self.pages_requested.append(cursor)
        if "fetch_products" in self.raises:
            raise self.raises["fetch_products"]
        start = int(cursor or 0)
        items = self.products[start : start + page_size]
        end = start + len(items)
        return CatalogPage(items=items, next_cursor=str(end), has_more=end < len(self.products))

    async def _call(self, name, *args):
        self.calls.append((name, args))
        if name in self.raises:
            raise self.raises[name]
        return list(self.errors.get(name, []))

    async def set_price(self, product_id, variant_id, amount):
        return await self._call("set_price", product_id, variant_id, amount)

    async def set_tracked(self, inventory_item_id, tracked):
        return await self._call("set_tracked", inventory_item_id, tracked)

    async def set_on_hand(self, inventory_item_id, location_id, quantity):
        return await self._call("set_on_hand", inventory_item_id, location_id, quantity)

    async def set_cost(self, variant_id, amount):
        return await self._call("set_cost", variant_id, amount)

    async def set_item_cost(self, inventory_item_id, amount):
        return await self._call("set_item_cost", inventory_item_id, amount)

    async def set_product_status(self, product_id, status):
        errors = await self._call("set_product_status", product_id, status)
        if not errors:
            for product in self.products:
                if product.id == product_id:
                    product.status = ProductStatus(status)
        return errors

    async def primary_location_id(self):
        self.calls.append(("primary_location_id", ()))
        if "primary_location_id" in self.raises:
            raise self.raises["primary_location_id"]
        return self.location


def make_product(
    product_id: str,
    *variants: dict,
    status: ProductStatus = ProductStatus.DRAFT,
    title: str = "",
) -> InternalProduct:
    """Build a product; each variant dict may set sku/barcode/tracked/inventory_item_id."""
    return InternalProduct(
        id=product_id,
        title=title or product_id,
        status=status,
        variants=[
            InternalVariant(
                id=v.get("id", f"{product_id}-v{i}"),
                product_id=product_id,
                sku=v.get("sku", ""),
                barcode=v.get("barcode", ""),
                inventory_item_id=v.get("inventory_item_id", f"{product_id}-item{i}"),
                tracked=v.get("tracked", False),
            )
            for i, v in enumerate(variants)
        ],
    )


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def fake_shop():
    """Factory for FakeShop instances."""
    return FakeShop


@pytest.fixture
def product():
    """Factory for InternalProduct instances."""
    return make_product


@pytest.fixture
def sleep():
    """Sleep replacement that returns immediately."""
    return no_sleep

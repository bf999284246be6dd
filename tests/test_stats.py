"""Tests for catalog coverage statistics."""

import pytest

from catalogworker.sync.feeds import StaticFeedSource
from catalogworker.sync.index import CatalogIndexCache
from catalogworker.sync.models import ProductStatus
from catalogworker.sync.stats import CatalogStats, collect_catalog_stats
from catalogworker.sync.walker import CatalogWalker


class TestCollectCatalogStats:
    @pytest.mark.asyncio
    async def test_counts(self, fake_shop, product, sleep):
        shop = fake_shop(
            [
                product("p1", {"barcode": "100001"}, {"barcode": "555"}, status=ProductStatus.ACTIVE),
                product("p2", {"barcode": "100002"}, status=ProductStatus.DRAFT),
                product("p3", {"sku": "NOPE", "inventory_item_id": ""}, status=ProductStatus.ARCHIVED),
            ]
        )
        rows = [{"Upc": "100001", "MAP": "19.99"}, {"Upc": "00100002", "Jobber": "12"}]
        index = await CatalogIndexCache(StaticFeedSource(rows)).fetch_or_build()

        stats = await collect_catalog_stats(CatalogWalker(shop, page_delay=0, sleep=sleep), index)

        assert stats.total_products == 3
        assert stats.total_variants == 4
        assert (stats.active_products, stats.draft_products, stats.archived_products) == (1, 1, 1)
        assert stats.products_with_inventory_item == 2
        assert stats.matched_variants == 2
        assert stats.unmatched_variants == 2
        assert stats.map_zero_variants == 1
        assert stats.strategies == {"raw_barcode": 1, "stripped_barcode": 1}
        assert stats.match_rate == 50.0

    @pytest.mark.asyncio
    async def test_issues_no_mutations(self, fake_shop, product, sleep):
        shop = fake_shop([product("p1", {"barcode": "100001"})])
        index = await CatalogIndexCache(StaticFeedSource([{"Upc": "100001"}])).fetch_or_build()

        await collect_catalog_stats(CatalogWalker(shop, page_delay=0, sleep=sleep), index)

        assert shop.calls == []


def test_empty_match_rate():
    assert CatalogStats().match_rate == 0.0

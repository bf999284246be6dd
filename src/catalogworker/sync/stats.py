"""Read-only catalog coverage statistics."""

import logging
from collections import Counter
from typing import Dict

from pydantic import BaseModel, Field

from .index import CatalogIndex
from .matcher import VariantMatcher
from .models import InternalProduct, ProductStatus
from .pricing import has_map_price
from .walker import CatalogWalker

logger = logging.getLogger(__name__)


class CatalogStats(BaseModel):
    """How much of the merchant catalog the feed covers."""

    total_products: int = 0
    total_variants: int = 0
    active_products: int = 0
    draft_products: int = 0
    archived_products: int = 0
    products_with_inventory_item: int = 0
    matched_variants: int = 0
    unmatched_variants: int = 0
    map_zero_variants: int = 0
    strategies: Dict[str, int] = Field(default_factory=dict)

    @property
    def match_rate(self) -> float:
        if self.total_variants == 0:
            return 0.0
        return round(self.matched_variants / self.total_variants * 100, 1)


async def collect_catalog_stats(
    walker: CatalogWalker,
    index: CatalogIndex,
    matcher: VariantMatcher = None,
) -> CatalogStats:
    """Walk the catalog once and report feed coverage. Issues no mutations."""
    matcher = matcher or VariantMatcher()
    stats = CatalogStats()
    strategies: Counter = Counter()

    def visit(product: InternalProduct) -> None:
        stats.total_products += 1
        stats.total_variants += len(product.variants)

        if product.status == ProductStatus.ACTIVE:
            stats.active_products += 1
        elif product.status == ProductStatus.DRAFT:
            stats.draft_products += 1
        elif product.status == ProductStatus.ARCHIVED:
            stats.archived_products += 1

        if any(v.inventory_item_id for v in product.variants):
            stats.products_with_inventory_item += 1

        for variant in product.variants:
            result = matcher.match(variant, index)
            if not result.matched:
                stats.unmatched_variants += 1
                continue
            stats.matched_variants += 1
            strategies[result.strategy.value] += 1
            if not has_map_price(result.record):
                stats.map_zero_variants += 1

    await walker.for_each_product(visit)
    stats.strategies = dict(strategies)

    logger.info(
        f"Catalog stats: {stats.matched_variants}/{stats.total_variants} variants matched "
        f"({stats.match_rate}%), {stats.map_zero_variants} without MAP"
    )
    return stats

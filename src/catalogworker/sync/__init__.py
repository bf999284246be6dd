"""
Catalog reconciliation: feed -> index -> match -> resolve -> apply.
"""

from .index import CatalogIndex, CatalogIndexCache, build_index
from .matcher import VariantMatcher
from .models import (
    CatalogRecord,
    InternalProduct,
    InternalVariant,
    MatchResult,
    MatchStrategy,
    PriceTier,
    ResolvedValues,
    RunStatus,
    SyncMode,
    SyncProgress,
    SyncRun,
)
from .mutations import MutationApplier
from .normalizer import FeedNormalizer, normalize_row
from .orchestrator import SyncOrchestrator, SyncReport
from .pricing import PriceResolver, parse_price
from .walker import CatalogWalker

__all__ = [
    "CatalogIndex",
    "CatalogIndexCache",
    "build_index",
    "VariantMatcher",
    "CatalogRecord",
    "InternalProduct",
    "InternalVariant",
    "MatchResult",
    "MatchStrategy",
    "PriceTier",
    "ResolvedValues",
    "RunStatus",
    "SyncMode",
    "SyncProgress",
    "SyncRun",
    "MutationApplier",
    "FeedNormalizer",
    "normalize_row",
    "SyncOrchestrator",
    "SyncReport",
    "PriceResolver",
    "parse_price",
    "CatalogWalker",
]

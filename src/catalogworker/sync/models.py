"""Data types for catalog reconciliation."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Feed side
# =============================================================================


@dataclass(frozen=True)
class CatalogRecord:
    """One normalized distributor feed row. Read-only once indexed.

    Price fields keep the feed's raw text; the PriceResolver owns parsing.
    """

    raw_id: str = ""
    part_number: str = ""
    manufacturer_part_number: str = ""
    map_price: str = ""
    jobber_price: str = ""
    retail_price: str = ""
    cost: str = ""
    locations: Mapping[str, int] = field(default_factory=dict)
    availability: int = 0

    @property
    def stripped_id(self) -> str:
        return self.raw_id.lstrip("0")

    @property
    def location_total(self) -> int:
        return sum(self.locations.values())

    @property
    def total_inventory(self) -> int:
        """Warehouse sum if positive, else reported availability, never negative."""
        total = self.location_total
        if total > 0:
            return total
        return max(0, self.availability)


# =============================================================================
# Internal catalog side
# =============================================================================


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


@dataclass
class InternalVariant:
    """A sellable unit in the merchant catalog."""

    id: str
    product_id: str
    sku: str = ""
    barcode: str = ""
    inventory_item_id: str = ""
    tracked: bool = False

    @property
    def label(self) -> str:
        return self.sku or self.barcode or self.id


@dataclass
class InternalProduct:
    id: str
    title: str = ""
    status: Optional[ProductStatus] = None
    variants: List[InternalVariant] = field(default_factory=list)


@dataclass
class CatalogPage:
    """One page of the cursor-paginated internal catalog."""

    items: List[InternalProduct]
    next_cursor: Optional[str] = None
    has_more: bool = False


@dataclass
class CatalogTotals:
    products: int = 0
    variants: int = 0


# =============================================================================
# Matching and pricing
# =============================================================================


class MatchStrategy(str, Enum):
    """Matcher strategies, in the order they are tried."""

    RAW_BARCODE = "raw_barcode"
    STRIPPED_BARCODE = "stripped_barcode"
    PADDED_BARCODE = "padded_barcode"
    EXACT_SKU = "exact_sku"
    WIDE_BARCODE = "wide_barcode"
    SKU_FRAGMENT = "sku_fragment"
    SKU_SUFFIX = "sku_suffix"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    variant: InternalVariant
    record: Optional[CatalogRecord] = None
    strategy: MatchStrategy = MatchStrategy.NONE
    key: str = ""

    @property
    def matched(self) -> bool:
        return self.record is not None


class PriceTier(str, Enum):
    MAP = "map"
    JOBBER = "jobber"
    RETAIL = "retail"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedValues:
    """Effective values to apply to one variant."""

    price: Optional[Decimal]
    cost: Optional[Decimal]
    inventory_qty: int
    tier: PriceTier = PriceTier.NONE

    def fingerprint(self) -> str:
        """Stable digest of the applied values, used by incremental runs."""
        parts = [
            "" if self.price is None else f"{self.price:.2f}",
            "" if self.cost is None else f"{self.cost:.2f}",
            str(self.inventory_qty),
        ]
        return hashlib.sha1("|".join(parts).encode()).hexdigest()[:16]


# =============================================================================
# Run records
# =============================================================================


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    RETRY_SKIPPED = "retry_skipped"


class SyncRun(BaseModel):
    """Persisted record of one sync run for one shop."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    shop: str
    mode: SyncMode = SyncMode.FULL
    status: RunStatus = RunStatus.RUNNING

    total_products: int = 0
    total_variants: int = 0

    synced: int = 0
    skipped: int = 0
    unchanged: int = 0
    errors: int = 0
    auth_expired: int = 0
    success_rate: Optional[float] = None

    # Pricing strategy breakdown
    map_matched: int = 0
    map_used_jobber: int = 0
    map_used_retail: int = 0
    map_skipped: int = 0

    error_message: Optional[str] = None
    error_details: List[Dict[str, Any]] = Field(default_factory=list)

    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    feed_loaded_at: Optional[datetime] = None

    @property
    def processed(self) -> int:
        return self.synced + self.skipped

    @property
    def is_full_sync(self) -> bool:
        return self.mode == SyncMode.FULL

    def count_tier(self, tier: PriceTier) -> None:
        if tier == PriceTier.MAP:
            self.map_matched += 1
        elif tier == PriceTier.JOBBER:
            self.map_used_jobber += 1
        elif tier == PriceTier.RETAIL:
            self.map_used_retail += 1
        else:
            self.map_skipped += 1

    def compute_success_rate(self) -> float:
        processed = self.processed
        if processed == 0:
            return 0.0
        return round(self.synced / processed * 100, 1)


class SyncProgress(BaseModel):
    """Read-only projection of a run for progress polling."""

    shop: str
    status: RunStatus
    processed: int
    total: int
    progress_percent: float
    synced: int
    skipped: int
    errors: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_run(cls, run: SyncRun) -> "SyncProgress":
        total = run.total_variants
        processed = run.processed
        percent = round(processed / total * 100, 1) if total > 0 else 0.0
        return cls(
            shop=run.shop,
            status=run.status,
            processed=processed,
            total=total,
            progress_percent=percent,
            synced=run.synced,
            skipped=run.skipped,
            errors=run.errors,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )

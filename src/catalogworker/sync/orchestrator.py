"""
Sync Orchestrator.

Drives one run for one shop: Idle -> Running -> Completed | Failed.

1. Invalidate the index and location caches
2. Build the index (FeedUnavailable fails the run)
3. Count the catalog to size progress
4. Create the run record
5. Walk the catalog: match -> resolve -> apply per variant, visibility per product
6. Persist progress on the ProgressCadence
7. Finalize counters, success rate and status

Only FeedUnavailable and CatalogUnavailable fail a run. Every other error is
counted, sampled onto the run record and the walk goes on. Anything that
still escapes the walk, cancellation included, leaves the record FAILED.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from ..errors import (
    AuthExpired,
    ErrorKind,
    MutationFailure,
    SyncError,
    classify_error,
)
from .index import CatalogIndex, CatalogIndexCache
from .locks import ShopRunLock, get_shop_lock
from .matcher import VariantMatcher
from .models import (
    InternalProduct,
    InternalVariant,
    PriceTier,
    RunStatus,
    SyncMode,
    SyncProgress,
    SyncRun,
    utcnow,
)
from .mutations import MutationApplier, StepStatus
from .pricing import PriceResolver
from .progress import ProgressCadence
from .store import SyncRunStore
from .walker import CatalogWalker

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Final outcome of a run, returned to the caller."""

    run: SyncRun
    strategies: Dict[str, int] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.run.status == RunStatus.COMPLETED

    @property
    def summary(self) -> str:
        run = self.run
        return (
            f"{run.synced}/{run.processed} synced ({run.success_rate or 0.0}%), "
            f"{run.skipped} skipped, {run.errors} errors | "
            f"MAP:{run.map_matched} Jobber:{run.map_used_jobber} "
            f"Retail:{run.map_used_retail} Skipped:{run.map_skipped}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.run.model_dump(mode="json")
        data["strategies"] = dict(self.strategies)
        data["dry_run"] = self.dry_run
        data["summary"] = self.summary
        return data


@dataclass
class _RunState:
    """Per-run bookkeeping that is not part of the persisted record."""

    mode: SyncMode
    previous: Dict[str, str] = field(default_factory=dict)
    fingerprints: Dict[str, str] = field(default_factory=dict)
    visibility_done: Set[str] = field(default_factory=set)
    strategies: Counter = field(default_factory=Counter)
    since_persist: int = 0
    created: bool = False


class SyncOrchestrator:
    """Reconciles one shop's catalog against the distributor feed."""

    def __init__(
        self,
        shop: str,
        index_cache: CatalogIndexCache,
        walker: CatalogWalker,
        applier: MutationApplier,
        store: SyncRunStore,
        matcher: Optional[VariantMatcher] = None,
        resolver: Optional[PriceResolver] = None,
        cadence: Optional[ProgressCadence] = None,
        lock: Optional[ShopRunLock] = None,
        error_sample_size: int = 50,
        update_visibility: bool = True,
    ):
        self.shop = shop
        self.index_cache = index_cache
        self.walker = walker
        self.applier = applier
        self.store = store
        self.matcher = matcher or VariantMatcher()
        self.resolver = resolver or PriceResolver()
        self.cadence = cadence or ProgressCadence()
        self.lock = lock or get_shop_lock()
        self.error_sample_size = error_sample_size
        self.update_visibility = update_visibility

    @property
    def dry_run(self) -> bool:
        return self.applier.dry_run

    async def run(self, mode: SyncMode = SyncMode.FULL) -> SyncReport:
        """Execute one sync run.

        Raises:
            SyncAlreadyRunning: another run for this shop is in progress
            FeedUnavailable: no feed source produced records
            CatalogUnavailable: the catalog could not be streamed
        """
        async with self.lock.hold(self.shop):
            return await self._run(SyncMode(mode))

    async def _run(self, mode: SyncMode) -> SyncReport:
        logger.info(f"Starting {mode.value} sync for {self.shop}" + (" (dry run)" if self.dry_run else ""))

        self.index_cache.invalidate()
        self.applier.locations.invalidate()

        run = SyncRun(shop=self.shop, mode=mode)
        state = _RunState(mode=mode)

        try:
            index = await self.index_cache.fetch_or_build()
            run.feed_loaded_at = self.index_cache.loaded_at
            totals = await self.walker.count()
        except BaseException as e:
            await self._fail(run, state, e)
            raise

        run.total_products = totals.products
        run.total_variants = totals.variants
        state.created = await self._save(run, create=True)

        if mode == SyncMode.INCREMENTAL:
            state.previous = await self._load_fingerprints()

        logger.info(
            f"Syncing {run.total_products} products ({run.total_variants} variants) "
            f"against {index.record_count} feed records"
        )

        async def on_product(product: InternalProduct) -> None:
            await self._process_product(product, index, run, state)

        try:
            await self.walker.for_each_product(on_product)
        except BaseException as e:
            await self._fail(run, state, e)
            raise

        run.status = RunStatus.COMPLETED
        run.completed_at = utcnow()
        run.success_rate = run.compute_success_rate()
        await self._save(run, create=not state.created)

        if state.fingerprints and not self.dry_run:
            await self._save_fingerprints(state.fingerprints)

        report = SyncReport(run=run, strategies=dict(state.strategies), dry_run=self.dry_run)
        logger.info(f"Sync complete for {self.shop}: {report.summary}")
        if run.auth_expired:
            logger.warning(
                f"{run.auth_expired} errors were caused by an expired credential; "
                "re-authenticate and re-run to recover them"
            )
        return report

    # -------------------------------------------------------------------------
    # Per product / per variant
    # -------------------------------------------------------------------------

    async def _process_product(
        self,
        product: InternalProduct,
        index: CatalogIndex,
        run: SyncRun,
        state: _RunState,
    ) -> None:
        any_matched = False
        for variant in product.variants:
            try:
                matched = await self._process_variant(product, variant, index, run, state)
            except Exception as e:
                run.skipped += 1
                self._record_error(run, e, product, variant)
                await self._tick(run, state)
                continue
            if matched:
                any_matched = True

        if self.update_visibility and product.id not in state.visibility_done:
            state.visibility_done.add(product.id)
            result = await self.applier.apply_visibility(product, any_matched)
            if result.status == StepStatus.FAILED:
                self._record_error(run, result.error, product)

    async def _process_variant(
        self,
        product: InternalProduct,
        variant: InternalVariant,
        index: CatalogIndex,
        run: SyncRun,
        state: _RunState,
    ) -> bool:
        """Returns True if the variant matched a feed record."""
        match = self.matcher.match(variant, index)
        if not match.matched:
            run.skipped += 1
            await self._tick(run, state)
            return False

        state.strategies[match.strategy.value] += 1
        resolved = self.resolver.resolve(match.record)

        if state.mode == SyncMode.RETRY_SKIPPED and resolved.tier == PriceTier.MAP:
            run.skipped += 1
            await self._tick(run, state)
            return True

        fingerprint = resolved.fingerprint()
        if state.mode == SyncMode.INCREMENTAL and state.previous.get(variant.id) == fingerprint:
            run.skipped += 1
            run.unchanged += 1
            await self._tick(run, state)
            return True

        run.count_tier(resolved.tier)
        outcome = await self.applier.apply(variant, resolved)

        if outcome.ok:
            run.synced += 1
            state.fingerprints[variant.id] = fingerprint
        else:
            run.skipped += 1
            for error in outcome.errors:
                self._record_error(run, error, product, variant)

        await self._tick(run, state)
        return True

    def _record_error(
        self,
        run: SyncRun,
        error: Optional[BaseException],
        product: InternalProduct,
        variant: Optional[InternalVariant] = None,
    ) -> None:
        if error is None:
            return

        kind = classify_error(error)
        run.errors += 1
        if kind == ErrorKind.AUTH_EXPIRED or isinstance(error, AuthExpired):
            run.auth_expired += 1

        if len(run.error_details) < self.error_sample_size:
            run.error_details.append(
                SyncError(
                    kind=kind,
                    message=str(error),
                    product=product.title or product.id,
                    variant=variant.label if variant else "",
                    step=error.step if isinstance(error, MutationFailure) else "",
                ).to_dict()
            )

        if run.errors <= 10 or run.errors % 100 == 0:
            label = variant.label if variant else product.title or product.id
            logger.error(f"Sync error #{run.errors} for {label}: {error}")

    async def _tick(self, run: SyncRun, state: _RunState) -> None:
        state.since_persist += 1
        if self.cadence.should_persist(run.processed, state.since_persist):
            state.since_persist = 0
            progress = SyncProgress.from_run(run)
            logger.info(
                f"Progress: {progress.processed}/{progress.total} ({progress.progress_percent}%) "
                f"- Synced: {run.synced}, Skipped: {run.skipped}"
            )
            await self._save(run)

    # -------------------------------------------------------------------------
    # Persistence (best effort)
    # -------------------------------------------------------------------------

    async def _save(self, run: SyncRun, create: bool = False) -> bool:
        try:
            if create:
                await self.store.create(run)
            else:
                await self.store.update(run)
            return True
        except Exception as e:
            logger.warning(f"Could not persist sync run {run.id} for {self.shop}: {e}")
            return False

    async def _load_fingerprints(self) -> Dict[str, str]:
        try:
            fingerprints = await self.store.load_fingerprints(self.shop)
        except Exception as e:
            logger.warning(f"Could not load fingerprints for {self.shop}, applying everything: {e}")
            return {}
        logger.info(f"Loaded {len(fingerprints)} fingerprints for incremental sync")
        return fingerprints

    async def _save_fingerprints(self, fingerprints: Dict[str, str]) -> None:
        try:
            await self.store.save_fingerprints(self.shop, fingerprints)
        except Exception as e:
            logger.warning(f"Could not save fingerprints for {self.shop}: {e}")

    async def _fail(self, run: SyncRun, state: _RunState, error: BaseException) -> None:
        message = str(error) or type(error).__name__
        logger.error(f"Sync failed for {self.shop}: {message}")
        run.status = RunStatus.FAILED
        run.error_message = message
        run.completed_at = utcnow()
        run.success_rate = run.compute_success_rate()
        if len(run.error_details) < self.error_sample_size:
            run.error_details.append(
                SyncError(kind=classify_error(error), message=message).to_dict()
            )
        await self._save(run, create=not state.created)

"""
Composition root for catalog sync.

Wires configuration into the feed chain, index cache, catalog client,
applier and run store, and exposes the entry points used by the CLI, the
scheduler and the Temporal activity.
"""

import logging
from typing import List, Optional

from ..config import WorkerConfig, get_config
from .feeds import CsvFileFeedSource, FallbackFeedSource, FeedSource, HttpFeedSource
from .index import CatalogIndexCache
from .matcher import VariantMatcher
from .models import SyncMode, SyncProgress, SyncRun
from .mutations import MutationApplier
from .orchestrator import SyncOrchestrator, SyncReport
from .progress import ProgressCadence
from .shopify import ShopifyAdminClient
from .stats import CatalogStats, collect_catalog_stats
from .store import InMemorySyncRunStore, PostgresSyncRunStore, SyncRunStore
from .walker import CatalogWalker

logger = logging.getLogger(__name__)

_memory_store: Optional[InMemorySyncRunStore] = None


def build_feed_source(config: WorkerConfig) -> FeedSource:
    """Remote feed first (when configured), then local CSV candidates."""
    sources: List[FeedSource] = []
    if config.sync.feed_url:
        sources.append(HttpFeedSource(config.sync.feed_url))
    sources.append(CsvFileFeedSource(config.sync.feed_paths, config.sync.feed_dirs))
    return FallbackFeedSource(sources)


def build_store(config: WorkerConfig) -> SyncRunStore:
    """PostgreSQL when DATABASE_URL is set, else one process-wide in-memory store."""
    global _memory_store

    if config.database_url:
        return PostgresSyncRunStore(config.database_url)

    if _memory_store is None:
        logger.warning("DATABASE_URL not configured, run records are kept in memory")
        _memory_store = InMemorySyncRunStore()
    return _memory_store


def build_client(config: WorkerConfig) -> ShopifyAdminClient:
    return ShopifyAdminClient(
        shop_domain=config.shop_domain,
        access_token=config.admin_access_token,
        api_version=config.admin_api_version,
        cost_namespace=config.sync.cost_metafield_namespace,
        cost_key=config.sync.cost_metafield_key,
    )


def build_index_cache(config: WorkerConfig, source: Optional[FeedSource] = None) -> CatalogIndexCache:
    return CatalogIndexCache(
        source or build_feed_source(config),
        ttl_seconds=config.sync.index_ttl_sec,
        reverse_index=config.sync.use_reverse_index,
        fragment_min_length=config.sync.fragment_min_length,
    )


def build_walker(config: WorkerConfig, client: ShopifyAdminClient) -> CatalogWalker:
    return CatalogWalker(
        client,
        page_size=config.sync.page_size,
        page_delay=config.sync.page_delay_sec,
        retry_max=config.sync.retry_max,
        retry_base_delay=config.sync.retry_base_delay,
    )


def build_orchestrator(
    client: ShopifyAdminClient,
    config: Optional[WorkerConfig] = None,
    store: Optional[SyncRunStore] = None,
    index_cache: Optional[CatalogIndexCache] = None,
    dry_run: bool = False,
) -> SyncOrchestrator:
    config = config or get_config()
    cfg = config.sync

    return SyncOrchestrator(
        shop=config.shop_domain,
        index_cache=index_cache or build_index_cache(config),
        walker=build_walker(config, client),
        applier=MutationApplier(
            client,
            retry_max=cfg.retry_max,
            retry_base_delay=cfg.retry_base_delay,
            dry_run=dry_run,
        ),
        store=store or build_store(config),
        matcher=VariantMatcher(max_fragments=cfg.max_sku_fragments),
        cadence=ProgressCadence(config.progress.tiers),
        error_sample_size=cfg.error_sample_size,
        update_visibility=cfg.update_visibility,
    )


async def run_sync(
    mode: SyncMode = SyncMode.FULL,
    dry_run: bool = False,
    config: Optional[WorkerConfig] = None,
    store: Optional[SyncRunStore] = None,
) -> SyncReport:
    """Run one sync for the configured shop."""
    config = config or get_config()
    async with build_client(config) as client:
        orchestrator = build_orchestrator(client, config=config, store=store, dry_run=dry_run)
        return await orchestrator.run(mode)


async def get_sync_progress(
    shop: Optional[str] = None,
    config: Optional[WorkerConfig] = None,
    store: Optional[SyncRunStore] = None,
) -> Optional[SyncProgress]:
    """Progress of the latest run for a shop, or None if it never ran."""
    config = config or get_config()
    store = store or build_store(config)
    run = await store.latest(shop or config.shop_domain)
    return SyncProgress.from_run(run) if run else None


async def get_history(
    shop: Optional[str] = None,
    limit: int = 10,
    config: Optional[WorkerConfig] = None,
    store: Optional[SyncRunStore] = None,
) -> List[SyncRun]:
    """Newest first."""
    config = config or get_config()
    store = store or build_store(config)
    return await store.history(shop or config.shop_domain, limit=limit)


async def get_catalog_stats(config: Optional[WorkerConfig] = None) -> CatalogStats:
    config = config or get_config()
    index = await build_index_cache(config).fetch_or_build()
    async with build_client(config) as client:
        return await collect_catalog_stats(
            build_walker(config, client),
            index,
            VariantMatcher(max_fragments=config.sync.max_sku_fragments),
        )

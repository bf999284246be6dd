"""
Tests for the sync composition root and its entry points.
"""

from unittest.mock import patch

import pytest

import catalogworker.sync.run as run_module
from catalogworker.config import SyncConfig, WorkerConfig
from catalogworker.sync.feeds import CsvFileFeedSource, HttpFeedSource, StaticFeedSource
from catalogworker.sync.models import RunStatus, SyncMode, SyncRun
from catalogworker.sync.run import (
    build_feed_source,
    build_index_cache,
    build_orchestrator,
    build_store,
    get_history,
    get_sync_progress,
    run_sync,
)
from catalogworker.sync.store import InMemorySyncRunStore, PostgresSyncRunStore

SHOP = "demo.myshopify.com"


def make_config(**overrides):
    values = dict(shop_domain=SHOP, admin_access_token="shpat_test")
    values.update(overrides)
    return WorkerConfig(**values)


class TestBuilders:
    """Test wiring from configuration."""

    def test_feed_chain_with_url(self):
        config = make_config(sync=SyncConfig(feed_url="https://feeds.example.com/apg.csv"))
        source = build_feed_source(config)

        assert [type(s) for s in source.sources] == [HttpFeedSource, CsvFileFeedSource]
        assert source.sources[0].url == "https://feeds.example.com/apg.csv"

    def test_feed_chain_local_only(self):
        source = build_feed_source(make_config())
        assert [type(s) for s in source.sources] == [CsvFileFeedSource]

    def test_postgres_store(self):
        store = build_store(make_config(database_url="postgresql://localhost/catalog"))
        assert isinstance(store, PostgresSyncRunStore)

    def test_memory_store_is_shared(self, monkeypatch):
        monkeypatch.setattr(run_module, "_memory_store", None)
        config = make_config(database_url="")

        first = build_store(config)
        assert isinstance(first, InMemorySyncRunStore)
        assert build_store(config) is first

    def test_index_cache_settings(self):
        config = make_config(sync=SyncConfig(index_ttl_sec=60, use_reverse_index=False))
        cache = build_index_cache(config, StaticFeedSource([]))

        assert cache.ttl_seconds == 60
        assert cache.reverse_index is False

    def test_orchestrator_settings(self, fake_shop):
        config = make_config(sync=SyncConfig(error_sample_size=5, page_size=20, update_visibility=False))
        orchestrator = build_orchestrator(
            fake_shop([]), config=config, store=InMemorySyncRunStore(), dry_run=True
        )

        assert orchestrator.shop == SHOP
        assert orchestrator.dry_run
        assert orchestrator.error_sample_size == 5
        assert orchestrator.walker.page_size == 20
        assert orchestrator.update_visibility is False


class TestEntryPoints:
    """Test run_sync, progress and history."""

    @pytest.mark.asyncio
    async def test_run_sync(self, fake_shop, product, tmp_path):
        feed = tmp_path / "feed.csv"
        feed.write_text("Upc,Jobber,NV whse\n111222,10.00,4\n")
        config = make_config(sync=SyncConfig(feed_paths=[str(feed)], feed_dirs=[], page_delay_sec=0))
        shop = fake_shop([product("p1", {"barcode": "111222"})])
        store = InMemorySyncRunStore()

        with patch.object(run_module, "build_client", return_value=shop):
            report = await run_sync(SyncMode.FULL, config=config, store=store)

        assert report.success
        assert report.run.synced == 1
        assert shop.called("set_on_hand") == [("p1-item0", "loc-1", 4)]
        assert (await store.latest(SHOP)).status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_progress_of_latest_run(self):
        store = InMemorySyncRunStore()
        await store.create(SyncRun(shop=SHOP, total_variants=10, synced=4, skipped=1))

        progress = await get_sync_progress(config=make_config(), store=store)

        assert progress.processed == 5
        assert progress.progress_percent == 50.0

    @pytest.mark.asyncio
    async def test_progress_without_runs(self):
        assert await get_sync_progress("other.myshopify.com", config=make_config(), store=InMemorySyncRunStore()) is None

    @pytest.mark.asyncio
    async def test_history(self):
        store = InMemorySyncRunStore()
        for _ in range(3):
            await store.create(SyncRun(shop=SHOP))

        runs = await get_history(limit=2, config=make_config(), store=store)

        assert len(runs) == 2

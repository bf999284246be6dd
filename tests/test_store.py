"""Tests for run record stores."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import psycopg
import pytest

from catalogworker.errors import PersistenceFailure
from catalogworker.sync.models import RunStatus, SyncMode, SyncRun, utcnow
from catalogworker.sync.store import RUN_COLUMNS, SCHEMA, InMemorySyncRunStore, PostgresSyncRunStore


class TestInMemorySyncRunStore:
    @pytest.mark.asyncio
    async def test_create_and_update(self):
        store = InMemorySyncRunStore()
        run = SyncRun(shop="a.myshopify.com")
        await store.create(run)

        run.synced = 10
        run.status = RunStatus.COMPLETED
        await store.update(run)

        latest = await store.latest("a.myshopify.com")
        assert latest.synced == 10
        assert latest.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stored_copy_is_isolated(self):
        store = InMemorySyncRunStore()
        run = SyncRun(shop="a")
        await store.create(run)
        run.synced = 99

        assert (await store.latest("a")).synced == 0

    @pytest.mark.asyncio
    async def test_history_newest_first_and_limited(self):
        store = InMemorySyncRunStore()
        base = utcnow()
        for i in range(5):
            await store.create(SyncRun(shop="a", started_at=base + timedelta(minutes=i), synced=i))
        await store.create(SyncRun(shop="b"))

        history = await store.history("a", limit=3)

        assert [r.synced for r in history] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_latest_none(self):
        assert await InMemorySyncRunStore().latest("nobody") is None

    @pytest.mark.asyncio
    async def test_update_unknown_run(self):
        with pytest.raises(PersistenceFailure):
            await InMemorySyncRunStore().update(SyncRun(shop="a"))

    @pytest.mark.asyncio
    async def test_fingerprints_per_shop(self):
        store = InMemorySyncRunStore()
        await store.save_fingerprints("a", {"v1": "x"})
        await store.save_fingerprints("a", {"v2": "y"})

        assert await store.load_fingerprints("a") == {"v1": "x", "v2": "y"}
        assert await store.load_fingerprints("b") == {}


class FakeConnection:
    """Records statements instead of talking to PostgreSQL."""

    def __init__(self, fail_on=None):
        self.executed = []
        self.fail_on = fail_on
        self.closed = False

    async def execute(self, query, params=None):
        if self.fail_on and self.fail_on in query:
            raise psycopg.OperationalError("permission denied for schema public")
        self.executed.append(query)

    async def commit(self):
        pass

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None


class TestPostgresSyncRunStore:
    def test_requires_url(self):
        with pytest.raises(ValueError):
            PostgresSyncRunStore("")

    def test_params_cover_every_column(self):
        store = PostgresSyncRunStore("postgresql://localhost/catalog")
        params = store._params(SyncRun(shop="a", mode=SyncMode.INCREMENTAL))

        assert set(params) == set(RUN_COLUMNS)
        assert params["mode"] == "incremental"
        assert params["status"] == "running"

    @pytest.mark.asyncio
    async def test_connection_error_is_persistence_failure(self):
        store = PostgresSyncRunStore("postgresql://invalid-host.invalid:1/none?connect_timeout=1")
        with pytest.raises(PersistenceFailure):
            await store.update(SyncRun(shop="a"))

    @pytest.mark.asyncio
    async def test_tables_created_before_first_write(self):
        conn = FakeConnection()
        store = PostgresSyncRunStore("postgresql://localhost/catalog")

        with patch.object(psycopg.AsyncConnection, "connect", AsyncMock(return_value=conn)):
            await store.update(SyncRun(shop="a"))
            await store.update(SyncRun(shop="a"))

        assert conn.executed[0] == SCHEMA
        assert conn.executed[1].startswith("INSERT INTO sync_run")
        assert conn.executed.count(SCHEMA) == 1
        assert len(conn.executed) == 3

    @pytest.mark.asyncio
    async def test_schema_failure_is_persistence_failure(self):
        conn = FakeConnection(fail_on="CREATE TABLE")
        store = PostgresSyncRunStore("postgresql://localhost/catalog")

        with patch.object(psycopg.AsyncConnection, "connect", AsyncMock(return_value=conn)):
            with pytest.raises(PersistenceFailure):
                await store.ensure_schema()

        assert conn.closed

"""
Run record persistence.

SyncRunStore is the storage collaborator of the orchestrator. Two
implementations: an in-process store (tests, CLI dry runs) and a PostgreSQL
store on psycopg.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from ..errors import PersistenceFailure
from .models import SyncRun

logger = logging.getLogger(__name__)


class SyncRunStore(Protocol):
    async def create(self, run: SyncRun) -> SyncRun: ...

    async def update(self, run: SyncRun) -> None: ...

    async def latest(self, shop: str) -> Optional[SyncRun]: ...

    async def history(self, shop: str, limit: int = 10) -> List[SyncRun]: ...

    async def load_fingerprints(self, shop: str) -> Dict[str, str]: ...

    async def save_fingerprints(self, shop: str, fingerprints: Dict[str, str]) -> None: ...


class InMemorySyncRunStore:
    """Keeps run records in process memory."""

    def __init__(self):
        self._runs: Dict[str, SyncRun] = {}
        self._order: List[str] = []
        self._fingerprints: Dict[str, Dict[str, str]] = {}

    async def create(self, run: SyncRun) -> SyncRun:
        self._runs[run.id] = run.model_copy(deep=True)
        self._order.append(run.id)
        return run

    async def update(self, run: SyncRun) -> None:
        if run.id not in self._runs:
            raise PersistenceFailure(f"Unknown sync run {run.id}")
        self._runs[run.id] = run.model_copy(deep=True)

    async def latest(self, shop: str) -> Optional[SyncRun]:
        runs = await self.history(shop, limit=1)
        return runs[0] if runs else None

    async def history(self, shop: str, limit: int = 10) -> List[SyncRun]:
        runs = [self._runs[i] for i in reversed(self._order) if self._runs[i].shop == shop]
        return [r.model_copy(deep=True) for r in runs[:limit]]

    async def load_fingerprints(self, shop: str) -> Dict[str, str]:
        return dict(self._fingerprints.get(shop, {}))

    async def save_fingerprints(self, shop: str, fingerprints: Dict[str, str]) -> None:
        self._fingerprints.setdefault(shop, {}).update(fingerprints)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_run (
    id TEXT PRIMARY KEY,
    shop TEXT NOT NULL,
    mode TEXT NOT NULL DEFAULT 'full',
    status TEXT NOT NULL DEFAULT 'running',
    total_products INTEGER NOT NULL DEFAULT 0,
    total_variants INTEGER NOT NULL DEFAULT 0,
    synced INTEGER NOT NULL DEFAULT 0,
    skipped INTEGER NOT NULL DEFAULT 0,
    unchanged INTEGER NOT NULL DEFAULT 0,
    errors INTEGER NOT NULL DEFAULT 0,
    auth_expired INTEGER NOT NULL DEFAULT 0,
    success_rate REAL,
    map_matched INTEGER NOT NULL DEFAULT 0,
    map_used_jobber INTEGER NOT NULL DEFAULT 0,
    map_used_retail INTEGER NOT NULL DEFAULT 0,
    map_skipped INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    error_details JSONB NOT NULL DEFAULT '[]'::jsonb,
    started_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    completed_at TIMESTAMPTZ,
    feed_loaded_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS sync_run_shop_started ON sync_run (shop, started_at DESC);
CREATE TABLE IF NOT EXISTS sync_fingerprint (
    shop TEXT NOT NULL,
    variant_id TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (shop, variant_id)
);
"""

RUN_COLUMNS = (
    "id",
    "shop",
    "mode",
    "status",
    "total_products",
    "total_variants",
    "synced",
    "skipped",
    "unchanged",
    "errors",
    "auth_expired",
    "success_rate",
    "map_matched",
    "map_used_jobber",
    "map_used_retail",
    "map_skipped",
    "error_message",
    "error_details",
    "started_at",
    "completed_at",
    "feed_loaded_at",
)


class PostgresSyncRunStore:
    """Run records in PostgreSQL."""

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL not configured")
        self.database_url = database_url
        self._schema_ready = False

    async def _connect(self):
        """Open a connection, creating the tables on first use."""
        import psycopg
        from psycopg.rows import dict_row

        conn = await psycopg.AsyncConnection.connect(self.database_url, row_factory=dict_row)
        if not self._schema_ready:
            try:
                await conn.execute(SCHEMA)
                await conn.commit()
            except BaseException:
                await conn.close()
                raise
            self._schema_ready = True
            logger.info("Sync run tables ready")
        return conn

    async def ensure_schema(self) -> None:
        self._schema_ready = False
        try:
            async with await self._connect():
                pass
        except Exception as e:
            raise PersistenceFailure(f"Schema setup failed: {e}") from e

    def _params(self, run: SyncRun) -> Dict[str, Any]:
        from psycopg.types.json import Jsonb

        data = run.model_dump()
        data["mode"] = run.mode.value
        data["status"] = run.status.value
        data["error_details"] = Jsonb(run.error_details)
        return {column: data[column] for column in RUN_COLUMNS}

    async def create(self, run: SyncRun) -> SyncRun:
        await self.update(run)
        return run

    async def update(self, run: SyncRun) -> None:
        columns = ", ".join(RUN_COLUMNS)
        values = ", ".join(f"%({c})s" for c in RUN_COLUMNS)
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in RUN_COLUMNS if c != "id")
        query = (
            f"INSERT INTO sync_run ({columns}) VALUES ({values}) "
            f"ON CONFLICT (id) DO UPDATE SET {updates}, updated_at = now()"
        )
        try:
            async with await self._connect() as conn:
                await conn.execute(query, self._params(run))
        except Exception as e:
            raise PersistenceFailure(f"Failed to save sync run {run.id}: {e}") from e

    async def history(self, shop: str, limit: int = 10) -> List[SyncRun]:
        columns = ", ".join(RUN_COLUMNS)
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {columns}
                        FROM sync_run
                        WHERE shop = %s
                        ORDER BY started_at DESC
                        LIMIT %s
                        """,
                        (shop, limit),
                    )
                    rows = await cur.fetchall()
        except Exception as e:
            raise PersistenceFailure(f"Failed to read sync runs for {shop}: {e}") from e

        return [SyncRun.model_validate(row) for row in rows]

    async def latest(self, shop: str) -> Optional[SyncRun]:
        runs = await self.history(shop, limit=1)
        return runs[0] if runs else None

    async def load_fingerprints(self, shop: str) -> Dict[str, str]:
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT variant_id, fingerprint FROM sync_fingerprint WHERE shop = %s",
                        (shop,),
                    )
                    rows = await cur.fetchall()
        except Exception as e:
            raise PersistenceFailure(f"Failed to read fingerprints for {shop}: {e}") from e

        return {row["variant_id"]: row["fingerprint"] for row in rows}

    async def save_fingerprints(self, shop: str, fingerprints: Dict[str, str]) -> None:
        if not fingerprints:
            return
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cur:
                    await cur.executemany(
                        """
                        INSERT INTO sync_fingerprint (shop, variant_id, fingerprint)
                        VALUES (%s, %s, %s)
                        ON CONFLICT (shop, variant_id)
                        DO UPDATE SET fingerprint = EXCLUDED.fingerprint, updated_at = now()
                        """,
                        [(shop, vid, fp) for vid, fp in fingerprints.items()],
                    )
        except Exception as e:
            raise PersistenceFailure(f"Failed to save fingerprints for {shop}: {e}") from e

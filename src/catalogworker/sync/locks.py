"""
Per-shop run exclusion.

At most one sync run per shop inside this process. A second run for a shop
that is already syncing is rejected with SyncAlreadyRunning rather than
queued.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set

from ..errors import SyncAlreadyRunning

logger = logging.getLogger(__name__)


class ShopRunLock:
    """Tracks which shops currently have a run in progress."""

    def __init__(self):
        self._running: Set[str] = set()

    def is_running(self, shop: str) -> bool:
        return shop in self._running

    @property
    def running(self) -> Set[str]:
        return set(self._running)

    @asynccontextmanager
    async def hold(self, shop: str) -> AsyncIterator[None]:
        # No await between the check and the add
        if shop in self._running:
            logger.warning(f"Rejecting sync for {shop}: a run is already in progress")
            raise SyncAlreadyRunning(shop)

        self._running.add(shop)
        try:
            yield
        finally:
            self._running.discard(shop)


_default_lock = ShopRunLock()


def get_shop_lock() -> ShopRunLock:
    """Process-wide lock shared by every orchestrator built in this process."""
    return _default_lock

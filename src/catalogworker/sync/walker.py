"""
Catalog Walker - streams the internal catalog page by page.

Products are handed to a callback one at a time and the next page is only
requested once the current page has been fully processed, so the catalog is
never held in memory. Cancellation is cooperative: the callback returns
WalkControl.STOP (or someone calls stop()) and no further page is fetched.
In-flight requests are not interrupted.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Set, Union

from ..errors import AuthExpired, CatalogUnavailable
from .models import CatalogPage, CatalogTotals, InternalProduct

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    """Cursor-paginated read access to the merchant catalog."""

    async def fetch_products(self, cursor: Optional[str], page_size: int) -> CatalogPage: ...


class WalkControl(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"


ProductCallback = Callable[[InternalProduct], Union[Any, Awaitable[Any]]]


@dataclass
class WalkSummary:
    pages: int = 0
    products: int = 0
    variants: int = 0
    stopped: bool = False


class CatalogWalker:
    """Streams products from a CatalogSource."""

    def __init__(
        self,
        source: CatalogSource,
        page_size: int = 250,
        page_delay: float = 0.1,
        retry_max: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.page_size = page_size
        self.page_delay = page_delay
        self.retry_max = retry_max
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._stop_requested = False

    def stop(self) -> None:
        """Ask the current walk to stop before the next page."""
        self._stop_requested = True

    async def _fetch(self, cursor: Optional[str], page_number: int) -> CatalogPage:
        attempt = 0
        while True:
            try:
                return await self.source.fetch_products(cursor, self.page_size)
            except AuthExpired as e:
                raise CatalogUnavailable(f"Catalog page {page_number}: {e}") from e
            except Exception as e:
                attempt += 1
                if attempt >= self.retry_max:
                    raise CatalogUnavailable(
                        f"Catalog page {page_number} failed after {attempt} attempts: {e}"
                    ) from e
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Error fetching catalog page {page_number} "
                    f"(attempt {attempt}/{self.retry_max}), retrying in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)

    async def for_each_product(self, callback: ProductCallback) -> WalkSummary:
        """Invoke `callback` once per product, in cursor order.

        A stop() requested before the walk starts takes effect before the
        first page. The stop request is cleared when the walk ends.

        Raises:
            CatalogUnavailable: a page could not be fetched or the cursor stalled
        """
        try:
            return await self._walk(callback)
        finally:
            self._stop_requested = False

    async def _walk(self, callback: ProductCallback) -> WalkSummary:
        summary = WalkSummary()
        seen: Set[str] = set()
        cursor: Optional[str] = None

        while True:
            if self._stop_requested:
                summary.stopped = True
                logger.info(f"Catalog walk stopped after {summary.products} products")
                return summary

            summary.pages += 1
            page = await self._fetch(cursor, summary.pages)

            for product in page.items:
                if product.id in seen:
                    logger.warning(f"Product {product.id} returned twice, skipping")
                    continue
                seen.add(product.id)
                summary.products += 1
                summary.variants += len(product.variants)

                result = callback(product)
                if inspect.isawaitable(result):
                    result = await result

                if result == WalkControl.STOP or self._stop_requested:
                    summary.stopped = True
                    logger.info(f"Catalog walk stopped after {summary.products} products")
                    return summary

            logger.debug(
                f"Fetched page {summary.pages}: {len(page.items)} products "
                f"(total so far: {summary.products})"
            )

            if not page.has_more:
                break

            if not page.next_cursor or page.next_cursor == cursor:
                raise CatalogUnavailable(
                    f"Catalog cursor did not advance after page {summary.pages}"
                )
            cursor = page.next_cursor

            if self.page_delay > 0:
                await self._sleep(self.page_delay)

        return summary

    async def count(self) -> CatalogTotals:
        """Count products and variants without keeping any product."""
        summary = await self.for_each_product(lambda product: None)
        totals = CatalogTotals(products=summary.products, variants=summary.variants)
        logger.info(f"Catalog count: {totals.products} products ({totals.variants} variants)")
        return totals

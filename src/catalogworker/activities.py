"""Temporal activities for CatalogWorker.

Activities are the building blocks of workflows - each one here is a unit
of work that Temporal can retry and monitor.
"""

from __future__ import annotations

import logging
from typing import Any

from temporalio import activity
from temporalio.exceptions import ApplicationError

from .errors import SyncAlreadyRunning
from .sync.models import SyncMode

logger = logging.getLogger(__name__)


@activity.defn
async def run_catalog_sync(mode: str = "full", dry_run: bool = False) -> dict[str, Any]:
    """Activity running one catalog sync for the configured shop.

    Args:
        mode: full, incremental or retry_skipped
        dry_run: match and resolve without writing to the catalog

    Returns:
        The run report as a JSON-ready dict
    """
    from .sync.run import run_sync

    logger.info(f"Catalog sync activity started (mode={mode}, dry_run={dry_run})")
    try:
        report = await run_sync(SyncMode(mode), dry_run=dry_run)
    except SyncAlreadyRunning as e:
        raise ApplicationError(str(e), type="SyncAlreadyRunning", non_retryable=True) from e

    return report.to_dict()

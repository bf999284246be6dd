"""
Temporal worker for catalog sync.

Runs CatalogSyncWorkflow and its activity on the catalog-sync task queue,
and manages the Temporal schedule that starts it periodically.
"""

from __future__ import annotations

import logging
from typing import Optional

from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleSpec,
)
from temporalio.worker import Worker

from .activities import run_catalog_sync
from .config import WorkerConfig, get_config
from .workflows import CatalogSyncWorkflow

logger = logging.getLogger(__name__)


async def get_temporal_client(host: Optional[str] = None) -> Client:
    """Get Temporal client connection (host from config if not provided)."""
    if host is None:
        host = get_config().temporal_host
    return await Client.connect(host)


def create_worker(client: Client, queue: str = "catalog-sync") -> Worker:
    """Create a Temporal worker for the catalog sync queue."""
    return Worker(
        client,
        task_queue=queue,
        workflows=[CatalogSyncWorkflow],
        activities=[run_catalog_sync],
    )


async def run_worker(config: Optional[WorkerConfig] = None, temporal_host: Optional[str] = None) -> None:
    """Connect to Temporal and process catalog sync tasks until cancelled."""
    config = config or get_config()
    client = await get_temporal_client(temporal_host or config.temporal_host)
    worker = create_worker(client, config.task_queue)

    logger.info(f"--- Catalog sync worker starting on queue {config.task_queue} ---")
    await worker.run()


async def create_sync_schedule(
    client: Client,
    config: Optional[WorkerConfig] = None,
    mode: str = "full",
) -> str:
    """Create the Temporal schedule for periodic syncs.

    Returns:
        Schedule ID
    """
    config = config or get_config()
    shop = config.shop_domain or "default"
    schedule_id = f"catalog-sync-{shop}"

    try:
        await client.create_schedule(
            schedule_id,
            Schedule(
                action=ScheduleActionStartWorkflow(
                    CatalogSyncWorkflow.run,
                    args=[mode, False],
                    id=f"catalog-sync-scheduled-{shop}",
                    task_queue=config.task_queue,
                ),
                spec=ScheduleSpec(
                    cron_expressions=[config.sync.schedule_cron],
                    time_zone_name=config.sync.schedule_timezone,
                ),
            ),
        )
        logger.info(f"Created schedule: {schedule_id}")
        return schedule_id
    except Exception as e:
        if "already exists" in str(e).lower():
            logger.warning(f"Schedule {schedule_id} already exists")
            return schedule_id
        raise

"""
Scheduler for periodic catalog syncs.

Uses APScheduler to run a full sync on a cron expression
(default every 6 hours, America/New_York).
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import WorkerConfig
from ..errors import CatalogSyncError, SyncAlreadyRunning
from .models import SyncMode
from .orchestrator import SyncReport

logger = logging.getLogger(__name__)

SyncJob = Callable[[SyncMode], Awaitable[SyncReport]]


class SyncScheduler:
    """Cron-driven auto sync for one shop."""

    def __init__(self, config: WorkerConfig, job: Optional[SyncJob] = None):
        self.config = config
        self.scheduler = AsyncIOScheduler(timezone=config.sync.schedule_timezone)
        self._job = job
        self.last_report: Optional[SyncReport] = None

    def build_trigger(self) -> CronTrigger:
        return CronTrigger.from_crontab(
            self.config.sync.schedule_cron,
            timezone=self.config.sync.schedule_timezone,
        )

    def start(self):
        """Start the scheduler."""
        cfg = self.config.sync

        self.scheduler.add_job(
            self._run_sync,
            trigger=self.build_trigger(),
            id="catalog_auto_sync",
            name="Catalog Auto Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info(
            f"Auto sync scheduler started: {cfg.schedule_cron} ({cfg.schedule_timezone})"
        )

    async def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Auto sync scheduler stopped")

    async def _run_sync(self):
        """Scheduled job body. Failures are logged, the schedule keeps going."""
        if not self.config.shop_domain or not self.config.admin_access_token:
            logger.error("SHOP_DOMAIN / SHOPIFY_ACCESS_TOKEN not configured, skipping auto sync")
            return

        job = self._job
        if job is None:
            from .run import run_sync

            async def job(mode: SyncMode) -> SyncReport:
                return await run_sync(mode, config=self.config)

        logger.info(f"Automated sync triggered for {self.config.shop_domain}")
        try:
            self.last_report = await job(SyncMode.FULL)
        except SyncAlreadyRunning as e:
            logger.warning(f"Automated sync skipped: {e}")
        except CatalogSyncError as e:
            logger.error(f"Automated sync failed for {self.config.shop_domain}: {e}")
        except Exception as e:
            logger.exception(f"Automated sync crashed: {e}")


async def run_scheduler(config: WorkerConfig):
    """Run the scheduler until interrupted."""
    scheduler = SyncScheduler(config)
    scheduler.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await scheduler.stop()

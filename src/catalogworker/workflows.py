"""Temporal workflows for CatalogWorker.

Workflows give a sync run durability: a run started from a schedule or the
CLI survives worker restarts and is retried by Temporal on feed or catalog
outages.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from .activities import run_catalog_sync


@workflow.defn
class CatalogSyncWorkflow:
    """Runs one catalog sync as a single long activity."""

    @workflow.run
    async def run(self, mode: str = "full", dry_run: bool = False) -> dict[str, Any]:
        """Execute the catalog sync workflow.

        Args:
            mode: full, incremental or retry_skipped
            dry_run: match and resolve without writing

        Returns:
            The run report dict
        """
        return await workflow.execute_activity(
            run_catalog_sync,
            args=[mode, dry_run],
            start_to_close_timeout=timedelta(hours=6),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(minutes=1),
                backoff_coefficient=2.0,
                maximum_attempts=3,
                non_retryable_error_types=["SyncAlreadyRunning"],
            ),
        )

"""
CatalogWorker - distributor feed to shop catalog reconciliation.

Provides:
- SyncOrchestrator: one end-to-end run for one shop
- run_sync / get_sync_progress / get_history: entry points
- CatalogSyncWorkflow: durable runs on Temporal

Usage:
    from catalogworker import run_sync, SyncMode

    report = await run_sync(SyncMode.FULL)
    print(report.summary)
"""

__version__ = "0.1.0"

from .config import WorkerConfig, get_config
from .errors import (
    AuthExpired,
    CatalogSyncError,
    CatalogUnavailable,
    FeedUnavailable,
    MutationFailure,
    PersistenceFailure,
    SyncAlreadyRunning,
)
from .sync import SyncMode, SyncOrchestrator, SyncProgress, SyncReport, SyncRun
from .sync.run import get_history, get_sync_progress, run_sync

__all__ = [
    "__version__",
    # Config
    "WorkerConfig",
    "get_config",
    # Errors
    "CatalogSyncError",
    "FeedUnavailable",
    "CatalogUnavailable",
    "MutationFailure",
    "AuthExpired",
    "PersistenceFailure",
    "SyncAlreadyRunning",
    # Sync
    "SyncMode",
    "SyncOrchestrator",
    "SyncProgress",
    "SyncReport",
    "SyncRun",
    "run_sync",
    "get_sync_progress",
    "get_history",
]

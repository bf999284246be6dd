"""CatalogWorker - unified entry point.

Run one sync now:
    python -m catalogworker sync --mode full
    python -m catalogworker sync --mode retry_skipped --dry-run

Inspect runs:
    python -m catalogworker progress
    python -m catalogworker history --limit 5
    python -m catalogworker stats

Long-running modes:
    python -m catalogworker schedule             # APScheduler cron loop
    python -m catalogworker worker               # Temporal worker
    python -m catalogworker worker --create-schedule
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _cmd_sync(args, config) -> int:
    from .sync.models import SyncMode
    from .sync.run import run_sync

    report = await run_sync(SyncMode(args.mode), dry_run=args.dry_run, config=config)
    _print_json(report.to_dict())
    return 0 if report.success else 1


async def _cmd_progress(args, config) -> int:
    from .sync.run import get_sync_progress

    progress = await get_sync_progress(args.shop, config=config)
    if progress is None:
        print("No sync runs recorded")
        return 0
    _print_json(progress.model_dump(mode="json"))
    return 0


async def _cmd_history(args, config) -> int:
    from .sync.run import get_history

    runs = await get_history(args.shop, limit=args.limit, config=config)
    _print_json([run.model_dump(mode="json") for run in runs])
    return 0


async def _cmd_stats(args, config) -> int:
    from .sync.run import get_catalog_stats

    stats = await get_catalog_stats(config)
    data = stats.model_dump(mode="json")
    data["match_rate"] = stats.match_rate
    _print_json(data)
    return 0


async def _cmd_schedule(args, config) -> int:
    from .sync.scheduler import run_scheduler

    await run_scheduler(config)
    return 0


async def _cmd_worker(args, config) -> int:
    from .worker import create_sync_schedule, get_temporal_client, run_worker

    host = args.temporal_host or config.temporal_host
    if args.create_schedule:
        client = await get_temporal_client(host)
        schedule_id = await create_sync_schedule(client, config, mode=args.mode)
        print(f"Schedule ready: {schedule_id}")
        return 0

    await run_worker(config, temporal_host=host)
    return 0


COMMANDS = {
    "sync": _cmd_sync,
    "progress": _cmd_progress,
    "history": _cmd_history,
    "stats": _cmd_stats,
    "schedule": _cmd_schedule,
    "worker": _cmd_worker,
}

MODES = ["full", "incremental", "retry_skipped"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalogworker",
        description="CatalogWorker - distributor feed to shop catalog sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync now")
    sync_parser.add_argument("--mode", choices=MODES, default="full")
    sync_parser.add_argument(
        "--dry-run", action="store_true", help="Match and resolve without writing"
    )

    progress_parser = subparsers.add_parser("progress", help="Progress of the latest run")
    progress_parser.add_argument("--shop", default=None, help="Shop (default: SHOP_DOMAIN)")

    history_parser = subparsers.add_parser("history", help="Recent runs, newest first")
    history_parser.add_argument("--shop", default=None, help="Shop (default: SHOP_DOMAIN)")
    history_parser.add_argument("--limit", type=int, default=10)

    subparsers.add_parser("stats", help="Feed coverage of the catalog")
    subparsers.add_parser("schedule", help="Run the cron auto sync loop")

    worker_parser = subparsers.add_parser("worker", help="Run the Temporal worker")
    worker_parser.add_argument(
        "--temporal-host",
        default=None,
        help="Temporal server address (default: TEMPORAL_HOST env or localhost:7233)",
    )
    worker_parser.add_argument(
        "--create-schedule",
        action="store_true",
        help="Create the Temporal schedule for periodic syncs and exit",
    )
    worker_parser.add_argument("--mode", choices=MODES, default="full")

    return parser


def main(argv=None):
    """CLI entry point."""
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    from .config import get_config

    config = get_config()
    setup_logging(args.log_level or config.log_level)

    try:
        code = asyncio.run(COMMANDS[args.command](args, config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        code = 0
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()

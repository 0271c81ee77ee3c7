#!/usr/bin/env python3
"""Delete snapshots older than N days for the tracked entity.

Usage:
    python scripts/cleanup_snapshots.py [--days N] [--entity NAME]

Environment:
    DATABASE_URL - Required. PostgreSQL connection string.
    ENTITY       - Default for --entity.

Examples:
    python scripts/cleanup_snapshots.py
    python scripts/cleanup_snapshots.py --days 7
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from core.config import TrackerConfig  # noqa: E402
from core.errors import PersistenceError  # noqa: E402
from core.storage import PostgresConfig, PostgresSnapshotStore  # noqa: E402

logger = logging.getLogger("cleanup_snapshots")

DEFAULT_RETENTION_DAYS = 30


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "N/A"


async def cleanup(store: Any, *, entity: str, days: float) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    logger.info(f"Cleaning up snapshots older than {days} days (before {cutoff.isoformat()}): entity={entity}")

    deleted = await store.delete_older_than(entity=entity, instant=cutoff)
    remaining = await store.count(entity=entity)
    oldest, newest = await store.time_range(entity=entity)

    logger.info(f"Cleanup completed: deleted={deleted} remaining={remaining}")
    logger.info(f"Oldest snapshot: {_iso(oldest)}")
    logger.info(f"Newest snapshot: {_iso(newest)}")
    return deleted


def main() -> int:
    config = TrackerConfig.from_env()

    parser = argparse.ArgumentParser(description="Delete snapshots older than N days.")
    parser.add_argument(
        "--days",
        type=float,
        default=DEFAULT_RETENTION_DAYS,
        help=f"Retention window in days (default: {DEFAULT_RETENTION_DAYS})",
    )
    parser.add_argument("--entity", default=config.entity, help=f"Entity (default: {config.entity})")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if not config.database_url:
        logger.error("DATABASE_URL environment variable is required")
        return 1
    if args.days <= 0:
        logger.error("--days must be positive")
        return 1

    store = PostgresSnapshotStore(config=PostgresConfig(database_url=config.database_url))

    async def _run() -> None:
        try:
            await cleanup(store, entity=args.entity.lower(), days=args.days)
        finally:
            await store.close()

    try:
        asyncio.run(_run())
    except PersistenceError as exc:
        logger.error(f"Cleanup failed: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

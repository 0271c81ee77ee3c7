#!/usr/bin/env python3
"""Print snapshot history statistics for the tracked entity.

Usage:
    python scripts/db_stats.py [--entity NAME]

Environment:
    DATABASE_URL  - Required. PostgreSQL connection string.
    ENTITY        - Default for --entity.
    MAX_SNAPSHOTS - Retention ceiling used for utilization.
    MIN_SNAPSHOTS - Retention floor.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from core.balances.retention import RetentionManager  # noqa: E402
from core.config import TrackerConfig  # noqa: E402
from core.storage import PostgresConfig, PostgresSnapshotStore  # noqa: E402


async def collect_stats(store: Any, retention: RetentionManager, *, entity: str) -> dict[str, Any]:
    """Count, time range, age and retention utilization for one entity."""
    count = await store.count(entity=entity)
    oldest, newest = await store.time_range(entity=entity)

    age_days = None
    duration_days = None
    if oldest is not None:
        age_days = round((datetime.now(timezone.utc) - oldest).total_seconds() / 86400, 1)
    if oldest is not None and newest is not None:
        duration_days = round((newest - oldest).total_seconds() / 86400, 1)

    return {
        "entity": entity,
        "snapshots": count,
        "oldest": oldest.isoformat() if oldest else None,
        "newest": newest.isoformat() if newest else None,
        "duration_days": duration_days,
        "age_days": age_days,
        "retention": await retention.stats(entity),
    }


def _print_stats(stats: dict[str, Any]) -> None:
    print("Database Statistics\n")
    print(f"Entity:    {stats['entity']}")
    print(f"Snapshots: {stats['snapshots']:,}")
    print(f"Oldest:    {stats['oldest'] or 'N/A'}")
    print(f"Newest:    {stats['newest'] or 'N/A'}")
    if stats["duration_days"] is not None:
        print(f"Duration:  {stats['duration_days']} days")

    retention = stats["retention"]
    if retention:
        print(
            f"\nRetention: {retention['current']}/{retention['max']} "
            f"({retention['utilization_pct']}%), floor {retention['min']}"
        )
        if retention["needs_cleanup"]:
            print("  Above ceiling: the next balance tick will trim it")
        elif retention["near_limit"]:
            print("  Near ceiling")

    age = stats["age_days"]
    if age is not None and age > 30:
        print(f"\nData older than 30 days ({age} days)")
        print("Consider running: python scripts/cleanup_snapshots.py --days 30")


def main() -> int:
    config = TrackerConfig.from_env()

    parser = argparse.ArgumentParser(description="Show snapshot history statistics.")
    parser.add_argument("--entity", default=config.entity, help=f"Entity (default: {config.entity})")
    args = parser.parse_args()

    if not config.database_url:
        print("Error: DATABASE_URL environment variable is required", file=sys.stderr)
        return 1

    store = PostgresSnapshotStore(config=PostgresConfig(database_url=config.database_url))
    retention = RetentionManager(store, max_snapshots=config.max_snapshots, min_snapshots=config.min_snapshots)

    async def _run() -> dict[str, Any]:
        try:
            return await collect_stats(store, retention, entity=args.entity.lower())
        finally:
            await store.close()

    _print_stats(asyncio.run(_run()))
    return 0


if __name__ == "__main__":
    sys.exit(main())

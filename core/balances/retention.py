"""Bounded retention of persisted snapshots, per entity.

Two tiers:
- soft: trims to `max_snapshots` once per primary tick, before the new write
- emergency: trims to the `min_snapshots` floor after a storage-full write failure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from core.persistence.interfaces import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionResult:
    cleaned: bool
    count: int
    deleted: int = 0
    error: Optional[str] = None

    @property
    def remaining(self) -> int:
        return self.count - self.deleted


class RetentionManager:
    """Keeps each entity's snapshot count between a floor and a ceiling."""

    def __init__(self, store: SnapshotStore, *, max_snapshots: int = 100, min_snapshots: int = 10) -> None:
        if min_snapshots < 0 or min_snapshots >= max_snapshots:
            raise ValueError("min_snapshots must be >= 0 and lower than max_snapshots")
        self._store = store
        self.max_snapshots = max_snapshots
        self.min_snapshots = min_snapshots
        logger.info(f"Retention policy initialized: max={max_snapshots} min={min_snapshots}")

    async def enforce_soft_policy(self, entity: str) -> RetentionResult:
        """Delete the oldest snapshots above the ceiling.

        Never raises: a failing check is logged and reported in the result so
        the tick can carry on.
        """
        try:
            count = await self._store.count(entity=entity)
            if count <= self.max_snapshots:
                logger.debug(f"Retention policy check OK: entity={entity} current={count} max={self.max_snapshots}")
                return RetentionResult(cleaned=False, count=count)

            excess = count - self.max_snapshots
            logger.info(f"Retention policy triggered: entity={entity} current={count} will_delete={excess}")
            deleted = await self._store.delete_oldest(entity=entity, n=excess)
            logger.info(f"Retention cleanup completed: entity={entity} deleted={deleted} remaining={count - deleted}")
            return RetentionResult(cleaned=True, count=count, deleted=deleted)
        except Exception as exc:
            logger.error(f"Retention policy enforcement failed: entity={entity} error={exc}")
            return RetentionResult(cleaned=False, count=0, error=str(exc))

    async def enforce_emergency_policy(self, entity: str) -> RetentionResult:
        """Delete everything above the floor. Failures propagate to the caller."""
        count = await self._store.count(entity=entity)
        excess = max(0, count - self.min_snapshots)
        if excess == 0:
            logger.warning(f"Emergency cleanup: nothing above the floor: entity={entity} count={count}")
            return RetentionResult(cleaned=False, count=count)

        logger.warning(
            f"Emergency cleanup triggered: entity={entity} current={count} "
            f"will_delete={excess} will_keep={self.min_snapshots}"
        )
        deleted = await self._store.delete_oldest(entity=entity, n=excess)
        logger.info(f"Emergency cleanup completed: entity={entity} deleted={deleted} remaining={count - deleted}")
        return RetentionResult(cleaned=True, count=count, deleted=deleted)

    async def stats(self, entity: str) -> Optional[dict[str, Any]]:
        """Utilization of the ceiling for dashboards; None if the store is unavailable."""
        try:
            count = await self._store.count(entity=entity)
        except Exception as exc:
            logger.error(f"Failed to get retention stats: entity={entity} error={exc}")
            return None

        return {
            "current": count,
            "max": self.max_snapshots,
            "min": self.min_snapshots,
            "utilization_pct": round(count / self.max_snapshots * 100, 1),
            "needs_cleanup": count > self.max_snapshots,
            "near_limit": count > self.max_snapshots * 0.8,
        }

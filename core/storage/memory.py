from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Optional

from core.errors import CapacityError
from core.persistence.interfaces import SnapshotStore
from core.types import HoldingsMap, Snapshot


class InMemorySnapshotStore(SnapshotStore):
    """Process-local snapshot store.

    Used when no DATABASE_URL is configured and in tests. `capacity` caps the
    total number of snapshots across all entities; writes beyond it raise
    CapacityError the same way a full database would.
    """

    def __init__(self, *, capacity: Optional[int] = None) -> None:
        self._snapshots: dict[str, list[Snapshot]] = defaultdict(list)
        self._capacity = capacity

    def _ordered(self, entity: str) -> list[Snapshot]:
        return sorted(self._snapshots.get(entity, []), key=lambda s: s.timestamp)

    async def find_latest(self, *, entity: str) -> Optional[dict[str, float]]:
        ordered = self._ordered(entity)
        return dict(ordered[-1].holdings) if ordered else None

    async def find_at_or_before(self, *, entity: str, instant: datetime) -> Optional[dict[str, float]]:
        candidates = [s for s in self._ordered(entity) if s.timestamp <= instant]
        return dict(candidates[-1].holdings) if candidates else None

    async def create(self, *, entity: str, instant: datetime, holdings: HoldingsMap) -> None:
        total = sum(len(items) for items in self._snapshots.values())
        if self._capacity is not None and total >= self._capacity:
            raise CapacityError(f"snapshot store size limit reached ({self._capacity})")
        self._snapshots[entity].append(Snapshot(entity=entity, timestamp=instant, holdings=dict(holdings)))

    async def count(self, *, entity: str) -> int:
        return len(self._snapshots.get(entity, []))

    async def delete_oldest(self, *, entity: str, n: int) -> int:
        if n <= 0:
            return 0
        ordered = self._ordered(entity)
        doomed = ordered[:n]
        self._snapshots[entity] = ordered[n:]
        return len(doomed)

    async def delete_older_than(self, *, entity: str, instant: datetime) -> int:
        ordered = self._ordered(entity)
        kept = [s for s in ordered if s.timestamp >= instant]
        self._snapshots[entity] = kept
        return len(ordered) - len(kept)

    async def time_range(self, *, entity: str) -> tuple[Optional[datetime], Optional[datetime]]:
        ordered = self._ordered(entity)
        if not ordered:
            return None, None
        return ordered[0].timestamp, ordered[-1].timestamp

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

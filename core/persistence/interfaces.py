from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from core.types import HoldingsMap


class SnapshotStore(Protocol):
    """Persisted holdings history, scoped per entity."""

    async def find_latest(self, *, entity: str) -> Optional[dict[str, float]]:
        """Holdings of the most recent snapshot, or None."""

    async def find_at_or_before(self, *, entity: str, instant: datetime) -> Optional[dict[str, float]]:
        """Holdings of the newest snapshot taken at or before `instant`, or None."""

    async def create(self, *, entity: str, instant: datetime, holdings: HoldingsMap) -> None:
        """Persist a snapshot. Raises CapacityError on storage pressure, PersistenceError otherwise."""

    async def count(self, *, entity: str) -> int:
        """Number of persisted snapshots for the entity."""

    async def delete_oldest(self, *, entity: str, n: int) -> int:
        """Delete up to `n` oldest snapshots (holdings first) and return how many went."""

    async def delete_older_than(self, *, entity: str, instant: datetime) -> int:
        """Delete every snapshot taken strictly before `instant` and return how many went."""

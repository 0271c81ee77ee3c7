"""Async CRUD operations for holdings history.

Uses asyncpg/SQLAlchemy async sessions. Callers own the session and the
error translation; these functions only speak SQL.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.snapshots import HoldingRow, SnapshotRow


def _holdings_map(snapshot: SnapshotRow | None) -> dict[str, float] | None:
    if snapshot is None:
        return None
    return {holding.symbol: float(holding.amount or 0) for holding in snapshot.holdings}


async def get_latest(db: AsyncSession, entity: str) -> dict[str, float] | None:
    """Holdings of the newest snapshot for an entity."""
    result = await db.execute(
        select(SnapshotRow).where(SnapshotRow.entity == entity).order_by(SnapshotRow.ts.desc()).limit(1)
    )
    return _holdings_map(result.scalars().first())


async def get_at_or_before(db: AsyncSession, entity: str, instant: datetime) -> dict[str, float] | None:
    """Holdings of the newest snapshot taken at or before `instant`."""
    result = await db.execute(
        select(SnapshotRow)
        .where(SnapshotRow.entity == entity, SnapshotRow.ts <= instant)
        .order_by(SnapshotRow.ts.desc())
        .limit(1)
    )
    return _holdings_map(result.scalars().first())


async def create_snapshot(
    db: AsyncSession,
    entity: str,
    instant: datetime,
    holdings: Mapping[str, float],
) -> SnapshotRow:
    """Insert a snapshot with one holdings row per symbol."""
    snapshot = SnapshotRow(
        entity=entity,
        ts=instant,
        holdings=[HoldingRow(symbol=symbol, amount=float(amount or 0)) for symbol, amount in holdings.items()],
    )
    db.add(snapshot)
    await db.commit()
    return snapshot


async def count_snapshots(db: AsyncSession, entity: str) -> int:
    result = await db.execute(select(func.count()).select_from(SnapshotRow).where(SnapshotRow.entity == entity))
    return int(result.scalar() or 0)


async def _delete_ids(db: AsyncSession, ids: list[int]) -> int:
    if not ids:
        return 0
    await db.execute(delete(HoldingRow).where(HoldingRow.snapshot_id.in_(ids)))
    result = await db.execute(delete(SnapshotRow).where(SnapshotRow.id.in_(ids)))
    await db.commit()
    return int(result.rowcount or 0)


async def delete_oldest(db: AsyncSession, entity: str, n: int) -> int:
    """Delete the `n` oldest snapshots for an entity, children first."""
    if n <= 0:
        return 0
    result = await db.execute(
        select(SnapshotRow.id).where(SnapshotRow.entity == entity).order_by(SnapshotRow.ts.asc()).limit(n)
    )
    return await _delete_ids(db, list(result.scalars().all()))


async def delete_older_than(db: AsyncSession, entity: str, instant: datetime) -> int:
    """Delete every snapshot for an entity taken strictly before `instant`."""
    result = await db.execute(select(SnapshotRow.id).where(SnapshotRow.entity == entity, SnapshotRow.ts < instant))
    return await _delete_ids(db, list(result.scalars().all()))


async def get_time_range(db: AsyncSession, entity: str) -> tuple[datetime | None, datetime | None]:
    """Oldest and newest snapshot timestamps for an entity."""
    result = await db.execute(
        select(func.min(SnapshotRow.ts), func.max(SnapshotRow.ts)).where(SnapshotRow.entity == entity)
    )
    row = result.one()
    return row[0], row[1]

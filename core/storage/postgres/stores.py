from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from core.errors import CapacityError, PersistenceError
from core.persistence.interfaces import SnapshotStore
from core.storage.postgres.config import PostgresConfig, pg_ssl_connect_args_from_env
from core.types import HoldingsMap
from db.crud import snapshots as snapshot_crud

logger = logging.getLogger(__name__)

T = TypeVar("T")

# asyncpg raises socket and timeout errors directly when the server is unreachable.
STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)

# Postgres SQLSTATE for disk_full; hosted providers also report "size limit".
DISK_FULL_SQLSTATE = "53100"


def is_capacity_error(exc: BaseException) -> bool:
    """True when a driver error signals that storage is out of space."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == DISK_FULL_SQLSTATE:
        return True
    message = str(exc).lower()
    return DISK_FULL_SQLSTATE in message or "size limit" in message


class PostgresSnapshotStore(SnapshotStore):
    """Snapshot history backed by PostgreSQL through async SQLAlchemy."""

    def __init__(self, *, config: PostgresConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._session_factory: Any | None = None

    def _get_session_factory(self) -> Any:
        if self._session_factory is None:
            # Do not log the URL (it may contain secrets).
            self._engine = create_async_engine(
                self._config.async_url,
                echo=False,
                pool_pre_ping=True,
                connect_args={"timeout": self._config.connect_timeout_s, **pg_ssl_connect_args_from_env()},
            )
            self._session_factory = sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        return self._session_factory

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        factory = self._get_session_factory()
        async with factory() as session:
            return await operation(session)

    async def _read(self, label: str, entity: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> Optional[T]:
        try:
            return await self._run(operation)
        except STORE_ERRORS as exc:
            logger.error(f"Failed to {label}: entity={entity} error={type(exc).__name__}: {exc}")
            return None

    async def _write(self, label: str, entity: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            return await self._run(operation)
        except STORE_ERRORS as exc:
            logger.error(f"Failed to {label}: entity={entity} error={type(exc).__name__}: {exc}")
            if is_capacity_error(exc):
                raise CapacityError(str(exc)) from exc
            raise PersistenceError(str(exc)) from exc

    async def find_latest(self, *, entity: str) -> Optional[dict[str, float]]:
        return await self._read(
            "find latest snapshot",
            entity,
            lambda db: snapshot_crud.get_latest(db, entity),
        )

    async def find_at_or_before(self, *, entity: str, instant: datetime) -> Optional[dict[str, float]]:
        return await self._read(
            "find snapshot at or before date",
            entity,
            lambda db: snapshot_crud.get_at_or_before(db, entity, instant),
        )

    async def create(self, *, entity: str, instant: datetime, holdings: HoldingsMap) -> None:
        await self._write(
            "create snapshot",
            entity,
            lambda db: snapshot_crud.create_snapshot(db, entity, instant, holdings),
        )
        logger.debug(f"Created snapshot: entity={entity} ts={instant.isoformat()} symbols={len(holdings)}")

    async def count(self, *, entity: str) -> int:
        return await self._write("count snapshots", entity, lambda db: snapshot_crud.count_snapshots(db, entity))

    async def delete_oldest(self, *, entity: str, n: int) -> int:
        deleted = await self._write(
            "delete oldest snapshots",
            entity,
            lambda db: snapshot_crud.delete_oldest(db, entity, n),
        )
        logger.info(f"Deleted oldest snapshots: entity={entity} count={deleted}")
        return deleted

    async def delete_older_than(self, *, entity: str, instant: datetime) -> int:
        deleted = await self._write(
            "delete old snapshots",
            entity,
            lambda db: snapshot_crud.delete_older_than(db, entity, instant),
        )
        logger.info(f"Deleted snapshots older than {instant.isoformat()}: entity={entity} count={deleted}")
        return deleted

    async def time_range(self, *, entity: str) -> tuple[Optional[datetime], Optional[datetime]]:
        return await self._write("read snapshot time range", entity, lambda db: snapshot_crud.get_time_range(db, entity))

    async def ping(self) -> bool:
        """Cheap connectivity check for the health endpoint."""
        try:
            await self._run(lambda db: snapshot_crud.count_snapshots(db, ""))
            return True
        except STORE_ERRORS:
            return False

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

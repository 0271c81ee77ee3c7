"""Tests for PostgresSnapshotStore error translation.

No database is needed: the session runner is patched.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeClock, StubBalanceSource, StubTransferSource
from sqlalchemy.exc import OperationalError

from core.balances.baseline import BaselineSelector
from core.balances.retention import RetentionManager
from core.balances.service import BalanceService
from core.balances.transfers import TransferAggregator
from core.errors import CapacityError, PersistenceError
from core.scheduler import TickScheduler
from core.storage.postgres.config import PostgresConfig, normalize_database_url
from core.storage.postgres.stores import PostgresSnapshotStore, is_capacity_error

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeDriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _db_error(message: str, sqlstate: str | None = None) -> OperationalError:
    return OperationalError("INSERT INTO snapshots ...", {}, FakeDriverError(message, sqlstate))


def _store() -> PostgresSnapshotStore:
    return PostgresSnapshotStore(config=PostgresConfig(database_url="postgresql://fake"))


def test_is_capacity_error_by_sqlstate_and_message() -> None:
    assert is_capacity_error(_db_error("could not extend file", sqlstate="53100")) is True
    assert is_capacity_error(_db_error("project size limit (512 MB) has been exceeded")) is True
    assert is_capacity_error(_db_error("connection refused")) is False


@pytest.mark.asyncio
async def test_create_translates_disk_full_to_capacity_error() -> None:
    store = _store()
    with patch.object(store, "_run", AsyncMock(side_effect=_db_error("disk full", sqlstate="53100"))):
        with pytest.raises(CapacityError):
            await store.create(entity="wintermute", instant=T0, holdings={"BTC": 1.0})


@pytest.mark.asyncio
async def test_create_translates_other_errors_to_persistence_error() -> None:
    store = _store()
    with patch.object(store, "_run", AsyncMock(side_effect=_db_error("connection refused"))):
        with pytest.raises(PersistenceError) as exc_info:
            await store.create(entity="wintermute", instant=T0, holdings={"BTC": 1.0})

    assert not isinstance(exc_info.value, CapacityError)


@pytest.mark.asyncio
async def test_reads_degrade_to_none_on_failure() -> None:
    store = _store()
    with patch.object(store, "_run", AsyncMock(side_effect=_db_error("connection refused"))):
        assert await store.find_latest(entity="wintermute") is None
        assert await store.find_at_or_before(entity="wintermute", instant=T0) is None


@pytest.mark.asyncio
async def test_ping_false_when_database_unreachable() -> None:
    store = _store()
    with patch.object(store, "_run", AsyncMock(side_effect=_db_error("connection refused"))):
        assert await store.ping() is False


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgresql://u:p@h:5432/db", "postgresql+asyncpg://u:p@h:5432/db"),
        ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql+psycopg2://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("u:p@h:5432/db", "postgresql+asyncpg://u:p@h:5432/db"),
    ],
)
def test_normalize_database_url(raw, expected) -> None:
    assert normalize_database_url(raw) == expected


def test_normalize_database_url_rejects_missing_database() -> None:
    with pytest.raises(ValueError):
        normalize_database_url("localhost:5432")


@pytest.mark.asyncio
async def test_unreachable_server_reads_degrade_to_none() -> None:
    store = _store()
    refused = ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 1)")
    with patch.object(store, "_run", AsyncMock(side_effect=refused)):
        assert await store.find_latest(entity="wintermute") is None
        assert await store.find_at_or_before(entity="wintermute", instant=T0) is None
        assert await store.ping() is False


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ConnectionRefusedError(111, "refused"), OSError("no route"), asyncio.TimeoutError()])
async def test_connection_failures_on_write_become_persistence_error(error) -> None:
    store = _store()
    with patch.object(store, "_run", AsyncMock(side_effect=error)):
        with pytest.raises(PersistenceError) as exc_info:
            await store.create(entity="wintermute", instant=T0, holdings={"BTC": 1.0})

    assert not isinstance(exc_info.value, CapacityError)


@pytest.mark.asyncio
async def test_tick_publishes_when_database_is_unreachable() -> None:
    store = _store()
    source = StubBalanceSource([{"symbol": "BTC", "amount": 2}])
    service = BalanceService(
        entity="wintermute",
        source=source,
        store=store,
        selector=BaselineSelector(store),
        retention=RetentionManager(store, max_snapshots=5, min_snapshots=1),
    )
    scheduler = TickScheduler(
        balances=service,
        transfers=TransferAggregator(StubTransferSource(), entity="wintermute"),
        balances_interval_ms=300_000,
        transfers_interval_ms=30_000,
        clock=FakeClock(),
    )

    with patch.object(store, "_run", AsyncMock(side_effect=ConnectionRefusedError(111, "refused"))):
        assert await scheduler.run_primary_tick() is True

    assert scheduler.current is not None
    assert scheduler.current.baseline == "none"
    assert [row.symbol for row in scheduler.current.rows] == ["BTC"]

"""Tests for the primary reconciliation pipeline."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from conftest import BASE_MS, StubBalanceSource

from core.balances.baseline import BaselineSelector
from core.balances.retention import RetentionManager
from core.balances.service import BalanceService
from core.errors import CapacityError, EmptyExtractionError, UpstreamHttpError
from core.storage.memory import InMemorySnapshotStore


def _service(source, store, *, retention=True, max_snapshots=5, min_snapshots=2) -> BalanceService:
    return BalanceService(
        entity="wintermute",
        source=source,
        store=store,
        selector=BaselineSelector(store),
        retention=RetentionManager(store, max_snapshots=max_snapshots, min_snapshots=min_snapshots)
        if retention
        else None,
    )


@pytest.mark.asyncio
async def test_reconcile_diffs_against_previous_tick(store) -> None:
    source = StubBalanceSource([{"symbol": "BTC", "amount": 10}], [{"symbol": "BTC", "amount": 12}])
    service = _service(source, store)

    first = await service.reconcile(BASE_MS)
    await service.persist(first)
    service.commit(first)
    second = await service.reconcile(BASE_MS + 60_000)

    assert first.baseline.source == "none"
    assert first.rows[0].pct_change is None
    assert second.baseline.source == "previous-tick"
    assert second.rows[0].pct_change == pytest.approx(20.0)
    assert second.timestamp_iso == "2024-01-01T00:01:00Z"


@pytest.mark.asyncio
async def test_reconcile_does_not_persist_or_cache(store) -> None:
    service = _service(StubBalanceSource([{"symbol": "BTC", "amount": 1}]), store)

    await service.reconcile(BASE_MS)

    assert await store.count(entity="wintermute") == 0
    assert service._selector.previous is None


@pytest.mark.asyncio
async def test_reconcile_raises_on_empty_extraction(store) -> None:
    service = _service(StubBalanceSource({"unexpected": "shape"}), store)

    with pytest.raises(EmptyExtractionError):
        await service.reconcile(BASE_MS)
    assert service.stage == "normalize"


@pytest.mark.asyncio
async def test_reconcile_propagates_upstream_errors_with_stage(store) -> None:
    service = _service(StubBalanceSource(UpstreamHttpError(503, "unavailable")), store)

    with pytest.raises(UpstreamHttpError) as exc_info:
        await service.reconcile(BASE_MS)
    assert exc_info.value.status == 503
    assert service.stage == "fetch"


@pytest.mark.asyncio
async def test_reconcile_runs_soft_retention_first(store) -> None:
    base = datetime(2023, 12, 31, tzinfo=timezone.utc)
    for i in range(8):
        await store.create(entity="wintermute", instant=base + timedelta(minutes=i), holdings={"BTC": 1.0})
    service = _service(StubBalanceSource([{"symbol": "BTC", "amount": 1}]), store, max_snapshots=5)

    await service.reconcile(BASE_MS)

    assert await store.count(entity="wintermute") == 5


@pytest.mark.asyncio
async def test_persist_retries_once_after_emergency_cleanup() -> None:
    store = InMemorySnapshotStore(capacity=6)
    base = datetime(2023, 12, 31, tzinfo=timezone.utc)
    for i in range(6):
        await store.create(entity="wintermute", instant=base + timedelta(minutes=i), holdings={"BTC": 1.0})
    service = _service(StubBalanceSource([{"symbol": "BTC", "amount": 2}]), store, max_snapshots=10, min_snapshots=2)

    rec = await service.reconcile(BASE_MS)
    await service.persist(rec)

    # Floor of 2 plus the retried write.
    assert await store.count(entity="wintermute") == 3
    assert await store.find_latest(entity="wintermute") == {"BTC": 2.0}


@pytest.mark.asyncio
async def test_persist_second_capacity_failure_propagates() -> None:
    store = InMemorySnapshotStore(capacity=1)
    await store.create(entity="other", instant=datetime(2023, 1, 1, tzinfo=timezone.utc), holdings={"X": 1.0})
    service = _service(StubBalanceSource([{"symbol": "BTC", "amount": 2}]), store)

    rec = await service.reconcile(BASE_MS)
    with pytest.raises(CapacityError):
        await service.persist(rec)


@pytest.mark.asyncio
async def test_persist_without_retention_reraises_capacity() -> None:
    store = AsyncMock()
    store.create.side_effect = CapacityError("full")
    store.find_latest.return_value = None
    store.find_at_or_before.return_value = None
    service = _service(StubBalanceSource([{"symbol": "BTC", "amount": 2}]), store, retention=False)

    rec = await service.reconcile(BASE_MS)
    with pytest.raises(CapacityError):
        await service.persist(rec)
    assert store.create.await_count == 1


@pytest.mark.asyncio
async def test_initialize_warms_up_from_store(store) -> None:
    await store.create(entity="wintermute", instant=datetime(2023, 12, 31, tzinfo=timezone.utc), holdings={"BTC": 8.0})
    service = _service(StubBalanceSource([{"symbol": "BTC", "amount": 10}]), store)

    await service.initialize()
    rec = await service.reconcile(BASE_MS)

    assert rec.baseline.source == "previous-tick"
    assert rec.rows[0].pct_change == pytest.approx(25.0)

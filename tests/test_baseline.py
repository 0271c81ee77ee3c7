"""Tests for baseline tier selection."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from core.balances.baseline import BaselineSelector
from core.storage.memory import InMemorySnapshotStore

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


async def _seed_history(store: InMemorySnapshotStore) -> None:
    await store.create(entity="wintermute", instant=NOW - timedelta(minutes=60), holdings={"BTC": 60.0})
    await store.create(entity="wintermute", instant=NOW - timedelta(minutes=30), holdings={"BTC": 30.0})
    await store.create(entity="wintermute", instant=NOW - timedelta(minutes=5), holdings={"BTC": 5.0})


@pytest.mark.asyncio
async def test_forced_lookback_uses_snapshot_at_or_before_window(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store, force_lookback_min=45)
    selector.remember({"BTC": 1.0})

    baseline = await selector.select("wintermute", NOW_MS)

    assert baseline.source == "forced-lookback"
    assert baseline.holdings == {"BTC": 60.0}


@pytest.mark.asyncio
async def test_forced_lookback_dominates_older_window(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store, force_lookback_min=45, older_baseline_min=10)

    baseline = await selector.select("wintermute", NOW_MS)

    assert baseline.source == "forced-lookback"
    assert baseline.holdings == {"BTC": 60.0}


@pytest.mark.asyncio
async def test_older_window_used_when_no_forced_lookback(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store, older_baseline_min=10)

    baseline = await selector.select("wintermute", NOW_MS)

    assert baseline.source == "older-baseline"
    assert baseline.holdings == {"BTC": 30.0}


@pytest.mark.asyncio
async def test_lookback_miss_falls_through_to_previous_tick(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store, force_lookback_min=24 * 60)
    selector.remember({"BTC": 7.0})

    baseline = await selector.select("wintermute", NOW_MS)

    assert baseline.source == "previous-tick"
    assert baseline.holdings == {"BTC": 7.0}


@pytest.mark.asyncio
async def test_latest_snapshot_when_no_previous_tick(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store)

    baseline = await selector.select("wintermute", NOW_MS)

    assert baseline.source == "latest-snapshot"
    assert baseline.holdings == {"BTC": 5.0}


@pytest.mark.asyncio
async def test_source_prior_when_store_is_empty(store) -> None:
    selector = BaselineSelector(store)

    baseline = await selector.select("wintermute", NOW_MS, prior_from_source={"ETH": 3.0})

    assert baseline.source == "source-24h"
    assert baseline.holdings == {"ETH": 3.0}


@pytest.mark.asyncio
async def test_no_baseline_at_all(store) -> None:
    selector = BaselineSelector(store)

    baseline = await selector.select("wintermute", NOW_MS, prior_from_source={})

    assert baseline.source == "none"
    assert baseline.holdings is None


@pytest.mark.asyncio
async def test_empty_previous_tick_is_not_usable(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store)
    selector.remember({})

    baseline = await selector.select("wintermute", NOW_MS)

    assert baseline.source == "latest-snapshot"


@pytest.mark.asyncio
async def test_remember_copies_holdings(store) -> None:
    selector = BaselineSelector(store)
    holdings = {"BTC": 1.0}
    selector.remember(holdings)
    holdings["BTC"] = 99.0

    assert selector.previous == {"BTC": 1.0}


@pytest.mark.asyncio
async def test_warm_up_primes_previous_tick(store) -> None:
    await _seed_history(store)
    selector = BaselineSelector(store)

    assert await selector.warm_up("wintermute") is True
    assert selector.previous == {"BTC": 5.0}


@pytest.mark.asyncio
async def test_warm_up_failure_is_ignored() -> None:
    store = AsyncMock()
    store.find_latest.side_effect = RuntimeError("db down")
    selector = BaselineSelector(store)

    assert await selector.warm_up("wintermute") is False
    assert selector.previous is None

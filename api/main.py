"""FastAPI application for the balance tracker.

This module provides the HTTP and WebSocket surface:
- GET /api/latest - Latest balance-change result (404 until the first tick)
- GET /api/health - Snapshot store, scheduler and API status
- WS  /ws/updates - Pushes {"type": "update", "data": ...} after every tick

The tick scheduler is started in the application lifespan and stopped before
the upstream client and snapshot store are closed.

Requirements:
- DATABASE_URL is optional; without it snapshots are kept in memory
- No authentication (local network only)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from api import state
from api.routes import data, health, ws
from api.websocket.manager import ResultBroadcaster, get_result_broadcaster
from core.balances import BalanceService, BaselineSelector, RetentionManager, TransferAggregator
from core.config import TrackerConfig
from core.scheduler import TickScheduler
from core.storage import create_snapshot_store
from core.upstream import UpstreamClient

logger = logging.getLogger(__name__)


def build_scheduler(
    config: TrackerConfig,
    *,
    store: Any,
    client: Any,
    broadcaster: Optional[ResultBroadcaster] = None,
) -> tuple[TickScheduler, RetentionManager]:
    """Wire the balance pipeline, transfer aggregator and scheduler for one entity."""
    retention = RetentionManager(store, max_snapshots=config.max_snapshots, min_snapshots=config.min_snapshots)
    selector = BaselineSelector(
        store,
        force_lookback_min=config.force_lookback_min,
        older_baseline_min=config.older_baseline_min,
    )
    service = BalanceService(
        entity=config.entity,
        source=client,
        store=store,
        selector=selector,
        retention=retention,
    )
    aggregator = TransferAggregator(client, entity=config.entity, top_n=config.transfer_top_n)
    scheduler = TickScheduler(
        balances=service,
        transfers=aggregator,
        balances_interval_ms=config.balances_interval_ms,
        transfers_interval_ms=config.transfers_interval_ms,
        transfer_fallback_lookback_ms=int(config.transfer_fallback_lookback_min * 60 * 1000),
        broadcaster=broadcaster,
    )
    return scheduler, retention


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    config = TrackerConfig.from_env()
    config.validate()

    store = create_snapshot_store(config)
    client = UpstreamClient(config.upstream, entity=config.entity)
    logger.info(f"Upstream headers configured: {client.header_status()}")

    scheduler, retention = build_scheduler(config, store=store, client=client, broadcaster=get_result_broadcaster())
    state.set_config(config)
    state.set_store(store)
    state.set_upstream(client)
    state.set_retention(retention)
    state.set_scheduler(scheduler)

    await scheduler.start()
    try:
        yield
    finally:
        # Stop ticking before the resources a tick may still be using go away.
        await scheduler.stop()
        await client.close()
        await store.close()
        state.set_scheduler(None)
        state.set_upstream(None)
        state.set_retention(None)
        state.set_store(None)
        state.set_config(None)
        logger.info("Shutdown complete")


app = FastAPI(
    title="Balance Watch API",
    description="Periodic balance-change tracking for a single entity",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(data.router)
app.include_router(health.router)
app.include_router(ws.router)


@app.exception_handler(Exception)
async def global_exception_handler(_request, exc):
    """Global exception handler to ensure consistent error responses."""
    logger.error(f"Unhandled API error: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )

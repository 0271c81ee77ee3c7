"""Health check API endpoint."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from api.state import get_config, get_retention, get_scheduler, get_store, get_upstream
from api.websocket.manager import get_result_broadcaster

router = APIRouter(prefix="/api/health", tags=["health"])

# Track API start time
_api_start_time = time.time()


class ComponentHealth(BaseModel):
    """Health status for a single component."""

    status: Literal["ok", "degraded", "error"]
    message: str
    latency_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None


async def _check_database() -> ComponentHealth:
    store = get_store()
    if store is None:
        return ComponentHealth(status="error", message="Snapshot store not initialized")

    start = time.perf_counter()
    try:
        reachable = await store.ping()
    except Exception as exc:
        return ComponentHealth(status="error", message=f"Snapshot store check failed: {type(exc).__name__}")
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    if not reachable:
        return ComponentHealth(status="error", message="Snapshot store unreachable", latency_ms=latency_ms)

    details = None
    retention = get_retention()
    scheduler = get_scheduler()
    if retention is not None and scheduler is not None:
        details = await retention.stats(scheduler.entity)

    status: Literal["ok", "degraded", "error"] = "ok"
    message = "Snapshot store reachable"
    if details and details.get("near_limit"):
        status = "degraded"
        message = "Snapshot count near retention ceiling"
    return ComponentHealth(status=status, message=message, latency_ms=latency_ms, details=details)


def _check_scheduler() -> ComponentHealth:
    scheduler = get_scheduler()
    if scheduler is None:
        return ComponentHealth(status="error", message="Scheduler not initialized")

    current = scheduler.current
    if current is None:
        return ComponentHealth(
            status="degraded",
            message="Waiting for first balance tick",
            details={"entity": scheduler.entity, "running": scheduler.is_running},
        )

    return ComponentHealth(
        status="ok" if scheduler.is_running else "degraded",
        message="Ticking" if scheduler.is_running else "Scheduler stopped",
        details={
            "entity": scheduler.entity,
            "running": scheduler.is_running,
            "generatedAtIso": current.generated_at_iso,
            "nextPrimaryTickAtMs": current.next_primary_tick_at_ms,
            "hasSupplementaryRows": current.supplementary_rows is not None,
        },
    )


def _tracker_settings() -> dict[str, Any]:
    config = get_config()
    if config is None:
        return {}
    scheduler = get_scheduler()
    upstream = get_upstream()
    return {
        "entity": config.entity,
        "now": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "intervalMs": config.balances_interval_ms,
        "transferIntervalMs": config.transfers_interval_ms,
        "forceLookbackMin": config.force_lookback_min,
        "olderBaselineMinutes": config.older_baseline_min,
        "storage": "postgres" if config.database_url else "memory",
        "nextPrimaryTickAtMs": scheduler.next_primary_tick_at_ms if scheduler is not None else 0,
        "headers": upstream.header_status() if upstream is not None else {},
    }


@router.get("")
async def health_check():
    """Get system health status.

    Returns health status for:
    - Tracker settings (entity, intervals, lookback windows, storage backend)
    - Snapshot store connectivity, latency and retention utilization
    - Tick scheduler state
    - API uptime and live subscriber count
    """
    checks = {
        "database": await _check_database(),
        "scheduler": _check_scheduler(),
    }

    result: dict[str, Any] = {
        "api": {
            "status": "ok",
            "uptime_seconds": int(time.time() - _api_start_time),
            "subscribers": get_result_broadcaster().subscriber_count,
            "message": "API running",
        },
        "tracker": _tracker_settings(),
    }
    for component, status in checks.items():
        result[component] = status.model_dump(exclude_none=True)

    # Overall status is worst of all components
    all_statuses = [result["api"]["status"]] + [v.status for v in checks.values()]
    if "error" in all_statuses:
        overall_status = "error"
    elif "degraded" in all_statuses:
        overall_status = "degraded"
    else:
        overall_status = "ok"

    result["overall"] = {"status": overall_status}
    return result

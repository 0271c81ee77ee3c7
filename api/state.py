"""Process-wide handles shared between the app lifespan and the routes."""

from __future__ import annotations

from typing import Any, Optional

from core.balances.retention import RetentionManager
from core.config import TrackerConfig
from core.scheduler import TickScheduler
from core.types import CurrentResult
from core.upstream import UpstreamClient

_config: TrackerConfig | None = None
_scheduler: TickScheduler | None = None
_store: Any = None
_retention: RetentionManager | None = None
_upstream: UpstreamClient | None = None


def get_config() -> TrackerConfig | None:
    return _config


def set_config(config: TrackerConfig | None) -> None:
    global _config
    _config = config


def get_scheduler() -> TickScheduler | None:
    return _scheduler


def set_scheduler(scheduler: TickScheduler | None) -> None:
    global _scheduler
    _scheduler = scheduler


def get_store() -> Any:
    return _store


def set_store(store: Any) -> None:
    global _store
    _store = store


def get_retention() -> RetentionManager | None:
    return _retention


def set_retention(retention: RetentionManager | None) -> None:
    global _retention
    _retention = retention


def get_upstream() -> UpstreamClient | None:
    return _upstream


def set_upstream(client: UpstreamClient | None) -> None:
    global _upstream
    _upstream = client


def latest_or_none() -> Optional[CurrentResult]:
    """Latest result with a fresh countdown, or None before the first tick."""
    scheduler = _scheduler
    if scheduler is None or scheduler.current is None:
        return None
    return scheduler.serve_latest()

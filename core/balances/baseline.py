"""Choice of the historical holdings a new reading is diffed against."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.persistence.interfaces import SnapshotStore
from core.types import BaselineSource, HoldingsMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Baseline:
    holdings: Optional[dict[str, float]]
    source: BaselineSource


def _usable(holdings: Optional[HoldingsMap]) -> bool:
    return bool(holdings)


class BaselineSelector:
    """Walks the baseline tiers in priority order and returns the first usable one.

    1. forced lookback window, if configured
    2. otherwise the older-baseline window, if configured
    3. the previous tick's holdings kept in memory
    4. the latest persisted snapshot
    5. the "24h ago" holdings embedded in the upstream document

    When both windows are configured the forced lookback wins and the older
    window is not consulted.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        force_lookback_min: float = 0,
        older_baseline_min: float = 0,
    ) -> None:
        self._store = store
        self.force_lookback_min = force_lookback_min
        self.older_baseline_min = older_baseline_min
        self._previous: Optional[dict[str, float]] = None

    @property
    def previous(self) -> Optional[dict[str, float]]:
        return self._previous

    def remember(self, holdings: HoldingsMap) -> None:
        """Cache the holdings of the tick that just completed."""
        self._previous = dict(holdings)

    async def warm_up(self, entity: str) -> bool:
        """Prime the in-memory tier from the store after a restart."""
        try:
            loaded = await self._store.find_latest(entity=entity)
        except Exception as exc:
            logger.warning(f"Failed to load previous snapshot: entity={entity} error={exc}")
            return False

        if not _usable(loaded):
            return False
        self._previous = dict(loaded)
        logger.info(f"Loaded previous snapshot: entity={entity} assets={len(loaded)}")
        return True

    def _lookback(self) -> tuple[float, BaselineSource] | None:
        if self.force_lookback_min > 0:
            return self.force_lookback_min, "forced-lookback"
        if self.older_baseline_min > 0:
            return self.older_baseline_min, "older-baseline"
        return None

    async def select(
        self,
        entity: str,
        now_ms: int,
        *,
        prior_from_source: Optional[HoldingsMap] = None,
    ) -> Baseline:
        lookback = self._lookback()
        if lookback is not None:
            minutes, source = lookback
            target = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc) - timedelta(minutes=minutes)
            holdings = await self._store.find_at_or_before(entity=entity, instant=target)
            if _usable(holdings):
                logger.debug(f"Using {source} baseline: lookback_min={minutes} target={target.isoformat()}")
                return Baseline(holdings=dict(holdings), source=source)

        if _usable(self._previous):
            logger.debug("Using previous tick as baseline")
            return Baseline(holdings=dict(self._previous), source="previous-tick")

        latest = await self._store.find_latest(entity=entity)
        if _usable(latest):
            logger.debug("Using latest persisted snapshot as baseline")
            return Baseline(holdings=dict(latest), source="latest-snapshot")

        if _usable(prior_from_source):
            logger.debug("Using 24h-ago holdings embedded in the source as baseline")
            return Baseline(holdings=dict(prior_from_source), source="source-24h")

        return Baseline(holdings=None, source="none")

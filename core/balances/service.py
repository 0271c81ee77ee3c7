"""Primary reconciliation pipeline for one tracked entity.

retention (soft) -> fetch -> normalize -> baseline -> diff, then a separate
persist step with one emergency-cleanup retry on storage pressure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from core.balances.baseline import Baseline, BaselineSelector
from core.balances.diff import compute_diff
from core.balances.normalizer import normalize
from core.balances.retention import RetentionManager
from core.errors import CapacityError, EmptyExtractionError
from core.persistence.interfaces import SnapshotStore
from core.types import ChangeRow

logger = logging.getLogger(__name__)


class BalanceSource(Protocol):
    async def fetch_balances(self) -> Any:
        """Fetch the raw balances document for the tracked entity."""


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of one successful fetch/normalize/diff pass."""

    entity: str
    instant: datetime
    holdings: dict[str, float]
    rows: list[ChangeRow]
    baseline: Baseline

    @property
    def timestamp_iso(self) -> str:
        return self.instant.isoformat().replace("+00:00", "Z")


class BalanceService:
    """Runs the balance pipeline; `stage` names the step currently executing."""

    def __init__(
        self,
        *,
        entity: str,
        source: BalanceSource,
        store: SnapshotStore,
        selector: BaselineSelector,
        retention: Optional[RetentionManager] = None,
    ) -> None:
        self.entity = entity
        self._source = source
        self._store = store
        self._selector = selector
        self._retention = retention
        self.stage = "idle"

    async def initialize(self) -> None:
        """Load the last persisted snapshot so the first diff survives restarts."""
        await self._selector.warm_up(self.entity)

    async def reconcile(self, now_ms: int) -> Reconciliation:
        """Fetch and diff a new reading. Nothing is persisted or cached here.

        Raises:
            UpstreamError: the document could not be fetched
            EmptyExtractionError: the document contained no holdings
        """
        instant = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)

        if self._retention is not None:
            self.stage = "retention"
            result = await self._retention.enforce_soft_policy(self.entity)
            if result.cleaned:
                logger.info(f"Auto-cleanup performed: deleted={result.deleted} remaining={result.remaining}")

        self.stage = "fetch"
        raw = await self._source.fetch_balances()

        self.stage = "normalize"
        normalized = normalize(raw)
        if not normalized.current:
            raise EmptyExtractionError(f"no holdings extracted for {self.entity}")

        self.stage = "baseline"
        baseline = await self._selector.select(
            self.entity,
            now_ms,
            prior_from_source=normalized.prior_from_source,
        )

        self.stage = "diff"
        rows = compute_diff(normalized.current, baseline.holdings)

        return Reconciliation(
            entity=self.entity,
            instant=instant,
            holdings=normalized.current,
            rows=rows,
            baseline=baseline,
        )

    async def persist(self, reconciliation: Reconciliation) -> None:
        """Write the snapshot; on CapacityError clean down to the floor and retry once.

        A second failure propagates.
        """
        self.stage = "persist"
        try:
            await self._store.create(
                entity=self.entity,
                instant=reconciliation.instant,
                holdings=reconciliation.holdings,
            )
        except CapacityError:
            if self._retention is None:
                raise
            logger.warning(f"Database full, attempting emergency cleanup: entity={self.entity}")
            await self._retention.enforce_emergency_policy(self.entity)
            await self._store.create(
                entity=self.entity,
                instant=reconciliation.instant,
                holdings=reconciliation.holdings,
            )
            logger.info(f"Snapshot saved after emergency cleanup: entity={self.entity}")

    def commit(self, reconciliation: Reconciliation) -> None:
        """Make this reading the in-memory baseline for the next tick."""
        self._selector.remember(reconciliation.holdings)
        self.stage = "idle"

"""Dual-cadence tick scheduler.

Two asyncio tasks share one CurrentResult:
- primary (balances): builds a brand new result and swaps it in
- secondary (transfers): swaps in a copy with only the supplementary rows replaced

Both run on the event loop, so the swap is never observed half-done. Each loop
re-arms only after its tick body finishes, so a slow tick delays the next one
instead of overlapping it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol

from core.balances.service import BalanceService
from core.balances.transfers import TransferAggregator
from core.errors import CapacityError, EmptyExtractionError, NotFoundError, PersistenceError, UpstreamError
from core.types import CurrentResult, countdown_seconds

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 30.0


class Broadcaster(Protocol):
    async def broadcast(self, result: CurrentResult) -> None:
        """Push a result to live subscribers."""


def _now_ms() -> int:
    return int(time.time() * 1000)


class TickScheduler:
    """Owns the current result and drives both periodic ticks."""

    def __init__(
        self,
        *,
        balances: BalanceService,
        transfers: TransferAggregator,
        balances_interval_ms: int,
        transfers_interval_ms: int,
        transfer_fallback_lookback_ms: int = 20 * 60 * 1000,
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._balances = balances
        self._transfers = transfers
        self.balances_interval_ms = balances_interval_ms
        self.transfers_interval_ms = transfers_interval_ms
        self._fallback_lookback_ms = transfer_fallback_lookback_ms
        self._broadcaster = broadcaster
        self._clock = clock

        self._result: Optional[CurrentResult] = None
        self._last_primary_ms = 0
        self._next_primary_at_ms = 0

        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def entity(self) -> str:
        return self._balances.entity

    @property
    def current(self) -> Optional[CurrentResult]:
        """The live result as an immutable snapshot (None before the first tick)."""
        return self._result

    @property
    def next_primary_tick_at_ms(self) -> int:
        return self._next_primary_at_ms

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def serve_latest(self) -> CurrentResult:
        """Latest result with a countdown recomputed for the moment of the request."""
        result = self._result
        if result is None:
            raise NotFoundError("No data available yet")
        return result.with_fresh_countdown(now_ms=self._clock())

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def _broadcast(self, result: CurrentResult) -> None:
        if self._broadcaster is None:
            return
        try:
            await self._broadcaster.broadcast(result)
        except Exception as exc:
            logger.warning(f"Broadcast failed: entity={result.entity} stage=broadcast error={exc}")

    async def run_primary_tick(self) -> bool:
        """One balance tick. Returns True when a new result went live."""
        started_ms = self._clock()
        entity = self.entity

        try:
            reconciliation = await self._balances.reconcile(started_ms)
        except EmptyExtractionError as exc:
            logger.warning(f"Balance tick skipped: entity={entity} stage=normalize reason={exc}")
            return False
        except UpstreamError as exc:
            logger.warning(f"Balance tick failed: entity={entity} stage={self._balances.stage} error={exc}")
            return False
        except Exception as exc:
            logger.error(
                f"Balance tick failed: entity={entity} stage={self._balances.stage} "
                f"error={type(exc).__name__}: {exc}",
                exc_info=True,
            )
            return False

        try:
            await self._balances.persist(reconciliation)
        except CapacityError as exc:
            logger.error(
                f"Balance tick failed: entity={entity} stage=persist instant={reconciliation.timestamp_iso} "
                f"error=storage full after emergency cleanup: {exc}"
            )
            return False
        except PersistenceError as exc:
            logger.warning(
                f"Snapshot not persisted, history will show a gap: entity={entity} "
                f"instant={reconciliation.timestamp_iso} error={exc}"
            )
        except Exception as exc:
            logger.error(
                f"Balance tick failed: entity={entity} stage=persist instant={reconciliation.timestamp_iso} "
                f"error={type(exc).__name__}: {exc}",
                exc_info=True,
            )
            return False

        next_at_ms = started_ms + self.balances_interval_ms
        outgoing = self._result
        result = CurrentResult(
            entity=entity,
            generated_at_iso=reconciliation.timestamp_iso,
            rows=tuple(reconciliation.rows),
            supplementary_rows=outgoing.supplementary_rows if outgoing is not None else None,
            next_primary_tick_at_ms=next_at_ms,
            interval_ms=self.balances_interval_ms,
            baseline=reconciliation.baseline.source,
            countdown_sec=countdown_seconds(next_at_ms, self._clock()),
            total_assets=len(reconciliation.holdings),
        )

        self._result = result
        self._next_primary_at_ms = next_at_ms
        self._last_primary_ms = started_ms
        self._balances.commit(reconciliation)

        await self._broadcast(result)

        logger.info(
            f"Balance tick completed: entity={entity} timestamp={result.generated_at_iso} "
            f"rows={len(result.rows)} baseline={result.baseline} next_tick_sec={result.countdown_sec}"
        )
        return True

    async def run_secondary_tick(self) -> bool:
        """One transfer tick. Returns True when the live result was patched."""
        now_ms = self._clock()
        since_ms = self._last_primary_ms or now_ms - self._fallback_lookback_ms

        try:
            top = await self._transfers.top_transfers_since(since_ms)
        except Exception as exc:
            logger.error(f"Transfer tick failed: entity={self.entity} stage=fetch error={type(exc).__name__}: {exc}")
            return False

        current = self._result
        if current is None:
            logger.debug(f"Transfer tick: no result yet, skipping patch: entity={self.entity}")
            return False

        patched = current.with_supplementary(tuple(top), now_ms=self._clock())
        self._result = patched
        await self._broadcast(patched)

        logger.info(f"Transfer tick completed: entity={self.entity} top_transfers={len(top)} since_ms={since_ms}")
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _wait_or_stop(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(0.0, seconds))
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_loop(
        self,
        name: str,
        tick: Callable[[], Awaitable[bool]],
        interval_ms: int,
        *,
        immediate: bool,
    ) -> None:
        if not immediate and await self._wait_or_stop(interval_ms / 1000):
            return

        while not self._stop_event.is_set():
            started_ms = self._clock()
            try:
                await tick()
            except Exception:
                logger.exception(f"Unexpected error escaped {name} tick")

            delay_ms = max(0, started_ms + interval_ms - self._clock())
            if await self._wait_or_stop(delay_ms / 1000):
                break

        logger.debug(f"{name} loop stopped")

    async def start(self) -> None:
        """Warm up and start both loops. The primary tick fires immediately."""
        if self.is_running:
            return

        logger.info(
            f"Starting scheduler: entity={self.entity} balances_interval_ms={self.balances_interval_ms} "
            f"transfers_interval_ms={self.transfers_interval_ms}"
        )
        await self._balances.initialize()

        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(
                self._run_loop("balances", self.run_primary_tick, self.balances_interval_ms, immediate=True)
            ),
            asyncio.create_task(
                self._run_loop("transfers", self.run_secondary_tick, self.transfers_interval_ms, immediate=False)
            ),
        ]

    async def stop(self, *, timeout: float = STOP_TIMEOUT_SECONDS) -> None:
        """Stop both loops, letting an in-flight tick finish first."""
        self._stop_event.set()
        for task in self._tasks:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Tick did not finish before shutdown timeout, cancelling")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._tasks = []
        logger.info("Scheduler stopped")

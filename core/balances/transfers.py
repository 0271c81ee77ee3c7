"""Net USD flow per symbol from the upstream transfer feed."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from core.balances.normalizer import normalize_transfers
from core.types import AggregateRow, Transfer

logger = logging.getLogger(__name__)

PAGE_SIZE = 200
MAX_OFFSET = 2000


class TransferSource(Protocol):
    def has_complete_headers(self) -> bool:
        """False when the credentials the transfer feed needs are missing."""

    async def fetch_transfers(self, *, limit: int = PAGE_SIZE, offset: int = 0) -> Any:
        """Fetch one page of transfers, newest first."""


def aggregate_transfers(transfers: Iterable[Transfer], *, since_ms: int, top_n: int = 100) -> list[AggregateRow]:
    """Sum signed USD per symbol for transfers after `since_ms`, largest absolute net first."""
    totals: dict[str, float] = {}
    samples: dict[str, int] = {}

    for transfer in transfers:
        if transfer.timestamp_ms <= since_ms:
            continue
        totals[transfer.symbol] = totals.get(transfer.symbol, 0.0) + transfer.direction * transfer.usd
        samples[transfer.symbol] = samples.get(transfer.symbol, 0) + 1

    rows = [AggregateRow(symbol=symbol, net_usd_delta=net, sample_count=samples[symbol]) for symbol, net in totals.items()]
    rows.sort(key=lambda row: (-abs(row.net_usd_delta), row.symbol))
    return rows[:top_n]


class TransferAggregator:
    """Pages the transfer feed back to a point in time and aggregates it."""

    def __init__(
        self,
        source: TransferSource,
        *,
        entity: str,
        top_n: int = 100,
        page_size: int = PAGE_SIZE,
        max_offset: int = MAX_OFFSET,
    ) -> None:
        self._source = source
        self._entity = entity
        self._top_n = top_n
        self._page_size = page_size
        self._max_offset = max_offset

    async def _collect_since(self, since_ms: int) -> list[Transfer]:
        batch: list[Transfer] = []
        offset = 0
        while offset <= self._max_offset:
            raw = await self._source.fetch_transfers(limit=self._page_size, offset=offset)
            items = normalize_transfers(raw, self._entity)
            if not items:
                break

            batch.extend(items)
            if items[-1].timestamp_ms < since_ms:
                break
            if len(items) < self._page_size:
                break
            offset += self._page_size
        return batch

    async def top_transfers_since(self, since_ms: int) -> list[AggregateRow]:
        if not self._source.has_complete_headers():
            logger.warning(f"Skipping transfer computation: incomplete upstream headers: entity={self._entity}")
            return []

        batch = await self._collect_since(since_ms)
        top = aggregate_transfers(batch, since_ms=since_ms, top_n=self._top_n)

        since_iso = datetime.fromtimestamp(since_ms / 1000, tz=timezone.utc).isoformat()
        logger.info(f"Computed top transfers: since={since_iso} total={len(batch)} top={len(top)}")
        return top

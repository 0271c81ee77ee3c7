from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Literal, Mapping, Optional

# symbol -> amount. Produced fresh each tick, never mutated after the diff.
HoldingsMap = Mapping[str, float]

BaselineSource = Literal[
    "forced-lookback",
    "older-baseline",
    "previous-tick",
    "latest-snapshot",
    "source-24h",
    "none",
]


@dataclass(frozen=True)
class ChangeRow:
    symbol: str
    old: float
    new: float
    delta: float
    pct_change: Optional[float]  # None marks a new asset, never a numeric change

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "old": self.old,
            "new": self.new,
            "delta": self.delta,
            "pctChange": self.pct_change,
        }


@dataclass(frozen=True)
class AggregateRow:
    symbol: str
    net_usd_delta: float
    sample_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "netUsdDelta": self.net_usd_delta,
            "sampleCount": self.sample_count,
        }


@dataclass(frozen=True)
class Transfer:
    """One normalized upstream transfer, signed relative to the tracked entity."""

    symbol: str
    usd: float
    direction: int  # +1 inflow, -1 outflow
    timestamp_ms: int


@dataclass(frozen=True)
class Snapshot:
    entity: str
    timestamp: datetime
    holdings: HoldingsMap


@dataclass(frozen=True)
class NormalizedBalances:
    current: dict[str, float]
    prior_from_source: Optional[dict[str, float]] = None


def countdown_seconds(next_tick_at_ms: int, now_ms: Optional[int] = None) -> int:
    """Whole seconds until the next primary tick, never negative."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return max(0, math.floor((next_tick_at_ms - now_ms) / 1000))


@dataclass(frozen=True)
class CurrentResult:
    """The payload shared between the tick tasks and the distribution boundary.

    Instances are immutable: the primary tick swaps in a new instance, the
    secondary tick swaps in a copy with only the supplementary rows replaced.
    """

    entity: str
    generated_at_iso: str
    rows: tuple[ChangeRow, ...]
    next_primary_tick_at_ms: int
    interval_ms: int
    supplementary_rows: Optional[tuple[AggregateRow, ...]] = None
    baseline: BaselineSource = "none"
    countdown_sec: int = 0
    total_assets: int = 0

    def with_supplementary(self, rows: tuple[AggregateRow, ...], *, now_ms: Optional[int] = None) -> CurrentResult:
        return replace(
            self,
            supplementary_rows=rows,
            countdown_sec=countdown_seconds(self.next_primary_tick_at_ms, now_ms),
        )

    def with_fresh_countdown(self, *, now_ms: Optional[int] = None) -> CurrentResult:
        return replace(self, countdown_sec=countdown_seconds(self.next_primary_tick_at_ms, now_ms))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire payload consumed by pollers and subscribers."""
        return {
            "entity": self.entity,
            "generatedAtIso": self.generated_at_iso,
            "rows": [row.to_dict() for row in self.rows],
            "supplementaryRows": (
                [row.to_dict() for row in self.supplementary_rows] if self.supplementary_rows is not None else None
            ),
            "nextPrimaryTickAtMs": self.next_primary_tick_at_ms,
            "countdownSec": self.countdown_sec,
            "intervalMs": self.interval_ms,
            "totalAssets": self.total_assets,
            "baseline": self.baseline,
        }

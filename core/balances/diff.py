"""Per-symbol change rows between a current reading and a baseline."""

from __future__ import annotations

from typing import Optional

from core.types import ChangeRow, HoldingsMap


def pct_change(old: float, new: float) -> Optional[float]:
    """Percent change from `old` to `new`.

    None when the asset is new (old is zero, new is not); 0 when both are zero.
    """
    if old == 0:
        return 0.0 if new == 0 else None
    return ((new - old) / old) * 100


def _sort_key(row: ChangeRow) -> tuple[int, float, str]:
    if row.pct_change is None:
        return (0, 0.0, row.symbol)
    return (1, -abs(row.pct_change), row.symbol)


def compute_diff(current: HoldingsMap, baseline: Optional[HoldingsMap]) -> list[ChangeRow]:
    """Diff `current` against `baseline` over the union of their symbols.

    Symbols missing on one side count as 0 there. Rows are ordered: new assets
    first, then by descending absolute percent change, ties by symbol.
    """
    baseline = baseline or {}
    rows = []

    for symbol in set(current) | set(baseline):
        old = float(baseline.get(symbol, 0.0))
        new = float(current.get(symbol, 0.0))
        rows.append(
            ChangeRow(
                symbol=symbol,
                old=old,
                new=new,
                delta=new - old,
                pct_change=pct_change(old, new),
            )
        )

    rows.sort(key=_sort_key)
    return rows

"""Heuristic extraction of holdings from unknown-shape upstream documents.

The upstream source reports balances as arbitrarily nested arrays and objects
(per-chain breakdowns, wrapper objects, token sub-objects). Every object node
is probed for a symbol and an amount through ordered alias lists; readings for
the same symbol are summed.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence

from core.types import NormalizedBalances, Transfer

logger = logging.getLogger(__name__)

Accessor = Callable[[Mapping[str, Any]], Any]

_SEPARATORS = re.compile(r"[,_\s]")
_DIGITS_ONLY = re.compile(r"^[0-9]+$")


def _field(name: str) -> Accessor:
    return lambda node: node.get(name)


def _nested(outer: str, inner: str) -> Accessor:
    def accessor(node: Mapping[str, Any]) -> Any:
        child = node.get(outer)
        return child.get(inner) if isinstance(child, Mapping) else None

    return accessor


SYMBOL_ACCESSORS: tuple[Accessor, ...] = (
    _nested("token", "symbol"),
    _nested("asset", "symbol"),
    _nested("coin", "symbol"),
    _field("tokenSymbol"),
    _field("asset"),
    _field("coin"),
    _field("symbol"),
    _field("ticker"),
    _field("name"),
)

AMOUNT_ACCESSORS: tuple[Accessor, ...] = (
    _field("amount"),
    _field("balance"),
    _field("balanceFloat"),
    _field("holding"),
    _field("qty"),
    _field("quantity"),
    _nested("tokenAmount", "amount"),
    _field("balanceAmount"),
)

PRIOR_AMOUNT_ACCESSORS: tuple[Accessor, ...] = (
    _field("balance24hAgo"),
    _field("amount24hAgo"),
    _field("value24hAgo"),
    _field("prev"),
    _field("previous"),
    _field("tokenAmount24hAgo"),
)


def parse_amount(value: Any) -> Optional[float]:
    """Parse a numeric reading, returning None when it is not a finite number.

    Strings may carry thousands separators, spaces or underscores. None is
    distinct from a legitimate 0.0.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = _SEPARATORS.sub("", value)
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def normalize_symbol(value: Any) -> str:
    return str(value).strip().upper()


def is_valid_symbol(symbol: str) -> bool:
    """Tickers are non-empty and never purely digits (those are ids)."""
    return bool(symbol) and not _DIGITS_ONLY.match(symbol)


def _first_present(node: Mapping[str, Any], accessors: Sequence[Accessor]) -> Any:
    """First alias that is present (not None), like a chain of `??`."""
    for accessor in accessors:
        value = accessor(node)
        if value is not None:
            return value
    return None


def _pick_symbol(node: Mapping[str, Any]) -> Optional[str]:
    """First alias holding a usable scalar; empty strings and containers are skipped."""
    for accessor in SYMBOL_ACCESSORS:
        value = accessor(node)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (str, int, float)) and str(value).strip():
            return normalize_symbol(value)
    return None


def _iter_objects(root: Any) -> Iterator[Mapping[str, Any]]:
    """Depth-first walk yielding every object node, at any depth.

    Uses an explicit stack so hostile nesting cannot exhaust the interpreter's
    recursion limit.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, Mapping):
            yield node
            children = node.values()
        elif isinstance(node, (list, tuple)):
            children = node
        else:
            continue
        stack.extend(child for child in reversed(list(children)) if isinstance(child, (Mapping, list, tuple)))


def _select_root(document: Any) -> Any:
    if isinstance(document, Mapping):
        balances = document.get("balances")
        if isinstance(balances, (Mapping, list, tuple)):
            return balances
    return document


def normalize(document: Any) -> NormalizedBalances:
    """Flatten an upstream document into `symbol -> amount`.

    Also returns the "24h ago" mapping when the source embeds one. Never
    raises; an unusable document simply yields empty maps.
    """
    current: dict[str, float] = {}
    prior: dict[str, float] = {}
    visited = 0

    for node in _iter_objects(_select_root(document)):
        visited += 1
        symbol = _pick_symbol(node)
        if symbol is None or not is_valid_symbol(symbol):
            continue

        amount = parse_amount(_first_present(node, AMOUNT_ACCESSORS))
        if amount is not None:
            current[symbol] = current.get(symbol, 0.0) + amount

        prior_amount = parse_amount(_first_present(node, PRIOR_AMOUNT_ACCESSORS))
        if prior_amount is not None:
            prior[symbol] = prior.get(symbol, 0.0) + prior_amount

    if not current:
        top_keys = list(document.keys())[:10] if isinstance(document, Mapping) else []
        logger.warning(f"normalize: empty result top_level_keys={top_keys} visited_nodes={visited}")

    return NormalizedBalances(current=current, prior_from_source=prior or None)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


def to_milliseconds(value: Any) -> int:
    """Coerce seconds, milliseconds or ISO-8601 text to epoch milliseconds (0 if unknown)."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value == 0:
            return 0
        return int(value if value > 1e12 else value * 1000)
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return int(datetime.fromisoformat(text).timestamp() * 1000)
        except ValueError:
            return 0
    return 0


def _label(side: Any) -> str:
    if not isinstance(side, Mapping):
        return ""
    for key in ("entity", "label", "name"):
        value = side.get(key)
        if isinstance(value, Mapping):
            value = value.get("name") or value.get("id")
        if value:
            return str(value).lower()
    return ""


def _transfer_items(document: Any) -> list[Any]:
    if isinstance(document, list):
        return document
    if isinstance(document, Mapping):
        for key in ("items", "transfers", "result"):
            value = document.get(key)
            if isinstance(value, list):
                return value
    return []


def normalize_transfers(document: Any, entity: str) -> list[Transfer]:
    """Extract signed transfers relative to `entity`, newest-first order preserved."""
    entity = entity.lower()
    transfers = []

    for item in _transfer_items(document):
        if not isinstance(item, Mapping):
            continue

        symbol_raw = (
            _nested("asset", "symbol")(item)
            or _nested("token", "symbol")(item)
            or item.get("symbol")
            or item.get("ticker")
            or "UNKNOWN"
        )
        usd = parse_amount(
            _first_present(item, (_field("usd"), _field("valueUSD"), _field("usdValue"), _field("fiatValue")))
        )
        if not usd:
            continue

        if entity in _label(item.get("to")):
            direction = 1
        elif entity in _label(item.get("from")):
            direction = -1
        else:
            continue

        timestamp_ms = to_milliseconds(
            item.get("time") or item.get("timestamp") or item.get("blockTime") or item.get("ts")
        )
        transfers.append(
            Transfer(symbol=normalize_symbol(symbol_raw), usd=usd, direction=direction, timestamp_ms=timestamp_ms)
        )

    return transfers

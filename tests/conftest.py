"""Shared test fixtures for pytest.

Provides sample upstream documents, stores and stub collaborators used across
multiple test files.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from core.storage.memory import InMemorySnapshotStore

BASE_MS = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)


class StubBalanceSource:
    """Returns queued documents (or raises queued exceptions) in order."""

    def __init__(self, *documents: Any) -> None:
        self._documents = list(documents)
        self.calls = 0

    def push(self, document: Any) -> None:
        self._documents.append(document)

    async def fetch_balances(self) -> Any:
        self.calls += 1
        document = self._documents.pop(0) if len(self._documents) > 1 else self._documents[0]
        if isinstance(document, BaseException):
            raise document
        return document


class StubTransferSource:
    """Serves pre-built transfer pages by offset."""

    def __init__(self, pages: dict[int, Any] | None = None, *, complete_headers: bool = True) -> None:
        self._pages = pages or {}
        self.complete_headers = complete_headers
        self.offsets: list[int] = []

    def has_complete_headers(self) -> bool:
        return self.complete_headers

    async def fetch_transfers(self, *, limit: int = 200, offset: int = 0) -> Any:
        self.offsets.append(offset)
        return self._pages.get(offset, {"transfers": []})


class FakeClock:
    def __init__(self, now_ms: int = BASE_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nested_document() -> dict[str, Any]:
    """Balances split per chain, with a wrapper object and token sub-objects."""
    return {
        "balances": {
            "ethereum": [
                {"token": {"symbol": "eth"}, "amount": 100, "balance24hAgo": 90},
                {"token": {"symbol": "USDC"}, "amount": "1,000,000.50"},
            ],
            "arbitrum": [
                {"token": {"symbol": "ETH"}, "amount": "25", "balance24hAgo": "10"},
            ],
            "solana": {"wrapper": {"items": [{"symbol": " sol ", "balance": 42}]}},
        }
    }

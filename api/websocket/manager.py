from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from core.types import CurrentResult

logger = logging.getLogger(__name__)


class WebSocketLike(Protocol):
    async def send_json(self, data: object) -> None: ...


def update_message(result: CurrentResult) -> dict[str, object]:
    return {"type": "update", "data": result.to_dict()}


SEND_TIMEOUT_SECONDS = 5.0


class ResultBroadcaster:
    """Fan out every new CurrentResult to connected WebSocket subscribers.

    Sends run concurrently and each is bounded by `send_timeout`. A subscriber
    whose send fails or stalls is dropped; the others still receive the update.
    """

    def __init__(self, *, send_timeout: float = SEND_TIMEOUT_SECONDS) -> None:
        self._connections: set[WebSocketLike] = set()
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout

    @property
    def subscriber_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocketLike, *, latest: CurrentResult | None = None) -> None:
        """Register a subscriber and, when available, send it the latest result right away."""
        async with self._lock:
            self._connections.add(websocket)
        logger.info(f"Subscriber connected: total={len(self._connections)}")

        if latest is not None and not await self._send(websocket, update_message(latest)):
            await self.disconnect(websocket)

    async def disconnect(self, websocket: WebSocketLike) -> None:
        async with self._lock:
            removed = websocket in self._connections
            self._connections.discard(websocket)
        if removed:
            logger.info(f"Subscriber disconnected: total={len(self._connections)}")

    async def _send(self, websocket: WebSocketLike, payload: dict[str, object]) -> bool:
        try:
            await asyncio.wait_for(websocket.send_json(payload), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Websocket send timed out after {self._send_timeout}s, dropping subscriber")
        except Exception:
            logger.warning("Failed to send update to websocket", exc_info=True)
        return False

    async def broadcast(self, result: CurrentResult) -> None:
        payload = update_message(result)
        async with self._lock:
            connections = list(self._connections)

        delivered = await asyncio.gather(*(self._send(websocket, payload) for websocket in connections))
        failures = [websocket for websocket, ok in zip(connections, delivered) if not ok]

        for websocket in failures:
            await self.disconnect(websocket)

        logger.debug(f"Broadcast update: subscribers={len(connections) - len(failures)} dropped={len(failures)}")


_result_broadcaster: ResultBroadcaster | None = None


def get_result_broadcaster() -> ResultBroadcaster:
    global _result_broadcaster
    if _result_broadcaster is None:
        _result_broadcaster = ResultBroadcaster()
    return _result_broadcaster

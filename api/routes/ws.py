"""WebSocket route for live balance-change updates."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.state import latest_or_none
from api.websocket.manager import get_result_broadcaster

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/updates")
async def websocket_updates(websocket: WebSocket) -> None:
    broadcaster = get_result_broadcaster()
    await websocket.accept()
    await broadcaster.connect(websocket, latest=latest_or_none())

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                continue
            action = message.get("action") or message.get("type")
            if action == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        await broadcaster.disconnect(websocket)
    except Exception:
        await broadcaster.disconnect(websocket)

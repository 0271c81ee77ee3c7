"""Polling endpoint for the latest balance-change result."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.state import get_scheduler
from core.errors import NotFoundError

router = APIRouter(prefix="/api", tags=["data"])


@router.get("/latest")
async def get_latest() -> Any:
    """Return the current result with a countdown recomputed for this request.

    Returns 404 with {"ok": false, "message": ...} until the first primary tick
    has completed.
    """
    scheduler = get_scheduler()
    try:
        if scheduler is None:
            raise NotFoundError("No data available yet")
        result = scheduler.serve_latest()
    except NotFoundError as exc:
        return JSONResponse(status_code=404, content={"ok": False, "message": str(exc)})

    return result.to_dict()

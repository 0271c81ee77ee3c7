"""Async HTTP client for the upstream balance and transfer source."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from core.config import UpstreamConfig
from core.errors import UpstreamHttpError, UpstreamShapeError

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


def _preview(response: httpx.Response) -> str:
    try:
        return response.text[:PREVIEW_CHARS]
    except Exception:
        return ""


class UpstreamClient:
    """Fetches raw documents for an entity; rejects anything that is not a JSON document."""

    def __init__(
        self,
        config: UpstreamConfig,
        *,
        entity: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._entity = entity
        self._headers = dict(config.headers)
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_ms / 1000,
            transport=transport,
        )

    def _request_headers(self) -> dict[str, str]:
        headers = {k: v for k, v in self._headers.items() if v}
        if not headers.get("x-timestamp"):
            headers["x-timestamp"] = str(int(time.time()))
        return headers

    def header_status(self) -> dict[str, bool]:
        """Which credential headers are configured (never their values)."""
        return {
            "cookie": bool(self._headers.get("cookie")),
            "x_payload": bool(self._headers.get("x-payload")),
            "x_timestamp": bool(self._headers.get("x-timestamp")),
        }

    def has_complete_headers(self) -> bool:
        """True when cookie, x-payload and x-timestamp are all configured."""
        return all(self.header_status().values())

    async def _get_document(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.get(path, params=params, headers=self._request_headers())
        except httpx.HTTPError as exc:
            raise UpstreamHttpError(None, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamHttpError(response.status_code, _preview(response))

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            raise UpstreamShapeError(f"non-JSON content-type: {content_type!r}")

        try:
            document = response.json()
        except ValueError as exc:
            raise UpstreamShapeError(f"invalid JSON body: {exc}") from exc

        if not isinstance(document, (dict, list)):
            raise UpstreamShapeError(f"unexpected body type: {type(document).__name__}")
        return document

    async def fetch_balances(self) -> Any:
        document = await self._get_document(self._config.balances_path)
        logger.debug(f"Fetched balances: entity={self._entity}")
        return document

    async def fetch_transfers(self, *, limit: int = 200, offset: int = 0) -> Any:
        params = {
            "base": self._entity,
            "flow": "all",
            "usdGte": 1,
            "sortKey": "time",
            "sortDir": "desc",
            "limit": limit,
            "offset": offset,
        }
        document = await self._get_document("/transfers", params=params)
        logger.debug(f"Fetched transfers: entity={self._entity} limit={limit} offset={offset}")
        return document

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

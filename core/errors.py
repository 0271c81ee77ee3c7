"""Error taxonomy for the balance tracking engine."""

from __future__ import annotations

from typing import Optional


class TrackerError(Exception):
    """Base class for all tracker failures."""


class UpstreamError(TrackerError):
    """The upstream balance source could not deliver a usable document."""


class UpstreamHttpError(UpstreamError):
    """Non-200 response, timeout or transport failure.

    `status` is None when no HTTP response was received at all.
    """

    def __init__(self, status: Optional[int], message: str = "") -> None:
        self.status = status
        detail = f"upstream returned HTTP {status}" if status is not None else "upstream request failed"
        super().__init__(f"{detail}: {message}" if message else detail)


class UpstreamShapeError(UpstreamError):
    """Response had the wrong content type or a body that is not a document."""


class EmptyExtractionError(TrackerError):
    """The normalizer found zero symbols in an otherwise valid document."""


class PersistenceError(TrackerError):
    """Any snapshot store failure that is not storage pressure."""


class CapacityError(PersistenceError):
    """The store rejected a write because it is out of space."""


class NotFoundError(TrackerError):
    """No result has been produced yet."""

"""Upstream balance source client."""

from .client import UpstreamClient

"""Tracker configuration loaded from environment variables.

Numeric settings that are missing or malformed fall back to their defaults,
so a typo in the environment never prevents the service from starting.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_ENTITY = "wintermute"
DEFAULT_UPSTREAM_BASE_URL = "https://api.arkm.com"

# Optional headers that are only sent when explicitly configured.
_OPTIONAL_HEADERS = {
    "ARKHAM_ACCEPT_LANGUAGE": "accept-language",
    "ARKHAM_SEC_GPC": "sec-gpc",
    "ARKHAM_SEC_FETCH_MODE": "sec-fetch-mode",
    "ARKHAM_SEC_FETCH_SITE": "sec-fetch-site",
    "ARKHAM_SEC_FETCH_DEST": "sec-fetch-dest",
}


def _parse_number(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if math.isfinite(parsed) else default


def _parse_int(env: Mapping[str, str], key: str, default: int) -> int:
    return int(_parse_number(env, key, default))


def _build_headers(env: Mapping[str, str]) -> dict[str, str]:
    headers = {
        "cookie": env.get("ARKHAM_COOKIE", ""),
        "x-payload": env.get("ARKHAM_X_PAYLOAD") or env.get("ARKHAM_XPAYLOAD", ""),
        "x-timestamp": env.get("ARKHAM_X_TIMESTAMP") or env.get("ARKHAM_XTIMESTAMP", ""),
        "user-agent": env.get("ARKHAM_UA", "Mozilla/5.0"),
        "origin": env.get("ARKHAM_ORIGIN", "https://intel.arkm.com"),
        "referer": env.get("ARKHAM_REFERER", "https://intel.arkm.com/"),
        "accept": env.get("ARKHAM_ACCEPT", "application/json, text/plain, */*"),
    }
    for env_key, header in _OPTIONAL_HEADERS.items():
        if env.get(env_key):
            headers[header] = env[env_key]
    return headers


@dataclass(frozen=True)
class UpstreamConfig:
    """Connection settings for the upstream balance source."""

    base_url: str = DEFAULT_UPSTREAM_BASE_URL
    balances_path: str = f"/balances/entity/{DEFAULT_ENTITY}?cheap=false"
    timeout_ms: int = 20_000
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackerConfig:
    """Configuration for the tick scheduler and its collaborators."""

    entity: str = DEFAULT_ENTITY
    balances_interval_ms: int = 5 * 60 * 1000
    transfers_interval_ms: int = 30 * 1000
    force_lookback_min: float = 0
    older_baseline_min: float = 0
    max_snapshots: int = 100
    min_snapshots: int = 10
    transfer_fallback_lookback_min: float = 20
    transfer_top_n: int = 100
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    database_url: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> TrackerConfig:
        """Build a config from `env` (defaults to `os.environ`)."""
        env = os.environ if env is None else env
        entity = (env.get("ENTITY") or DEFAULT_ENTITY).strip().lower()

        upstream = UpstreamConfig(
            base_url=env.get("ARKHAM_BASE_URL") or DEFAULT_UPSTREAM_BASE_URL,
            balances_path=env.get("ARKHAM_PATH") or f"/balances/entity/{entity}?cheap=false",
            timeout_ms=_parse_int(env, "ARKHAM_TIMEOUT_MS", 20_000),
            headers=_build_headers(env),
        )

        return cls(
            entity=entity,
            balances_interval_ms=_parse_int(env, "INTERVAL_MS", 5 * 60 * 1000),
            transfers_interval_ms=_parse_int(env, "TRANSFER_INTERVAL_MS", 30 * 1000),
            force_lookback_min=_parse_number(env, "FORCE_LOOKBACK_MIN", 0),
            older_baseline_min=_parse_number(env, "OLDER_BASELINE_MINUTES", 0),
            max_snapshots=_parse_int(env, "MAX_SNAPSHOTS", 100),
            min_snapshots=_parse_int(env, "MIN_SNAPSHOTS", 10),
            transfer_fallback_lookback_min=_parse_number(env, "TRANSFER_FALLBACK_LOOKBACK_MIN", 20),
            transfer_top_n=_parse_int(env, "TRANSFER_TOP_N", 100),
            upstream=upstream,
            database_url=env.get("DATABASE_URL") or None,
        )

    def validate(self) -> None:
        """Raise ValueError listing every invalid setting."""
        errors = []
        if not self.entity:
            errors.append("ENTITY must not be empty")
        if self.balances_interval_ms <= 0:
            errors.append("INTERVAL_MS must be positive")
        if self.transfers_interval_ms <= 0:
            errors.append("TRANSFER_INTERVAL_MS must be positive")
        if self.min_snapshots < 0:
            errors.append("MIN_SNAPSHOTS must not be negative")
        if self.min_snapshots >= self.max_snapshots:
            errors.append("MIN_SNAPSHOTS must be lower than MAX_SNAPSHOTS")
        if self.transfer_top_n <= 0:
            errors.append("TRANSFER_TOP_N must be positive")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(errors))

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlsplit


def pg_ssl_connect_args_from_env() -> dict[str, str]:
    """Build libpq-style SSL kwargs from the standard PGSSL* environment variables."""
    mapping = {
        "sslmode": os.environ.get("PGSSLMODE"),
        "sslrootcert": os.environ.get("PGSSLROOTCERT"),
        "sslcert": os.environ.get("PGSSLCERT"),
        "sslkey": os.environ.get("PGSSLKEY"),
    }
    return {k: v for k, v in mapping.items() if v}


def normalize_database_url(database_url: str) -> str:
    """Normalize DATABASE_URL to an async SQLAlchemy URL (postgresql+asyncpg://).

    Accepts bare `user:pass@host:port/dbname`, `postgres://`, `postgresql://`
    and `postgresql+<driver>://` forms.
    """
    if "://" not in database_url:
        candidate = f"postgresql+asyncpg://{database_url}"
        parsed = urlsplit(candidate)
        if not parsed.netloc or parsed.path in {"", "/"}:
            raise ValueError("Unsupported DATABASE_URL format. Expected host:port/dbname or user:pass@host:port/dbname")
        return candidate

    if database_url.startswith("postgresql+asyncpg://"):
        return database_url
    if database_url.startswith("postgresql+"):
        return "postgresql+asyncpg://" + database_url.split("://", 1)[1]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return database_url


@dataclass(frozen=True)
class PostgresConfig:
    """Connection configuration.

    `database_url` should come from environment (e.g. DATABASE_URL).
    Do not log it.
    """

    database_url: str
    connect_timeout_s: float = 3.0

    @property
    def async_url(self) -> str:
        return normalize_database_url(self.database_url)

#!/usr/bin/env python3
"""Initialize the snapshot history schema.

Runs the SQL in db/schema.sql against the database pointed to by DATABASE_URL.

Usage:
  python -m db.init_db

Requirements:
  - DATABASE_URL must be set
  - SQLAlchemy and psycopg2 installed
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from sqlalchemy import create_engine

logger = logging.getLogger(__name__)


def sync_database_url(database_url: str) -> str:
    """The same database as DATABASE_URL, addressed through psycopg2."""
    if "://" not in database_url:
        return f"postgresql+psycopg2://{database_url}"
    _scheme, rest = database_url.split("://", 1)
    return f"postgresql+psycopg2://{rest}"


def _iter_sql_statements(sql: str) -> Iterable[str]:
    """Split a SQL script into executable statements.

    Drops `--` line comments. The schema has no string literals or $$ quoting,
    so a plain split on `;` is enough.
    """
    lines = [line.split("--", 1)[0] for line in sql.splitlines()]
    for stmt in "\n".join(lines).split(";"):
        stmt = stmt.strip()
        if stmt:
            yield stmt


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL is not set")

    schema_path = Path(__file__).resolve().parent / "schema.sql"
    schema_sql = schema_path.read_text(encoding="utf-8")

    engine = create_engine(sync_database_url(database_url), echo=False)

    # Execute schema as individual statements to stay driver-agnostic.
    raw = engine.raw_connection()
    try:
        cur = raw.cursor()
        for stmt in _iter_sql_statements(schema_sql):
            cur.execute(stmt)
        raw.commit()
    finally:
        raw.close()
        engine.dispose()

    logger.info("Database schema applied")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

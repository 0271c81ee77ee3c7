#!/usr/bin/env python3
"""Reclaim disk space after snapshots were deleted.

Runs VACUUM FULL on the holdings and snapshots tables. Deleted rows only free
their space once the tables are rewritten, which matters on size-capped hosts.

Usage:
    python scripts/vacuum_db.py

Environment:
    DATABASE_URL - Required. PostgreSQL connection string.

Note: VACUUM cannot run inside a transaction, so the connection uses AUTOCOMMIT.
Some hosted providers still refuse it; run `psql $DATABASE_URL -c "VACUUM FULL"`
there instead.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterable

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from sqlalchemy import create_engine, text  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from db.init_db import sync_database_url  # noqa: E402

logger = logging.getLogger("vacuum_db")

# Children first, same order as deletes.
TABLES = ("holdings", "snapshots")


def vacuum(engine: Engine, tables: Iterable[str] = TABLES) -> list[str]:
    done: list[str] = []
    with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
        for table in tables:
            logger.info(f"Vacuuming {table}...")
            conn.execute(text(f"VACUUM FULL {table}"))
            done.append(table)
    return done


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL environment variable is required")
        return 1

    engine = create_engine(sync_database_url(database_url), echo=False)
    try:
        vacuum(engine)
    except SQLAlchemyError as exc:
        if "inside a transaction block" in str(exc):
            logger.error('VACUUM was refused inside a transaction; try: psql $DATABASE_URL -c "VACUUM FULL"')
        else:
            logger.error(f"Vacuum failed: {type(exc).__name__}: {exc}")
        return 1
    finally:
        engine.dispose()

    logger.info("Database vacuum completed, space should now be reclaimed")
    return 0


if __name__ == "__main__":
    sys.exit(main())

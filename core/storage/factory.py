from __future__ import annotations

import logging
from typing import Union

from core.config import TrackerConfig
from core.storage.memory import InMemorySnapshotStore
from core.storage.postgres import PostgresConfig, PostgresSnapshotStore

logger = logging.getLogger(__name__)


def create_snapshot_store(config: TrackerConfig) -> Union[InMemorySnapshotStore, PostgresSnapshotStore]:
    """PostgreSQL when DATABASE_URL is set, otherwise a process-local store."""
    if config.database_url:
        logger.info("Using PostgreSQL snapshot store")
        return PostgresSnapshotStore(config=PostgresConfig(database_url=config.database_url))

    logger.warning("DATABASE_URL not set; snapshots are kept in memory and lost on restart")
    return InMemorySnapshotStore()

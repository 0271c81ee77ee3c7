"""Storage implementations of the persistence interfaces.

- memory: process-local store (no DATABASE_URL, tests)
- postgres: PostgreSQL via async SQLAlchemy
"""

from .memory import InMemorySnapshotStore
from .postgres import PostgresConfig, PostgresSnapshotStore
from .factory import create_snapshot_store

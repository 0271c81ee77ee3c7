"""PostgreSQL snapshot storage.

Notes
- We avoid logging connection URLs to prevent accidental secret leakage.
- Driver errors are translated to the tracker's PersistenceError/CapacityError.
"""

from .config import PostgresConfig
from .stores import PostgresSnapshotStore

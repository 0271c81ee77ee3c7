"""Persistence boundary.

Protocols here define what the tracker needs from its history store.
Implementations live in `core.storage`.
"""

from .interfaces import SnapshotStore

"""SQLAlchemy models for the balance-watch database."""

from db.models.snapshots import Base, HoldingRow, SnapshotRow

__all__ = ["Base", "HoldingRow", "SnapshotRow"]

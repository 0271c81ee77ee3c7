"""SQLAlchemy models for holdings history.

These models map to the tables created by db/schema.sql:
- snapshots
- holdings
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Float, ForeignKey, Index, Text
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SnapshotRow(Base):
    """One point-in-time reading for an entity.

    Table: snapshots
    """

    __tablename__ = "snapshots"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    entity = Column(Text, nullable=False)
    ts = Column(DateTime(timezone=True), nullable=False)

    holdings = relationship("HoldingRow", back_populates="snapshot", lazy="selectin")

    __table_args__ = (Index("idx_snapshots_entity_ts", "entity", "ts"),)

    def __repr__(self) -> str:
        return f"<SnapshotRow(id={self.id}, entity={self.entity}, ts={self.ts})>"


class HoldingRow(Base):
    """Amount held for one symbol within a snapshot.

    Table: holdings
    """

    __tablename__ = "holdings"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    snapshot_id = Column(BigInteger, ForeignKey("snapshots.id"), nullable=False)
    symbol = Column(Text, nullable=False)
    amount = Column(Float, nullable=False, default=0.0)

    snapshot = relationship("SnapshotRow", back_populates="holdings")

    __table_args__ = (Index("idx_holdings_snapshot_id", "snapshot_id"),)

    def __repr__(self) -> str:
        return f"<HoldingRow(snapshot_id={self.snapshot_id}, symbol={self.symbol}, amount={self.amount})>"

"""
db/models/checkpoint.py

Durable ingestion progress, one row per indexing stream.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class CheckpointStatus:
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    ERROR = "ERROR"
    STOPPED = "STOPPED"


class IndexerCheckpoint(Base, TimestampMixin):
    __tablename__ = "indexer_checkpoints"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    stream_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    last_processed_position: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Last ledger block whose events are fully projected",
    )
    chain_identity: Mapped[int] = mapped_column(Integer, nullable=False)
    source_address: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Lower-cased contract address being indexed",
    )
    total_events_processed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=CheckpointStatus.STOPPED,
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("last_processed_position >= 0", name="position_non_negative"),
        Index("ix_indexer_checkpoints_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<IndexerCheckpoint key={self.stream_key!r} "
            f"position={self.last_processed_position} status={self.status!r}>"
        )

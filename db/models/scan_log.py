"""
db/models/scan_log.py

Append-only audit trail: one row per physical scan attempt, accepted or
rejected. Rows are never updated or deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONPayload


class ScanResult:
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class ScanLog(Base):
    __tablename__ = "scan_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    container_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Normalized scanned identifier; may not match any container",
    )
    shipment_hash: Mapped[str | None] = mapped_column(String(132), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_identity: Mapped[str] = mapped_column(String(128), nullable=False)
    result: Mapped[str] = mapped_column(String(16), nullable=False)
    rejection_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(
        JSONPayload,
        nullable=True,
        comment="Client-supplied scan context",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_scan_logs_container_id", "container_id"),
        Index("ix_scan_logs_shipment_hash_created_at", "shipment_hash", "created_at"),
        Index("ix_scan_logs_result", "result"),
        Index("ix_scan_logs_actor_identity", "actor_identity"),
    )

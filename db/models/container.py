"""
db/models/container.py

One physically scannable unit of a shipment. Generated with the shipment and
never created or deleted afterward; only the custody status and last-scan
stamp change.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.shipment import Shipment


class ContainerStatus:
    CREATED = "CREATED"
    IN_TRANSIT = "IN_TRANSIT"
    AT_WAREHOUSE = "AT_WAREHOUSE"
    DELIVERED = "DELIVERED"

    # Custody order; statuses only ever move rightwards.
    ORDER = (CREATED, IN_TRANSIT, AT_WAREHOUSE, DELIVERED)

    @classmethod
    def rank(cls, status: str) -> int:
        return cls.ORDER.index(status)


class Container(Base, TimestampMixin):
    __tablename__ = "containers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    container_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Deterministic id derived from shipment hash and sequence index",
    )
    shipment_hash: Mapped[str] = mapped_column(
        String(132),
        ForeignKey("shipments.shipment_hash", ondelete="CASCADE"),
        nullable=False,
    )
    sequence_index: Mapped[int] = mapped_column(Integer, nullable=False)
    qr_data: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ContainerStatus.CREATED,
    )

    last_scanned_by_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_scanned_by: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Identity (wallet) of the last accepted scanner",
    )
    last_scanned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_scan_location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    shipment: Mapped["Shipment"] = relationship("Shipment", back_populates="containers")

    __table_args__ = (
        UniqueConstraint("shipment_hash", "sequence_index", name="uq_containers_shipment_sequence"),
        CheckConstraint("sequence_index >= 1", name="sequence_positive"),
        CheckConstraint("quantity >= 1", name="quantity_positive"),
        Index("ix_containers_shipment_hash_status", "shipment_hash", "status"),
    )

    def __repr__(self) -> str:
        return f"<Container id={self.container_id!r} status={self.status!r}>"

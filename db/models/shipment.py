"""
db/models/shipment.py

Shipment projected from a ledger ShipmentLocked event.

The ledger anchor (tx_hash, block_number, blockchain_timestamp) is written once
at projection time and never updated. Status and assignments are mutated only by
the lifecycle service.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.container import Container


class ShipmentStatus:
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    IN_TRANSIT = "IN_TRANSIT"
    AT_WAREHOUSE = "AT_WAREHOUSE"
    DELIVERED = "DELIVERED"

    ALL = (READY_FOR_DISPATCH, IN_TRANSIT, AT_WAREHOUSE, DELIVERED)


class Shipment(Base, TimestampMixin):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    shipment_hash: Mapped[str] = mapped_column(
        String(132),
        nullable=False,
        unique=True,
        comment="Ledger-derived shipment identifier",
    )
    batch_id: Mapped[str] = mapped_column(String(128), nullable=False)
    supplier_wallet: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Lower-cased ledger account of the supplier",
    )
    number_of_containers: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_per_container: Mapped[int] = mapped_column(Integer, nullable=False)
    total_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    blockchain_timestamp: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Ledger timestamp in unix seconds",
    )

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ShipmentStatus.READY_FOR_DISPATCH,
    )
    status_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    assigned_transporter: Mapped[str | None] = mapped_column(String(42), nullable=True)
    assigned_warehouse: Mapped[str | None] = mapped_column(String(42), nullable=True)
    next_transporter: Mapped[str | None] = mapped_column(String(42), nullable=True)
    assigned_retailer: Mapped[str | None] = mapped_column(String(42), nullable=True)

    containers: Mapped[list["Container"]] = relationship(
        "Container",
        back_populates="shipment",
        order_by="Container.sequence_index",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("number_of_containers >= 1", name="containers_positive"),
        CheckConstraint("quantity_per_container >= 1", name="quantity_positive"),
        CheckConstraint(
            "total_quantity = number_of_containers * quantity_per_container",
            name="total_quantity_product",
        ),
        Index("ix_shipments_supplier_wallet_status", "supplier_wallet", "status"),
        Index("ix_shipments_status", "status"),
        Index("ix_shipments_block_number", "block_number"),
    )

    @property
    def is_on_ledger(self) -> bool:
        return bool(self.tx_hash)

    def __repr__(self) -> str:
        return f"<Shipment hash={self.shipment_hash!r} status={self.status!r}>"

"""
Typed DTOs and outcomes used by the repository layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class WriteOutcome:
    """
    Result of a conditional (compare-and-set or insert-if-absent) write.
    """

    APPLIED = "applied"
    ALREADY_SATISFIED = "already_satisfied"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class ShipmentCreate:
    """
    Values for a new shipment row, taken from one ledger event.
    """

    shipment_hash: str
    batch_id: str
    supplier_wallet: str
    number_of_containers: int
    quantity_per_container: int
    tx_hash: str
    block_number: int
    blockchain_timestamp: int
    status: str

    @property
    def total_quantity(self) -> int:
        return self.number_of_containers * self.quantity_per_container


@dataclass(frozen=True)
class ContainerCreate:
    container_id: str
    shipment_hash: str
    sequence_index: int
    qr_data: str
    quantity: int
    status: str


@dataclass(frozen=True)
class ContainerScanStamp:
    """
    Fields written alongside an accepted custody transition.
    """

    actor_role: str
    actor_identity: str
    scanned_at: datetime
    location: str | None = None


@dataclass(frozen=True)
class ScanLogCreate:
    container_id: str
    actor_role: str
    actor_identity: str
    result: str
    shipment_hash: str | None = None
    rejection_code: str | None = None
    message: str | None = None
    previous_status: str | None = None
    new_status: str | None = None
    location: str | None = None
    metadata_json: dict[str, Any] | None = None


@dataclass(frozen=True)
class PartyAssignment:
    """
    Assignment command payload. None leaves the current value untouched.
    """

    assigned_transporter: str | None = None
    assigned_warehouse: str | None = None
    next_transporter: str | None = None
    assigned_retailer: str | None = None

    def as_values(self) -> dict[str, str]:
        values = {
            "assigned_transporter": self.assigned_transporter,
            "assigned_warehouse": self.assigned_warehouse,
            "next_transporter": self.next_transporter,
            "assigned_retailer": self.assigned_retailer,
        }
        return {key: value.strip().lower() for key, value in values.items() if value}


@dataclass(frozen=True)
class ContainerStatusCounts:
    total: int
    by_status: dict[str, int] = field(default_factory=dict)

    def count(self, status: str) -> int:
        return self.by_status.get(status, 0)

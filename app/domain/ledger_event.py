"""
app/domain/ledger_event.py

Domain models for ledger events consumed by the indexer.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ShipmentLockedEvent:
    """
    One decoded ShipmentLocked creation event.

    ``block_number`` and ``log_index`` together give the ledger position used
    to order events within a replay window.
    """

    shipment_hash: str
    supplier: str
    batch_id: str
    number_of_containers: int
    quantity_per_container: int
    ledger_timestamp: int
    tx_hash: str
    block_number: int
    log_index: int = 0

    @property
    def position(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)

    @property
    def total_quantity(self) -> int:
        return self.number_of_containers * self.quantity_per_container


def sort_events(events: list[ShipmentLockedEvent]) -> list[ShipmentLockedEvent]:
    """Return events in ascending ledger position."""
    return sorted(events, key=lambda event: event.position)

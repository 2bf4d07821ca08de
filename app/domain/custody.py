"""
app/domain/custody.py

Container custody stages and scan ordering rules.

Each stage actor is described by one row of ``SCAN_STAGES``: the container
status the actor expects to find, the status an accepted scan writes, and the
shipment transition to request once every container has reached that status.
Pickup has no completion transition: dispatch is a command, issued once a
transporter is assigned.
Adding a custody stage means adding a row, not a branch.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from db.models.container import ContainerStatus
from db.models.shipment import ShipmentStatus

CONTAINER_ID_PREFIX = "CNT"


class ActorRole:
    SUPPLIER = "supplier"
    TRANSPORTER = "transporter"
    WAREHOUSE = "warehouse"
    RETAILER = "retailer"
    ADMIN = "admin"


@dataclass(frozen=True)
class ScanStage:
    role: str
    action: str
    expected_status: str
    resulting_status: str
    completion_from: tuple[str, ...] = ()
    completion_to: str | None = None

    def completes_from(self, shipment_status: str) -> bool:
        return self.completion_to is not None and shipment_status in self.completion_from


SCAN_STAGES: dict[str, ScanStage] = {
    ActorRole.TRANSPORTER: ScanStage(
        role=ActorRole.TRANSPORTER,
        action="CUSTODY_PICKUP",
        expected_status=ContainerStatus.CREATED,
        resulting_status=ContainerStatus.IN_TRANSIT,
    ),
    ActorRole.WAREHOUSE: ScanStage(
        role=ActorRole.WAREHOUSE,
        action="CUSTODY_RECEIVE",
        expected_status=ContainerStatus.IN_TRANSIT,
        resulting_status=ContainerStatus.AT_WAREHOUSE,
        completion_from=(ShipmentStatus.IN_TRANSIT,),
        completion_to=ShipmentStatus.AT_WAREHOUSE,
    ),
    ActorRole.RETAILER: ScanStage(
        role=ActorRole.RETAILER,
        action="FINAL_DELIVERY",
        expected_status=ContainerStatus.AT_WAREHOUSE,
        resulting_status=ContainerStatus.DELIVERED,
        completion_from=(
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.AT_WAREHOUSE,
            ShipmentStatus.READY_FOR_DISPATCH,
        ),
        completion_to=ShipmentStatus.DELIVERED,
    ),
}


class StagePosition:
    """Where a container's current status sits relative to a scan stage."""

    READY = "ready"
    BEHIND = "behind"
    AT_TARGET = "at_target"
    PAST_TARGET = "past_target"


def stage_for_role(role: str | None) -> ScanStage | None:
    if not role:
        return None
    return SCAN_STAGES.get(role.strip().lower())


def locate(stage: ScanStage, container_status: str) -> str:
    """
    Classify ``container_status`` against ``stage``.
    """

    current = ContainerStatus.rank(container_status)
    expected = ContainerStatus.rank(stage.expected_status)
    target = ContainerStatus.rank(stage.resulting_status)

    if current == expected:
        return StagePosition.READY
    if current < expected:
        return StagePosition.BEHIND
    if current == target:
        return StagePosition.AT_TARGET
    return StagePosition.PAST_TARGET


def build_container_id(shipment_hash: str, sequence_index: int) -> str:
    """
    Deterministic container id: ``CNT-<10 hex of sha256(hash)>-<0001>``.
    """

    digest = hashlib.sha256(shipment_hash.strip().lower().encode("utf-8")).hexdigest()
    return f"{CONTAINER_ID_PREFIX}-{digest[:10].upper()}-{sequence_index:04d}"


def normalize_scanned_id(raw_value: str | None) -> str:
    """
    Normalize raw QR input: trim, drop one layer of wrapping quotes, upper-case.
    """

    if not raw_value:
        return ""
    normalized = raw_value.strip()
    if len(normalized) >= 2 and normalized.startswith('"') and normalized.endswith('"'):
        normalized = normalized[1:-1].strip()
    return normalized.upper()

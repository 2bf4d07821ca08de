"""
Repository layer exports.
"""

from db.repositories.checkpoint_repository import CheckpointRepository
from db.repositories.container_repository import ContainerRepository
from db.repositories.errors import (
    RepositoryError,
    ShipmentNotFoundError,
    UnsupportedDialectError,
)
from db.repositories.scan_log_repository import ScanLogRepository
from db.repositories.shipment_repository import ShipmentRepository
from db.repositories.types import (
    ContainerCreate,
    ContainerScanStamp,
    ContainerStatusCounts,
    PartyAssignment,
    ScanLogCreate,
    ShipmentCreate,
    WriteOutcome,
)

__all__ = [
    "CheckpointRepository",
    "ContainerRepository",
    "ScanLogRepository",
    "ShipmentRepository",
    "ContainerCreate",
    "ContainerScanStamp",
    "ContainerStatusCounts",
    "PartyAssignment",
    "ScanLogCreate",
    "ShipmentCreate",
    "WriteOutcome",
    "RepositoryError",
    "ShipmentNotFoundError",
    "UnsupportedDialectError",
]

"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.checkpoint import CheckpointStatus, IndexerCheckpoint
from db.models.container import Container, ContainerStatus
from db.models.scan_log import ScanLog, ScanResult
from db.models.shipment import Shipment, ShipmentStatus

__all__ = [
    "CheckpointStatus",
    "Container",
    "ContainerStatus",
    "IndexerCheckpoint",
    "ScanLog",
    "ScanResult",
    "Shipment",
    "ShipmentStatus",
]

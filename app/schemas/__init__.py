"""
app/schemas package marker.
"""

from app.schemas.indexer import (
    IndexerHealthResponse,
    IndexerStatusResponse,
    SyncHistoryItem,
    SyncHistoryResponse,
)
from app.schemas.scans import ScanSubmitRequest, ScanSubmitResponse
from app.schemas.shipments import (
    AssignmentRequest,
    ContainerListResponse,
    ContainerResponse,
    ContainerStatsResponse,
    ScanHistoryResponse,
    ScanLogResponse,
    ShipmentListResponse,
    ShipmentResponse,
    TransitionRequest,
    TransitionResponse,
)

__all__ = [
    "AssignmentRequest",
    "ContainerListResponse",
    "ContainerResponse",
    "ContainerStatsResponse",
    "IndexerHealthResponse",
    "IndexerStatusResponse",
    "ScanHistoryResponse",
    "ScanLogResponse",
    "ScanSubmitRequest",
    "ScanSubmitResponse",
    "ShipmentListResponse",
    "ShipmentResponse",
    "SyncHistoryItem",
    "SyncHistoryResponse",
    "TransitionRequest",
    "TransitionResponse",
]

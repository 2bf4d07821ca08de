"""
app/services package marker.
"""

from app.services.event_processor import ShipmentEventProcessor
from app.services.indexer_engine import ShipmentIndexer
from app.services.lifecycle_service import (
    AssignmentRefusedError,
    LifecycleService,
    TransitionResult,
    get_lifecycle_service,
)
from app.services.scan_verifier_service import ScanVerifierService, get_scan_verifier_service
from app.services.shipment_query_service import ShipmentQueryService, get_shipment_query_service

__all__ = [
    "AssignmentRefusedError",
    "LifecycleService",
    "ScanVerifierService",
    "ShipmentEventProcessor",
    "ShipmentIndexer",
    "ShipmentQueryService",
    "TransitionResult",
    "get_lifecycle_service",
    "get_scan_verifier_service",
    "get_shipment_query_service",
]

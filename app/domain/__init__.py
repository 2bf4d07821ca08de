"""
app/domain package marker.
"""

from app.domain.indexer import HealthReport, HealthState, HistoricalSyncResult, IndexerStatus, ProjectionResult
from app.domain.ledger_event import ShipmentLockedEvent
from app.domain.scan import ScanOutcome, ScanRejection, ScanRequest

__all__ = [
    "HealthReport",
    "HealthState",
    "HistoricalSyncResult",
    "IndexerStatus",
    "ProjectionResult",
    "ScanOutcome",
    "ScanRejection",
    "ScanRequest",
    "ShipmentLockedEvent",
]

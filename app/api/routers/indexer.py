"""
app/api/routers/indexer.py

Indexer status, health and sync history endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.dependencies import get_indexer
from app.domain.indexer import HealthState, IndexerStatus
from app.schemas.indexer import (
    IndexerHealthResponse,
    IndexerStatusResponse,
    SyncHistoryItem,
    SyncHistoryResponse,
)
from app.services.indexer_engine import ShipmentIndexer
from app.services.shipment_query_service import ShipmentQueryService, get_shipment_query_service
from db.session import get_db

router = APIRouter(prefix="/indexer", tags=["indexer"])


def _status_response(indexer_status: IndexerStatus) -> IndexerStatusResponse:
    return IndexerStatusResponse(
        stream_key=indexer_status.stream_key,
        is_running=indexer_status.is_running,
        is_connected=indexer_status.is_connected,
        last_processed_position=indexer_status.last_processed_position,
        last_known_height=indexer_status.last_known_height,
        lag=indexer_status.lag,
        checkpoint_status=indexer_status.checkpoint_status,
        total_events_processed=indexer_status.total_events_processed,
        last_error=indexer_status.last_error,
        last_sync_at=indexer_status.last_sync_at,
        reconnect_attempts=indexer_status.reconnect_attempts,
    )


@router.get("/status", response_model=IndexerStatusResponse)
def indexer_status(indexer: ShipmentIndexer = Depends(get_indexer)) -> IndexerStatusResponse:
    return _status_response(indexer.get_status())


@router.get("/health", response_model=IndexerHealthResponse)
def indexer_health(indexer: ShipmentIndexer = Depends(get_indexer)):
    """
    Healthy and degraded answer 200; unhealthy answers 503.
    """

    report = indexer.health()
    response = IndexerHealthResponse(
        state=report.state,
        issues=report.issues,
        status=_status_response(report.status),
    )
    if report.state == HealthState.UNHEALTHY:
        return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
    return response


@router.get("/sync-history", response_model=SyncHistoryResponse)
def sync_history(
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> SyncHistoryResponse:
    return SyncHistoryResponse(
        checkpoints=[SyncHistoryItem.model_validate(item) for item in queries.sync_history(db)]
    )

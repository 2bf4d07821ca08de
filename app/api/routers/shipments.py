"""
app/api/routers/shipments.py

Shipment query, lifecycle transition and assignment endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.domain.lifecycle import TransitionRejection
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
from app.services.lifecycle_service import (
    AssignmentRefusedError,
    LifecycleService,
    get_lifecycle_service,
)
from app.services.shipment_query_service import ShipmentQueryService, get_shipment_query_service
from db.models.container import ContainerStatus
from db.models.shipment import ShipmentStatus
from db.repositories import PartyAssignment, ShipmentNotFoundError
from db.session import get_db

router = APIRouter(prefix="/shipments", tags=["shipments"])


def _not_found(exc: ShipmentNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.get("", response_model=ShipmentListResponse)
def list_shipments(
    supplier: str | None = Query(default=None, description="Supplier wallet filter"),
    shipment_status: str | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> ShipmentListResponse:
    if shipment_status is not None and shipment_status.upper() not in ShipmentStatus.ALL:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status '{shipment_status}'.",
        )
    result = queries.list_shipments(
        db,
        supplier_wallet=supplier,
        status=shipment_status.upper() if shipment_status else None,
        page=page,
        limit=limit,
    )
    return ShipmentListResponse(
        items=[ShipmentResponse.model_validate(item) for item in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/{shipment_hash}", response_model=ShipmentResponse)
def get_shipment(
    shipment_hash: str,
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> ShipmentResponse:
    try:
        shipment = queries.get_shipment(db, shipment_hash)
    except ShipmentNotFoundError as exc:
        raise _not_found(exc) from exc
    return ShipmentResponse.model_validate(shipment)


@router.get("/{shipment_hash}/containers", response_model=ContainerListResponse)
def list_containers(
    shipment_hash: str,
    container_status: str | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=100, ge=1, le=100),
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> ContainerListResponse:
    if container_status is not None and container_status.upper() not in ContainerStatus.ORDER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown container status '{container_status}'.",
        )
    try:
        containers = queries.list_containers(
            db,
            shipment_hash,
            status=container_status.upper() if container_status else None,
            page=page,
            limit=limit,
        )
    except ShipmentNotFoundError as exc:
        raise _not_found(exc) from exc
    return ContainerListResponse(
        shipment_hash=shipment_hash,
        containers=[ContainerResponse.model_validate(container) for container in containers],
    )


@router.get("/{shipment_hash}/containers/stats", response_model=ContainerStatsResponse)
def container_stats(
    shipment_hash: str,
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> ContainerStatsResponse:
    try:
        stats = queries.container_stats(db, shipment_hash)
    except ShipmentNotFoundError as exc:
        raise _not_found(exc) from exc
    return ContainerStatsResponse(
        shipment_hash=stats.shipment_hash,
        shipment_status=stats.shipment_status,
        total=stats.total,
        by_status=stats.by_status,
    )


@router.get("/{shipment_hash}/scans", response_model=ScanHistoryResponse)
def scan_history(
    shipment_hash: str,
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> ScanHistoryResponse:
    try:
        scans = queries.scan_history(db, shipment_hash, limit=limit)
    except ShipmentNotFoundError as exc:
        raise _not_found(exc) from exc
    return ScanHistoryResponse(
        shipment_hash=shipment_hash,
        scans=[ScanLogResponse.model_validate(scan) for scan in scans],
    )


@router.post("/{shipment_hash}/transitions", response_model=TransitionResponse)
def request_transition(
    shipment_hash: str,
    payload: TransitionRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
) -> TransitionResponse:
    """
    Request a lifecycle transition; rejected requests return 409 with the reason code.
    """

    try:
        result = lifecycle.request_transition(db, shipment_hash, payload.target_status)
    except ShipmentNotFoundError as exc:
        raise _not_found(exc) from exc

    response = TransitionResponse(
        shipment_hash=result.shipment_hash,
        accepted=result.accepted,
        from_status=result.from_status,
        to_status=result.to_status,
        current_status=result.current_status,
        code=result.code,
        message=result.message,
        no_op=result.no_op,
    )
    if not result.accepted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=response.model_dump())
    return response


@router.put("/{shipment_hash}/assignments", response_model=ShipmentResponse)
def assign_parties(
    shipment_hash: str,
    payload: AssignmentRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
) -> ShipmentResponse:
    assignment = PartyAssignment(
        assigned_transporter=payload.assigned_transporter,
        assigned_warehouse=payload.assigned_warehouse,
        next_transporter=payload.next_transporter,
        assigned_retailer=payload.assigned_retailer,
    )
    try:
        shipment = lifecycle.assign_parties(db, shipment_hash, assignment)
    except ShipmentNotFoundError as exc:
        raise _not_found(exc) from exc
    except AssignmentRefusedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": TransitionRejection.SHIPMENT_DELIVERED, "message": str(exc)},
        ) from exc
    return ShipmentResponse.model_validate(shipment)

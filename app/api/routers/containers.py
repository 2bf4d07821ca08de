"""
app/api/routers/containers.py

Single-container lookup.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.schemas.shipments import ContainerResponse
from app.services.shipment_query_service import ShipmentQueryService, get_shipment_query_service
from db.session import get_db

router = APIRouter(prefix="/containers", tags=["containers"])


@router.get("/{container_id}", response_model=ContainerResponse)
def get_container(
    container_id: str,
    db: Session = Depends(get_db),
    queries: ShipmentQueryService = Depends(get_shipment_query_service),
) -> ContainerResponse:
    container = queries.get_container(db, container_id)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Container not found: {container_id}",
        )
    return ContainerResponse.model_validate(container)

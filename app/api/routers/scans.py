"""
app/api/routers/scans.py

Physical scan submission endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.domain.scan import ScanRejection, ScanRequest
from app.schemas.scans import ScanSubmitRequest, ScanSubmitResponse
from app.services.scan_verifier_service import ScanVerifierService, get_scan_verifier_service
from db.session import get_db

router = APIRouter(tags=["scans"])

REJECTION_STATUS_CODES = {
    ScanRejection.NOT_FOUND: 404,
    ScanRejection.ERROR: 503,
}


@router.post("/scans", response_model=ScanSubmitResponse)
def submit_scan(
    payload: ScanSubmitRequest,
    db: Session = Depends(get_db),
    verifier: ScanVerifierService = Depends(get_scan_verifier_service),
):
    """
    Submit one container scan.

    Domain rejections are returned with ``accepted=false`` and a stable code;
    unknown containers answer 404 and storage failures 503.
    """

    outcome = verifier.submit_scan(
        db,
        ScanRequest(
            raw_container_id=payload.container_id,
            actor_role=payload.actor_role,
            actor_identity=payload.actor_identity,
            location=payload.location,
            metadata=payload.metadata,
        ),
    )
    response = ScanSubmitResponse(
        accepted=outcome.accepted,
        code=outcome.code,
        message=outcome.message,
        container_id=outcome.container_id,
        shipment_hash=outcome.shipment_hash,
        previous_status=outcome.previous_status,
        container_status=outcome.container_status,
        shipment_status=outcome.shipment_status,
        scanned_count=outcome.scanned_count,
        total_count=outcome.total_count,
        is_complete=outcome.is_complete,
        shipment_transitioned=outcome.shipment_transitioned,
    )
    status_code = REJECTION_STATUS_CODES.get(outcome.code or "", 200)
    if status_code != 200:
        return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
    return response

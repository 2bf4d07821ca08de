"""
app/services/scan_verifier_service.py

Container scan verification and stage completion.

Every attempt, accepted or rejected, is appended to the scan log. The status
write is a compare-and-set on the status the verifier observed, so concurrent
scans of one container produce a single winner and the loser is reported as
a duplicate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.custody import (
    ScanStage,
    StagePosition,
    locate,
    normalize_scanned_id,
    stage_for_role,
)
from app.domain.scan import ScanOutcome, ScanRejection, ScanRequest
from app.logging_utils import log_event
from app.services.lifecycle_service import LifecycleService, get_lifecycle_service
from db.models.container import Container
from db.models.scan_log import ScanResult
from db.models.shipment import Shipment
from db.repositories import (
    ContainerRepository,
    ContainerScanStamp,
    ScanLogCreate,
    ScanLogRepository,
    ShipmentRepository,
    WriteOutcome,
)

logger = logging.getLogger(__name__)

POSITION_REJECTIONS = {
    StagePosition.BEHIND: ScanRejection.PRIOR_ACTOR_SCAN_REQUIRED,
    StagePosition.AT_TARGET: ScanRejection.DUPLICATE,
    StagePosition.PAST_TARGET: ScanRejection.ALREADY_AT_TARGET_STAGE,
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _rejection_message(code: str, stage: ScanStage, container_status: str) -> str:
    if code == ScanRejection.PRIOR_ACTOR_SCAN_REQUIRED:
        return (
            f"Container is {container_status}; {stage.role} scan requires status "
            f"{stage.expected_status} from the previous custody stage."
        )
    if code == ScanRejection.DUPLICATE:
        return f"Container was already scanned by {stage.role} ({container_status})."
    return f"Container is already past the {stage.role} stage ({container_status})."


class ScanVerifierService:
    """
    Request-scoped scan verification; holds no state between calls.
    """

    def __init__(self, lifecycle: LifecycleService | None = None) -> None:
        self._lifecycle = lifecycle or LifecycleService()

    def submit_scan(self, db: Session, request: ScanRequest) -> ScanOutcome:
        container_id = normalize_scanned_id(request.raw_container_id)
        role = (request.actor_role or "").strip().lower()

        if not container_id:
            return self._reject(
                db,
                request,
                container_id=(request.raw_container_id or "").strip()[:128],
                code=ScanRejection.INVALID_QR_FORMAT,
                message="Scanned payload is empty.",
            )

        stage = stage_for_role(role)
        if stage is None:
            return self._reject(
                db,
                request,
                container_id=container_id,
                code=ScanRejection.ROLE_NOT_ALLOWED,
                message=f"Role '{role or 'unknown'}' cannot scan containers.",
            )

        try:
            return self._verify(db, request, container_id, stage)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Scan verification failed container=%s role=%s error=%s", container_id, role, exc)
            return self._reject(
                db,
                request,
                container_id=container_id,
                code=ScanRejection.ERROR,
                message="Scan could not be recorded due to a storage error; retry later.",
            )

    def _verify(
        self,
        db: Session,
        request: ScanRequest,
        container_id: str,
        stage: ScanStage,
    ) -> ScanOutcome:
        containers = ContainerRepository(db)
        shipments = ShipmentRepository(db)

        container = containers.get_by_container_id(container_id, refresh=True)
        if container is None:
            return self._reject(
                db,
                request,
                container_id=container_id,
                code=ScanRejection.NOT_FOUND,
                message=f"Container {container_id} does not exist.",
            )

        shipment = shipments.get_by_hash(container.shipment_hash, refresh=True)
        if shipment is None or not shipment.is_on_ledger:
            return self._reject(
                db,
                request,
                container_id=container_id,
                code=ScanRejection.NOT_ON_LEDGER,
                message="Owning shipment has not been indexed from the ledger.",
                container=container,
            )

        position = locate(stage, container.status)
        if position != StagePosition.READY:
            code = POSITION_REJECTIONS[position]
            return self._reject(
                db,
                request,
                container_id=container_id,
                code=code,
                message=_rejection_message(code, stage, container.status),
                container=container,
                shipment=shipment,
                stage=stage,
            )

        previous_status = container.status
        outcome = containers.compare_and_set_status(
            container_id,
            expected_status=stage.expected_status,
            new_status=stage.resulting_status,
            stamp=ContainerScanStamp(
                actor_role=stage.role,
                actor_identity=request.actor_identity,
                scanned_at=_now_utc(),
                location=request.location,
            ),
        )
        if outcome != WriteOutcome.APPLIED:
            db.rollback()
            current_status = containers.get_status(container_id) or previous_status
            code = POSITION_REJECTIONS.get(locate(stage, current_status), ScanRejection.DUPLICATE)
            logger.info(
                "Scan lost compare-and-set container=%s role=%s outcome=%s current=%s",
                container_id,
                stage.role,
                outcome,
                current_status,
            )
            return self._reject(
                db,
                request,
                container_id=container_id,
                code=code,
                message=_rejection_message(code, stage, current_status),
                container=container,
                shipment=shipment,
                stage=stage,
                container_status=current_status,
            )

        ScanLogRepository(db).append(
            ScanLogCreate(
                container_id=container_id,
                shipment_hash=shipment.shipment_hash,
                actor_role=stage.role,
                actor_identity=request.actor_identity,
                result=ScanResult.ACCEPTED,
                message=stage.action,
                previous_status=previous_status,
                new_status=stage.resulting_status,
                location=request.location,
                metadata_json=request.metadata or None,
            )
        )
        db.commit()

        # Fresh count after commit; concurrent scans of sibling containers
        # may have landed between our write and this read.
        scanned_count = containers.count_reached(shipment.shipment_hash, stage.resulting_status)
        total_count = shipment.number_of_containers
        is_complete = scanned_count >= total_count

        shipment_status = shipments.get_by_hash(shipment.shipment_hash, refresh=True).status
        transitioned = False
        if is_complete and stage.completes_from(shipment_status):
            # The scan is already committed; a failed completion leaves the
            # shipment status for the transition command to move.
            try:
                result = self._lifecycle.request_transition(db, shipment.shipment_hash, stage.completion_to)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Stage completion failed shipment=%s stage=%s", shipment.shipment_hash, stage.role)
            else:
                transitioned = result.transitioned
                shipment_status = result.current_status
                if not result.accepted:
                    logger.info(
                        "Stage complete but transition refused shipment=%s code=%s",
                        shipment.shipment_hash,
                        result.code,
                    )

        log_event(
            logger,
            logging.INFO,
            "scan_accepted",
            container_id=container_id,
            shipment_hash=shipment.shipment_hash,
            role=stage.role,
            actor=request.actor_identity,
            scanned_count=scanned_count,
            total_count=total_count,
            shipment_transitioned=transitioned,
        )
        return ScanOutcome(
            accepted=True,
            message=f"{stage.action}: container {container_id} is now {stage.resulting_status}.",
            container_id=container_id,
            shipment_hash=shipment.shipment_hash,
            previous_status=previous_status,
            container_status=stage.resulting_status,
            shipment_status=shipment_status,
            scanned_count=scanned_count,
            total_count=total_count,
            is_complete=is_complete,
            shipment_transitioned=transitioned,
        )

    def _reject(
        self,
        db: Session,
        request: ScanRequest,
        *,
        container_id: str,
        code: str,
        message: str,
        container: Container | None = None,
        shipment: Shipment | None = None,
        stage: ScanStage | None = None,
        container_status: str | None = None,
    ) -> ScanOutcome:
        status = container_status or (container.status if container is not None else None)
        shipment_hash = container.shipment_hash if container is not None else None

        scanned_count = 0
        total_count = 0
        if shipment is not None and stage is not None and code != ScanRejection.ERROR:
            scanned_count = ContainerRepository(db).count_reached(shipment.shipment_hash, stage.resulting_status)
            total_count = shipment.number_of_containers

        try:
            ScanLogRepository(db).append(
                ScanLogCreate(
                    container_id=container_id[:128],
                    shipment_hash=shipment_hash,
                    actor_role=(request.actor_role or "").strip().lower()[:32] or "unknown",
                    actor_identity=request.actor_identity,
                    result=ScanResult.REJECTED,
                    rejection_code=code,
                    message=message,
                    previous_status=status,
                    location=request.location,
                    metadata_json=request.metadata or None,
                )
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to append scan log container=%s code=%s", container_id, code)

        logger.info(
            "Scan rejected container=%s role=%s actor=%s code=%s",
            container_id,
            request.actor_role,
            request.actor_identity,
            code,
        )
        return ScanOutcome(
            accepted=False,
            code=code,
            message=message,
            container_id=container_id,
            shipment_hash=shipment_hash,
            previous_status=status,
            container_status=status,
            shipment_status=shipment.status if shipment is not None else None,
            scanned_count=scanned_count,
            total_count=total_count,
            is_complete=bool(total_count) and scanned_count >= total_count,
        )


@lru_cache(maxsize=1)
def get_scan_verifier_service() -> ScanVerifierService:
    """
    Build and cache the scan verifier service.
    """

    return ScanVerifierService(lifecycle=get_lifecycle_service())

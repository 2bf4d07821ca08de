"""
app/services/lifecycle_service.py

Shipment lifecycle commands: status transitions and party assignments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import Session

from app.domain.lifecycle import ShipmentSnapshot, TransitionRejection, evaluate_transition
from app.logging_utils import log_event
from db.models.container import ContainerStatus
from db.models.shipment import Shipment, ShipmentStatus
from db.repositories import (
    ContainerRepository,
    PartyAssignment,
    RepositoryError,
    ShipmentNotFoundError,
    ShipmentRepository,
    WriteOutcome,
)

logger = logging.getLogger(__name__)


class AssignmentRefusedError(RepositoryError):
    """
    Raised when assignments are submitted for a shipment that can no longer change.
    """


@dataclass(frozen=True)
class TransitionResult:
    shipment_hash: str
    accepted: bool
    from_status: str
    to_status: str
    current_status: str
    code: str | None = None
    message: str | None = None
    no_op: bool = False

    @property
    def transitioned(self) -> bool:
        return self.accepted and not self.no_op


class LifecycleService:
    """
    Validates and applies shipment status transitions.

    Every transition goes through the same rule table and ends in a
    compare-and-set on the status the decision was made against, so a
    concurrent change is reported as ``STALE_STATUS`` rather than overwritten.
    """

    def request_transition(
        self,
        db: Session,
        shipment_hash: str,
        target_status: str,
    ) -> TransitionResult:
        shipments = ShipmentRepository(db)
        shipment = shipments.get_by_hash(shipment_hash, refresh=True)
        if shipment is None:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_hash}")

        if target_status not in ShipmentStatus.ALL:
            return TransitionResult(
                shipment_hash=shipment_hash,
                accepted=False,
                from_status=shipment.status,
                to_status=target_status,
                current_status=shipment.status,
                code=TransitionRejection.INVALID_TRANSITION,
                message=f"Unknown shipment status: {target_status}",
            )

        snapshot = self._snapshot(db, shipment)
        decision = evaluate_transition(snapshot, target_status)
        if not decision.allowed or decision.no_op:
            if not decision.allowed:
                logger.info(
                    "Transition rejected shipment=%s from=%s to=%s code=%s",
                    shipment_hash,
                    decision.from_status,
                    target_status,
                    decision.code,
                )
            return TransitionResult(
                shipment_hash=shipment_hash,
                accepted=decision.allowed,
                from_status=decision.from_status,
                to_status=target_status,
                current_status=shipment.status,
                code=decision.code,
                message=decision.message,
                no_op=decision.no_op,
            )

        try:
            outcome = shipments.compare_and_set_status(
                shipment_hash,
                expected_status=decision.from_status,
                new_status=target_status,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        if outcome == WriteOutcome.CONFLICT:
            current = shipments.get_by_hash(shipment_hash, refresh=True)
            current_status = current.status if current is not None else decision.from_status
            return TransitionResult(
                shipment_hash=shipment_hash,
                accepted=False,
                from_status=decision.from_status,
                to_status=target_status,
                current_status=current_status,
                code=TransitionRejection.STALE_STATUS,
                message=f"Shipment status changed concurrently; now {current_status}.",
            )

        if outcome == WriteOutcome.ALREADY_SATISFIED:
            return TransitionResult(
                shipment_hash=shipment_hash,
                accepted=True,
                from_status=decision.from_status,
                to_status=target_status,
                current_status=target_status,
                message=f"Shipment is already {target_status}.",
                no_op=True,
            )

        log_event(
            logger,
            logging.INFO,
            "shipment_transitioned",
            shipment_hash=shipment_hash,
            from_status=decision.from_status,
            to_status=target_status,
        )
        return TransitionResult(
            shipment_hash=shipment_hash,
            accepted=True,
            from_status=decision.from_status,
            to_status=target_status,
            current_status=target_status,
            message=f"Shipment moved {decision.from_status} -> {target_status}.",
        )

    def assign_parties(self, db: Session, shipment_hash: str, assignment: PartyAssignment) -> Shipment:
        shipments = ShipmentRepository(db)
        shipment = shipments.get_by_hash(shipment_hash, refresh=True)
        if shipment is None:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_hash}")
        if shipment.status == ShipmentStatus.DELIVERED:
            raise AssignmentRefusedError(f"Shipment {shipment_hash} is already delivered.")

        try:
            updated = shipments.update_assignments(shipment_hash, assignment)
            db.commit()
        except Exception:
            db.rollback()
            raise

        log_event(
            logger,
            logging.INFO,
            "shipment_assigned",
            shipment_hash=shipment_hash,
            **assignment.as_values(),
        )
        return updated

    @staticmethod
    def _snapshot(db: Session, shipment: Shipment) -> ShipmentSnapshot:
        containers = ContainerRepository(db)
        reached_counts = {
            status: containers.count_reached(shipment.shipment_hash, status)
            for status in (ContainerStatus.AT_WAREHOUSE, ContainerStatus.DELIVERED)
        }
        return ShipmentSnapshot(
            shipment_hash=shipment.shipment_hash,
            status=shipment.status,
            number_of_containers=shipment.number_of_containers,
            assigned_transporter=shipment.assigned_transporter,
            assigned_warehouse=shipment.assigned_warehouse,
            next_transporter=shipment.next_transporter,
            assigned_retailer=shipment.assigned_retailer,
            reached_counts=reached_counts,
        )


@lru_cache(maxsize=1)
def get_lifecycle_service() -> LifecycleService:
    return LifecycleService()

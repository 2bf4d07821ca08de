"""
app/services/event_processor.py

Projection of ShipmentLocked events into shipments and containers.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.domain.custody import build_container_id
from app.domain.indexer import ProjectionResult
from app.domain.ledger_event import ShipmentLockedEvent
from app.logging_utils import log_event
from db.models.container import ContainerStatus
from db.models.shipment import ShipmentStatus
from db.repositories import (
    ContainerCreate,
    ContainerRepository,
    ShipmentCreate,
    ShipmentRepository,
    WriteOutcome,
)

logger = logging.getLogger(__name__)


class ShipmentEventProcessor:
    """
    Idempotent projection of one creation event.

    Projecting the same event any number of times, from either the replay or
    the live path, leaves exactly one shipment and its full container set.
    """

    def project(self, db: Session, event: ShipmentLockedEvent) -> ProjectionResult:
        shipments = ShipmentRepository(db)
        containers = ContainerRepository(db)

        try:
            outcome = shipments.insert_if_absent(
                ShipmentCreate(
                    shipment_hash=event.shipment_hash,
                    batch_id=event.batch_id,
                    supplier_wallet=event.supplier.lower(),
                    number_of_containers=event.number_of_containers,
                    quantity_per_container=event.quantity_per_container,
                    tx_hash=event.tx_hash,
                    block_number=event.block_number,
                    blockchain_timestamp=event.ledger_timestamp,
                    status=ShipmentStatus.READY_FOR_DISPATCH,
                )
            )

            # Also runs for existing shipments: repairs a container set left
            # short by an earlier partial failure.
            created = 0
            if containers.count_for_shipment(event.shipment_hash) < event.number_of_containers:
                created = containers.insert_missing(self._container_records(event))

            db.commit()
        except Exception:
            db.rollback()
            raise

        shipment_created = outcome == WriteOutcome.APPLIED
        log_event(
            logger,
            logging.INFO if shipment_created or created else logging.DEBUG,
            "shipment_projected",
            shipment_hash=event.shipment_hash,
            block_number=event.block_number,
            shipment_created=shipment_created,
            containers_created=created,
        )
        return ProjectionResult(
            shipment_hash=event.shipment_hash,
            shipment_created=shipment_created,
            containers_created=created,
        )

    @staticmethod
    def _container_records(event: ShipmentLockedEvent) -> list[ContainerCreate]:
        records: list[ContainerCreate] = []
        for index in range(1, event.number_of_containers + 1):
            container_id = build_container_id(event.shipment_hash, index)
            records.append(
                ContainerCreate(
                    container_id=container_id,
                    shipment_hash=event.shipment_hash,
                    sequence_index=index,
                    qr_data=container_id,
                    quantity=event.quantity_per_container,
                    status=ContainerStatus.CREATED,
                )
            )
        return records

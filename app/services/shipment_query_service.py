"""
app/services/shipment_query_service.py

Read-side queries over projected shipments, containers and scan history.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import Session

from app.domain.custody import normalize_scanned_id
from db.models.checkpoint import IndexerCheckpoint
from db.models.container import Container, ContainerStatus
from db.models.scan_log import ScanLog
from db.models.shipment import Shipment
from db.repositories import (
    CheckpointRepository,
    ContainerRepository,
    ScanLogRepository,
    ShipmentNotFoundError,
    ShipmentRepository,
)

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class ShipmentPage:
    items: Sequence[Shipment]
    total: int
    page: int
    limit: int


@dataclass(frozen=True)
class ContainerStats:
    shipment_hash: str
    total: int
    by_status: dict[str, int]
    shipment_status: str


class ShipmentQueryService:
    def list_shipments(
        self,
        db: Session,
        *,
        supplier_wallet: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ShipmentPage:
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)
        items, total = ShipmentRepository(db).list_shipments(
            supplier_wallet=supplier_wallet,
            status=status,
            page=page,
            limit=limit,
        )
        return ShipmentPage(items=items, total=total, page=page, limit=limit)

    def get_shipment(self, db: Session, shipment_hash: str) -> Shipment:
        shipment = ShipmentRepository(db).get_by_hash(shipment_hash, refresh=True)
        if shipment is None:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_hash}")
        return shipment

    def list_containers(
        self,
        db: Session,
        shipment_hash: str,
        *,
        status: str | None = None,
        page: int = 1,
        limit: int = MAX_PAGE_SIZE,
    ) -> Sequence[Container]:
        self.get_shipment(db, shipment_hash)
        return ContainerRepository(db).list_for_shipment(
            shipment_hash,
            status=status,
            page=page,
            limit=min(max(1, limit), MAX_PAGE_SIZE),
        )

    def get_container(self, db: Session, container_id: str) -> Container | None:
        return ContainerRepository(db).get_by_container_id(normalize_scanned_id(container_id), refresh=True)

    def container_stats(self, db: Session, shipment_hash: str) -> ContainerStats:
        shipment = self.get_shipment(db, shipment_hash)
        counts = ContainerRepository(db).count_by_status(shipment_hash)
        return ContainerStats(
            shipment_hash=shipment_hash,
            total=counts.total,
            by_status={status: counts.count(status) for status in ContainerStatus.ORDER},
            shipment_status=shipment.status,
        )

    def scan_history(self, db: Session, shipment_hash: str, *, limit: int = 50) -> Sequence[ScanLog]:
        self.get_shipment(db, shipment_hash)
        return ScanLogRepository(db).list_for_shipment(shipment_hash, limit=limit)

    def sync_history(self, db: Session) -> Sequence[IndexerCheckpoint]:
        return CheckpointRepository(db).list_all()


@lru_cache(maxsize=1)
def get_shipment_query_service() -> ShipmentQueryService:
    return ShipmentQueryService()

"""
Append-only repository for scan attempts.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.scan_log import ScanLog
from db.repositories.types import ScanLogCreate


class ScanLogRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, entry: ScanLogCreate) -> ScanLog:
        log = ScanLog(
            container_id=entry.container_id,
            shipment_hash=entry.shipment_hash,
            actor_role=entry.actor_role,
            actor_identity=entry.actor_identity,
            result=entry.result,
            rejection_code=entry.rejection_code,
            message=entry.message,
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            location=entry.location,
            metadata_json=entry.metadata_json,
        )
        self._session.add(log)
        self._session.flush()
        return log

    def list_for_shipment(self, shipment_hash: str, *, limit: int = 50) -> Sequence[ScanLog]:
        stmt = (
            select(ScanLog)
            .where(ScanLog.shipment_hash == shipment_hash)
            .order_by(ScanLog.created_at.desc(), ScanLog.id)
            .limit(min(max(1, limit), 100))
        )
        return self._session.scalars(stmt).all()

    def list_for_container(self, container_id: str, *, limit: int = 50) -> Sequence[ScanLog]:
        stmt = (
            select(ScanLog)
            .where(ScanLog.container_id == container_id)
            .order_by(ScanLog.created_at.desc(), ScanLog.id)
            .limit(min(max(1, limit), 100))
        )
        return self._session.scalars(stmt).all()

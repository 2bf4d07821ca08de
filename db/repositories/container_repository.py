"""
db/repositories/container_repository.py

Persistence for containers and their custody status.

Status changes go through ``compare_and_set_status`` only: the UPDATE is
guarded on the status the caller observed, so concurrent scans of the same
container produce exactly one winner.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from db.models.container import Container, ContainerStatus
from db.repositories.dialect import conflict_insert
from db.repositories.types import (
    ContainerCreate,
    ContainerScanStamp,
    ContainerStatusCounts,
    WriteOutcome,
)


class ContainerRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert_missing(self, records: Sequence[ContainerCreate]) -> int:
        """
        Insert the given containers, skipping ids that already exist.

        Returns the number of rows actually inserted.
        """

        if not records:
            return 0

        payloads = [
            {
                "container_id": record.container_id,
                "shipment_hash": record.shipment_hash,
                "sequence_index": record.sequence_index,
                "qr_data": record.qr_data,
                "quantity": record.quantity,
                "status": record.status,
            }
            for record in records
        ]
        # No conflict target: a row colliding on either the container id or
        # (shipment, sequence) is the same container.
        stmt = (
            conflict_insert(self._session, Container)
            .values(payloads)
            .on_conflict_do_nothing()
            .returning(Container.container_id)
        )
        return len(self._session.execute(stmt).scalars().all())

    def compare_and_set_status(
        self,
        container_id: str,
        *,
        expected_status: str,
        new_status: str,
        stamp: ContainerScanStamp,
    ) -> str:
        result = self._session.execute(
            update(Container)
            .where(
                Container.container_id == container_id,
                Container.status == expected_status,
            )
            .values(
                status=new_status,
                last_scanned_by_role=stamp.actor_role,
                last_scanned_by=stamp.actor_identity,
                last_scanned_at=stamp.scanned_at,
                last_scan_location=stamp.location,
            )
        )
        if result.rowcount == 1:
            return WriteOutcome.APPLIED

        current = self.get_status(container_id)
        if current == new_status:
            return WriteOutcome.ALREADY_SATISFIED
        return WriteOutcome.CONFLICT

    def delete_all(self) -> int:
        result = self._session.execute(delete(Container))
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_container_id(self, container_id: str, *, refresh: bool = False) -> Container | None:
        stmt = select(Container).where(Container.container_id == container_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self._session.scalars(stmt).one_or_none()

    def get_status(self, container_id: str) -> str | None:
        return self._session.scalar(
            select(Container.status).where(Container.container_id == container_id)
        )

    def list_for_shipment(
        self,
        shipment_hash: str,
        *,
        status: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> Sequence[Container]:
        stmt = select(Container).where(Container.shipment_hash == shipment_hash)
        if status:
            stmt = stmt.where(Container.status == status)
        size = max(1, limit)
        stmt = (
            stmt.order_by(Container.sequence_index)
            .offset((max(1, page) - 1) * size)
            .limit(size)
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).all()

    def count_for_shipment(self, shipment_hash: str) -> int:
        stmt = select(func.count()).select_from(Container).where(
            Container.shipment_hash == shipment_hash
        )
        return self._session.scalar(stmt) or 0

    def count_by_status(self, shipment_hash: str) -> ContainerStatusCounts:
        rows = self._session.execute(
            select(Container.status, func.count())
            .where(Container.shipment_hash == shipment_hash)
            .group_by(Container.status)
        ).all()
        by_status = {status: count for status, count in rows}
        return ContainerStatusCounts(total=sum(by_status.values()), by_status=by_status)

    def count_reached(self, shipment_hash: str, status: str) -> int:
        """
        Count containers whose custody status is ``status`` or later.
        """

        reached = ContainerStatus.ORDER[ContainerStatus.rank(status):]
        stmt = select(func.count()).select_from(Container).where(
            Container.shipment_hash == shipment_hash,
            Container.status.in_(reached),
        )
        return self._session.scalar(stmt) or 0

"""
db/repositories/shipment_repository.py

Persistence for projected shipments.

The caller controls commit/rollback; this repository never commits on its own.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.orm import Session

from db.models.shipment import Shipment
from db.repositories.dialect import conflict_insert
from db.repositories.errors import ShipmentNotFoundError
from db.repositories.types import PartyAssignment, ShipmentCreate, WriteOutcome


class ShipmentRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert_if_absent(self, payload: ShipmentCreate) -> str:
        """
        Insert a shipment unless one with the same hash already exists.

        The unique constraint on ``shipment_hash`` arbitrates between the
        replay and live paths; the loser sees ``ALREADY_SATISFIED``.
        """

        stmt = (
            conflict_insert(self._session, Shipment)
            .values(
                shipment_hash=payload.shipment_hash,
                batch_id=payload.batch_id,
                supplier_wallet=payload.supplier_wallet,
                number_of_containers=payload.number_of_containers,
                quantity_per_container=payload.quantity_per_container,
                total_quantity=payload.total_quantity,
                tx_hash=payload.tx_hash,
                block_number=payload.block_number,
                blockchain_timestamp=payload.blockchain_timestamp,
                status=payload.status,
            )
            .on_conflict_do_nothing(index_elements=["shipment_hash"])
            .returning(Shipment.id)
        )
        inserted_id = self._session.execute(stmt).scalar_one_or_none()
        return WriteOutcome.APPLIED if inserted_id is not None else WriteOutcome.ALREADY_SATISFIED

    def compare_and_set_status(
        self,
        shipment_hash: str,
        *,
        expected_status: str,
        new_status: str,
    ) -> str:
        """
        Move a shipment from ``expected_status`` to ``new_status`` atomically.
        """

        result = self._session.execute(
            update(Shipment)
            .where(
                Shipment.shipment_hash == shipment_hash,
                Shipment.status == expected_status,
            )
            .values(
                status=new_status,
                status_updated_at=datetime.now(timezone.utc),
            )
        )
        if result.rowcount == 1:
            return WriteOutcome.APPLIED

        current = self._session.scalar(
            select(Shipment.status).where(Shipment.shipment_hash == shipment_hash)
        )
        if current is None:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_hash}")
        if current == new_status:
            return WriteOutcome.ALREADY_SATISFIED
        return WriteOutcome.CONFLICT

    def update_assignments(self, shipment_hash: str, assignment: PartyAssignment) -> Shipment:
        shipment = self.get_by_hash(shipment_hash)
        if shipment is None:
            raise ShipmentNotFoundError(f"Shipment not found: {shipment_hash}")
        for field_name, value in assignment.as_values().items():
            setattr(shipment, field_name, value)
        self._session.flush()
        return shipment

    def delete_all(self) -> int:
        result = self._session.execute(delete(Shipment))
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_hash(self, shipment_hash: str, *, refresh: bool = False) -> Shipment | None:
        stmt = select(Shipment).where(Shipment.shipment_hash == shipment_hash)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self._session.scalars(stmt).one_or_none()

    def exists(self, shipment_hash: str) -> bool:
        stmt = select(func.count()).select_from(Shipment).where(
            Shipment.shipment_hash == shipment_hash
        )
        return bool(self._session.scalar(stmt))

    def list_shipments(
        self,
        *,
        supplier_wallet: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[Sequence[Shipment], int]:
        stmt: Select[tuple[Shipment]] = select(Shipment)
        if supplier_wallet:
            stmt = stmt.where(Shipment.supplier_wallet == supplier_wallet.strip().lower())
        if status:
            stmt = stmt.where(Shipment.status == status)

        total = self._session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        size = max(1, limit)
        offset = (max(1, page) - 1) * size
        stmt = stmt.order_by(Shipment.block_number.desc(), Shipment.created_at.desc())
        items = self._session.scalars(stmt.offset(offset).limit(size)).all()
        return items, total

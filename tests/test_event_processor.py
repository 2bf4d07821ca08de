"""
tests/test_event_processor.py

Pytest tests for ShipmentEventProcessor against in-memory SQLite.

Coverage
--------
- Shipment and full container set created from one event
- Deterministic container ids, QR payload and initial statuses
- Re-projection is a no-op (same event, any number of times)
- Missing containers repaired for an already projected shipment
- Supplier wallet normalised to lower case
"""

from __future__ import annotations

import pytest
from sqlalchemy import delete, func, select

from app.domain.custody import build_container_id
from app.services.event_processor import ShipmentEventProcessor
from db.models.container import Container, ContainerStatus
from db.models.shipment import Shipment, ShipmentStatus


@pytest.fixture()
def processor() -> ShipmentEventProcessor:
    return ShipmentEventProcessor()


def _count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


# ---------------------------------------------------------------------------
# First projection
# ---------------------------------------------------------------------------


class TestFirstProjection:
    def test_creates_shipment_ready_for_dispatch(self, db, processor, make_event) -> None:
        event = make_event("SHIP-A", containers=3, quantity=40, block_number=12)
        result = processor.project(db, event)

        assert result.shipment_created is True
        assert result.is_new is True
        shipment = db.scalars(select(Shipment)).one()
        assert shipment.shipment_hash == "SHIP-A"
        assert shipment.status == ShipmentStatus.READY_FOR_DISPATCH
        assert shipment.number_of_containers == 3
        assert shipment.total_quantity == 120
        assert shipment.block_number == 12
        assert shipment.tx_hash == event.tx_hash
        assert shipment.is_on_ledger is True

    def test_supplier_wallet_lower_cased(self, db, processor, make_event) -> None:
        processor.project(db, make_event("SHIP-A"))
        shipment = db.scalars(select(Shipment)).one()
        assert shipment.supplier_wallet == shipment.supplier_wallet.lower()

    def test_generates_every_container(self, db, processor, make_event) -> None:
        result = processor.project(db, make_event("SHIP-A", containers=4, quantity=25))

        assert result.containers_created == 4
        containers = db.scalars(select(Container).order_by(Container.sequence_index)).all()
        assert [c.sequence_index for c in containers] == [1, 2, 3, 4]
        assert all(c.status == ContainerStatus.CREATED for c in containers)
        assert all(c.quantity == 25 for c in containers)

    def test_container_ids_are_deterministic(self, db, processor, make_event) -> None:
        processor.project(db, make_event("SHIP-A", containers=2))
        containers = db.scalars(select(Container).order_by(Container.sequence_index)).all()

        assert [c.container_id for c in containers] == [
            build_container_id("SHIP-A", 1),
            build_container_id("SHIP-A", 2),
        ]
        assert all(c.qr_data == c.container_id for c in containers)


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


class TestIdempotentProjection:
    def test_second_projection_creates_nothing(self, db, processor, make_event) -> None:
        event = make_event("SHIP-A", containers=3)
        processor.project(db, event)
        again = processor.project(db, event)

        assert again.shipment_created is False
        assert again.containers_created == 0
        assert again.is_new is False
        assert _count(db, Shipment) == 1
        assert _count(db, Container) == 3

    def test_many_projections_keep_one_record(self, db, processor, make_event) -> None:
        event = make_event("SHIP-A", containers=2)
        for _ in range(5):
            processor.project(db, event)
        assert _count(db, Shipment) == 1
        assert _count(db, Container) == 2

    def test_existing_shipment_status_untouched(self, db, processor, make_event) -> None:
        event = make_event("SHIP-A")
        processor.project(db, event)
        shipment = db.scalars(select(Shipment)).one()
        shipment.status = ShipmentStatus.IN_TRANSIT
        db.commit()

        processor.project(db, event)
        db.expire_all()
        assert db.scalars(select(Shipment)).one().status == ShipmentStatus.IN_TRANSIT

    def test_missing_container_is_repaired(self, db, processor, make_event) -> None:
        event = make_event("SHIP-A", containers=3)
        processor.project(db, event)
        db.execute(delete(Container).where(Container.sequence_index == 2))
        db.commit()

        result = processor.project(db, event)

        assert result.shipment_created is False
        assert result.containers_created == 1
        assert _count(db, Container) == 3


# ---------------------------------------------------------------------------
# Independent shipments
# ---------------------------------------------------------------------------


class TestSeveralShipments:
    def test_container_ids_do_not_collide(self, db, processor, make_event) -> None:
        processor.project(db, make_event("SHIP-A", containers=2))
        processor.project(db, make_event("SHIP-B", containers=2, block_number=11))

        ids = db.scalars(select(Container.container_id)).all()
        assert len(ids) == 4
        assert len(set(ids)) == 4

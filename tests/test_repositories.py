"""
tests/test_repositories.py

Pytest tests for the conditional writes of the repository layer.

Coverage
--------
- Shipment insert-if-absent and status compare-and-set outcomes
- Party assignment updates
- Container compare-and-set, reached counts and per-status counts
- Checkpoint creation, forward-only advance and processed counter
- Scan log append and newest-first listing cap
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from db.models.checkpoint import CheckpointStatus
from db.models.container import ContainerStatus
from db.models.scan_log import ScanResult
from db.models.shipment import ShipmentStatus
from db.repositories import (
    CheckpointRepository,
    ContainerRepository,
    ContainerScanStamp,
    PartyAssignment,
    ScanLogCreate,
    ScanLogRepository,
    ShipmentCreate,
    ShipmentNotFoundError,
    ShipmentRepository,
    WriteOutcome,
)


def _shipment(shipment_hash: str = "SHIP-R1", **overrides) -> ShipmentCreate:
    values = {
        "shipment_hash": shipment_hash,
        "batch_id": "BATCH-R",
        "supplier_wallet": "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266",
        "number_of_containers": 2,
        "quantity_per_container": 10,
        "tx_hash": "0x" + "ab" * 32,
        "block_number": 5,
        "blockchain_timestamp": 1_760_000_000,
        "status": ShipmentStatus.READY_FOR_DISPATCH,
    }
    values.update(overrides)
    return ShipmentCreate(**values)


def _stamp(identity: str = "0xabc") -> ContainerScanStamp:
    return ContainerScanStamp(
        actor_role="transporter",
        actor_identity=identity,
        scanned_at=datetime.now(timezone.utc),
        location="Dock 4",
    )


@pytest.fixture()
def shipments(db) -> ShipmentRepository:
    return ShipmentRepository(db)


@pytest.fixture()
def checkpoints(db) -> CheckpointRepository:
    return CheckpointRepository(db)


@pytest.fixture()
def projected(db, project, make_event) -> str:
    project(make_event("SHIP-R1", containers=3))
    return "SHIP-R1"


# ---------------------------------------------------------------------------
# ShipmentRepository
# ---------------------------------------------------------------------------


class TestShipmentRepository:
    def test_insert_if_absent_outcomes(self, db, shipments) -> None:
        assert shipments.insert_if_absent(_shipment()) == WriteOutcome.APPLIED
        assert shipments.insert_if_absent(_shipment(batch_id="OTHER")) == WriteOutcome.ALREADY_SATISFIED
        db.commit()
        assert shipments.get_by_hash("SHIP-R1").batch_id == "BATCH-R"

    def test_total_quantity_is_product(self, db, shipments) -> None:
        shipments.insert_if_absent(_shipment(number_of_containers=4, quantity_per_container=7))
        db.commit()
        assert shipments.get_by_hash("SHIP-R1").total_quantity == 28

    def test_compare_and_set_applied_then_satisfied(self, db, shipments) -> None:
        shipments.insert_if_absent(_shipment())
        db.commit()

        first = shipments.compare_and_set_status(
            "SHIP-R1",
            expected_status=ShipmentStatus.READY_FOR_DISPATCH,
            new_status=ShipmentStatus.IN_TRANSIT,
        )
        second = shipments.compare_and_set_status(
            "SHIP-R1",
            expected_status=ShipmentStatus.READY_FOR_DISPATCH,
            new_status=ShipmentStatus.IN_TRANSIT,
        )
        assert first == WriteOutcome.APPLIED
        assert second == WriteOutcome.ALREADY_SATISFIED

    def test_compare_and_set_conflict(self, db, shipments) -> None:
        shipments.insert_if_absent(_shipment())
        db.commit()
        outcome = shipments.compare_and_set_status(
            "SHIP-R1",
            expected_status=ShipmentStatus.IN_TRANSIT,
            new_status=ShipmentStatus.AT_WAREHOUSE,
        )
        assert outcome == WriteOutcome.CONFLICT

    def test_compare_and_set_unknown_shipment_raises(self, shipments) -> None:
        with pytest.raises(ShipmentNotFoundError):
            shipments.compare_and_set_status(
                "MISSING",
                expected_status=ShipmentStatus.READY_FOR_DISPATCH,
                new_status=ShipmentStatus.IN_TRANSIT,
            )

    def test_update_assignments_only_touches_given_fields(self, db, shipments) -> None:
        shipments.insert_if_absent(_shipment())
        db.commit()
        shipments.update_assignments("SHIP-R1", PartyAssignment(assigned_transporter="0xAAA"))
        shipments.update_assignments("SHIP-R1", PartyAssignment(assigned_retailer="0xBBB"))
        db.commit()

        shipment = shipments.get_by_hash("SHIP-R1", refresh=True)
        assert shipment.assigned_transporter == "0xaaa"
        assert shipment.assigned_retailer == "0xbbb"
        assert shipment.assigned_warehouse is None

    def test_list_filters_by_supplier_and_status(self, db, shipments) -> None:
        shipments.insert_if_absent(_shipment("SHIP-1"))
        shipments.insert_if_absent(_shipment("SHIP-2", supplier_wallet="0x" + "1" * 40))
        shipments.insert_if_absent(_shipment("SHIP-3", status=ShipmentStatus.IN_TRANSIT))
        db.commit()

        items, total = shipments.list_shipments(
            supplier_wallet="0xF39FD6E51AAD88F6F4CE6AB8827279CFFFB92266",
            status=ShipmentStatus.READY_FOR_DISPATCH,
        )
        assert total == 1
        assert [item.shipment_hash for item in items] == ["SHIP-1"]

    def test_list_paginates(self, db, shipments) -> None:
        for index in range(5):
            shipments.insert_if_absent(_shipment(f"SHIP-{index}", block_number=index))
        db.commit()

        items, total = shipments.list_shipments(page=2, limit=2)
        assert total == 5
        assert [item.shipment_hash for item in items] == ["SHIP-2", "SHIP-1"]


# ---------------------------------------------------------------------------
# ContainerRepository
# ---------------------------------------------------------------------------


class TestContainerRepository:
    def test_compare_and_set_status(self, db, projected) -> None:
        containers = ContainerRepository(db)
        container_id = containers.list_for_shipment(projected)[0].container_id

        outcome = containers.compare_and_set_status(
            container_id,
            expected_status=ContainerStatus.CREATED,
            new_status=ContainerStatus.IN_TRANSIT,
            stamp=_stamp(),
        )
        db.commit()

        assert outcome == WriteOutcome.APPLIED
        container = containers.get_by_container_id(container_id, refresh=True)
        assert container.status == ContainerStatus.IN_TRANSIT
        assert container.last_scanned_by == "0xabc"
        assert container.last_scan_location == "Dock 4"

    def test_stale_expectation_reports_conflict(self, db, projected) -> None:
        containers = ContainerRepository(db)
        container_id = containers.list_for_shipment(projected)[0].container_id

        outcome = containers.compare_and_set_status(
            container_id,
            expected_status=ContainerStatus.IN_TRANSIT,
            new_status=ContainerStatus.AT_WAREHOUSE,
            stamp=_stamp(),
        )
        assert outcome == WriteOutcome.CONFLICT
        assert containers.get_status(container_id) == ContainerStatus.CREATED

    def test_count_reached_includes_later_statuses(self, db, projected) -> None:
        containers = ContainerRepository(db)
        first, second, _ = [c.container_id for c in containers.list_for_shipment(projected)]
        for container_id in (first, second):
            containers.compare_and_set_status(
                container_id,
                expected_status=ContainerStatus.CREATED,
                new_status=ContainerStatus.IN_TRANSIT,
                stamp=_stamp(),
            )
        containers.compare_and_set_status(
            first,
            expected_status=ContainerStatus.IN_TRANSIT,
            new_status=ContainerStatus.AT_WAREHOUSE,
            stamp=_stamp(),
        )
        db.commit()

        assert containers.count_reached(projected, ContainerStatus.IN_TRANSIT) == 2
        assert containers.count_reached(projected, ContainerStatus.AT_WAREHOUSE) == 1
        assert containers.count_reached(projected, ContainerStatus.CREATED) == 3

        counts = containers.count_by_status(projected)
        assert counts.total == 3
        assert counts.count(ContainerStatus.CREATED) == 1
        assert counts.count(ContainerStatus.IN_TRANSIT) == 1
        assert counts.count(ContainerStatus.AT_WAREHOUSE) == 1
        assert counts.count(ContainerStatus.DELIVERED) == 0

    def test_list_filters_by_status(self, db, projected) -> None:
        containers = ContainerRepository(db)
        assert len(containers.list_for_shipment(projected, status=ContainerStatus.CREATED)) == 3
        assert containers.list_for_shipment(projected, status=ContainerStatus.DELIVERED) == []


# ---------------------------------------------------------------------------
# CheckpointRepository
# ---------------------------------------------------------------------------


class TestCheckpointRepository:
    def test_get_or_create_keeps_existing_row(self, db, checkpoints) -> None:
        created = checkpoints.get_or_create(
            "stream", start_position=9, chain_identity=1337, source_address="0xABC"
        )
        db.commit()
        again = checkpoints.get_or_create(
            "stream", start_position=500, chain_identity=1337, source_address="0xABC"
        )

        assert created.last_processed_position == 9
        assert again.last_processed_position == 9
        assert again.source_address == "0xabc"
        assert again.status == CheckpointStatus.STOPPED

    def test_advance_moves_forward_and_counts(self, db, checkpoints) -> None:
        checkpoints.get_or_create("stream", start_position=0, chain_identity=1, source_address="0x1")
        outcome = checkpoints.advance("stream", position=20, events_processed=2)
        db.commit()

        checkpoint = checkpoints.get("stream")
        assert outcome == WriteOutcome.APPLIED
        assert checkpoint.last_processed_position == 20
        assert checkpoint.total_events_processed == 2
        assert checkpoint.status == CheckpointStatus.SYNCED
        assert checkpoint.last_sync_at is not None

    def test_advance_never_moves_backwards(self, db, checkpoints) -> None:
        checkpoints.get_or_create("stream", start_position=50, chain_identity=1, source_address="0x1")
        outcome = checkpoints.advance("stream", position=10, events_processed=1)
        db.commit()

        checkpoint = checkpoints.get("stream")
        assert outcome == WriteOutcome.ALREADY_SATISFIED
        assert checkpoint.last_processed_position == 50
        assert checkpoint.total_events_processed == 1

    def test_advance_clears_error(self, db, checkpoints) -> None:
        checkpoints.get_or_create("stream", start_position=0, chain_identity=1, source_address="0x1")
        checkpoints.set_error("stream", "boom")
        db.commit()
        assert checkpoints.get("stream").status == CheckpointStatus.ERROR

        checkpoints.advance("stream", position=1)
        db.commit()
        checkpoint = checkpoints.get("stream")
        assert checkpoint.status == CheckpointStatus.SYNCED
        assert checkpoint.last_error is None

    def test_set_error_truncates_message(self, db, checkpoints) -> None:
        checkpoints.get_or_create("stream", start_position=0, chain_identity=1, source_address="0x1")
        checkpoints.set_error("stream", "x" * 5000)
        db.commit()
        assert len(checkpoints.get("stream").last_error) == 2000

    def test_delete_and_list(self, db, checkpoints) -> None:
        for key in ("a", "b"):
            checkpoints.get_or_create(key, start_position=0, chain_identity=1, source_address="0x1")
        db.commit()
        assert {c.stream_key for c in checkpoints.list_all()} == {"a", "b"}

        assert checkpoints.delete("a") == 1
        db.commit()
        assert checkpoints.get("a") is None


# ---------------------------------------------------------------------------
# ScanLogRepository
# ---------------------------------------------------------------------------


class TestScanLogRepository:
    def test_append_and_list_capped(self, db) -> None:
        logs = ScanLogRepository(db)
        for index in range(105):
            logs.append(
                ScanLogCreate(
                    container_id=f"CNT-{index}",
                    shipment_hash="SHIP-L",
                    actor_role="warehouse",
                    actor_identity="0xabc",
                    result=ScanResult.REJECTED,
                    rejection_code="DUPLICATE",
                    metadata_json={"device": "scanner-1"},
                )
            )
        db.commit()

        listed = logs.list_for_shipment("SHIP-L", limit=500)
        assert len(listed) == 100
        assert listed[0].metadata_json == {"device": "scanner-1"}
        assert len(logs.list_for_container("CNT-7")) == 1

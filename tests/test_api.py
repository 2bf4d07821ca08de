"""
tests/test_api.py

HTTP contract tests for the shipment, container, scan and indexer routers.

The app under test is assembled from the routers with ``get_db`` overridden
to the in-memory database, so no environment or PostgreSQL is needed.

Coverage
--------
- Shipment list, detail, containers, stats and scan history
- Scan submission status codes (200 accepted/rejected, 404 unknown)
- Transition and assignment commands (409 on refusal, 422 on bad input)
- Indexer status, health (503 when unhealthy) and sync history
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routers import containers_router, indexer_router, scans_router, shipments_router
from app.domain.custody import build_container_id
from app.services.indexer_engine import ShipmentIndexer
from db.models.shipment import ShipmentStatus
from db.session import get_db

TRANSPORTER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
SHIPMENT_HASH = "SHIP-API-1"


def _build_app(session_factory, indexer: ShipmentIndexer | None) -> FastAPI:
    app = FastAPI()
    for router in (shipments_router, containers_router, scans_router, indexer_router):
        app.include_router(router)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.indexer = indexer
    return app


@pytest.fixture()
def indexer(ledger, session_factory, ledger_settings, indexer_settings) -> ShipmentIndexer:
    return ShipmentIndexer(
        connector=ledger,
        session_factory=session_factory,
        ledger_settings=ledger_settings,
        indexer_settings=indexer_settings,
        sleep=lambda seconds: None,
    )


@pytest.fixture()
def client(session_factory, indexer):
    with TestClient(_build_app(session_factory, indexer)) as test_client:
        yield test_client


@pytest.fixture()
def shipment_hash(project, make_event) -> str:
    project(make_event(SHIPMENT_HASH, containers=2, quantity=15))
    return SHIPMENT_HASH


def _scan(client, container_id: str, role: str = "transporter", actor: str = TRANSPORTER, **extra):
    body = {"container_id": container_id, "actor_role": role, "actor_identity": actor, **extra}
    return client.post("/scans", json=body)


# ---------------------------------------------------------------------------
# Shipment queries
# ---------------------------------------------------------------------------


class TestShipmentQueries:
    def test_list_shipments(self, client, shipment_hash) -> None:
        response = client.get("/shipments")
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["page"] == 1
        assert body["items"][0]["shipment_hash"] == shipment_hash
        assert body["items"][0]["total_quantity"] == 30

    def test_list_filtered_by_status(self, client, shipment_hash) -> None:
        assert client.get("/shipments", params={"status": "in_transit"}).json()["total"] == 0
        assert client.get("/shipments", params={"status": "READY_FOR_DISPATCH"}).json()["total"] == 1

    def test_list_rejects_unknown_status(self, client) -> None:
        assert client.get("/shipments", params={"status": "LOST"}).status_code == 400

    def test_get_shipment(self, client, shipment_hash) -> None:
        response = client.get(f"/shipments/{shipment_hash}")
        assert response.status_code == 200
        assert response.json()["status"] == ShipmentStatus.READY_FOR_DISPATCH

    def test_unknown_shipment_is_404(self, client) -> None:
        assert client.get("/shipments/NOPE").status_code == 404
        assert client.get("/shipments/NOPE/containers").status_code == 404
        assert client.get("/shipments/NOPE/scans").status_code == 404

    def test_containers_and_stats(self, client, shipment_hash) -> None:
        _scan(client, build_container_id(shipment_hash, 1))

        containers = client.get(f"/shipments/{shipment_hash}/containers").json()["containers"]
        assert [c["sequence_index"] for c in containers] == [1, 2]
        assert [c["status"] for c in containers] == ["IN_TRANSIT", "CREATED"]

        stats = client.get(f"/shipments/{shipment_hash}/containers/stats").json()
        assert stats["total"] == 2
        assert stats["by_status"] == {"CREATED": 1, "IN_TRANSIT": 1, "AT_WAREHOUSE": 0, "DELIVERED": 0}

    def test_get_container_normalises_id(self, client, shipment_hash) -> None:
        container_id = build_container_id(shipment_hash, 2)
        response = client.get(f"/containers/{container_id.lower()}")
        assert response.status_code == 200
        assert response.json()["container_id"] == container_id

    def test_unknown_container_is_404(self, client) -> None:
        assert client.get("/containers/CNT-NOPE-0001").status_code == 404


# ---------------------------------------------------------------------------
# Scans
# ---------------------------------------------------------------------------


class TestScans:
    def test_accepted_scan(self, client, shipment_hash) -> None:
        response = _scan(client, build_container_id(shipment_hash, 1), location="Dock 2")

        assert response.status_code == 200
        body = response.json()
        assert body["accepted"] is True
        assert body["container_status"] == "IN_TRANSIT"
        assert body["scanned_count"] == 1
        assert body["total_count"] == 2

    def test_domain_rejection_is_200(self, client, shipment_hash) -> None:
        response = _scan(client, build_container_id(shipment_hash, 1), role="warehouse")

        assert response.status_code == 200
        assert response.json()["accepted"] is False
        assert response.json()["code"] == "PRIOR_ACTOR_SCAN_REQUIRED"

    def test_unknown_container_is_404(self, client) -> None:
        response = _scan(client, "CNT-0000000000-0009")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_missing_actor_is_422(self, client) -> None:
        response = client.post("/scans", json={"container_id": "CNT-X", "actor_role": "transporter"})
        assert response.status_code == 422

    def test_scan_history(self, client, shipment_hash) -> None:
        container_id = build_container_id(shipment_hash, 1)
        _scan(client, container_id, metadata={"device": "hh-1"})
        _scan(client, container_id)

        response = client.get(f"/shipments/{shipment_hash}/scans", params={"limit": 10})
        assert response.status_code == 200
        scans = response.json()["scans"]
        assert len(scans) == 2
        assert sorted(s["result"] for s in scans) == ["ACCEPTED", "REJECTED"]
        accepted = next(s for s in scans if s["result"] == "ACCEPTED")
        assert accepted["metadata"] == {"device": "hh-1"}


# ---------------------------------------------------------------------------
# Lifecycle commands
# ---------------------------------------------------------------------------


class TestLifecycleCommands:
    def test_rejected_transition_is_409(self, client, shipment_hash) -> None:
        response = client.post(
            f"/shipments/{shipment_hash}/transitions", json={"target_status": "IN_TRANSIT"}
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "TRANSPORTER_NOT_ASSIGNED"

    def test_unknown_target_status_is_422(self, client, shipment_hash) -> None:
        response = client.post(f"/shipments/{shipment_hash}/transitions", json={"target_status": "LOST"})
        assert response.status_code == 422

    def test_assign_then_transition(self, client, shipment_hash) -> None:
        assigned = client.put(
            f"/shipments/{shipment_hash}/assignments", json={"assigned_transporter": TRANSPORTER}
        )
        assert assigned.status_code == 200
        assert assigned.json()["assigned_transporter"] == TRANSPORTER.lower()

        response = client.post(
            f"/shipments/{shipment_hash}/transitions", json={"target_status": "in_transit"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["accepted"] is True
        assert body["current_status"] == "IN_TRANSIT"

    def test_invalid_wallet_is_422(self, client, shipment_hash) -> None:
        response = client.put(f"/shipments/{shipment_hash}/assignments", json={"assigned_retailer": "bob"})
        assert response.status_code == 422

    def test_transition_unknown_shipment_is_404(self, client) -> None:
        response = client.post("/shipments/NOPE/transitions", json={"target_status": "IN_TRANSIT"})
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Indexer
# ---------------------------------------------------------------------------


class TestIndexerEndpoints:
    def test_status_and_health_when_running(self, client, indexer, ledger) -> None:
        ledger.height = 40
        indexer.start()

        status = client.get("/indexer/status").json()
        assert status["is_running"] is True
        assert status["last_processed_position"] == 40
        assert status["lag"] == 0

        health = client.get("/indexer/health")
        assert health.status_code == 200
        assert health.json()["state"] == "healthy"

    def test_health_unhealthy_is_503(self, client, indexer, ledger) -> None:
        ledger.unavailable = True
        indexer.start()

        response = client.get("/indexer/health")
        assert response.status_code == 503
        assert response.json()["issues"] == ["Not connected to ledger"]

    def test_sync_history(self, client, indexer) -> None:
        indexer.start()
        checkpoints = client.get("/indexer/sync-history").json()["checkpoints"]
        assert [c["stream_key"] for c in checkpoints] == ["test-stream"]

    def test_disabled_indexer_is_503(self, session_factory) -> None:
        with TestClient(_build_app(session_factory, None)) as client:
            assert client.get("/indexer/status").status_code == 503

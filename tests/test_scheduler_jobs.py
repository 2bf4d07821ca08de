"""
tests/test_scheduler_jobs.py

Tests for the periodic indexer health sweep.

Coverage
--------
- Scheduler carries no jobs with the indexer disabled
- Health sweep job registered when an indexer exists
- Sweep refreshes the cached ledger height and logs health
"""

from __future__ import annotations

import logging

import pytest

from app.scheduler.jobs import build_scheduler, run_indexer_health_sweep
from app.services.indexer_engine import ShipmentIndexer


@pytest.fixture()
def indexer(ledger, session_factory, ledger_settings, indexer_settings) -> ShipmentIndexer:
    return ShipmentIndexer(
        connector=ledger,
        session_factory=session_factory,
        ledger_settings=ledger_settings,
        indexer_settings=indexer_settings,
        sleep=lambda seconds: None,
    )


class TestBuildScheduler:
    def test_no_jobs_without_indexer(self) -> None:
        assert build_scheduler(None).get_jobs() == []

    def test_health_sweep_registered(self, indexer) -> None:
        jobs = build_scheduler(indexer).get_jobs()
        assert [job.id for job in jobs] == ["indexer_health_sweep"]


class TestHealthSweep:
    def test_refreshes_height_when_running(self, indexer, ledger, caplog) -> None:
        ledger.height = 10
        indexer.start()
        ledger.height = 250

        with caplog.at_level(logging.DEBUG, logger="app.scheduler.jobs"):
            run_indexer_health_sweep(indexer)

        assert indexer.get_status().last_known_height == 250
        assert any('"event": "indexer_health"' in record.getMessage() for record in caplog.records)
        assert any('"state": "degraded"' in record.getMessage() for record in caplog.records)

    def test_does_not_call_ledger_when_stopped(self, indexer, ledger) -> None:
        ledger.unavailable = True
        run_indexer_health_sweep(indexer)
        assert indexer.get_status().last_known_height is None

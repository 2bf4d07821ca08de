"""
app/scheduler/jobs.py

APScheduler-based scheduler for periodic indexer supervision.

Schedule
--------
  indexer_health_sweep: every INDEXER_HEALTH_CHECK_INTERVAL_SECONDS

The sweep refreshes the cached ledger height (the only place outside the
ingestion loops that calls the ledger), classifies indexer health and logs the
result. It never restarts the indexer: a stream that exhausted its reconnect
attempts stays in ERROR until an operator restarts the process.

Lifecycle
----------
Call ``build_scheduler(indexer)`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_indexer_settings
from app.domain.indexer import HealthState
from app.logging_utils import log_event
from app.services.indexer_engine import ShipmentIndexer

logger = logging.getLogger(__name__)

_HEALTH_LOG_LEVELS = {
    HealthState.HEALTHY: logging.DEBUG,
    HealthState.DEGRADED: logging.WARNING,
    HealthState.UNHEALTHY: logging.ERROR,
}


# ---------------------------------------------------------------------------
# Job: Indexer health sweep
# ---------------------------------------------------------------------------


def run_indexer_health_sweep(indexer: ShipmentIndexer) -> None:
    """
    Refresh the ledger height and log the classified indexer health.
    """
    if indexer.is_running:
        indexer.refresh_ledger_height()

    report = indexer.health()
    log_event(
        logger,
        _HEALTH_LOG_LEVELS.get(report.state, logging.INFO),
        "indexer_health",
        stream_key=report.status.stream_key,
        state=report.state,
        issues=report.issues,
        last_processed_position=report.status.last_processed_position,
        last_known_height=report.status.last_known_height,
        lag=report.status.lag,
    )


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(indexer: ShipmentIndexer | None) -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    With the indexer disabled the scheduler carries no jobs.
    """
    scheduler = BackgroundScheduler(timezone="UTC")
    if indexer is None:
        return scheduler

    scheduler.add_job(
        run_indexer_health_sweep,
        trigger="interval",
        seconds=get_indexer_settings().health_check_interval_seconds,
        args=[indexer],
        id="indexer_health_sweep",
        name="Indexer health sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    return scheduler

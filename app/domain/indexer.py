"""
app/domain/indexer.py

Domain models for the ledger ingestion engine: projection results, sync
summaries, status snapshots and health classification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


class HealthState:
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class ProjectionResult:
    """
    What projecting one creation event changed in the store.
    """

    shipment_hash: str
    shipment_created: bool
    containers_created: int

    @property
    def is_new(self) -> bool:
        return self.shipment_created


@dataclass(frozen=True)
class HistoricalSyncResult:
    from_position: int
    to_position: int
    events_seen: int
    events_processed: int
    windows: int


@dataclass(frozen=True)
class IndexerStatus:
    """
    Cheap status snapshot; never calls the ledger.
    """

    is_running: bool
    is_connected: bool
    stream_key: str
    last_processed_position: int
    last_known_height: int | None
    checkpoint_status: str | None
    total_events_processed: int
    last_error: str | None
    last_sync_at: datetime | None
    reconnect_attempts: int

    @property
    def lag(self) -> int | None:
        if self.last_known_height is None:
            return None
        return max(0, self.last_known_height - self.last_processed_position)


@dataclass(frozen=True)
class HealthReport:
    state: str
    status: IndexerStatus
    issues: list[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return self.state == HealthState.HEALTHY


def classify_health(
    status: IndexerStatus,
    *,
    staleness_threshold: int,
    error_status: str = "ERROR",
) -> HealthReport:
    """
    Disconnected is unhealthy; not running, an errored checkpoint or lag above
    ``staleness_threshold`` is degraded.
    """

    issues: list[str] = []
    if not status.is_connected:
        issues.append("Not connected to ledger")
        return HealthReport(state=HealthState.UNHEALTHY, status=status, issues=issues)

    if not status.is_running:
        issues.append("Indexer not running")
    if status.checkpoint_status == error_status:
        issues.append(f"Checkpoint in error: {status.last_error or 'unknown error'}")
    lag = status.lag
    if lag is not None and lag > staleness_threshold:
        issues.append(f"Indexer is {lag} blocks behind")

    state = HealthState.DEGRADED if issues else HealthState.HEALTHY
    return HealthReport(state=state, status=status, issues=issues)

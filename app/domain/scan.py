"""
app/domain/scan.py

Domain models for container scan submissions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ScanRejection:
    NOT_FOUND = "NOT_FOUND"
    NOT_ON_LEDGER = "NOT_ON_LEDGER"
    PRIOR_ACTOR_SCAN_REQUIRED = "PRIOR_ACTOR_SCAN_REQUIRED"
    DUPLICATE = "DUPLICATE"
    ALREADY_AT_TARGET_STAGE = "ALREADY_AT_TARGET_STAGE"
    INVALID_QR_FORMAT = "INVALID_QR_FORMAT"
    ROLE_NOT_ALLOWED = "ROLE_NOT_ALLOWED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ScanRequest:
    """
    One scan attempt by an authenticated stage actor.
    """

    raw_container_id: str
    actor_role: str
    actor_identity: str
    location: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScanOutcome:
    """
    Result returned to the scanning actor.

    ``is_complete`` reports whether every container of the shipment reached
    the stage's resulting status after this scan; ``shipment_transitioned``
    is True only when this scan drove the shipment transition itself.
    """

    accepted: bool
    message: str
    container_id: str
    code: str | None = None
    shipment_hash: str | None = None
    previous_status: str | None = None
    container_status: str | None = None
    shipment_status: str | None = None
    scanned_count: int = 0
    total_count: int = 0
    is_complete: bool = False
    shipment_transitioned: bool = False

"""
app/schemas/scans.py

Request and response schemas for container scan submission.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ScanSubmitRequest(BaseModel):
    """
    One physical scan. ``actor_role`` and ``actor_identity`` come from the
    upstream authorization layer.
    """

    container_id: str = Field(..., max_length=256, description="Raw QR payload or container id")
    actor_role: str = Field(..., min_length=1, max_length=32)
    actor_identity: str = Field(..., min_length=1, max_length=128)
    location: str | None = Field(default=None, max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScanSubmitResponse(BaseModel):
    accepted: bool
    code: str | None = None
    message: str
    container_id: str
    shipment_hash: str | None = None
    previous_status: str | None = None
    container_status: str | None = None
    shipment_status: str | None = None
    scanned_count: int = Field(default=0, ge=0)
    total_count: int = Field(default=0, ge=0)
    is_complete: bool = False
    shipment_transitioned: bool = False

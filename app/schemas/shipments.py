"""
app/schemas/shipments.py

Request and response schemas for shipment, container and lifecycle endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from eth_utils import is_address
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from db.models.shipment import ShipmentStatus


class ShipmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    shipment_hash: str
    batch_id: str
    supplier_wallet: str
    number_of_containers: int = Field(..., ge=1)
    quantity_per_container: int = Field(..., ge=1)
    total_quantity: int = Field(..., ge=1)
    status: str
    tx_hash: str | None = None
    block_number: int | None = None
    blockchain_timestamp: int | None = None
    assigned_transporter: str | None = None
    assigned_warehouse: str | None = None
    next_transporter: str | None = None
    assigned_retailer: str | None = None
    status_updated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ShipmentListResponse(BaseModel):
    items: list[ShipmentResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)


class ContainerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    container_id: str
    shipment_hash: str
    sequence_index: int
    qr_data: str
    quantity: int
    status: str
    last_scanned_by_role: str | None = None
    last_scanned_by: str | None = None
    last_scanned_at: datetime | None = None
    last_scan_location: str | None = None


class ContainerListResponse(BaseModel):
    shipment_hash: str
    containers: list[ContainerResponse] = Field(default_factory=list)


class ContainerStatsResponse(BaseModel):
    shipment_hash: str
    shipment_status: str
    total: int = Field(..., ge=0)
    by_status: dict[str, int] = Field(default_factory=dict)


class ScanLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    container_id: str
    shipment_hash: str | None = None
    actor_role: str
    actor_identity: str
    result: str
    rejection_code: str | None = None
    message: str | None = None
    previous_status: str | None = None
    new_status: str | None = None
    location: str | None = None
    metadata: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("metadata_json", "metadata"),
    )
    created_at: datetime


class ScanHistoryResponse(BaseModel):
    shipment_hash: str
    scans: list[ScanLogResponse] = Field(default_factory=list)


class TransitionRequest(BaseModel):
    target_status: str = Field(..., description="Requested shipment status")

    @field_validator("target_status")
    @classmethod
    def _normalize_status(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in ShipmentStatus.ALL:
            allowed = ", ".join(ShipmentStatus.ALL)
            raise ValueError(f"Unknown status '{value}'. Allowed: {allowed}.")
        return normalized


class TransitionResponse(BaseModel):
    shipment_hash: str
    accepted: bool
    from_status: str
    to_status: str
    current_status: str
    code: str | None = None
    message: str | None = None
    no_op: bool = False


class AssignmentRequest(BaseModel):
    """
    Wallet references for the parties of the current and next leg.
    Omitted fields keep their stored value.
    """

    assigned_transporter: str | None = None
    assigned_warehouse: str | None = None
    next_transporter: str | None = None
    assigned_retailer: str | None = None

    @field_validator(
        "assigned_transporter",
        "assigned_warehouse",
        "next_transporter",
        "assigned_retailer",
    )
    @classmethod
    def _validate_wallet(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        stripped = value.strip()
        if not is_address(stripped):
            raise ValueError(f"Invalid wallet address: {stripped}")
        return stripped.lower()

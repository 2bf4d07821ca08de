"""
Schemas for indexer status, health and sync history endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class IndexerStatusResponse(BaseModel):
    stream_key: str
    is_running: bool
    is_connected: bool
    last_processed_position: int = Field(..., ge=0)
    last_known_height: int | None = None
    lag: int | None = None
    checkpoint_status: str | None = None
    total_events_processed: int = Field(..., ge=0)
    last_error: str | None = None
    last_sync_at: datetime | None = None
    reconnect_attempts: int = Field(..., ge=0)


class IndexerHealthResponse(BaseModel):
    state: str
    issues: list[str] = Field(default_factory=list)
    status: IndexerStatusResponse


class SyncHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stream_key: str
    last_processed_position: int
    chain_identity: int
    source_address: str
    total_events_processed: int
    status: str
    last_error: str | None = None
    last_sync_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SyncHistoryResponse(BaseModel):
    checkpoints: list[SyncHistoryItem] = Field(default_factory=list)

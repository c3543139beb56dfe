# offline_sync/models/api/sync_response.py
"""
Sync API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from offline_sync.models.domain.sync_domain import SyncResult, SyncSnapshot


class SyncProgressResponse(BaseModel):
    """Progress of the running (or last) drain pass."""

    total: int = Field(..., description="Items in the pass")
    completed: int = Field(..., description="Items delivered")
    failed: int = Field(..., description="Items that failed")
    current_item: str | None = Field(None, description="Label of the item being delivered")
    progress: float = Field(..., description="Delivered fraction in [0, 1]")
    estimated_remaining_seconds: float = Field(..., description="Rough time left in the pass")


class SyncStatusResponse(BaseModel):
    """Sync coordinator state for status indicators."""

    status: str = Field(..., description="idle, syncing, completed, failed or cancelled")
    last_pass_status: str | None = Field(None, description="Outcome of the last pass")
    progress: SyncProgressResponse = Field(..., description="Pass progress")
    consecutive_failures: int = Field(..., description="Failed passes since the last success")
    circuit_open: bool = Field(..., description="Automatic sync paused after repeated failures")
    last_attempt: datetime | None = Field(None, description="Start of the last pass")
    last_success: datetime | None = Field(None, description="End of the last completed pass")
    auto_sync_enabled: bool = Field(..., description="Periodic automatic sync enabled")
    sync_only_on_wifi: bool = Field(..., description="Automatic sync restricted to wifi")
    next_retry_at: datetime | None = Field(None, description="Scheduled backoff retry")
    status_message: str = Field(..., description="Human-readable status")
    status_color: str = Field(..., description="ARGB hex color for the indicator")
    can_retry: bool = Field(..., description="Whether a manual retry should be offered")

    @classmethod
    def from_domain(cls, snapshot: SyncSnapshot) -> "SyncStatusResponse":
        return cls(**snapshot.to_dict())


class SyncResultResponse(BaseModel):
    """Result of a manual sync pass."""

    success: bool = Field(..., description="Whether the pass completed")
    status: str = Field(..., description="Terminal status of the pass")
    error: str | None = Field(None, description="Error summary")
    duration_ms: float = Field(..., description="Pass duration in milliseconds")
    delivered: int = Field(default=0, description="Items delivered")
    failed: int = Field(default=0, description="Items that failed")
    evicted: int = Field(default=0, description="Items evicted")

    @classmethod
    def from_domain(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(**result.to_dict())


class CancelSyncResponse(BaseModel):
    cancelled: bool = Field(..., description="Whether a running pass was asked to stop")

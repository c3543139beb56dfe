# offline_sync/models/api/sync_request.py
"""
Sync API request models.
"""

from pydantic import BaseModel, Field


class SyncSettingsRequest(BaseModel):
    """Partial update of the auto-sync policy; omitted fields are unchanged."""

    auto_sync_enabled: bool | None = Field(None, description="Enable periodic automatic sync")
    auto_sync_interval_seconds: float | None = Field(
        None, gt=0, le=86400, description="Seconds between automatic sync passes"
    )
    sync_only_on_wifi: bool | None = Field(None, description="Only auto-sync on wifi")

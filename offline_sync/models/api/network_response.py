# offline_sync/models/api/network_response.py
"""
Network API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from offline_sync.models.domain.network_domain import NetworkState


class NetworkStatusResponse(BaseModel):
    """Network monitor state for connection banners."""

    status: str = Field(..., description="online, poor, limited or offline")
    medium: str = Field(..., description="wifi, mobile, ethernet or none")
    quality: float = Field(..., description="Connection quality in [0, 1]")
    latency_ms: float | None = Field(None, description="Last probe latency")
    reachable: bool = Field(..., description="Whether the backend is considered reachable")
    last_connected: datetime | None = Field(None, description="Last transition to reachable")
    last_disconnected: datetime | None = Field(None, description="Last transition to unreachable")
    total_online_seconds: float = Field(..., description="Cumulative reachable time")
    total_offline_seconds: float = Field(..., description="Cumulative unreachable time")
    status_message: str = Field(..., description="Human-readable status")
    status_color: str = Field(..., description="ARGB hex color for the banner")

    @classmethod
    def from_domain(cls, state: NetworkState) -> "NetworkStatusResponse":
        return cls(**state.to_dict())

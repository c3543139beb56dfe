# offline_sync/models/domain/network_domain.py
"""
Network Domain Models
Network status classification, connection medium, and the immutable state
snapshot the network monitor publishes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

# Network quality thresholds
POOR_CONNECTION_THRESHOLD = 0.3
GOOD_CONNECTION_THRESHOLD = 0.7
FAST_PING_THRESHOLD_MS = 100
SLOW_PING_THRESHOLD_MS = 1000


class NetworkStatus(str, Enum):
    ONLINE = "online"
    POOR = "poor"
    LIMITED = "limited"
    OFFLINE = "offline"

    @property
    def is_reachable(self) -> bool:
        return self in (NetworkStatus.ONLINE, NetworkStatus.POOR)


class ConnectionMedium(str, Enum):
    WIFI = "wifi"
    MOBILE = "mobile"
    ETHERNET = "ethernet"
    NONE = "none"

    @classmethod
    def from_results(cls, results: "list[str | ConnectionMedium]") -> "ConnectionMedium":
        """Collapse a list of reported link types into the preferred medium."""
        found = set()
        for result in results:
            try:
                found.add(cls(str(getattr(result, "value", result)).lower()))
            except ValueError:
                continue  # bluetooth, vpn, other
        for medium in (cls.WIFI, cls.MOBILE, cls.ETHERNET):
            if medium in found:
                return medium
        return cls.NONE


_BASE_QUALITY = {
    ConnectionMedium.WIFI: 1.0,
    ConnectionMedium.ETHERNET: 1.0,
    ConnectionMedium.MOBILE: 0.8,
    ConnectionMedium.NONE: 0.0,
}


def compute_quality(medium: ConnectionMedium, latency_ms: float) -> float:
    """
    Quality score in [0, 1] from the connection medium and probe latency.

    Base quality depends on the medium; latency up to 100 ms keeps the base,
    100-1000 ms decays linearly down to 30% of base, anything slower is 10%.
    """
    base = _BASE_QUALITY[medium]

    if latency_ms <= FAST_PING_THRESHOLD_MS:
        return base
    if latency_ms <= SLOW_PING_THRESHOLD_MS:
        span = SLOW_PING_THRESHOLD_MS - FAST_PING_THRESHOLD_MS
        factor = 1.0 - ((latency_ms - FAST_PING_THRESHOLD_MS) / span) * 0.7
        return base * factor
    return base * 0.1


def derive_status(medium: ConnectionMedium, reachable: bool, quality: float) -> NetworkStatus:
    """Classify reachability from link-layer medium, probe result, and quality."""
    if medium is ConnectionMedium.NONE:
        return NetworkStatus.OFFLINE
    if not reachable:
        return NetworkStatus.LIMITED
    if quality > POOR_CONNECTION_THRESHOLD:
        return NetworkStatus.ONLINE
    return NetworkStatus.POOR


# Feature gates by action type (action -> (required status, minimum quality))
_ACTION_REQUIREMENTS: dict[str, tuple[NetworkStatus | None, float | None]] = {
    "send_message": (NetworkStatus.ONLINE, None),
    "ai_request": (NetworkStatus.ONLINE, None),
    "upload_file": (NetworkStatus.ONLINE, POOR_CONNECTION_THRESHOLD),
    "download_content": (NetworkStatus.ONLINE, POOR_CONNECTION_THRESHOLD),
    "stream_audio": (NetworkStatus.ONLINE, GOOD_CONNECTION_THRESHOLD),
    "video_call": (NetworkStatus.ONLINE, GOOD_CONNECTION_THRESHOLD),
}


@dataclass(frozen=True, slots=True)
class NetworkState:
    """Immutable snapshot of the monitor's view of the network."""

    status: NetworkStatus = NetworkStatus.OFFLINE
    medium: ConnectionMedium = ConnectionMedium.NONE
    quality: float = 0.0
    latency_ms: float | None = None
    last_connected: datetime | None = None
    last_disconnected: datetime | None = None
    total_online: timedelta = timedelta(0)
    total_offline: timedelta = timedelta(0)
    changed_at: datetime | None = None

    @property
    def reachable(self) -> bool:
        return self.status.is_reachable

    def can_perform_action(self, action_type: str) -> bool:
        """Whether the current connection is good enough for an action type."""
        required_status, min_quality = _ACTION_REQUIREMENTS.get(action_type, (None, None))
        if required_status is None:
            return self.reachable
        if self.status is not required_status:
            return False
        return min_quality is None or self.quality > min_quality

    def status_message(self) -> str:
        if self.status is NetworkStatus.ONLINE:
            if self.quality > GOOD_CONNECTION_THRESHOLD:
                return "Excellent connection"
            return "Good connection"
        if self.status is NetworkStatus.POOR:
            return "Poor connection - some features may be slow"
        if self.status is NetworkStatus.LIMITED:
            return "Limited connectivity - no internet access"
        return "No connection - working offline"

    def status_color(self) -> str:
        """ARGB hex color for status indicators."""
        if self.status is NetworkStatus.ONLINE:
            return "#FF4CAF50" if self.quality > GOOD_CONNECTION_THRESHOLD else "#FF8BC34A"
        if self.status is NetworkStatus.POOR:
            return "#FFFF9800"
        if self.status is NetworkStatus.LIMITED:
            return "#FFF44336"
        return "#FF9E9E9E"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "medium": self.medium.value,
            "quality": round(self.quality, 3),
            "latency_ms": round(self.latency_ms, 1) if self.latency_ms is not None else None,
            "reachable": self.reachable,
            "last_connected": self.last_connected.isoformat() if self.last_connected else None,
            "last_disconnected": (
                self.last_disconnected.isoformat() if self.last_disconnected else None
            ),
            "total_online_seconds": round(self.total_online.total_seconds(), 1),
            "total_offline_seconds": round(self.total_offline.total_seconds(), 1),
            "status_message": self.status_message(),
            "status_color": self.status_color(),
        }

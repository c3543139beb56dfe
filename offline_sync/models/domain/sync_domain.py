# offline_sync/models/domain/sync_domain.py
"""
Sync Domain Models
Sync status state machine values, progress, pass results, and the snapshot
observers receive.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

# Used for the remaining-time estimate shown next to the progress bar
AVERAGE_ITEM_DURATION = timedelta(milliseconds=200)


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.CANCELLED)


@dataclass(frozen=True, slots=True)
class SyncProgress:
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_item: str | None = None

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total > 0 else 0.0

    @property
    def estimated_remaining(self) -> timedelta:
        remaining = max(self.total - self.completed - self.failed, 0)
        return AVERAGE_ITEM_DURATION * remaining

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "current_item": self.current_item,
            "progress": round(self.fraction, 3),
            "estimated_remaining_seconds": round(self.estimated_remaining.total_seconds(), 1),
        }


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Outcome of one drain pass as reported to a manual caller."""

    success: bool
    duration: timedelta
    status: SyncStatus
    error: str | None = None
    delivered: int = 0
    failed: int = 0
    evicted: int = 0

    @classmethod
    def already_running(cls) -> "SyncResult":
        return cls(
            success=False,
            duration=timedelta(0),
            status=SyncStatus.SYNCING,
            error="Sync already in progress",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "error": self.error,
            "duration_ms": round(self.duration.total_seconds() * 1000, 1),
            "delivered": self.delivered,
            "failed": self.failed,
            "evicted": self.evicted,
        }


@dataclass(frozen=True, slots=True)
class SyncSnapshot:
    """Immutable view of the coordinator published to observers."""

    status: SyncStatus = SyncStatus.IDLE
    last_pass_status: SyncStatus | None = None
    progress: SyncProgress = field(default_factory=SyncProgress)
    consecutive_failures: int = 0
    max_consecutive_failures: int = 5
    last_attempt: datetime | None = None
    last_success: datetime | None = None
    auto_sync_enabled: bool = True
    sync_only_on_wifi: bool = False
    next_retry_at: datetime | None = None

    @property
    def circuit_open(self) -> bool:
        return self.consecutive_failures >= self.max_consecutive_failures

    @property
    def can_retry(self) -> bool:
        """Whether a manual retry action should be offered."""
        return self.status is not SyncStatus.SYNCING and (
            self.last_pass_status is SyncStatus.FAILED or self.circuit_open
        )

    def status_message(self) -> str:
        if self.status is SyncStatus.SYNCING:
            if self.progress.total:
                return f"Syncing {self.progress.completed + self.progress.failed}/{self.progress.total}"
            return "Syncing..."
        if self.circuit_open:
            return "Sync paused after repeated failures - tap to retry"
        shown = self.last_pass_status if self.status is SyncStatus.IDLE else self.status
        if shown is SyncStatus.COMPLETED:
            return "All changes synced"
        if shown is SyncStatus.FAILED:
            return "Sync failed - will retry automatically"
        if shown is SyncStatus.CANCELLED:
            return "Sync cancelled"
        return "Waiting to sync"

    def status_color(self) -> str:
        """ARGB hex color for the sync indicator."""
        if self.status is SyncStatus.SYNCING:
            return "#FF2196F3"
        shown = self.last_pass_status if self.status is SyncStatus.IDLE else self.status
        if self.circuit_open or shown is SyncStatus.FAILED:
            return "#FFF44336"
        if shown is SyncStatus.CANCELLED:
            return "#FFFF9800"
        if shown is SyncStatus.COMPLETED:
            return "#FF4CAF50"
        return "#FF9E9E9E"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_pass_status": self.last_pass_status.value if self.last_pass_status else None,
            "progress": self.progress.to_dict(),
            "consecutive_failures": self.consecutive_failures,
            "circuit_open": self.circuit_open,
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "auto_sync_enabled": self.auto_sync_enabled,
            "sync_only_on_wifi": self.sync_only_on_wifi,
            "next_retry_at": self.next_retry_at.isoformat() if self.next_retry_at else None,
            "status_message": self.status_message(),
            "status_color": self.status_color(),
            "can_retry": self.can_retry,
        }

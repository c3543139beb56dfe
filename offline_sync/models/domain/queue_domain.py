# offline_sync/models/domain/queue_domain.py
"""
Offline Queue Domain Models
Queue items, priority tiers, and queue statistics.
Used by the offline queue, the dispatcher, and the sync coordinator.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

OLD_ITEM_THRESHOLD = timedelta(hours=24)

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


class PriorityTier(str, Enum):
    """Priority classes governing drain order (critical first)."""

    CRITICAL = "critical"  # Authentication, security
    HIGH = "high"  # Critical user data
    NORMAL = "normal"  # User actions
    LOW = "low"  # Analytics, logs

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @classmethod
    def drain_order(cls) -> list["PriorityTier"]:
        """Tiers from highest to lowest priority."""
        return sorted(cls, key=lambda tier: tier.rank, reverse=True)

    @classmethod
    def parse(cls, value: "str | PriorityTier") -> "PriorityTier":
        if isinstance(value, PriorityTier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ValueError(
                f"Unknown priority tier '{value}'. "
                f"Expected one of: {', '.join(tier.value for tier in cls.drain_order())}"
            ) from e


_TIER_RANK = {
    PriorityTier.LOW: 0,
    PriorityTier.NORMAL: 1,
    PriorityTier.HIGH: 2,
    PriorityTier.CRITICAL: 3,
}


@dataclass(frozen=True, slots=True)
class QueueItem:
    """A pending remote action owned by the offline queue."""

    id: str
    endpoint: str
    method: str
    payload: Any
    created_at: datetime
    retry_count: int = 0
    max_retries: int = 3
    priority: PriorityTier = PriorityTier.NORMAL
    headers: dict[str, str] | None = None

    @property
    def should_retry(self) -> bool:
        return self.retry_count < self.max_retries

    @property
    def label(self) -> str:
        """Human-readable label shown as the current sync item."""
        return f"{self.method} {self.endpoint}"

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def is_expired(self, now: datetime, window: timedelta) -> bool:
        return self.age(now) > window

    def with_retry(self) -> "QueueItem":
        """Copy of this item with the retry count incremented."""
        return replace(self, retry_count=self.retry_count + 1)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "endpoint": self.endpoint,
            "data": self.payload,
            "method": self.method,
            "createdAt": self.created_at.isoformat(),
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
        }
        if self.headers:
            data["headers"] = dict(self.headers)
        return data

    @classmethod
    def from_json(cls, data: dict[str, Any], priority: PriorityTier) -> "QueueItem":
        """Rebuild an item from its persisted form; raises KeyError/ValueError when malformed."""
        created_at = datetime.fromisoformat(str(data["createdAt"]).replace("Z", "+00:00"))
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)

        headers = data.get("headers")
        return cls(
            id=str(data["id"]),
            endpoint=str(data["endpoint"]),
            method=str(data.get("method", "POST")).upper(),
            payload=data.get("data"),
            created_at=created_at,
            retry_count=int(data.get("retryCount", 0)),
            max_retries=int(data.get("maxRetries", 3)),
            priority=priority,
            headers={str(k): str(v) for k, v in headers.items()} if headers else None,
        )


@dataclass(frozen=True, slots=True)
class QueueStats:
    """Point-in-time statistics for the offline queue."""

    total: int
    by_priority: dict[PriorityTier, int] = field(default_factory=dict)
    oldest_item_age: timedelta | None = None

    @property
    def has_items(self) -> bool:
        return self.total > 0

    @property
    def has_old_items(self) -> bool:
        return self.oldest_item_age is not None and self.oldest_item_age > OLD_ITEM_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_priority": {
                tier.value: self.by_priority.get(tier, 0) for tier in PriorityTier.drain_order()
            },
            "oldest_item_age_seconds": (
                round(self.oldest_item_age.total_seconds(), 1)
                if self.oldest_item_age is not None
                else None
            ),
            "has_old_items": self.has_old_items,
        }

# offline_sync/models/api/queue_response.py
"""
Offline queue API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from offline_sync.models.domain.queue_domain import QueueItem, QueueStats


class EnqueueResponse(BaseModel):
    """Response after queueing an action."""

    id: str = Field(..., description="Queue item ID")
    priority: str = Field(..., description="Priority tier the item was queued in")
    queue_size: int = Field(..., description="Total queued items after enqueue")


class QueueItemResponse(BaseModel):
    """A queued action."""

    id: str = Field(..., description="Queue item ID")
    endpoint: str = Field(..., description="Backend endpoint path")
    method: str = Field(..., description="HTTP method")
    data: Any = Field(default=None, description="Request payload")
    priority: str = Field(..., description="Priority tier")
    created_at: datetime = Field(..., description="When the action was queued")
    retry_count: int = Field(..., description="Failed delivery attempts so far")
    max_retries: int = Field(..., description="Attempts allowed before eviction")

    @classmethod
    def from_domain(cls, item: QueueItem) -> "QueueItemResponse":
        return cls(
            id=item.id,
            endpoint=item.endpoint,
            method=item.method,
            data=item.payload,
            priority=item.priority.value,
            created_at=item.created_at,
            retry_count=item.retry_count,
            max_retries=item.max_retries,
        )


class QueueItemsResponse(BaseModel):
    """Queued actions in drain order."""

    items: list[QueueItemResponse] = Field(default_factory=list, description="Queued actions")
    count: int = Field(..., description="Number of items returned")


class QueueStatsResponse(BaseModel):
    """Queue statistics."""

    total: int = Field(..., description="Total queued items")
    by_priority: dict[str, int] = Field(..., description="Queued items per priority tier")
    oldest_item_age_seconds: float | None = Field(None, description="Age of the oldest item")
    has_old_items: bool = Field(..., description="Whether any item is older than 24 hours")

    @classmethod
    def from_domain(cls, stats: QueueStats) -> "QueueStatsResponse":
        return cls(**stats.to_dict())


class QueueMutationResponse(BaseModel):
    """Result of removing items from the queue."""

    removed: int = Field(..., description="Number of items removed")
    queue_size: int = Field(..., description="Total queued items afterwards")

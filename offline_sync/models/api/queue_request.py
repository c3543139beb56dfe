# offline_sync/models/api/queue_request.py
"""
Offline queue API request models.
Used by routes for input validation.
"""

from typing import Any

from pydantic import BaseModel, Field

from offline_sync.models.domain.queue_domain import PriorityTier


class EnqueueRequest(BaseModel):
    """Request for queueing a backend action."""

    endpoint: str = Field(..., min_length=1, max_length=2048, description="Backend endpoint path")
    method: str = Field(default="POST", description="HTTP method (GET, POST, PUT, PATCH, DELETE)")
    data: Any = Field(default=None, description="Request payload")
    priority: PriorityTier = Field(default=PriorityTier.NORMAL, description="Drain priority tier")
    headers: dict[str, str] | None = Field(default=None, description="Extra request headers")
    max_retries: int | None = Field(
        default=None, ge=0, le=100, description="Delivery attempts before eviction"
    )

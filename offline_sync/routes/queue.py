# offline_sync/routes/queue.py
"""
Offline Queue API Routes
Queue actions for eventual delivery and inspect or prune what is pending.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.api.queue_request import EnqueueRequest
from offline_sync.models.api.queue_response import (
    EnqueueResponse,
    QueueItemResponse,
    QueueItemsResponse,
    QueueMutationResponse,
    QueueStatsResponse,
)
from offline_sync.models.domain.queue_domain import PriorityTier
from offline_sync.routes.dependencies import get_coordinator, get_queue
from offline_sync.services.queue.offline_queue import OfflineQueue, OfflineQueueError
from offline_sync.services.sync.sync_coordinator import SyncCoordinator

logger = get_logger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.post("", response_model=EnqueueResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_action(
    request: EnqueueRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Queue a backend action; critical actions sync immediately when reachable."""
    try:
        item_id = await coordinator.enqueue(
            request.endpoint,
            request.data,
            method=request.method,
            priority=request.priority,
            headers=request.headers,
            max_retries=request.max_retries,
        )
    except OfflineQueueError as e:
        logger.warning("Rejected enqueue request", endpoint=request.endpoint, error=str(e))
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    return EnqueueResponse(
        id=item_id, priority=request.priority.value, queue_size=len(coordinator.queue)
    )


@router.get("/stats", response_model=QueueStatsResponse)
async def get_queue_stats(queue: OfflineQueue = Depends(get_queue)):
    return QueueStatsResponse.from_domain(queue.stats())


@router.get("/items", response_model=QueueItemsResponse)
async def list_queue_items(
    tier: PriorityTier | None = Query(default=None, description="Only items in this tier"),
    queue: OfflineQueue = Depends(get_queue),
):
    """Queued actions in drain order."""
    items = [QueueItemResponse.from_domain(item) for item in queue.items(tier)]
    return QueueItemsResponse(items=items, count=len(items))


@router.delete("/items/{item_id}", response_model=QueueMutationResponse)
async def remove_queue_item(item_id: str, queue: OfflineQueue = Depends(get_queue)):
    if not await queue.remove(item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Queue item not found")
    return QueueMutationResponse(removed=1, queue_size=len(queue))


@router.delete("", response_model=QueueMutationResponse)
async def clear_queue(queue: OfflineQueue = Depends(get_queue)):
    removed = await queue.clear()
    return QueueMutationResponse(removed=removed, queue_size=len(queue))

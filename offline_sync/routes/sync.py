# offline_sync/routes/sync.py
"""
Sync API Routes
Sync status for indicators plus the manual sync, cancel and retry actions.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.api.sync_request import SyncSettingsRequest
from offline_sync.models.api.sync_response import (
    CancelSyncResponse,
    SyncResultResponse,
    SyncStatusResponse,
)
from offline_sync.routes.dependencies import get_coordinator
from offline_sync.services.sync.sync_coordinator import SyncCoordinator, SyncCoordinatorError

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Current sync state, progress and display hints."""
    return SyncStatusResponse.from_domain(coordinator.snapshot)


@router.post("/manual", response_model=SyncResultResponse)
async def manual_sync(
    force: bool = Query(default=False, description="Wait for a running pass, then sync again"),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Run a drain pass now and return its result."""
    result = await coordinator.manual_sync(force_sync=force)
    logger.info("Manual sync requested", force=force, status=result.status.value)
    return SyncResultResponse.from_domain(result)


@router.post("/cancel", response_model=CancelSyncResponse)
async def cancel_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Ask the running pass to stop before its next item."""
    return CancelSyncResponse(cancelled=coordinator.cancel_sync())


@router.post("/retry", response_model=SyncResultResponse)
async def retry_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Reset the failure counter and sync immediately."""
    result = await coordinator.force_retry()
    return SyncResultResponse.from_domain(result)


@router.put("/settings", response_model=SyncStatusResponse)
async def update_sync_settings(
    request: SyncSettingsRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Update the automatic sync policy."""
    try:
        if request.auto_sync_enabled is not None:
            await coordinator.set_auto_sync_enabled(request.auto_sync_enabled)
        if request.auto_sync_interval_seconds is not None:
            await coordinator.set_auto_sync_interval(request.auto_sync_interval_seconds)
        if request.sync_only_on_wifi is not None:
            await coordinator.set_sync_only_on_wifi(request.sync_only_on_wifi)
    except SyncCoordinatorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return SyncStatusResponse.from_domain(coordinator.snapshot)

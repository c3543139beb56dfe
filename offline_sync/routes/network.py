# offline_sync/routes/network.py
"""
Network API Routes
Connection status for banners, the refresh affordance, and host link reports.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from offline_sync.container import SyncContainer
from offline_sync.models.api.network_request import ConnectivityUpdateRequest
from offline_sync.models.api.network_response import NetworkStatusResponse
from offline_sync.routes.dependencies import get_container, get_monitor
from offline_sync.services.network.network_monitor import NetworkMonitor

router = APIRouter(prefix="/network", tags=["network"])


@router.get("/status", response_model=NetworkStatusResponse)
async def get_network_status(monitor: NetworkMonitor = Depends(get_monitor)):
    return NetworkStatusResponse.from_domain(monitor.state)


@router.post("/refresh", response_model=NetworkStatusResponse)
async def refresh_network_status(monitor: NetworkMonitor = Depends(get_monitor)):
    """Re-read connectivity and probe again."""
    return NetworkStatusResponse.from_domain(await monitor.refresh())


@router.get("/actions/{action_type}")
async def check_action(action_type: str, monitor: NetworkMonitor = Depends(get_monitor)):
    """Whether the current connection is good enough for an action type."""
    return {"action_type": action_type, "allowed": monitor.can_perform_action(action_type)}


@router.post("/connectivity", response_model=NetworkStatusResponse)
async def report_connectivity(
    request: ConnectivityUpdateRequest,
    container: SyncContainer = Depends(get_container),
):
    """
    Host-reported link-layer change.

    A "none" report takes effect immediately; other reports are probed after
    the settle delay, so the returned state may still show the previous status.
    """
    if not request.results:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="results must not be empty"
        )
    await container.connectivity.push_results(request.results)
    return NetworkStatusResponse.from_domain(container.monitor.state)

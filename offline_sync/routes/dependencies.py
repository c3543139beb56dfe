# offline_sync/routes/dependencies.py
"""FastAPI dependencies resolving components from the application container."""

from fastapi import HTTPException, Request, status

from offline_sync.container import SyncContainer
from offline_sync.services.network.network_monitor import NetworkMonitor
from offline_sync.services.queue.offline_queue import OfflineQueue
from offline_sync.services.sync.sync_coordinator import SyncCoordinator


def get_container(request: Request) -> SyncContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not started"
        )
    return container


def get_coordinator(request: Request) -> SyncCoordinator:
    return get_container(request).coordinator


def get_monitor(request: Request) -> NetworkMonitor:
    return get_container(request).monitor


def get_queue(request: Request) -> OfflineQueue:
    return get_container(request).queue

# offline_sync/jobs/sync_job.py
"""
Headless sync jobs.

start_sync_service runs the full wiring (queue, monitor, coordinator) without
the HTTP layer and logs a status summary every few minutes. run_network_probe
takes one network measurement and exits.
"""

import asyncio

from offline_sync.config import settings
from offline_sync.container import SyncContainer
from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.domain.network_domain import NetworkState
from offline_sync.services.network.connectivity import ConnectivityFeed
from offline_sync.services.network.network_monitor import NetworkMonitor

logger = get_logger(__name__)

STATUS_INTERVAL_MINUTES = 5


def get_sync_service_status(container: SyncContainer) -> dict:
    """Summary of sync, queue and network state for periodic logging."""
    snapshot = container.coordinator.snapshot
    queue_stats = container.queue.stats()
    network = container.monitor.state
    return {
        "sync_status": snapshot.status.value,
        "last_pass_status": snapshot.last_pass_status.value if snapshot.last_pass_status else None,
        "consecutive_failures": snapshot.consecutive_failures,
        "circuit_open": snapshot.circuit_open,
        "queue_size": queue_stats.total,
        "has_old_items": queue_stats.has_old_items,
        "network_status": network.status.value,
        "network_quality": round(network.quality, 3),
    }


async def start_sync_service(
    container: SyncContainer | None = None,
    status_interval: float = STATUS_INTERVAL_MINUTES * 60,
    max_cycles: int | None = None,
):
    """
    Run the sync service until cancelled.

    Args:
        container: Prebuilt component graph (built from settings when omitted)
        status_interval: Seconds between status summaries
        max_cycles: Stop after this many summaries (runs forever when None)
    """
    container = container or SyncContainer.build(settings)
    await container.start()
    logger.info("Sync service started", status_interval_seconds=status_interval)

    cycles = 0
    try:
        while max_cycles is None or cycles < max_cycles:
            await asyncio.sleep(status_interval)
            cycles += 1
            try:
                logger.info("Sync service status", **get_sync_service_status(container))
            except Exception as e:
                logger.error(
                    "Error collecting sync service status", error=str(e), error_type=type(e).__name__
                )
    except asyncio.CancelledError:
        logger.info("Sync service stopping")
        raise
    finally:
        await container.close()


async def run_network_probe(monitor: NetworkMonitor | None = None) -> NetworkState:
    """Take one network measurement and log it."""
    if monitor is None:
        connectivity = ConnectivityFeed()
        await connectivity.push_results([settings.NETWORK_INITIAL_MEDIUM])
        monitor = NetworkMonitor(connectivity, **settings.monitor_config())

    state = await monitor.refresh()
    logger.info("Network probe completed", **state.to_dict())
    await monitor.stop()
    return state

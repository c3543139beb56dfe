# offline_sync/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Depends

from offline_sync.container import SyncContainer
from offline_sync.routes.dependencies import get_container

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "offline-sync"}


@router.get("/readyz")
async def readyz(container: SyncContainer = Depends(get_container)):
    """
    Readiness check: persistence store, network reachability, queue depth.

    Network reachability is reported but does not fail readiness; the service
    exists to operate while offline.
    """
    checks = {}
    overall_ok = True

    # 1) Persistence store
    t0 = time.time()
    try:
        store_ok = await container.store.ping()
        checks["store"] = {
            "ok": bool(store_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and bool(store_ok)
    except Exception as e:
        checks["store"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Network monitor
    state = container.monitor.state
    checks["network"] = {
        "ok": True,
        "status": state.status.value,
        "reachable": state.reachable,
        "quality": round(state.quality, 3),
    }

    # 3) Queue and sync
    queue_stats = container.queue.stats()
    snapshot = container.coordinator.snapshot
    checks["sync"] = {
        "ok": not snapshot.circuit_open,
        "status": snapshot.status.value,
        "queue_size": queue_stats.total,
        "has_old_items": queue_stats.has_old_items,
        "consecutive_failures": snapshot.consecutive_failures,
        "persist_failures": container.queue.persist_failures,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}

# offline_sync/main.py
"""
FastAPI application with component lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from offline_sync import __version__
from offline_sync.config import settings
from offline_sync.container import SyncContainer
from offline_sync.infrastructure.observability.logging import get_logger, setup_logging
from offline_sync.routes import health, network, queue, sync

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def create_app(container: SyncContainer | None = None) -> FastAPI:
    """Build the app; a prebuilt container replaces the one built from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown with proper resource management."""
        logger.info("Application starting", environment=settings.environment, debug=settings.debug)

        app.state.container = container or SyncContainer.build(settings)
        await app.state.container.start()

        yield

        logger.info("Application shutting down")
        await app.state.container.close()

    app = FastAPI(
        title="Offline Sync Service",
        description="Durable priority queue for backend actions with network-aware sync",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(sync.router)
    app.include_router(network.router)
    app.include_router(queue.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

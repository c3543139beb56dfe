# offline_sync/jobs/worker.py
"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from offline_sync.config import settings
from offline_sync.infrastructure.observability.logging import get_logger, setup_logging
from offline_sync.jobs.sync_job import run_network_probe, start_sync_service

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "sync": start_sync_service,
    "probe": run_network_probe,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "sync").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    try:
        asyncio.run(run_worker(job_name))
    except KeyboardInterrupt:
        logger.info("Background worker stopped by user", job=job_name)


if __name__ == "__main__":
    main()

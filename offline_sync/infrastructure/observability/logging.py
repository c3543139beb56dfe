"""
Structured logging setup for the offline sync service.
Provides JSON-formatted logs with consistent fields for queue and sync monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_component_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_component_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag entries with the top-level component derived from the logger name."""
    name = event_dict.get("logger")
    if name and "component" not in event_dict:
        parts = name.split(".")
        event_dict["component"] = parts[-1] if parts else name
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


# Convenience functions for common log patterns
def log_sync_pass(
    status: str,
    duration_ms: float,
    delivered: int,
    failed: int,
    evicted: int,
    error: str = None,
):
    """Log a finished drain pass with consistent fields."""
    logger = get_logger("sync")

    log_data = {
        "status": status,
        "duration_ms": duration_ms,
        "delivered": delivered,
        "failed": failed,
        "evicted": evicted,
        "event_type": "sync_pass",
    }

    if error:
        log_data["error"] = error

    if status == "completed":
        logger.info("Sync pass completed", **log_data)
    else:
        logger.warning("Sync pass did not complete", **log_data)


def log_network_transition(previous: str, current: str, medium: str, quality: float):
    """Log a network status transition with consistent fields."""
    logger = get_logger("network")

    log_data = {
        "previous_status": previous,
        "status": current,
        "medium": medium,
        "quality": round(quality, 3),
        "event_type": "network_transition",
    }

    if current in ("offline", "limited"):
        logger.warning("Network degraded", **log_data)
    else:
        logger.info("Network status changed", **log_data)

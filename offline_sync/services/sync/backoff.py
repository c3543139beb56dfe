# offline_sync/services/sync/backoff.py
"""Retry delay after failed drain passes."""

import random

MAX_BACKOFF_EXPONENT = 4


def compute_backoff_delay(
    consecutive_failures: int,
    base_delay: float = 30.0,
    max_delay: float = 300.0,
    jitter: float | None = None,
) -> float:
    """
    Seconds until the next automatic retry.

    base_delay * 2^min(failures - 1, 4) plus jitter in [0, 1), capped at max_delay.
    """
    if jitter is None:
        jitter = random.random()

    exponent = min(max(consecutive_failures - 1, 0), MAX_BACKOFF_EXPONENT)
    return min(base_delay * (2**exponent) + jitter, max_delay)

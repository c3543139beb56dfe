# offline_sync/services/infrastructure/scheduler.py
"""
Single-timer wake-up scheduler.

Components register named deadlines ("auto_sync", "retry", "settle", ...).
Only one asyncio timer task exists at a time, armed for the earliest
deadline; re-scheduling a name replaces its previous deadline instead of
stacking another timer.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from offline_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WakeupHandler = Callable[[set[str]], Awaitable[None]]


class WakeupScheduler:
    def __init__(
        self,
        name: str,
        handler: WakeupHandler,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._handler = handler
        self._clock = clock
        self._deadlines: dict[str, float] = {}
        self._timer: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()
        self._closed = False

    def schedule(self, reason: str, delay_s: float) -> None:
        """Set (or replace) the deadline for a reason, delay_s from now."""
        if self._closed:
            return
        self._deadlines[reason] = self._clock() + max(delay_s, 0.0)
        self._rearm()

    def cancel(self, reason: str) -> None:
        if self._deadlines.pop(reason, None) is not None:
            self._rearm()

    def pending(self) -> dict[str, float]:
        """Seconds remaining per scheduled reason."""
        now = self._clock()
        return {reason: max(deadline - now, 0.0) for reason, deadline in self._deadlines.items()}

    def is_scheduled(self, reason: str) -> bool:
        return reason in self._deadlines

    def _rearm(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

        if not self._deadlines or self._closed:
            return

        delay = max(min(self._deadlines.values()) - self._clock(), 0.0)
        self._timer = asyncio.get_running_loop().create_task(self._sleep_then_fire(delay))

    async def _sleep_then_fire(self, delay: float) -> None:
        await asyncio.sleep(delay)

        now = self._clock()
        due = {reason for reason, deadline in self._deadlines.items() if deadline <= now}
        for reason in due:
            del self._deadlines[reason]

        # Detach before dispatch so handlers that reschedule arm a fresh timer
        self._timer = None
        if due:
            task = asyncio.get_running_loop().create_task(self._dispatch(due))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

        if self._timer is None:
            self._rearm()

    async def _dispatch(self, due: set[str]) -> None:
        try:
            await self._handler(due)
        except Exception as e:
            logger.error(
                "Scheduled wake-up handler failed",
                scheduler=self.name,
                reasons=sorted(due),
                error=str(e),
                error_type=type(e).__name__,
            )

    async def close(self) -> None:
        """Cancel the timer and wait for in-flight handlers to finish."""
        self._closed = True
        self._deadlines.clear()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

# offline_sync/services/infrastructure/publisher.py
"""
In-process publish/subscribe for immutable state snapshots.

Subscribers register a callback and get back a Subscription they cancel to
stop receiving updates. Callbacks may be plain functions or coroutines.
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from offline_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None | Awaitable[None]]


class Subscription:
    """Handle returned by Publisher.subscribe."""

    def __init__(self, publisher: "Publisher", callback: Callable):
        self._publisher = publisher
        self._callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._publisher._remove(self._callback)
            self.active = False


class Publisher(Generic[T]):
    """Fan-out of snapshots to registered subscribers."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Subscriber] = []
        self.last: T | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Subscription:
        self._subscribers.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback: Callable) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    async def publish(self, snapshot: T) -> None:
        """Deliver a snapshot to every subscriber; one failing subscriber does not stop the rest."""
        self.last = snapshot
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Subscriber failed",
                    publisher=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )

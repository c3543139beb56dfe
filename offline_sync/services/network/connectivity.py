# offline_sync/services/network/connectivity.py
"""
Link-layer connectivity sources consumed by the network monitor.

The host application owns the platform notifications (OS network events,
a mobile bridge, an operator toggle) and forwards them into a
ConnectivityFeed. The monitor only sees the ConnectivitySource contract.
"""

from typing import Protocol

from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.domain.network_domain import ConnectionMedium
from offline_sync.services.infrastructure.publisher import Publisher, Subscriber, Subscription

logger = get_logger(__name__)


class ConnectivitySource(Protocol):
    async def check(self) -> ConnectionMedium: ...

    def subscribe(self, callback: Subscriber) -> Subscription: ...


class ConnectivityFeed:
    """Push-based connectivity source; the host reports each link change."""

    def __init__(self, initial: ConnectionMedium = ConnectionMedium.NONE):
        self._medium = initial
        self._publisher: Publisher[ConnectionMedium] = Publisher("connectivity")

    @property
    def medium(self) -> ConnectionMedium:
        return self._medium

    async def check(self) -> ConnectionMedium:
        return self._medium

    def subscribe(self, callback: Subscriber) -> Subscription:
        return self._publisher.subscribe(callback)

    async def push(self, medium: ConnectionMedium | str) -> None:
        """Record a link-layer change and notify subscribers."""
        medium = ConnectionMedium(getattr(medium, "value", medium))
        previous = self._medium
        self._medium = medium
        logger.debug("Connectivity reported", previous=previous.value, medium=medium.value)
        await self._publisher.publish(medium)

    async def push_results(self, results: list[str]) -> None:
        """Record a change reported as a list of link types (e.g. ["wifi", "mobile"])."""
        await self.push(ConnectionMedium.from_results(results))

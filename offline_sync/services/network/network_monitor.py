# offline_sync/services/network/network_monitor.py
"""
Network Monitor for reachability and connection quality.

Combines link-layer connectivity reported by a ConnectivitySource with a DNS
reachability probe, classifies the result (online / poor / limited / offline),
and publishes an immutable NetworkState whenever it changes.

The monitor never raises past its own boundary: probe errors and timeouts
count as failed probes and only update state.
"""

import asyncio
import socket
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from offline_sync.infrastructure.observability.logging import get_logger, log_network_transition
from offline_sync.models.domain.network_domain import (
    ConnectionMedium,
    NetworkState,
    NetworkStatus,
    compute_quality,
    derive_status,
)
from offline_sync.services.infrastructure.publisher import Publisher, Subscriber, Subscription
from offline_sync.services.infrastructure.scheduler import WakeupScheduler
from offline_sync.services.network.connectivity import ConnectivitySource

logger = get_logger(__name__)

# Monitor configuration defaults
DEFAULT_PROBE_HOST = "google.com"
DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0
MAX_PROBE_TIMEOUT_SECONDS = 5.0
DEFAULT_RECHECK_INTERVAL_SECONDS = 30.0
DEFAULT_SETTLE_DELAY_SECONDS = 2.0
WAIT_POLL_INTERVAL_SECONDS = 1.0

RECHECK = "recheck"
SETTLE = "settle"

ProbeFunction = Callable[[], Awaitable[bool]]


class NetworkMonitor:
    """
    Best-effort classification of network reachability and quality.

    Connectivity events re-check after a settle delay; while the network is
    reachable a periodic timer re-measures quality.
    """

    def __init__(
        self,
        connectivity: ConnectivitySource,
        probe: ProbeFunction | None = None,
        clock: Callable[[], datetime] | None = None,
        timer: Callable[[], float] = time.perf_counter,
        probe_host: str = DEFAULT_PROBE_HOST,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        recheck_interval: float = DEFAULT_RECHECK_INTERVAL_SECONDS,
        settle_delay: float = DEFAULT_SETTLE_DELAY_SECONDS,
    ):
        self._connectivity = connectivity
        self._probe_fn = probe
        self._clock = clock or (lambda: datetime.now(UTC))
        self._timer = timer
        self.probe_host = probe_host
        self.probe_timeout = min(probe_timeout, MAX_PROBE_TIMEOUT_SECONDS)
        self.recheck_interval = recheck_interval
        self.settle_delay = settle_delay

        self._state = NetworkState()
        self._publisher: Publisher[NetworkState] = Publisher("network")
        self._scheduler = WakeupScheduler("network_monitor", self._on_wakeup)
        self._connectivity_subscription: Subscription | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> NetworkState:
        return self._state

    @property
    def is_reachable(self) -> bool:
        return self._state.reachable

    @property
    def medium(self) -> ConnectionMedium:
        return self._state.medium

    def current_status(self) -> NetworkStatus:
        return self._state.status

    def subscribe(self, callback: Subscriber) -> Subscription:
        return self._publisher.subscribe(callback)

    def can_perform_action(self, action_type: str) -> bool:
        return self._state.can_perform_action(action_type)

    def status_message(self) -> str:
        return self._state.status_message()

    def status_color(self) -> str:
        return self._state.status_color()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to connectivity changes and take the first measurement."""
        if self._connectivity_subscription is None:
            self._connectivity_subscription = self._connectivity.subscribe(
                self._on_connectivity_changed
            )
        await self.refresh()
        logger.info(
            "Network monitor started",
            status=self._state.status.value,
            medium=self._state.medium.value,
            probe_host=self.probe_host,
        )

    async def stop(self) -> None:
        if self._connectivity_subscription is not None:
            self._connectivity_subscription.cancel()
            self._connectivity_subscription = None
        await self._scheduler.close()
        logger.info("Network monitor stopped")

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def probe(self) -> bool:
        """DNS reachability check of the probe host; timeouts count as failure."""
        try:
            if self._probe_fn is not None:
                return bool(await asyncio.wait_for(self._probe_fn(), timeout=self.probe_timeout))

            loop = asyncio.get_running_loop()
            addresses = await asyncio.wait_for(
                loop.getaddrinfo(self.probe_host, 443, type=socket.SOCK_STREAM),
                timeout=self.probe_timeout,
            )
            return bool(addresses)
        except TimeoutError:
            logger.debug("Reachability probe timed out", host=self.probe_host)
            return False
        except OSError as e:
            logger.debug("Reachability probe failed", host=self.probe_host, error=str(e))
            return False
        except Exception as e:
            logger.warning(
                "Unexpected reachability probe error",
                host=self.probe_host,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def _timed_probe(self) -> tuple[bool, float]:
        started = self._timer()
        reachable = await self.probe()
        return reachable, (self._timer() - started) * 1000

    async def measure_quality(self) -> float:
        """Time one probe against the current medium and update state."""
        await self._evaluate(self._state.medium)
        return self._state.quality

    async def refresh(self) -> NetworkState:
        """Re-read link-layer connectivity and re-probe."""
        try:
            medium = await self._connectivity.check()
        except Exception as e:
            logger.error("Error checking connectivity", error=str(e))
            medium = ConnectionMedium.NONE

        await self._evaluate(medium)
        return self._state

    async def wait_for_connection(self, timeout: float = 30.0) -> bool:
        """Poll until the network is reachable or the timeout elapses."""
        if self.is_reachable:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            await asyncio.sleep(min(WAIT_POLL_INTERVAL_SECONDS, max(deadline - loop.time(), 0)))
            await self.refresh()
            if self.is_reachable:
                return True
        return False

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def _evaluate(self, medium: ConnectionMedium) -> None:
        async with self._lock:
            try:
                if medium is ConnectionMedium.NONE:
                    await self._apply(NetworkStatus.OFFLINE, medium, 0.0, None)
                else:
                    reachable, latency_ms = await self._timed_probe()
                    quality = compute_quality(medium, latency_ms) if reachable else 0.0
                    status = derive_status(medium, reachable, quality)
                    await self._apply(status, medium, quality, latency_ms if reachable else None)
            except Exception as e:
                logger.error(
                    "Network evaluation failed", error=str(e), error_type=type(e).__name__
                )

        if self._state.reachable:
            self._scheduler.schedule(RECHECK, self.recheck_interval)
        else:
            self._scheduler.cancel(RECHECK)

    async def _apply(
        self,
        status: NetworkStatus,
        medium: ConnectionMedium,
        quality: float,
        latency_ms: float | None,
    ) -> None:
        now = self._clock()
        previous = self._state
        status_changed = status is not previous.status

        total_online = previous.total_online
        total_offline = previous.total_offline
        last_connected = previous.last_connected
        last_disconnected = previous.last_disconnected

        if status_changed:
            if previous.changed_at is not None:
                elapsed = max(now - previous.changed_at, timedelta(0))
                if previous.status.is_reachable:
                    total_online += elapsed
                else:
                    total_offline += elapsed
            if status.is_reachable and not previous.status.is_reachable:
                last_connected = now
            elif previous.status.is_reachable and not status.is_reachable:
                last_disconnected = now

        current = NetworkState(
            status=status,
            medium=medium,
            quality=quality,
            latency_ms=latency_ms,
            last_connected=last_connected,
            last_disconnected=last_disconnected,
            total_online=total_online,
            total_offline=total_offline,
            changed_at=now if status_changed or previous.changed_at is None else previous.changed_at,
        )
        self._state = current

        if status_changed:
            log_network_transition(previous.status.value, status.value, medium.value, quality)

        if current != previous:
            await self._publisher.publish(current)

    async def _on_connectivity_changed(self, medium: ConnectionMedium) -> None:
        if medium is ConnectionMedium.NONE:
            self._scheduler.cancel(SETTLE)
            await self._evaluate(medium)
            return
        # Let the link settle before probing to avoid reacting to flapping
        self._scheduler.schedule(SETTLE, self.settle_delay)

    async def _on_wakeup(self, reasons: set[str]) -> None:
        if SETTLE in reasons or (RECHECK in reasons and self._state.reachable):
            await self.refresh()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> dict:
        stats = self._state.to_dict()
        stats.update(
            {
                "probe_host": self.probe_host,
                "recheck_interval_seconds": self.recheck_interval,
                "pending_wakeups": self._scheduler.pending(),
            }
        )
        return stats

    def reset_statistics(self) -> None:
        """Zero cumulative durations and connection timestamps."""
        state = self._state
        self._state = NetworkState(
            status=state.status,
            medium=state.medium,
            quality=state.quality,
            latency_ms=state.latency_ms,
            changed_at=self._clock(),
        )

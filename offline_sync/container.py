# offline_sync/container.py
"""
Application wiring.

SyncContainer constructs every component once from Settings and owns their
lifecycle: start() brings them up in dependency order, close() tears them
down in reverse. Used by the FastAPI lifespan and by the worker.
"""

from offline_sync.config import Settings
from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.domain.network_domain import ConnectionMedium
from offline_sync.services.dispatch.circuit_breaker import CircuitBreaker
from offline_sync.services.dispatch.request_dispatcher import RequestDispatcher
from offline_sync.services.infrastructure.key_value_store import KeyValueStore
from offline_sync.services.infrastructure.redis_client import FastRedisClient
from offline_sync.services.network.connectivity import ConnectivityFeed
from offline_sync.services.network.network_monitor import NetworkMonitor, ProbeFunction
from offline_sync.services.queue.offline_queue import OfflineQueue
from offline_sync.services.sync.sync_coordinator import SyncCoordinator, SyncPolicy

logger = get_logger(__name__)


class SyncContainer:
    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        connectivity: ConnectivityFeed,
        monitor: NetworkMonitor,
        queue: OfflineQueue,
        dispatcher: RequestDispatcher,
        coordinator: SyncCoordinator,
    ):
        self.settings = settings
        self.store = store
        self.connectivity = connectivity
        self.monitor = monitor
        self.queue = queue
        self.dispatcher = dispatcher
        self.coordinator = coordinator
        self._started: list[str] = []

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: KeyValueStore | None = None,
        probe: ProbeFunction | None = None,
        dispatcher: RequestDispatcher | None = None,
    ) -> "SyncContainer":
        """Construct the component graph; overrides replace real I/O in tests."""
        if store is None:
            store = FastRedisClient(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )

        connectivity = ConnectivityFeed(
            initial=ConnectionMedium.from_results([settings.NETWORK_INITIAL_MEDIUM])
        )
        monitor = NetworkMonitor(connectivity, probe=probe, **settings.monitor_config())
        queue = OfflineQueue(store, **settings.queue_config())

        if dispatcher is None:
            auth_headers = (
                {"Authorization": f"Bearer {settings.BACKEND_AUTH_TOKEN}"}
                if settings.BACKEND_AUTH_TOKEN
                else None
            )
            dispatcher = RequestDispatcher(
                auth_headers=auth_headers,
                circuit_breaker=CircuitBreaker(
                    failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
                    open_timeout=settings.CIRCUIT_OPEN_TIMEOUT_SECONDS,
                ),
                **settings.dispatcher_config(),
            )

        coordinator = SyncCoordinator(
            queue,
            dispatcher,
            monitor,
            policy=SyncPolicy(**settings.sync_policy_config()),
            store=store,
            metadata_key=settings.SYNC_METADATA_KEY,
        )

        return cls(settings, store, connectivity, monitor, queue, dispatcher, coordinator)

    async def start(self) -> None:
        """Initialize the store, restore the queue, then start monitoring and syncing."""
        try:
            initialize = getattr(self.store, "initialize", None)
            if initialize is not None:
                logger.info("Initializing persistence store")
                await initialize()
            self._started.append("store")

            await self.queue.load()

            await self.monitor.start()
            self._started.append("monitor")

            await self.coordinator.start()
            self._started.append("coordinator")

            logger.info("All components started", components=self._started)
        except Exception as e:
            logger.error("Failed to start components", error=str(e), started=self._started)
            await self.close()
            raise

    async def close(self) -> None:
        """Stop components in reverse start order."""
        shutdown_errors = []

        if "coordinator" in self._started:
            try:
                await self.coordinator.stop()
            except Exception as e:
                logger.error("Error stopping sync coordinator", error=str(e))
                shutdown_errors.append(f"coordinator: {e}")

        if "monitor" in self._started:
            try:
                await self.monitor.stop()
            except Exception as e:
                logger.error("Error stopping network monitor", error=str(e))
                shutdown_errors.append(f"monitor: {e}")

        try:
            await self.dispatcher.close()
        except Exception as e:
            logger.error("Error closing dispatcher", error=str(e))
            shutdown_errors.append(f"dispatcher: {e}")

        close_store = getattr(self.store, "close", None)
        if "store" in self._started and close_store is not None:
            try:
                await close_store()
            except Exception as e:
                logger.error("Error closing persistence store", error=str(e))
                shutdown_errors.append(f"store: {e}")

        self._started.clear()

        if shutdown_errors:
            logger.warning("Some components had shutdown errors", errors=shutdown_errors)
        else:
            logger.info("All components closed successfully")

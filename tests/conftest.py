from datetime import UTC, datetime, timedelta

import pytest

from offline_sync.config import Settings
from offline_sync.container import SyncContainer
from offline_sync.models.domain.network_domain import ConnectionMedium, NetworkState, NetworkStatus
from offline_sync.services.dispatch.request_dispatcher import DeliveryOutcome, DeliveryResult
from offline_sync.services.infrastructure.key_value_store import KeyValueStoreError
from offline_sync.services.infrastructure.publisher import Publisher
from offline_sync.services.queue.offline_queue import OfflineQueue
from offline_sync.services.sync.sync_coordinator import SyncCoordinator, SyncPolicy


class FakeStore:
    """In-memory KeyValueStore with read and write failure injection."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.fail_writes = False
        self.fail_reads = False
        self.writes = 0

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if self.fail_writes:
            return False
        self.writes += 1
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            return None
        return self.store.get(key)

    async def get_or_raise(self, key: str) -> str | None:
        if self.fail_reads:
            raise KeyValueStoreError("store unavailable", operation="get")
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def ping(self) -> bool:
        return not self.fail_writes


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class ScriptedDispatcher:
    """
    Dispatcher double: outcomes are scripted per endpoint, delivered by default.

    `before_attempt` runs ahead of each attempt so tests can change the world
    mid-pass (drop the network, request cancellation).
    """

    def __init__(self):
        self.script: dict[str, list[DeliveryOutcome]] = {}
        self.attempted: list = []
        self.before_attempt = None
        self.closed = False

    def fail(self, endpoint: str, *outcomes: DeliveryOutcome) -> None:
        self.script.setdefault(endpoint, []).extend(outcomes)

    async def attempt(self, item) -> DeliveryResult:
        if self.before_attempt is not None:
            await self.before_attempt(item)
        self.attempted.append(item)

        outcomes = self.script.get(item.endpoint)
        outcome = outcomes.pop(0) if outcomes else DeliveryOutcome.DELIVERED
        if outcome is DeliveryOutcome.DELIVERED:
            return DeliveryResult(outcome, status_code=200)
        if outcome is DeliveryOutcome.UNAVAILABLE:
            return DeliveryResult(outcome, error="Circuit breaker is open")
        if outcome is DeliveryOutcome.PERMANENT:
            return DeliveryResult(outcome, status_code=422, error="HTTP 422")
        return DeliveryResult(outcome, status_code=503, error="HTTP 503")

    async def close(self) -> None:
        self.closed = True


class FakeMonitor:
    """Network monitor double publishing NetworkState like the real one."""

    def __init__(self, status=NetworkStatus.ONLINE, medium=ConnectionMedium.WIFI):
        self.state = NetworkState(status=status, medium=medium, quality=1.0)
        self._publisher: Publisher[NetworkState] = Publisher("fake_network")

    @property
    def is_reachable(self) -> bool:
        return self.state.reachable

    @property
    def medium(self) -> ConnectionMedium:
        return self.state.medium

    def subscribe(self, callback):
        return self._publisher.subscribe(callback)

    async def set_state(self, status: NetworkStatus, medium=ConnectionMedium.WIFI) -> None:
        self.state = NetworkState(status=status, medium=medium, quality=1.0)
        await self._publisher.publish(self.state)

    async def go_online(self, medium=ConnectionMedium.WIFI) -> None:
        await self.set_state(NetworkStatus.ONLINE, medium)

    async def go_offline(self) -> None:
        await self.set_state(NetworkStatus.OFFLINE, ConnectionMedium.NONE)


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return ScriptedDispatcher()


@pytest.fixture
def monitor():
    return FakeMonitor()


@pytest.fixture
def queue(fake_store, fake_clock):
    return OfflineQueue(fake_store, clock=fake_clock)


@pytest.fixture
def make_coordinator(queue, dispatcher, monitor, fake_store, fake_clock):
    def _make(**policy_overrides) -> SyncCoordinator:
        policy = SyncPolicy(settle_delay=0.01, **policy_overrides)
        return SyncCoordinator(
            queue,
            dispatcher,
            monitor,
            policy=policy,
            store=fake_store,
            clock=fake_clock,
            rng=lambda: 0.5,
            sleep=no_sleep,
        )

    return _make


@pytest.fixture
def build_container(fake_store, dispatcher):
    """Container wired with in-memory fakes instead of Redis, DNS and HTTP."""

    def _build(reachable: bool = True, dispatcher_override=None, **settings_overrides):
        async def probe():
            return reachable

        overrides = {
            "SYNC_ITEM_DELAY_SECONDS": 0,
            "NETWORK_SETTLE_DELAY_SECONDS": 0.01,
            **settings_overrides,
        }
        return SyncContainer.build(
            Settings(**overrides),
            store=fake_store,
            probe=probe,
            dispatcher=dispatcher_override or dispatcher,
        )

    return _build

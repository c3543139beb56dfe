# offline_sync/services/sync/sync_coordinator.py
"""
Sync Coordinator - drains the offline queue when connectivity allows.

State machine: idle -> syncing -> {completed | failed | cancelled} -> idle.

Drain passes never overlap: automatic triggers skip while a pass runs, a
forced manual sync waits for it. Auto-sync, backoff retry, reconnect and
critical-item triggers share one WakeupScheduler so their timers never stack.
"""

import asyncio
import json
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

from offline_sync.infrastructure.observability.logging import get_logger, log_sync_pass
from offline_sync.models.domain.network_domain import ConnectionMedium, NetworkState
from offline_sync.models.domain.queue_domain import PriorityTier
from offline_sync.models.domain.sync_domain import (
    SyncProgress,
    SyncResult,
    SyncSnapshot,
    SyncStatus,
)
from offline_sync.services.infrastructure.key_value_store import KeyValueStore
from offline_sync.services.infrastructure.publisher import Publisher, Subscriber, Subscription
from offline_sync.services.infrastructure.scheduler import WakeupScheduler
from offline_sync.services.sync.backoff import compute_backoff_delay

logger = get_logger(__name__)

# Wake-up reasons
AUTO_SYNC = "auto_sync"
RETRY = "retry"
RECONNECT = "reconnect"
CRITICAL = "critical"

DEFAULT_METADATA_KEY = "sync_metadata"
MAX_ERROR_SUMMARY_ITEMS = 5

LOST_CONNECTION = "Lost network connection during sync"
NO_CONNECTION = "No network connection"
BACKEND_UNAVAILABLE = "Backend unavailable"


class SyncCoordinatorError(Exception):
    """Custom exception for sync coordinator operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@dataclass(slots=True)
class SyncPolicy:
    auto_sync_enabled: bool = True
    auto_sync_interval: float = 300.0
    retry_base_delay: float = 30.0
    max_retry_delay: float = 300.0
    max_consecutive_failures: int = 5
    sync_only_on_wifi: bool = False
    item_delay: float = 0.1
    settle_delay: float = 2.0


class SyncCoordinator:
    """
    Orchestrates drain passes across priority tiers.

    Collaborators are injected: the offline queue, a dispatcher exposing
    `attempt(item)`, the network monitor, and an optional key-value store for
    sync metadata.
    """

    def __init__(
        self,
        queue,
        dispatcher,
        monitor,
        policy: SyncPolicy | None = None,
        store: KeyValueStore | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: Callable[[], float] | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        metadata_key: str = DEFAULT_METADATA_KEY,
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.monitor = monitor
        self.policy = policy or SyncPolicy()
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._rng = rng
        self._sleep = sleep
        self.metadata_key = metadata_key

        self._status = SyncStatus.IDLE
        self._last_pass_status: SyncStatus | None = None
        self._progress = SyncProgress()
        self._consecutive_failures = 0
        self._last_attempt: datetime | None = None
        self._last_success: datetime | None = None
        self._next_retry_at: datetime | None = None
        self._cancel_requested = False

        self._pass_lock = asyncio.Lock()
        self._publisher: Publisher[SyncSnapshot] = Publisher("sync")
        self._scheduler = WakeupScheduler("sync_coordinator", self._on_wakeup)
        self._network_subscription: Subscription | None = None
        self._was_reachable = False

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(
            status=self._status,
            last_pass_status=self._last_pass_status,
            progress=self._progress,
            consecutive_failures=self._consecutive_failures,
            max_consecutive_failures=self.policy.max_consecutive_failures,
            last_attempt=self._last_attempt,
            last_success=self._last_success,
            auto_sync_enabled=self.policy.auto_sync_enabled,
            sync_only_on_wifi=self.policy.sync_only_on_wifi,
            next_retry_at=self._next_retry_at,
        )

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def is_syncing(self) -> bool:
        return self._pass_lock.locked()

    def subscribe(self, callback: Subscriber) -> Subscription:
        return self._publisher.subscribe(callback)

    async def _publish(self) -> None:
        await self._publisher.publish(self.snapshot)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self._load_metadata()

        if self._network_subscription is None:
            self._network_subscription = self.monitor.subscribe(self._on_network_change)
        self._was_reachable = self.monitor.is_reachable

        if self.policy.auto_sync_enabled:
            self._scheduler.schedule(AUTO_SYNC, self.policy.auto_sync_interval)
        if self._was_reachable and self.queue.stats().has_items:
            self._scheduler.schedule(RECONNECT, self.policy.settle_delay)

        logger.info(
            "Sync coordinator started",
            auto_sync_enabled=self.policy.auto_sync_enabled,
            auto_sync_interval_seconds=self.policy.auto_sync_interval,
            consecutive_failures=self._consecutive_failures,
            queue_size=len(self.queue),
        )
        await self._publish()

    async def stop(self) -> None:
        if self._network_subscription is not None:
            self._network_subscription.cancel()
            self._network_subscription = None

        if self._pass_lock.locked():
            self._cancel_requested = True
        await self._scheduler.close()
        async with self._pass_lock:
            pass
        logger.info("Sync coordinator stopped")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _auto_sync_blocker(self) -> str | None:
        """Reason an automatic pass may not run now, or None."""
        if not self.policy.auto_sync_enabled:
            return "auto_sync_disabled"
        if self._pass_lock.locked():
            return "already_syncing"
        if self._consecutive_failures >= self.policy.max_consecutive_failures:
            return "circuit_open"
        if not self.monitor.is_reachable:
            return "network_unreachable"
        if self.policy.sync_only_on_wifi and self.monitor.medium is not ConnectionMedium.WIFI:
            return "wifi_required"
        return None

    async def _on_wakeup(self, reasons: set[str]) -> None:
        if AUTO_SYNC in reasons and self.policy.auto_sync_enabled:
            self._scheduler.schedule(AUTO_SYNC, self.policy.auto_sync_interval)
        if RETRY in reasons:
            self._next_retry_at = None

        if CRITICAL in reasons and self.monitor.is_reachable:
            if self._pass_lock.locked():
                # Picked up once the running pass finishes
                self._scheduler.schedule(CRITICAL, self.policy.settle_delay)
                return
            await self._run_pass(trigger=CRITICAL)
            return

        blocker = self._auto_sync_blocker()
        if blocker is not None:
            logger.debug("Automatic sync skipped", reasons=sorted(reasons), blocker=blocker)
            return
        if not self.queue.stats().has_items:
            logger.debug("Automatic sync skipped", reasons=sorted(reasons), blocker="queue_empty")
            return

        await self._run_pass(trigger=",".join(sorted(reasons)))

    async def _on_network_change(self, state: NetworkState) -> None:
        was_reachable = self._was_reachable
        self._was_reachable = state.reachable

        if state.reachable and not was_reachable:
            if self._consecutive_failures:
                logger.info(
                    "Connectivity restored, resetting failure counter",
                    consecutive_failures=self._consecutive_failures,
                )
                self._consecutive_failures = 0
                await self._save_metadata()
                await self._publish()
            self._scheduler.schedule(RECONNECT, self.policy.settle_delay)
        elif not state.reachable and was_reachable:
            self._scheduler.cancel(RECONNECT)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def manual_sync(self, force_sync: bool = False) -> SyncResult:
        """
        Run a drain pass now and return its result.

        When a pass is already running, returns "Sync already in progress"
        unless force_sync is set, in which case it waits for the running pass
        and then runs a fresh one.
        """
        if self._pass_lock.locked() and not force_sync:
            logger.info("Manual sync rejected, pass already running")
            return SyncResult.already_running()
        return await self._run_pass(trigger="manual")

    def cancel_sync(self) -> bool:
        """Request cancellation of the running pass; observed between items."""
        if self._status is not SyncStatus.SYNCING:
            return False
        self._cancel_requested = True
        logger.info("Sync cancellation requested")
        return True

    async def force_retry(self) -> SyncResult:
        """Reset the failure counter and sync immediately."""
        self._consecutive_failures = 0
        self._scheduler.cancel(RETRY)
        self._next_retry_at = None
        await self._save_metadata()
        logger.info("Forced sync retry")
        return await self.manual_sync()

    async def set_auto_sync_enabled(self, enabled: bool) -> None:
        self.policy.auto_sync_enabled = enabled
        if enabled:
            self._scheduler.schedule(AUTO_SYNC, self.policy.auto_sync_interval)
        else:
            self._scheduler.cancel(AUTO_SYNC)
        logger.info("Auto-sync setting changed", auto_sync_enabled=enabled)
        await self._publish()

    async def set_auto_sync_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise SyncCoordinatorError(
                "Auto-sync interval must be positive", operation="set_auto_sync_interval"
            )
        self.policy.auto_sync_interval = seconds
        if self.policy.auto_sync_enabled:
            self._scheduler.schedule(AUTO_SYNC, seconds)
        logger.info("Auto-sync interval changed", auto_sync_interval_seconds=seconds)
        await self._publish()

    async def set_sync_only_on_wifi(self, wifi_only: bool) -> None:
        self.policy.sync_only_on_wifi = wifi_only
        logger.info("Wifi-only setting changed", sync_only_on_wifi=wifi_only)
        await self._publish()

    async def enqueue(
        self,
        endpoint: str,
        payload: Any = None,
        method: str = "POST",
        priority: PriorityTier | str = PriorityTier.NORMAL,
        **kwargs,
    ) -> str:
        """Queue an action; critical items trigger an immediate pass while reachable."""
        item_id = await self.queue.enqueue(endpoint, payload, method=method, priority=priority, **kwargs)
        if PriorityTier.parse(priority) is PriorityTier.CRITICAL and self.monitor.is_reachable:
            self._scheduler.schedule(CRITICAL, 0)
        return item_id

    def statistics(self) -> dict[str, Any]:
        stats = self.snapshot.to_dict()
        stats["queue"] = self.queue.stats().to_dict()
        stats["policy"] = asdict(self.policy)
        stats["pending_wakeups"] = self._scheduler.pending()
        return stats

    # ------------------------------------------------------------------
    # Drain pass
    # ------------------------------------------------------------------

    async def _run_pass(self, trigger: str) -> SyncResult:
        async with self._pass_lock:
            return await self._drain(trigger)

    async def _set_progress(self, **changes) -> None:
        self._progress = replace(self._progress, **changes)
        await self._publish()

    async def _drain(self, trigger: str) -> SyncResult:
        started_at = self._clock()
        self._cancel_requested = False
        self._status = SyncStatus.SYNCING
        self._last_attempt = started_at
        self._progress = SyncProgress()
        self._scheduler.cancel(RETRY)
        self._next_retry_at = None
        await self._publish()

        logger.info("Sync pass started", trigger=trigger, queue_size=len(self.queue))

        delivered = failed = evicted = retryable = 0
        errors: list[str] = []
        abort_error: str | None = None
        cancelled = False

        try:
            evicted += await self.queue.evict_expired()
            stats = self.queue.stats()

            if stats.has_items:
                await self._set_progress(total=stats.total)

                for tier in PriorityTier.drain_order():
                    for item in self.queue.drain(tier):
                        if self._cancel_requested:
                            cancelled = True
                            break
                        if not self.monitor.is_reachable:
                            abort_error = LOST_CONNECTION if delivered or failed else NO_CONNECTION
                            break

                        await self._set_progress(current_item=item.label)
                        result = await self.dispatcher.attempt(item)

                        if result.unavailable:
                            # Nothing was sent, so the item keeps its retries
                            abort_error = f"{BACKEND_UNAVAILABLE}: {result.error}"
                            break

                        if result.delivered:
                            await self.queue.mark_delivered(item.id)
                            delivered += 1
                            await self._set_progress(completed=self._progress.completed + 1)
                        else:
                            if await self.queue.mark_failed(
                                item.id, result.error, permanent=result.permanent
                            ):
                                evicted += 1
                            if not result.permanent:
                                retryable += 1
                            failed += 1
                            errors.append(f"{item.label}: {result.error}")
                            await self._set_progress(failed=self._progress.failed + 1)

                        await self._sleep(self.policy.item_delay)

                    if cancelled or abort_error:
                        break
        except Exception as e:
            logger.error(
                "Sync pass aborted by unexpected error",
                trigger=trigger,
                error=str(e),
                error_type=type(e).__name__,
            )
            abort_error = f"Sync failed: {e}"

        if cancelled:
            status = SyncStatus.CANCELLED
        elif abort_error or retryable:
            status = SyncStatus.FAILED
        else:
            status = SyncStatus.COMPLETED

        error = abort_error
        if error is None and cancelled:
            error = "Sync cancelled"
        if error is None and errors:
            error = "; ".join(errors[:MAX_ERROR_SUMMARY_ITEMS])
            if len(errors) > MAX_ERROR_SUMMARY_ITEMS:
                error += f" (+{len(errors) - MAX_ERROR_SUMMARY_ITEMS} more)"

        finished_at = self._clock()
        duration = max(finished_at - started_at, timedelta(0))
        await self._conclude(status, finished_at)

        log_sync_pass(
            status.value,
            round(duration.total_seconds() * 1000, 1),
            delivered,
            failed,
            evicted,
            error=error,
        )

        return SyncResult(
            success=status is SyncStatus.COMPLETED,
            duration=duration,
            status=status,
            error=error,
            delivered=delivered,
            failed=failed,
            evicted=evicted,
        )

    async def _conclude(self, status: SyncStatus, finished_at: datetime) -> None:
        if status is SyncStatus.COMPLETED:
            self._consecutive_failures = 0
            self._last_success = finished_at
        elif status is SyncStatus.FAILED:
            self._consecutive_failures += 1
            self._schedule_retry(finished_at)

        self._status = status
        self._last_pass_status = status
        self._cancel_requested = False
        await self._save_metadata()
        await self._set_progress(current_item=None)

        self._status = SyncStatus.IDLE
        await self._publish()

    def _schedule_retry(self, now: datetime) -> None:
        if self._consecutive_failures >= self.policy.max_consecutive_failures:
            logger.warning(
                "Automatic sync paused after repeated failures",
                consecutive_failures=self._consecutive_failures,
                max_consecutive_failures=self.policy.max_consecutive_failures,
            )
            return

        delay = compute_backoff_delay(
            self._consecutive_failures,
            base_delay=self.policy.retry_base_delay,
            max_delay=self.policy.max_retry_delay,
            jitter=self._rng() if self._rng is not None else None,
        )
        self._scheduler.schedule(RETRY, delay)
        self._next_retry_at = now + timedelta(seconds=delay)
        logger.info(
            "Sync retry scheduled",
            delay_seconds=round(delay, 2),
            consecutive_failures=self._consecutive_failures,
        )

    # ------------------------------------------------------------------
    # Metadata persistence
    # ------------------------------------------------------------------

    async def _load_metadata(self) -> None:
        if self._store is None:
            return

        raw = await self._store.get(self.metadata_key)
        if not raw:
            return

        try:
            data = json.loads(raw)
            self._consecutive_failures = int(data.get("consecutiveFailures", 0))
            self._last_attempt = _parse_timestamp(data.get("lastAttempt"))
            self._last_success = _parse_timestamp(data.get("lastSuccess"))
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring corrupt sync metadata", key=self.metadata_key, error=str(e))
            return

        logger.info(
            "Sync metadata restored",
            consecutive_failures=self._consecutive_failures,
            last_success=self._last_success.isoformat() if self._last_success else None,
        )

    async def _save_metadata(self) -> None:
        if self._store is None:
            return

        payload = json.dumps(
            {
                "consecutiveFailures": self._consecutive_failures,
                "lastAttempt": self._last_attempt.isoformat() if self._last_attempt else None,
                "lastSuccess": self._last_success.isoformat() if self._last_success else None,
            }
        )
        if not await self._store.set_with_ttl(self.metadata_key, payload):
            logger.error("Failed to persist sync metadata", key=self.metadata_key)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

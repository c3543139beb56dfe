# offline_sync/services/queue/offline_queue.py
"""
Offline Queue - durable, priority-ordered holding area for backend actions.

Items live in memory partitioned by priority tier and every mutation is
written through to the key-value store (one JSON list per tier) before the
call returns. Persistence failures are logged; the in-memory state stays
authoritative until the next successful write.

Success and failure callbacks are process-local and are not persisted.
"""

import asyncio
import inspect
import json
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from offline_sync.infrastructure.observability.logging import get_logger
from offline_sync.models.domain.queue_domain import (
    ALLOWED_METHODS,
    PriorityTier,
    QueueItem,
    QueueStats,
)
from offline_sync.services.infrastructure.key_value_store import KeyValueStore, KeyValueStoreError

logger = get_logger(__name__)

DEFAULT_KEY_PREFIX = "priority_offline_queue"
DEFAULT_EXPIRY = timedelta(days=7)
DEFAULT_MAX_RETRIES = 3

MAX_RETRIES_EXCEEDED = "Max retries exceeded"
EXPIRED = "expired"
REMOVED = "removed"

SuccessCallback = Callable[[], None | Awaitable[None]]
FailureCallback = Callable[[str], None | Awaitable[None]]


class OfflineQueueError(Exception):
    """Custom exception for offline queue operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class OfflineQueue:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        expiry: timedelta = DEFAULT_EXPIRY,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self.key_prefix = key_prefix
        self.expiry = expiry
        self.default_max_retries = default_max_retries

        self._tiers: dict[PriorityTier, list[QueueItem]] = {tier: [] for tier in PriorityTier}
        self._on_success: dict[str, SuccessCallback] = {}
        self._on_failure: dict[str, FailureCallback] = {}
        self._persist_lock = asyncio.Lock()
        self.persist_failures = 0

    def storage_key(self, tier: PriorityTier) -> str:
        return f"{self.key_prefix}_{tier.value}"

    def __len__(self) -> int:
        return sum(len(items) for items in self._tiers.values())

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """
        Restore every tier from the store. Corrupt entries are skipped.

        All tiers are read before any in-memory state changes; a failed read
        raises OfflineQueueError so a later write cannot overwrite the
        persisted items with an empty tier.
        """
        raw_tiers: dict[PriorityTier, str | None] = {}
        for tier in PriorityTier.drain_order():
            key = self.storage_key(tier)
            try:
                raw_tiers[tier] = await self._store.get_or_raise(key)
            except KeyValueStoreError as e:
                logger.error("Failed to read queue tier", tier=tier.value, key=key, error=str(e))
                raise OfflineQueueError(
                    f"Failed to read queue tier '{tier.value}': {e}",
                    operation="load",
                    recoverable=True,
                ) from e

        restored = 0
        for tier, raw in raw_tiers.items():
            key = self.storage_key(tier)
            if not raw:
                self._tiers[tier] = []
                continue

            try:
                entries = json.loads(raw)
            except (TypeError, ValueError) as e:
                logger.error("Corrupt queue tier in store", tier=tier.value, key=key, error=str(e))
                self._tiers[tier] = []
                continue

            items = []
            for entry in entries if isinstance(entries, list) else []:
                try:
                    items.append(QueueItem.from_json(entry, tier))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning("Skipping corrupt queue entry", tier=tier.value, error=str(e))
            self._tiers[tier] = items
            restored += len(items)

        logger.info("Offline queue loaded", items=restored, **self._tier_counts())
        return restored

    async def _persist(self, tier: PriorityTier) -> bool:
        key = self.storage_key(tier)
        async with self._persist_lock:
            items = self._tiers[tier]
            if not items:
                # A missing key and an empty tier are equivalent
                await self._store.delete(key)
                return True

            payload = json.dumps([item.to_json() for item in items], default=str)
            ok = await self._store.set_with_ttl(key, payload)

        if not ok:
            self.persist_failures += 1
            logger.error(
                "Failed to persist queue tier",
                tier=tier.value,
                items=len(items),
                persist_failures=self.persist_failures,
            )
        return ok

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        endpoint: str,
        payload: Any = None,
        method: str = "POST",
        priority: PriorityTier | str = PriorityTier.NORMAL,
        headers: dict[str, str] | None = None,
        on_success: SuccessCallback | None = None,
        on_failure: FailureCallback | None = None,
        max_retries: int | None = None,
    ) -> str:
        """Queue an action for eventual delivery and return its id."""
        if not endpoint or not endpoint.strip():
            raise OfflineQueueError("Endpoint must not be empty", operation="enqueue")

        method = (method or "").strip().upper()
        if method not in ALLOWED_METHODS:
            raise OfflineQueueError(f"Unsupported method '{method}'", operation="enqueue")

        if max_retries is None:
            max_retries = self.default_max_retries
        if max_retries < 0:
            raise OfflineQueueError("max_retries must not be negative", operation="enqueue")

        try:
            tier = PriorityTier.parse(priority)
        except ValueError as e:
            raise OfflineQueueError(str(e), operation="enqueue") from e

        item = QueueItem(
            id=uuid.uuid4().hex,
            endpoint=endpoint.strip(),
            method=method,
            payload=payload,
            created_at=self._clock(),
            max_retries=max_retries,
            priority=tier,
            headers=dict(headers) if headers else None,
        )

        self._tiers[tier].append(item)
        if on_success is not None:
            self._on_success[item.id] = on_success
        if on_failure is not None:
            self._on_failure[item.id] = on_failure

        await self._persist(tier)

        logger.info(
            "Queued offline action",
            item_id=item.id,
            tier=tier.value,
            method=method,
            endpoint=item.endpoint,
            queue_size=len(self),
        )
        return item.id

    def drain(self, tier: PriorityTier) -> list[QueueItem]:
        """FIFO snapshot of a tier. Items stay queued."""
        return list(self._tiers[tier])

    async def mark_delivered(self, item_id: str) -> bool:
        item = self._pop(item_id)
        if item is None:
            logger.warning("Delivered item not in queue", item_id=item_id)
            return False

        self._on_failure.pop(item_id, None)
        await self._persist(item.priority)

        logger.info("Offline action delivered", item_id=item_id, tier=item.priority.value)
        await self._invoke(self._on_success.pop(item_id, None), item_id, "success")
        return True

    async def mark_failed(
        self, item_id: str, reason: str | None = None, permanent: bool = False
    ) -> bool:
        """
        Record a failed delivery attempt.

        The retry count is incremented; once it reaches max_retries the item
        is evicted and its failure callback receives "Max retries exceeded".
        A permanent failure evicts immediately with its own reason.

        Returns:
            True when the item was evicted
        """
        location = self._locate(item_id)
        if location is None:
            logger.warning("Failed item not in queue", item_id=item_id)
            return False

        tier, index = location
        updated = self._tiers[tier][index].with_retry()

        if permanent or not updated.should_retry:
            del self._tiers[tier][index]
            await self._persist(tier)

            eviction_reason = (reason or "Permanent failure") if permanent else MAX_RETRIES_EXCEEDED
            logger.warning(
                "Evicting offline action",
                item_id=item_id,
                tier=tier.value,
                retry_count=updated.retry_count,
                max_retries=updated.max_retries,
                permanent=permanent,
                reason=reason,
            )
            await self._fail(item_id, eviction_reason)
            return True

        self._tiers[tier][index] = updated
        await self._persist(tier)

        logger.info(
            "Offline action will be retried",
            item_id=item_id,
            tier=tier.value,
            retry_count=updated.retry_count,
            max_retries=updated.max_retries,
            reason=reason,
        )
        return False

    async def evict_expired(self) -> int:
        """Evict items older than the expiry window across all tiers."""
        now = self._clock()
        expired: list[QueueItem] = []

        for tier in PriorityTier.drain_order():
            stale = [item for item in self._tiers[tier] if item.is_expired(now, self.expiry)]
            if not stale:
                continue
            stale_ids = {item.id for item in stale}
            self._tiers[tier] = [item for item in self._tiers[tier] if item.id not in stale_ids]
            expired.extend(stale)
            await self._persist(tier)

        if expired:
            logger.info("Evicted expired offline actions", count=len(expired))
        for item in expired:
            await self._fail(item.id, EXPIRED)
        return len(expired)

    async def remove(self, item_id: str) -> bool:
        """Drop an item without delivering it; its failure callback receives "removed"."""
        item = self._pop(item_id)
        if item is None:
            return False
        await self._persist(item.priority)
        logger.info("Removed offline action", item_id=item_id, tier=item.priority.value)
        await self._fail(item_id, REMOVED)
        return True

    async def clear(self) -> int:
        """Drop every queued item and its callbacks."""
        cleared = len(self)
        for tier in PriorityTier:
            self._tiers[tier] = []
            await self._persist(tier)
        self._on_success.clear()
        self._on_failure.clear()
        logger.info("Offline queue cleared", cleared=cleared)
        return cleared

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> QueueItem | None:
        location = self._locate(item_id)
        if location is None:
            return None
        tier, index = location
        return self._tiers[tier][index]

    def pending_for(self, endpoint: str) -> list[QueueItem]:
        """Queued items targeting an endpoint, in drain order."""
        return [
            item
            for tier in PriorityTier.drain_order()
            for item in self._tiers[tier]
            if item.endpoint == endpoint
        ]

    def items(self, tier: PriorityTier | None = None) -> list[QueueItem]:
        tiers = [tier] if tier is not None else PriorityTier.drain_order()
        return [item for t in tiers for item in self._tiers[t]]

    def stats(self) -> QueueStats:
        by_priority = {tier: len(self._tiers[tier]) for tier in PriorityTier}
        all_items = [item for items in self._tiers.values() for item in items]

        oldest_age = None
        if all_items:
            oldest = min(item.created_at for item in all_items)
            oldest_age = self._clock() - oldest

        return QueueStats(
            total=len(all_items),
            by_priority=by_priority,
            oldest_item_age=oldest_age,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _tier_counts(self) -> dict[str, int]:
        return {tier.value: len(self._tiers[tier]) for tier in PriorityTier.drain_order()}

    def _locate(self, item_id: str) -> tuple[PriorityTier, int] | None:
        for tier, items in self._tiers.items():
            for index, item in enumerate(items):
                if item.id == item_id:
                    return tier, index
        return None

    def _pop(self, item_id: str) -> QueueItem | None:
        location = self._locate(item_id)
        if location is None:
            return None
        tier, index = location
        return self._tiers[tier].pop(index)

    async def _fail(self, item_id: str, reason: str) -> None:
        self._on_success.pop(item_id, None)
        await self._invoke(self._on_failure.pop(item_id, None), item_id, "failure", reason)

    async def _invoke(self, callback: Callable | None, item_id: str, kind: str, *args) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Queue callback failed",
                item_id=item_id,
                callback=kind,
                error=str(e),
                error_type=type(e).__name__,
            )

"""
Tests for the offline queue: ordering, retries, expiry, persistence.
"""

import json

import pytest

from offline_sync.models.domain.queue_domain import PriorityTier
from offline_sync.services.queue.offline_queue import OfflineQueue, OfflineQueueError


@pytest.mark.asyncio
async def test_enqueue_persists_before_returning(queue, fake_store):
    item_id = await queue.enqueue("/messages", {"text": "hi"}, priority="high")

    persisted = json.loads(fake_store.store["priority_offline_queue_high"])
    assert [entry["id"] for entry in persisted] == [item_id]
    assert persisted[0]["data"] == {"text": "hi"}
    assert persisted[0]["method"] == "POST"


@pytest.mark.asyncio
async def test_enqueue_validation(queue):
    with pytest.raises(OfflineQueueError, match="Endpoint"):
        await queue.enqueue("  ", {})
    with pytest.raises(OfflineQueueError, match="Unsupported method"):
        await queue.enqueue("/a", {}, method="TRACE")
    with pytest.raises(OfflineQueueError, match="Unknown priority tier"):
        await queue.enqueue("/a", {}, priority="urgent")
    with pytest.raises(OfflineQueueError):
        await queue.enqueue("/a", {}, max_retries=-1)

    assert len(queue) == 0


@pytest.mark.asyncio
async def test_drain_is_fifo_snapshot_without_removal(queue):
    first = await queue.enqueue("/a", 1)
    second = await queue.enqueue("/b", 2)

    snapshot = queue.drain(PriorityTier.NORMAL)
    snapshot.clear()

    assert [item.id for item in queue.drain(PriorityTier.NORMAL)] == [first, second]


@pytest.mark.asyncio
async def test_mark_delivered_removes_and_fires_success_once(queue, fake_store):
    calls = []
    item_id = await queue.enqueue("/a", {}, on_success=lambda: calls.append("ok"))

    assert await queue.mark_delivered(item_id) is True
    assert await queue.mark_delivered(item_id) is False

    assert calls == ["ok"]
    assert queue.drain(PriorityTier.NORMAL) == []
    assert "priority_offline_queue_normal" not in fake_store.store


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
async def test_item_evicted_after_exactly_max_retries_failures(queue, max_retries):
    reasons = []
    item_id = await queue.enqueue("/a", {}, max_retries=max_retries, on_failure=reasons.append)

    for attempt in range(1, max_retries):
        assert await queue.mark_failed(item_id) is False
        assert queue.get(item_id).retry_count == attempt
        assert reasons == []

    assert await queue.mark_failed(item_id) is True
    assert queue.get(item_id) is None
    assert reasons == ["Max retries exceeded"]


@pytest.mark.asyncio
async def test_retry_count_is_persisted(queue, fake_store):
    item_id = await queue.enqueue("/a", {}, max_retries=3)
    await queue.mark_failed(item_id, reason="HTTP 503")

    persisted = json.loads(fake_store.store["priority_offline_queue_normal"])
    assert persisted[0]["retryCount"] == 1


@pytest.mark.asyncio
async def test_permanent_failure_evicts_immediately(queue):
    reasons = []
    item_id = await queue.enqueue("/a", {}, max_retries=3, on_failure=reasons.append)

    assert await queue.mark_failed(item_id, reason="HTTP 422", permanent=True) is True
    assert reasons == ["HTTP 422"]
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(queue):
    seen = []

    async def on_failure(reason):
        seen.append(reason)

    item_id = await queue.enqueue("/a", {}, max_retries=1, on_failure=on_failure)
    await queue.mark_failed(item_id)

    assert seen == ["Max retries exceeded"]


@pytest.mark.asyncio
async def test_callback_errors_do_not_affect_queue_state(queue):
    def explode():
        raise RuntimeError("boom")

    item_id = await queue.enqueue("/a", {}, on_success=explode)

    assert await queue.mark_delivered(item_id) is True
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_evict_expired_is_idempotent(queue, fake_clock):
    reasons = []
    await queue.enqueue("/old", {}, on_failure=reasons.append)
    fake_clock.advance(days=6)
    fresh_id = await queue.enqueue("/new", {})
    fake_clock.advance(days=1, seconds=1)

    assert await queue.evict_expired() == 1
    assert await queue.evict_expired() == 0
    assert reasons == ["expired"]
    assert [item.id for item in queue.items()] == [fresh_id]


@pytest.mark.asyncio
async def test_load_restores_tiers_and_skips_corrupt_entries(fake_store, fake_clock):
    original = OfflineQueue(fake_store, clock=fake_clock)
    critical_id = await original.enqueue("/auth", {}, priority="critical")
    low_id = await original.enqueue("/analytics", {}, priority="low")

    entries = json.loads(fake_store.store["priority_offline_queue_low"])
    entries.append({"endpoint": "/missing-id"})
    fake_store.store["priority_offline_queue_low"] = json.dumps(entries)
    fake_store.store["priority_offline_queue_high"] = "not json"

    restored = OfflineQueue(fake_store, clock=fake_clock)
    assert await restored.load() == 2

    assert [item.id for item in restored.drain(PriorityTier.CRITICAL)] == [critical_id]
    assert [item.id for item in restored.drain(PriorityTier.LOW)] == [low_id]
    assert restored.drain(PriorityTier.HIGH) == []


@pytest.mark.asyncio
async def test_load_read_failure_does_not_clobber_persisted_items(fake_store, fake_clock):
    original = OfflineQueue(fake_store, clock=fake_clock)
    for endpoint in ("/a", "/b", "/c"):
        await original.enqueue(endpoint, {})

    fake_store.fail_reads = True
    restarted = OfflineQueue(fake_store, clock=fake_clock)
    with pytest.raises(OfflineQueueError) as exc_info:
        await restarted.load()

    assert exc_info.value.operation == "load"
    assert exc_info.value.recoverable is True
    assert len(restarted) == 0

    fake_store.fail_reads = False
    assert await restarted.load() == 3
    await restarted.enqueue("/new", {})

    after_restart = OfflineQueue(fake_store, clock=fake_clock)
    assert await after_restart.load() == 4
    assert [item.endpoint for item in after_restart.drain(PriorityTier.NORMAL)] == [
        "/a",
        "/b",
        "/c",
        "/new",
    ]


@pytest.mark.asyncio
async def test_persistence_failure_keeps_memory_authoritative(queue, fake_store):
    fake_store.fail_writes = True

    item_id = await queue.enqueue("/a", {})

    assert queue.get(item_id) is not None
    assert queue.persist_failures == 1
    assert fake_store.store == {}

    fake_store.fail_writes = False
    await queue.enqueue("/b", {})
    persisted = json.loads(fake_store.store["priority_offline_queue_normal"])
    assert len(persisted) == 2


@pytest.mark.asyncio
async def test_stats_counts_and_oldest_age(queue, fake_clock):
    await queue.enqueue("/a", {}, priority="critical")
    fake_clock.advance(hours=2)
    await queue.enqueue("/b", {}, priority="low")
    await queue.enqueue("/c", {}, priority="low")
    fake_clock.advance(hours=1)

    stats = queue.stats()

    assert stats.total == 3
    assert stats.by_priority[PriorityTier.CRITICAL] == 1
    assert stats.by_priority[PriorityTier.LOW] == 2
    assert stats.oldest_item_age.total_seconds() == 3 * 3600


@pytest.mark.asyncio
async def test_remove_clear_and_pending_for(queue):
    reasons = []
    first = await queue.enqueue("/a", {}, on_failure=reasons.append)
    await queue.enqueue("/a", {}, priority="critical")
    await queue.enqueue("/b", {})

    assert [item.endpoint for item in queue.pending_for("/a")] == ["/a", "/a"]
    assert queue.pending_for("/a")[0].priority is PriorityTier.CRITICAL

    assert await queue.remove(first) is True
    assert await queue.remove(first) is False
    assert reasons == ["removed"]

    assert await queue.clear() == 2
    assert len(queue) == 0

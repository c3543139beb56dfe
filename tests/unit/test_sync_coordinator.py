"""
Tests for the sync coordinator: drain order, pass outcomes, triggers, circuit-break.
"""

import asyncio
import json
from datetime import timedelta

import pytest

from offline_sync.models.domain.network_domain import ConnectionMedium
from offline_sync.models.domain.queue_domain import PriorityTier
from offline_sync.models.domain.sync_domain import SyncStatus
from offline_sync.services.dispatch.request_dispatcher import DeliveryOutcome
from offline_sync.services.sync.sync_coordinator import SyncCoordinatorError


@pytest.mark.asyncio
async def test_drain_pass_processes_tiers_in_priority_then_fifo_order(
    make_coordinator, queue, dispatcher
):
    coordinator = make_coordinator()
    ids = {}
    for name, tier in [
        ("low", "low"),
        ("critical-1", "critical"),
        ("normal", "normal"),
        ("high", "high"),
        ("critical-2", "critical"),
    ]:
        ids[name] = await queue.enqueue(f"/{name}", {}, priority=tier)

    result = await coordinator.manual_sync()

    assert [item.priority for item in dispatcher.attempted] == [
        PriorityTier.CRITICAL,
        PriorityTier.CRITICAL,
        PriorityTier.HIGH,
        PriorityTier.NORMAL,
        PriorityTier.LOW,
    ]
    assert [item.id for item in dispatcher.attempted[:2]] == [ids["critical-1"], ids["critical-2"]]
    assert result.success is True
    assert result.delivered == 5
    assert len(queue) == 0
    await coordinator.stop()


@pytest.mark.asyncio
async def test_reconnect_drains_queue_and_resets_failures(
    make_coordinator, queue, monitor, fake_store
):
    fake_store.store["sync_metadata"] = json.dumps({"consecutiveFailures": 2})
    await monitor.go_offline()
    coordinator = make_coordinator()
    statuses = []
    coordinator.subscribe(lambda snapshot: statuses.append(snapshot.status))
    await coordinator.start()
    assert coordinator.consecutive_failures == 2

    delivered = []
    await coordinator.enqueue(
        "/auth/refresh",
        {},
        priority="critical",
        max_retries=3,
        on_success=lambda: delivered.append(True),
    )
    await asyncio.sleep(0.05)
    assert len(queue) == 1

    await monitor.go_online()
    await asyncio.sleep(0.2)

    assert len(queue) == 0
    assert delivered == [True]
    assert SyncStatus.COMPLETED in statuses
    assert statuses[-1] is SyncStatus.IDLE
    assert coordinator.consecutive_failures == 0
    assert coordinator.snapshot.last_pass_status is SyncStatus.COMPLETED
    await coordinator.stop()


@pytest.mark.asyncio
async def test_single_failure_with_one_retry_evicts_item(make_coordinator, queue, dispatcher):
    coordinator = make_coordinator()
    reasons = []
    await queue.enqueue("/b", {}, max_retries=1, on_failure=reasons.append)
    dispatcher.fail("/b", DeliveryOutcome.RETRYABLE)

    result = await coordinator.manual_sync()

    assert reasons == ["Max retries exceeded"]
    assert len(queue) == 0
    assert result.evicted == 1
    assert result.failed == 1
    assert result.status is SyncStatus.FAILED
    await coordinator.stop()


@pytest.mark.asyncio
async def test_permanent_rejection_evicts_without_failing_the_pass(
    make_coordinator, queue, dispatcher
):
    coordinator = make_coordinator()
    reasons = []
    await queue.enqueue("/invalid", {}, max_retries=3, on_failure=reasons.append)
    await queue.enqueue("/valid", {})
    dispatcher.fail("/invalid", DeliveryOutcome.PERMANENT)

    result = await coordinator.manual_sync()

    assert result.status is SyncStatus.COMPLETED
    assert result.success is True
    assert result.delivered == 1
    assert reasons == ["HTTP 422"]
    assert coordinator.consecutive_failures == 0
    await coordinator.stop()


@pytest.mark.asyncio
async def test_retryable_failure_keeps_item_and_schedules_backoff(
    make_coordinator, queue, dispatcher, fake_clock
):
    coordinator = make_coordinator(retry_base_delay=30)
    item_id = await queue.enqueue("/flaky", {}, max_retries=3)
    dispatcher.fail("/flaky", DeliveryOutcome.RETRYABLE)

    result = await coordinator.manual_sync()

    assert result.status is SyncStatus.FAILED
    assert result.error == "POST /flaky: HTTP 503"
    assert queue.get(item_id).retry_count == 1
    assert coordinator.consecutive_failures == 1
    assert coordinator.snapshot.next_retry_at == fake_clock.now + timedelta(seconds=30.5)
    assert "retry" in coordinator.statistics()["pending_wakeups"]
    await coordinator.stop()


@pytest.mark.asyncio
async def test_unavailable_backend_aborts_pass_without_consuming_retries(
    make_coordinator, queue, dispatcher
):
    coordinator = make_coordinator()
    reasons = []
    first_id = await queue.enqueue("/first", {}, max_retries=1, on_failure=reasons.append)
    second_id = await queue.enqueue("/second", {}, max_retries=1, on_failure=reasons.append)
    dispatcher.fail("/first", DeliveryOutcome.UNAVAILABLE)

    result = await coordinator.manual_sync()

    assert result.status is SyncStatus.FAILED
    assert result.error == "Backend unavailable: Circuit breaker is open"
    assert result.failed == 0
    assert result.evicted == 0
    assert [item.endpoint for item in dispatcher.attempted] == ["/first"]
    assert queue.get(first_id).retry_count == 0
    assert queue.get(second_id).retry_count == 0
    assert reasons == []
    assert coordinator.consecutive_failures == 1
    assert "retry" in coordinator.statistics()["pending_wakeups"]
    await coordinator.stop()


@pytest.mark.asyncio
async def test_empty_queue_completes_immediately(make_coordinator, dispatcher, fake_store):
    coordinator = make_coordinator()

    result = await coordinator.manual_sync()

    assert result.success is True
    assert result.status is SyncStatus.COMPLETED
    assert dispatcher.attempted == []
    assert coordinator.status is SyncStatus.IDLE
    metadata = json.loads(fake_store.store["sync_metadata"])
    assert metadata["consecutiveFailures"] == 0
    assert metadata["lastSuccess"] is not None
    await coordinator.stop()


@pytest.mark.asyncio
async def test_connectivity_loss_aborts_pass_without_rollback(
    make_coordinator, queue, dispatcher, monitor
):
    coordinator = make_coordinator()
    await queue.enqueue("/a", {})
    await queue.enqueue("/b", {})
    await queue.enqueue("/c", {})

    async def drop_network(item):
        if item.endpoint == "/a":
            await monitor.go_offline()

    dispatcher.before_attempt = drop_network

    result = await coordinator.manual_sync()

    assert result.status is SyncStatus.FAILED
    assert result.error == "Lost network connection during sync"
    assert result.delivered == 1
    assert [item.endpoint for item in queue.items()] == ["/b", "/c"]
    assert coordinator.consecutive_failures == 1
    await coordinator.stop()


@pytest.mark.asyncio
async def test_cancel_is_observed_between_items(make_coordinator, queue, dispatcher, fake_store):
    fake_store.store["sync_metadata"] = json.dumps({"consecutiveFailures": 1})
    coordinator = make_coordinator()
    await coordinator.start()
    await queue.enqueue("/a", {})
    await queue.enqueue("/b", {})
    cancel_results = []

    async def cancel_during_first(item):
        if item.endpoint == "/a":
            cancel_results.append(coordinator.cancel_sync())

    dispatcher.before_attempt = cancel_during_first

    result = await coordinator.manual_sync()

    assert cancel_results == [True]
    assert result.status is SyncStatus.CANCELLED
    assert result.delivered == 1
    assert [item.endpoint for item in queue.items()] == ["/b"]
    assert coordinator.consecutive_failures == 1
    assert coordinator.cancel_sync() is False
    await coordinator.stop()


@pytest.mark.asyncio
async def test_manual_sync_while_running_and_forced_sync(make_coordinator, queue, dispatcher):
    coordinator = make_coordinator()
    await queue.enqueue("/a", {})
    entered = asyncio.Event()
    release = asyncio.Event()

    async def gate(item):
        if item.endpoint == "/a":
            entered.set()
            await release.wait()

    dispatcher.before_attempt = gate

    first = asyncio.create_task(coordinator.manual_sync())
    await entered.wait()

    rejected = await coordinator.manual_sync()
    assert rejected.success is False
    assert rejected.error == "Sync already in progress"

    forced = asyncio.create_task(coordinator.manual_sync(force_sync=True))
    await queue.enqueue("/b", {})
    await asyncio.sleep(0.01)
    assert not forced.done()

    release.set()
    first_result = await first
    forced_result = await forced

    assert first_result.delivered == 1
    assert forced_result.delivered == 1
    assert [item.endpoint for item in dispatcher.attempted] == ["/a", "/b"]
    await coordinator.stop()


@pytest.mark.asyncio
async def test_repeated_failures_open_circuit_until_reconnect(
    make_coordinator, queue, dispatcher, monitor
):
    coordinator = make_coordinator(max_consecutive_failures=2)
    await coordinator.start()
    await queue.enqueue("/down", {}, max_retries=10)
    dispatcher.fail("/down", DeliveryOutcome.RETRYABLE, DeliveryOutcome.RETRYABLE)

    await coordinator.manual_sync()
    await coordinator.manual_sync()

    snapshot = coordinator.snapshot
    assert snapshot.circuit_open is True
    assert snapshot.can_retry is True
    assert "retry" not in coordinator.statistics()["pending_wakeups"]

    await monitor.go_offline()
    await monitor.go_online()

    assert coordinator.consecutive_failures == 0
    await asyncio.sleep(0.1)
    assert len(queue) == 0
    await coordinator.stop()


@pytest.mark.asyncio
async def test_force_retry_resets_counter_and_syncs(make_coordinator, queue, fake_store):
    fake_store.store["sync_metadata"] = json.dumps({"consecutiveFailures": 5})
    coordinator = make_coordinator()
    await coordinator.start()
    await queue.enqueue("/a", {})
    assert coordinator.snapshot.circuit_open is True

    result = await coordinator.force_retry()

    assert result.success is True
    assert coordinator.consecutive_failures == 0
    await coordinator.stop()


@pytest.mark.asyncio
async def test_wifi_only_skips_automatic_sync_on_mobile(make_coordinator, queue, monitor):
    coordinator = make_coordinator(sync_only_on_wifi=True)
    await monitor.go_offline()
    await coordinator.start()
    await queue.enqueue("/a", {})

    await monitor.go_online(ConnectionMedium.MOBILE)
    await asyncio.sleep(0.1)
    assert len(queue) == 1

    await monitor.go_offline()
    await monitor.go_online(ConnectionMedium.WIFI)
    await asyncio.sleep(0.1)
    assert len(queue) == 0
    await coordinator.stop()


@pytest.mark.asyncio
async def test_critical_enqueue_triggers_immediate_pass(make_coordinator, queue, dispatcher):
    coordinator = make_coordinator(auto_sync_enabled=False)
    await coordinator.start()

    await coordinator.enqueue("/auth/logout", {}, priority=PriorityTier.CRITICAL)
    await coordinator.enqueue("/analytics", {}, priority="low")
    await asyncio.sleep(0.1)

    assert [item.endpoint for item in dispatcher.attempted][0] == "/auth/logout"
    assert len(queue) == 0
    await coordinator.stop()


@pytest.mark.asyncio
async def test_unexpected_dispatcher_error_fails_the_pass(make_coordinator, queue, dispatcher):
    coordinator = make_coordinator()
    await queue.enqueue("/a", {})

    async def explode(item):
        raise RuntimeError("serializer crashed")

    dispatcher.before_attempt = explode

    result = await coordinator.manual_sync()

    assert result.status is SyncStatus.FAILED
    assert result.error == "Sync failed: serializer crashed"
    assert len(queue) == 1
    await coordinator.stop()


@pytest.mark.asyncio
async def test_settings_updates(make_coordinator):
    coordinator = make_coordinator()
    published = []
    coordinator.subscribe(published.append)
    await coordinator.start()
    assert "auto_sync" in coordinator.statistics()["pending_wakeups"]

    await coordinator.set_auto_sync_enabled(False)
    assert "auto_sync" not in coordinator.statistics()["pending_wakeups"]

    await coordinator.set_sync_only_on_wifi(True)
    await coordinator.set_auto_sync_interval(60)
    with pytest.raises(SyncCoordinatorError):
        await coordinator.set_auto_sync_interval(0)

    assert coordinator.policy.auto_sync_interval == 60
    assert published[-1].auto_sync_enabled is False
    assert published[-1].sync_only_on_wifi is True
    await coordinator.stop()


@pytest.mark.asyncio
async def test_progress_snapshots_during_pass(make_coordinator, queue):
    coordinator = make_coordinator()
    progress = []
    coordinator.subscribe(lambda snapshot: progress.append(snapshot.progress))
    await queue.enqueue("/a", {})
    await queue.enqueue("/b", {})

    await coordinator.manual_sync()

    assert "POST /a" in [p.current_item for p in progress]
    assert max(p.completed for p in progress) == 2
    assert progress[-1].current_item is None
    assert progress[-1].fraction == 1.0
    await coordinator.stop()

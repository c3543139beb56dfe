"""
Tests for the single-timer wake-up scheduler.
"""

import asyncio

import pytest

from offline_sync.services.infrastructure.scheduler import WakeupScheduler


@pytest.mark.asyncio
async def test_rescheduling_replaces_deadline_instead_of_stacking():
    fired: list[set[str]] = []

    async def handler(reasons):
        fired.append(reasons)

    scheduler = WakeupScheduler("test", handler)
    scheduler.schedule("retry", 0.05)
    scheduler.schedule("retry", 0.05)
    scheduler.schedule("retry", 0.05)

    await asyncio.sleep(0.15)

    assert fired == [{"retry"}]
    await scheduler.close()


@pytest.mark.asyncio
async def test_fires_earliest_deadline_first():
    fired: list[set[str]] = []

    async def handler(reasons):
        fired.append(reasons)

    scheduler = WakeupScheduler("test", handler)
    scheduler.schedule("auto_sync", 0.1)
    scheduler.schedule("settle", 0.01)

    await asyncio.sleep(0.05)
    assert fired == [{"settle"}]
    assert scheduler.is_scheduled("auto_sync") is True

    await asyncio.sleep(0.1)
    assert fired == [{"settle"}, {"auto_sync"}]
    await scheduler.close()


@pytest.mark.asyncio
async def test_cancel_and_close():
    fired = []

    async def handler(reasons):
        fired.append(reasons)

    scheduler = WakeupScheduler("test", handler)
    scheduler.schedule("retry", 0.01)
    scheduler.cancel("retry")
    assert scheduler.pending() == {}

    scheduler.schedule("auto_sync", 0.01)
    await scheduler.close()
    scheduler.schedule("auto_sync", 0.01)
    await asyncio.sleep(0.05)

    assert fired == []


@pytest.mark.asyncio
async def test_handler_can_reschedule_and_errors_are_contained():
    calls = []

    async def handler(reasons):
        calls.append(reasons)
        if len(calls) == 1:
            scheduler.schedule("tick", 0.01)
            raise RuntimeError("handler failed")

    scheduler = WakeupScheduler("test", handler)
    scheduler.schedule("tick", 0.01)

    await asyncio.sleep(0.1)

    assert calls == [{"tick"}, {"tick"}]
    await scheduler.close()

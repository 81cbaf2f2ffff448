"""Tests for the exit watcher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from kairo.events.bus import EventBus, StatusChangedEvent
from kairo.processes.watcher import classify_exit, watch_exit
from kairo.types import AgentStatus


@pytest.mark.parametrize("returncode, expected", [
    (0, AgentStatus.STOPPED),
    (1, AgentStatus.FAILED),
    (127, AgentStatus.FAILED),
    (-9, AgentStatus.FAILED),
    (None, AgentStatus.FAILED),
])
def test_classify_exit(returncode, expected):
    assert classify_exit(returncode) is expected


def _fake_manager():
    mgr = MagicMock()
    mgr.bus = EventBus()
    mgr._record_exit = AsyncMock()
    return mgr


@pytest.mark.asyncio
async def test_clean_exit_is_recorded_and_announced_once():
    mgr = _fake_manager()
    sub = mgr.bus.subscribe()
    proc = MagicMock()
    proc.wait = AsyncMock(return_value=0)

    status = await watch_exit(mgr, "a1", proc)

    assert status is AgentStatus.STOPPED
    mgr._record_exit.assert_awaited_once_with("a1", AgentStatus.STOPPED)
    event = sub.get_nowait()
    assert isinstance(event, StatusChangedEvent)
    assert event.status is AgentStatus.STOPPED
    assert event.final is True
    assert sub.get_nowait() is None


@pytest.mark.asyncio
async def test_wait_error_counts_as_failure():
    mgr = _fake_manager()
    sub = mgr.bus.subscribe()
    proc = MagicMock()
    proc.wait = AsyncMock(side_effect=OSError("wait failed"))

    status = await watch_exit(mgr, "a1", proc)

    assert status is AgentStatus.FAILED
    mgr._record_exit.assert_awaited_once_with("a1", AgentStatus.FAILED)
    assert sub.get_nowait().status is AgentStatus.FAILED


@pytest.mark.asyncio
async def test_waits_for_pumps_before_announcing():
    mgr = _fake_manager()
    sub = mgr.bus.subscribe()
    proc = MagicMock()
    proc.wait = AsyncMock(return_value=0)
    order = []

    async def slow_pump():
        await asyncio.sleep(0.05)
        order.append("pump-done")

    pump = asyncio.create_task(slow_pump())
    await watch_exit(mgr, "a1", proc, pumps=[pump], drain_timeout=1.0)
    order.append("announced" if sub.pending() else "missing")

    assert order == ["pump-done", "announced"]


@pytest.mark.asyncio
async def test_stuck_pump_only_delays_by_drain_timeout():
    mgr = _fake_manager()
    proc = MagicMock()
    proc.wait = AsyncMock(return_value=0)
    stuck = asyncio.create_task(asyncio.sleep(60))

    status = await asyncio.wait_for(
        watch_exit(mgr, "a1", proc, pumps=[stuck], drain_timeout=0.05), 1.0
    )

    assert status is AgentStatus.STOPPED
    stuck.cancel()


@pytest.mark.asyncio
async def test_exit_notice_is_used_instead_of_wait():
    mgr = _fake_manager()
    proc = MagicMock()
    proc.returncode = 3
    proc.wait = AsyncMock(side_effect=AssertionError("wait() should not be used"))
    exited = asyncio.get_running_loop().create_future()
    exited.set_result(None)

    status = await watch_exit(mgr, "a1", proc, exited=exited)

    assert status is AgentStatus.FAILED
    proc.wait.assert_not_awaited()
    mgr._record_exit.assert_awaited_once_with("a1", AgentStatus.FAILED)

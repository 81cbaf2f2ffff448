"""Shared test fixtures — a live AgentManager and event-waiting helpers."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest
import pytest_asyncio

from kairo.events.bus import AgentEvent, StatusChangedEvent, Subscription
from kairo.processes.manager import AgentManager


async def _next_event(
    sub: Subscription,
    predicate: Callable[[AgentEvent], bool] = lambda e: True,
    timeout: float = 5.0,
) -> AgentEvent:
    async def _scan() -> AgentEvent:
        while True:
            event = await sub.recv()
            if predicate(event):
                return event
    return await asyncio.wait_for(_scan(), timeout)


async def _events_until_final(
    sub: Subscription, agent_id: str, timeout: float = 5.0,
) -> list[AgentEvent]:
    """Collect one agent's events up to and including its final status."""
    events: list[AgentEvent] = []

    async def _scan() -> list[AgentEvent]:
        while True:
            event = await sub.recv()
            if event.agent_id != agent_id:
                continue
            events.append(event)
            if isinstance(event, StatusChangedEvent) and event.final:
                return events
    return await asyncio.wait_for(_scan(), timeout)


@pytest_asyncio.fixture
async def manager():
    mgr = AgentManager()
    yield mgr
    await mgr.shutdown()
    tasks = [t for h in mgr._agents.values() for t in h.tasks]
    if tasks:
        await asyncio.wait(tasks, timeout=5.0)


@pytest.fixture
def next_event():
    return _next_event


@pytest.fixture
def events_until_final():
    return _events_until_final

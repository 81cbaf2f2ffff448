"""Event Bus — broadcast of agent lifecycle and output events.

Every publisher (spawn, stop, send_input, the output pumps and exit
watchers) pushes onto one bus. Each subscriber owns a bounded queue and
only sees events published after it subscribed. A slow subscriber loses
its oldest unread events instead of stalling publishers.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from kairo.config import settings
from kairo.exceptions import SubscriptionClosed
from kairo.types import AgentId, AgentStatus


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: AgentId


class OutputEvent(_Event):
    """A line from the agent's stdout or stderr."""

    type: Literal["output"] = "output"
    line: str


class StatusChangedEvent(_Event):
    """Agent status changed. ``final`` marks the exit watcher's verdict."""

    type: Literal["status_changed"] = "status_changed"
    status: AgentStatus
    final: bool = False


class InputEvent(_Event):
    """Input accepted and written to the agent's stdin."""

    type: Literal["input"] = "input"
    input: str


AgentEvent = Annotated[
    Union[OutputEvent, StatusChangedEvent, InputEvent],
    Field(discriminator="type"),
]


class Subscription:
    """One subscriber's view of the bus.

    Usage:
        with bus.subscribe() as sub:
            async for event in sub:
                ...
    """

    def __init__(self, bus: EventBus, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("subscription capacity must be at least 1")
        self._bus = bus
        self._queue: deque[AgentEvent] = deque(maxlen=capacity)
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def capacity(self) -> int:
        return self._queue.maxlen or 0

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return len(self._queue)

    def _deliver(self, event: AgentEvent) -> None:
        if len(self._queue) == self._queue.maxlen:
            # deque drops from the left when full
            self.dropped += 1
        self._queue.append(event)
        self._ready.set()

    def get_nowait(self) -> AgentEvent | None:
        if self._queue:
            return self._queue.popleft()
        return None

    async def recv(self) -> AgentEvent:
        """Wait for the next event. Raises SubscriptionClosed once drained."""
        while not self._queue:
            if self._closed:
                raise SubscriptionClosed("subscription is closed")
            self._ready.clear()
            await self._ready.wait()
        return self._queue.popleft()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._detach(self)
        self._ready.set()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> AgentEvent:
        try:
            return await self.recv()
        except SubscriptionClosed:
            raise StopAsyncIteration from None

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class EventBus:
    """Multi-producer, multi-consumer broadcast channel.

    ``publish`` is synchronous and never blocks or raises. It must be
    called from the thread running the event loop the subscribers wait on.
    """

    def __init__(self, capacity: int | None = None) -> None:
        self._capacity = capacity or settings.event_queue_size
        self._subscribers: list[Subscription] = []
        self._closed = False

    def subscribe(self, capacity: int | None = None) -> Subscription:
        """Attach a new subscriber. It only sees events published from now on."""
        sub = Subscription(self, capacity or self._capacity)
        if self._closed:
            sub._closed = True
        else:
            self._subscribers.append(sub)
        return sub

    def publish(self, event: AgentEvent) -> int:
        """Queue ``event`` for every subscriber. Returns how many received it."""
        for sub in self._subscribers:
            sub._deliver(event)
        return len(self._subscribers)

    def _detach(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def close(self) -> None:
        """Close every subscription; later subscriptions start closed."""
        self._closed = True
        for sub in list(self._subscribers):
            sub.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

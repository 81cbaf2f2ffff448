"""AgentManager — the registry and lifecycle of agent processes.

Spawns each agent as a real OS process with all three standard streams
piped, pumps stdout/stderr onto the EventBus line by line, and watches
for exit in the background.

Two writers decide an agent's status: ``stop()`` marks it stopped right
after sending SIGKILL, and the exit watcher later records what the OS
actually reported. The watcher always writes last.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, field
from typing import Sequence

from kairo.config import settings
from kairo.events.bus import EventBus, InputEvent, StatusChangedEvent, Subscription
from kairo.exceptions import (
    AgentIOError,
    AgentNotFoundError,
    AgentNotRunningError,
    KairoError,
    NoProcessIdError,
    SpawnError,
)
from kairo.processes.lock import ReadWriteLock
from kairo.processes.pump import pump_lines
from kairo.processes.watcher import watch_exit
from kairo.types import AgentId, AgentInfo, AgentStatus, new_id

_logger = logging.getLogger(__name__)


class _AgentProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that also resolves ``exited`` once the process is reaped.

    ``Process.wait()`` returns only after the pipes close as well, which a
    background child holding stdout open can postpone indefinitely.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=limit, loop=loop)
        self.exited: asyncio.Future[None] = loop.create_future()

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exited.done():
            self.exited.set_result(None)


@dataclass
class AgentHandle:
    """Registry entry for one spawned agent."""

    info: AgentInfo
    pid: int | None = None  # OS pid, used for kill
    process: asyncio.subprocess.Process | None = None
    stdin: asyncio.StreamWriter | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)


class AgentManager:
    """Owns every agent spawned through it.

    Entries are never removed; finished agents stay listed with their
    terminal status until the manager goes away.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        stream_limit: int | None = None,
        drain_timeout: float | None = None,
    ) -> None:
        self.bus = event_bus or EventBus()
        self._agents: dict[AgentId, AgentHandle] = {}
        self._lock = ReadWriteLock()
        self._stream_limit = stream_limit or settings.stream_limit
        self._drain_timeout = (
            settings.drain_timeout_s if drain_timeout is None else drain_timeout
        )

    def subscribe(self, capacity: int | None = None) -> Subscription:
        """Subscribe to agent events (output lines, status changes, input)."""
        return self.bus.subscribe(capacity)

    async def spawn(
        self,
        name: str,
        command: str,
        args: Sequence[str] | None = None,
    ) -> AgentInfo:
        """Start ``command`` as a new agent and begin streaming its output."""
        args = list(args or [])
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.subprocess_exec(
                lambda: _AgentProtocol(limit=self._stream_limit, loop=loop),
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            _logger.warning("Failed to spawn %r (%s): %s", name, command, e)
            raise SpawnError(f"Failed to spawn process: {e}") from e
        proc = asyncio.subprocess.Process(transport, protocol, loop)

        handle = AgentHandle(
            info=AgentInfo(
                id=new_id(),
                name=name,
                command=command,
                args=args,
                status=AgentStatus.RUNNING,
            ),
            pid=proc.pid,
            process=proc,
            stdin=proc.stdin,
        )
        async with self._lock.writer():
            while handle.info.id in self._agents:
                handle.info.id = new_id()
            self._agents[handle.info.id] = handle
        agent_id = handle.info.id

        pumps = [
            asyncio.create_task(
                pump_lines(agent_id, stream, self.bus),
                name=f"pump-{label}-{agent_id[:8]}",
            )
            for label, stream in (("stdout", proc.stdout), ("stderr", proc.stderr))
            if stream is not None
        ]
        watcher = asyncio.create_task(
            watch_exit(
                self, agent_id, proc, pumps, self._drain_timeout, protocol.exited,
            ),
            name=f"watch-{agent_id[:8]}",
        )
        handle.tasks = [*pumps, watcher]

        self.bus.publish(StatusChangedEvent(agent_id=agent_id, status=AgentStatus.RUNNING))
        _logger.info(
            "Spawned agent %s (%s) pid=%s: %s %s",
            agent_id, name, proc.pid, command, " ".join(args),
        )
        return handle.info.model_copy(deep=True)

    async def list(self) -> list[AgentInfo]:
        """Snapshot of every known agent, in no particular order."""
        async with self._lock.reader():
            return [h.info.model_copy(deep=True) for h in self._agents.values()]

    async def get(self, agent_id: AgentId) -> AgentInfo:
        async with self._lock.reader():
            return self._get_handle(agent_id).info.model_copy(deep=True)

    async def send_input(self, agent_id: AgentId, text: str) -> None:
        """Write ``text`` plus a newline to the agent's stdin and flush it.

        The write lock is held across the write so concurrent sends to one
        agent never interleave.
        """
        async with self._lock.writer():
            handle = self._get_handle(agent_id)
            if handle.info.status is not AgentStatus.RUNNING:
                raise AgentNotRunningError(f"Agent {agent_id} is not running")
            if handle.stdin is None:
                raise AgentIOError(f"Agent {agent_id} stdin not available")
            try:
                handle.stdin.write(text.encode("utf-8") + b"\n")
                await handle.stdin.drain()
            except (OSError, UnicodeEncodeError) as e:
                _logger.warning("Writing to agent %s failed: %s", agent_id, e)
                raise AgentIOError(f"Failed to write to stdin: {e}") from e

        self.bus.publish(InputEvent(agent_id=agent_id, input=text))

    async def stop(self, agent_id: AgentId) -> None:
        """SIGKILL the agent and mark it stopped without waiting for exit.

        The exit watcher may still turn the status into ``failed`` once the
        OS reports the kill. Stopping an agent that already finished does
        nothing.
        """
        async with self._lock.reader():
            handle = self._get_handle(agent_id)
            pid = handle.pid
            status = handle.info.status
            reaped = handle.process is not None and handle.process.returncode is not None

        if pid is None:
            raise NoProcessIdError(f"Agent {agent_id} has no PID")
        if status.is_terminal:
            _logger.debug("Agent %s already %s, not signalling", agent_id, status.value)
            return

        if reaped:
            # the pid may already belong to another process
            _logger.debug("Agent %s (pid %s) already exited, not signalling", agent_id, pid)
        else:
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError:
                _logger.debug("Agent %s (pid %s) exited before it could be killed", agent_id, pid)

        async with self._lock.writer():
            marked = handle.info.status is AgentStatus.RUNNING
            if marked:
                handle.info.status = AgentStatus.STOPPED

        if marked:
            _logger.info("Stopped agent %s (pid %s)", agent_id, pid)
            self.bus.publish(StatusChangedEvent(agent_id=agent_id, status=AgentStatus.STOPPED))

    async def shutdown(self) -> None:
        """Kill every running agent and close the event bus.

        Pumps and watchers are left to finish on their own; they are not
        awaited.
        """
        async with self._lock.reader():
            running = [
                agent_id for agent_id, h in self._agents.items()
                if h.info.status is AgentStatus.RUNNING
            ]
        for agent_id in running:
            try:
                await self.stop(agent_id)
            except KairoError as e:
                _logger.warning("Failed to stop agent %s on shutdown: %s", agent_id, e)
        self.bus.close()

    async def _record_exit(self, agent_id: AgentId, status: AgentStatus) -> None:
        """Store the watcher's verdict and drop the agent's stdin."""
        async with self._lock.writer():
            handle = self._agents.get(agent_id)
            if handle is None:
                return
            handle.info.status = status
            stdin, handle.stdin = handle.stdin, None
            if stdin is not None:
                stdin.close()

    def _get_handle(self, agent_id: AgentId) -> AgentHandle:
        handle = self._agents.get(agent_id)
        if handle is None:
            raise AgentNotFoundError(f"Agent {agent_id} not found")
        return handle

    def __len__(self) -> int:
        return len(self._agents)

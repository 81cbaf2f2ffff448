"""Exit watcher — the authoritative verdict on how an agent ended."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable

from kairo.events.bus import StatusChangedEvent
from kairo.types import AgentId, AgentStatus

if TYPE_CHECKING:
    from kairo.processes.manager import AgentManager

_logger = logging.getLogger(__name__)


def classify_exit(returncode: int | None) -> AgentStatus:
    """Zero exit is a clean stop; non-zero, signals and unknown are failures."""
    if returncode == 0:
        return AgentStatus.STOPPED
    return AgentStatus.FAILED


async def watch_exit(
    manager: AgentManager,
    agent_id: AgentId,
    process: asyncio.subprocess.Process,
    pumps: list[asyncio.Task] | None = None,
    drain_timeout: float = 1.0,
    exited: Awaitable[None] | None = None,
) -> AgentStatus:
    """Wait for ``process`` to exit, record the final status and announce it.

    ``exited`` resolves when the OS reports the exit. Without it the watcher
    falls back to ``process.wait()``, which also waits for the pipes to
    close and so can be held up by a child that inherited them.
    """
    try:
        if exited is not None:
            await exited
            returncode: int | None = process.returncode
        else:
            returncode = await process.wait()
    except Exception as e:
        _logger.warning("Waiting on agent %s failed: %s", agent_id, e)
        returncode = None

    status = classify_exit(returncode)

    # Let the pumps flush lines already read from the pipes so that
    # an agent's output normally precedes its final status.
    if pumps and drain_timeout > 0:
        await asyncio.wait(pumps, timeout=drain_timeout)

    await manager._record_exit(agent_id, status)
    _logger.info("Agent %s exited with code %s (%s)", agent_id, returncode, status.value)
    manager.bus.publish(StatusChangedEvent(agent_id=agent_id, status=status, final=True))
    return status

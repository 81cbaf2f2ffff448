"""Output pump — turns one captured stream into Output events."""

from __future__ import annotations

import asyncio
import logging

from kairo.events.bus import EventBus, OutputEvent
from kairo.types import AgentId

_logger = logging.getLogger(__name__)


def decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").removesuffix("\n").removesuffix("\r")


async def pump_lines(agent_id: AgentId, stream: asyncio.StreamReader, bus: EventBus) -> int:
    """Publish every line of ``stream`` until EOF. Returns the line count.

    A read error (including a line longer than the stream limit) ends the
    pump quietly; the exit watcher decides how the agent fared.
    """
    count = 0
    while True:
        try:
            raw = await stream.readline()
        except (ValueError, OSError) as e:
            _logger.debug("Output pump for %s stopped on read error: %s", agent_id, e)
            break
        if not raw:
            break
        bus.publish(OutputEvent(agent_id=agent_id, line=decode_line(raw)))
        count += 1
    return count

"""kairo server — agent manager plus its HTTP/WebSocket front end."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from kairo.api.app import api_app, configure
from kairo.config import settings
from kairo.processes.manager import AgentManager

_logger = logging.getLogger(__name__)


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def main(host: str | None = None, port: int | None = None) -> None:
    manager = AgentManager()
    configure(manager=manager)

    host = host or settings.host
    port = port or settings.port
    _logger.info("kairo listening on %s:%d", host, port)

    # Run uvicorn in the same event loop as the agent tasks
    config = uvicorn.Config(
        api_app,
        host=host,
        port=port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        await manager.shutdown()
        configure(manager=None)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())

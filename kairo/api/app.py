"""HTTP + WebSocket front end for the AgentManager.

REST endpoints cover spawn, list, input and stop. ``/ws`` relays the
event stream to a browser and accepts ``send_input`` messages back.
Nothing here owns state beyond the configured manager.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from kairo import __version__
from kairo.config import settings
from kairo.events.bus import AgentEvent, OutputEvent, StatusChangedEvent
from kairo.exceptions import (
    AgentIOError,
    AgentNotFoundError,
    AgentNotRunningError,
    KairoError,
    NoProcessIdError,
    SpawnError,
)
from kairo.processes.manager import AgentManager
from kairo.types import AgentInfo, AgentStatus

_logger = logging.getLogger(__name__)

api_app = FastAPI(title="kairo", version=__version__)
api_app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)

_manager: AgentManager | None = None


def configure(manager: AgentManager | None = None) -> None:
    global _manager
    _manager = manager


def _get_manager() -> AgentManager:
    if _manager is None:
        raise KairoError("Agent manager is not configured")
    return _manager


_ERROR_STATUS: dict[type[KairoError], int] = {
    AgentNotFoundError: 404,
    AgentNotRunningError: 409,
    NoProcessIdError: 409,
    AgentIOError: 500,
    SpawnError: 500,
}


@api_app.exception_handler(KairoError)
async def kairo_error_handler(request: Request, exc: KairoError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), 503)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# ── Agent lifecycle ──────────────────────────────────────────────

class SpawnAgentRequest(BaseModel):
    name: str
    command: str
    args: list[str] = Field(default_factory=list)


class SendInputRequest(BaseModel):
    input: str


@api_app.post("/api/agents")
async def spawn_agent(payload: SpawnAgentRequest) -> AgentInfo:
    return await _get_manager().spawn(payload.name, payload.command, payload.args)


@api_app.get("/api/agents")
async def list_agents() -> list[AgentInfo]:
    agents = await _get_manager().list()
    return sorted(agents, key=lambda a: a.id)


@api_app.get("/api/agents/{agent_id}")
async def get_agent(agent_id: str) -> AgentInfo:
    return await _get_manager().get(agent_id)


@api_app.post("/api/agents/{agent_id}/input")
async def send_input(agent_id: str, payload: SendInputRequest) -> dict:
    await _get_manager().send_input(agent_id, payload.input)
    return {"ok": True}


@api_app.post("/api/agents/{agent_id}/stop")
async def stop_agent(agent_id: str) -> dict:
    await _get_manager().stop(agent_id)
    return {"ok": True}


@api_app.get("/api/status")
async def system_status() -> dict:
    manager = _get_manager()
    agents = await manager.list()
    counts = {s.value: 0 for s in AgentStatus}
    for a in agents:
        counts[a.status.value] += 1
    return {
        "version": __version__,
        "agents_total": len(agents),
        "agents": counts,
        "event_subscribers": manager.bus.subscriber_count,
    }


# ── WebSocket — live agent stream ────────────────────────────────

class SendInputMessage(BaseModel):
    type: Literal["send_input"]
    agent_id: str
    input: str


def to_ws_message(event: AgentEvent) -> dict[str, Any] | None:
    """Translate a bus event into its WebSocket message, if it is relayed."""
    if isinstance(event, OutputEvent):
        return {"type": "agent_output", "agent_id": event.agent_id, "line": event.line}
    if isinstance(event, StatusChangedEvent):
        return {"type": "agent_status", "agent_id": event.agent_id, "status": event.status.value}
    return None


@api_app.websocket("/ws")
async def ws_agents(websocket: WebSocket) -> None:
    await websocket.accept()
    manager = _manager
    if manager is None:
        await websocket.send_json({"type": "error", "message": "Agent manager is not configured"})
        await websocket.close(code=1011)
        return

    sub = manager.subscribe()
    send_lock = asyncio.Lock()

    async def send(message: dict[str, Any]) -> None:
        async with send_lock:
            await websocket.send_json(message)

    async def forward_events() -> None:
        async for event in sub:
            message = to_ws_message(event)
            if message is not None:
                await send(message)

    forwarder = asyncio.create_task(forward_events())
    # a send failure after the client left is expected; nothing to report
    forwarder.add_done_callback(lambda t: t.cancelled() or t.exception())
    try:
        while True:
            try:
                text = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            try:
                msg = SendInputMessage.model_validate_json(text)
            except ValidationError as e:
                _logger.warning("Invalid WS message: %s", e)
                await send({"type": "error", "message": f"Invalid message: {e}"})
                continue
            try:
                await manager.send_input(msg.agent_id, msg.input)
            except KairoError as e:
                _logger.warning("send_input error: %s", e)
                await send({"type": "error", "message": str(e)})
    finally:
        sub.close()
        forwarder.cancel()

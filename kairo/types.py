"""Core types shared across kairo subsystems."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import TypeAlias

from pydantic import BaseModel, Field

AgentId: TypeAlias = str


def new_id() -> AgentId:
    return str(uuid.uuid4())


class AgentStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AgentStatus.RUNNING


class AgentInfo(BaseModel):
    """Public snapshot of a spawned agent."""

    id: AgentId
    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    status: AgentStatus = AgentStatus.RUNNING

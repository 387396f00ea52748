"""Persisted session record."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .message import Message
from .task import Task

AgentStatus = Literal["idle", "thinking", "tool_running"]


class AgentState(BaseModel):
    status: AgentStatus = "idle"
    statusText: str | None = None
    startTime: int | None = None
    activeToolCallId: str | None = None


class ModelUsage(BaseModel):
    input: int = 0
    output: int = 0


class Accounting(BaseModel):
    models: dict[str, ModelUsage] = Field(default_factory=dict)
    totalUSD: float = 0.0
    input: int = 0
    output: int = 0


class SessionData(BaseModel):
    """Canonical shape of one conversation; legacy records are normalized into it."""

    model_config = ConfigDict(extra="ignore")

    workingDirectory: str | None = None
    agentId: str | None = None
    mcpAlias: str | None = None
    mcpUrl: str | None = None
    history: list[Message] = Field(default_factory=list)
    accounting: Accounting = Field(default_factory=Accounting)
    tasks: list[Task] = Field(default_factory=list)
    tasksPinned: bool = False
    toolLogs: list[dict[str, Any]] = Field(default_factory=list)
    agentState: AgentState = Field(default_factory=AgentState)
    updatedAt: int | None = None

    def to_record(self) -> dict[str, Any]:
        """Full JSON-ready snapshot for the durable store."""
        return self.model_dump(mode="json", exclude_none=False)

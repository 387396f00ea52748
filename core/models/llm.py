"""Canonical LLM request/response envelope shared by every driver."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..cancellation import CancelToken
from .message import Message, ToolCall


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatRequest(BaseModel):
    """Vendor-neutral chat request."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: str
    messages: list[Message]
    tools: list[dict[str, Any]] | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    cancel_token: CancelToken | None = Field(default=None, exclude=True)


class ChatResponse(BaseModel):
    """Vendor-neutral chat response. ``role`` is always ``assistant``."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None
    reasoning: str | None = Field(
        default=None,
        description="Reasoning text extracted from the reply, never sent back to the model",
    )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    def to_message(self) -> Message:
        return Message(role="assistant", content=self.content, tool_calls=self.tool_calls)

"""Conversation message models."""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

Role = Literal["system", "user", "assistant", "tool"]


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    argumentsText: str = "{}"

    def parse_arguments(self) -> dict[str, Any]:
        """Decode ``argumentsText``; raises ``ValueError`` on malformed JSON."""
        if not self.argumentsText or not self.argumentsText.strip():
            return {}
        try:
            value = json.loads(self.argumentsText)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed arguments JSON for tool \"{self.name}\": {e}") from e
        if not isinstance(value, dict):
            raise ValueError(f"Arguments for tool \"{self.name}\" must be a JSON object")
        return value

    @classmethod
    def from_any(cls, raw: Any) -> "ToolCall":
        """Accept the canonical shape or the OpenAI ``{"function": {...}}`` shape."""
        if isinstance(raw, ToolCall):
            return raw
        if not isinstance(raw, dict):
            raise ValueError(f"Unrecognised tool call: {raw!r}")
        if "function" in raw:
            fn = raw.get("function") or {}
            arguments = fn.get("arguments", "{}")
            call_id = raw.get("id") or ""
            name = fn.get("name") or ""
        else:
            arguments = raw.get("argumentsText", raw.get("arguments", "{}"))
            call_id = raw.get("id") or ""
            name = raw.get("name") or ""
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return cls(id=call_id, name=name, argumentsText=arguments)


class Message(BaseModel):
    """
    One conversation entry.

    ``content`` is plain text, a list of typed parts (``{"type": "text"}`` /
    ``{"type": "image_url"}``), or ``None`` for an assistant turn that only
    carries tool calls. Tool results use ``role="tool"`` and ``tool_call_id``.
    """

    model_config = ConfigDict(extra="ignore")

    role: Role
    content: str | list[dict[str, Any]] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _normalize_tool_calls(cls, value: Any) -> Any:
        if value is None:
            return None
        return [ToolCall.from_any(item) for item in value] or None

    def text(self) -> str:
        """Concatenated text of the message, ignoring non-text parts."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "".join(p.get("text", "") for p in self.content if p.get("type") == "text")
        return ""

    def to_record(self) -> dict[str, Any]:
        """JSON-ready form used in the persisted session history."""
        return self.model_dump(mode="json", exclude_none=True)


def user_message(content: str | list[dict[str, Any]]) -> Message:
    return Message(role="user", content=content)


def assistant_message(content: str | None, tool_calls: list[ToolCall] | None = None) -> Message:
    return Message(role="assistant", content=content, tool_calls=tool_calls)


def tool_result_message(tool_call_id: str, result: Any) -> Message:
    """Build a tool-result message; non-string results are JSON encoded."""
    content = result if isinstance(result, str) else json.dumps(result, default=str)
    return Message(role="tool", content=content, tool_call_id=tool_call_id)

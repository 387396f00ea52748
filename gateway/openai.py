"""OpenAI chat-completions driver (also serves OpenAI-compatible endpoints)."""

import logging
from typing import Any

from core.models import ChatRequest, ChatResponse, Message, ToolCall, Usage

from .base import BaseDriver, Credentials, dumps_arguments

logger = logging.getLogger(__name__)


def to_openai_message(message: Message) -> dict[str, Any]:
    out: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.tool_calls:
        out["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.argumentsText},
            }
            for call in message.tool_calls
        ]
    if message.tool_call_id:
        out["tool_call_id"] = message.tool_call_id
    return out


class OpenAIDriver(BaseDriver):
    name = "openai"
    default_base_url = "https://api.openai.com/v1"

    def build_payload(self, request: ChatRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [to_openai_message(m) for m in request.messages],
        }
        if request.tools:
            payload["tools"] = request.tools
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_output_tokens:
            payload["max_tokens"] = request.max_output_tokens
        return payload

    def parse_response(self, raw: dict[str, Any], request: ChatRequest) -> ChatResponse:
        choice = (raw.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=call.get("id") or "",
                name=(call.get("function") or {}).get("name") or "",
                argumentsText=dumps_arguments((call.get("function") or {}).get("arguments")),
            )
            for call in message.get("tool_calls") or []
        ]
        usage = raw.get("usage")
        return ChatResponse(
            content=None if tool_calls else message.get("content"),
            tool_calls=tool_calls or None,
            finish_reason=choice.get("finish_reason"),
            usage=Usage(
                prompt_tokens=usage.get("prompt_tokens") or 0,
                completion_tokens=usage.get("completion_tokens") or 0,
                total_tokens=usage.get("total_tokens") or 0,
            )
            if usage
            else None,
        )

    async def invoke(self, payload: dict[str, Any], credentials: Credentials) -> dict[str, Any]:
        headers = {"Content-Type": "application/json", **credentials.headers}
        if credentials.api_key:
            headers["Authorization"] = f"Bearer {credentials.api_key}"
        url = f"{credentials.url(self.default_base_url)}/chat/completions"
        return await self.post_json(url, payload, headers)

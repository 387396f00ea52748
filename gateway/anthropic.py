"""Anthropic Messages API driver."""

import json
import logging
from typing import Any

import anthropic

from core.exceptions import ProviderError
from core.models import ChatRequest, ChatResponse, Message, ToolCall, Usage

from .base import BaseDriver, Credentials, function_tools, loads_arguments, split_data_url

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 20000

STOP_REASONS = {
    "end_turn": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
    "stop_sequence": "stop",
}


def _content_blocks(content: str | list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    blocks = []
    for part in content or []:
        if part.get("type") == "text":
            blocks.append({"type": "text", "text": part.get("text", "")})
        elif part.get("type") == "image_url":
            url = (part.get("image_url") or {}).get("url", "")
            parsed = split_data_url(url)
            if parsed:
                media_type, data = parsed
                blocks.append({"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}})
            else:
                blocks.append({"type": "image", "source": {"type": "url", "url": url}})
    return blocks


def to_anthropic_message(message: Message) -> dict[str, Any]:
    """Claude knows only user and assistant; tool results travel as user ``tool_result`` blocks."""
    if message.role == "tool":
        return {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.text(),
                }
            ],
        }
    if message.role == "assistant" and message.tool_calls:
        blocks = []
        text = message.text()
        if text.strip():
            blocks.append({"type": "text", "text": text})
        for call in message.tool_calls:
            blocks.append(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": loads_arguments(call.argumentsText)}
            )
        return {"role": "assistant", "content": blocks}
    return {"role": message.role, "content": _content_blocks(message.content)}


class AnthropicDriver(BaseDriver):
    name = "anthropic"
    default_base_url = "https://api.anthropic.com"

    def build_payload(self, request: ChatRequest) -> dict[str, Any]:
        messages = list(request.messages)
        payload: dict[str, Any] = {"model": request.model}
        system = [m for m in messages if m.role == "system"]
        if system:
            payload["system"] = "\n\n".join(m.text() for m in system)
        payload["messages"] = [to_anthropic_message(m) for m in messages if m.role != "system"]
        payload["max_tokens"] = request.max_output_tokens or DEFAULT_MAX_TOKENS
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        tools = function_tools(request.tools)
        if tools:
            payload["tools"] = [
                {"name": fn["name"], "description": fn.get("description", ""), "input_schema": fn.get("parameters") or {"type": "object"}}
                for fn in tools
            ]
        return payload

    def parse_response(self, raw: dict[str, Any], request: ChatRequest) -> ChatResponse:
        texts, tool_calls = [], []
        for block in raw.get("content") or []:
            if block.get("type") == "text":
                texts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    ToolCall(id=block.get("id") or "", name=block.get("name") or "", argumentsText=json.dumps(block.get("input") or {}))
                )
        usage = raw.get("usage")
        return ChatResponse(
            content="".join(texts) or None,
            tool_calls=tool_calls or None,
            finish_reason=STOP_REASONS.get(raw.get("stop_reason"), "stop"),
            usage=Usage(
                prompt_tokens=usage.get("input_tokens") or 0,
                completion_tokens=usage.get("output_tokens") or 0,
                total_tokens=(usage.get("input_tokens") or 0) + (usage.get("output_tokens") or 0),
            )
            if usage
            else None,
        )

    async def invoke(self, payload: dict[str, Any], credentials: Credentials) -> dict[str, Any]:
        client = anthropic.AsyncAnthropic(
            api_key=credentials.api_key,
            base_url=credentials.url(self.default_base_url),
            default_headers=credentials.headers or None,
        )
        try:
            message = await client.messages.create(**payload)
        except anthropic.APIStatusError as e:
            raise ProviderError(self.name, e.message, status_code=e.status_code) from e
        except anthropic.APIError as e:
            raise ProviderError(self.name, e.message) from e
        finally:
            await client.close()
        return message.model_dump()

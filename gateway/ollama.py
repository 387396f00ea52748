"""Ollama ``/api/chat`` driver."""

import json
from typing import Any

from core.models import ChatRequest, ChatResponse, Message, ToolCall, Usage

from .base import BaseDriver, Credentials, loads_arguments, split_data_url, synthesize_call_id

DEFAULT_NUM_PREDICT = 2048


def to_ollama_message(message: Message) -> dict[str, Any]:
    out: dict[str, Any] = {"role": message.role}
    if isinstance(message.content, list):
        texts, images = [], []
        for part in message.content:
            if part.get("type") == "text":
                texts.append(part.get("text", ""))
            elif part.get("type") == "image_url":
                url = (part.get("image_url") or {}).get("url", "")
                parsed = split_data_url(url)
                images.append(parsed[1] if parsed else url)
        out["content"] = "".join(texts)
        if images:
            out["images"] = images
    else:
        out["content"] = message.content or ""
    if message.tool_calls:
        out["tool_calls"] = [
            {"function": {"name": c.name, "arguments": loads_arguments(c.argumentsText)}}
            for c in message.tool_calls
        ]
    return out


class OllamaDriver(BaseDriver):
    name = "ollama"
    default_base_url = "http://localhost:11434"

    def build_payload(self, request: ChatRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [to_ollama_message(m) for m in request.messages],
            "stream": False,
        }
        if request.tools:
            payload["tools"] = request.tools
        options: dict[str, Any] = {"num_predict": request.max_output_tokens or DEFAULT_NUM_PREDICT}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        payload["options"] = options
        return payload

    def parse_response(self, raw: dict[str, Any], request: ChatRequest) -> ChatResponse:
        message = raw.get("message") or {}
        tool_calls = []
        for index, call in enumerate(message.get("tool_calls") or []):
            fn = call.get("function") or {}
            arguments = fn.get("arguments", {})
            arguments_text = arguments if isinstance(arguments, str) else json.dumps(arguments)
            name = fn.get("name") or ""
            tool_calls.append(
                ToolCall(
                    id=call.get("id") or synthesize_call_id(request, index, name, arguments_text),
                    name=name,
                    argumentsText=arguments_text,
                )
            )

        usage = None
        if raw.get("prompt_eval_count") is not None:
            prompt = raw.get("prompt_eval_count") or 0
            completion = raw.get("eval_count") or 0
            usage = Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)

        finish_reason = raw.get("done_reason") or ("stop" if raw.get("done") else None)
        if tool_calls:
            finish_reason = "tool_calls"
        return ChatResponse(
            content=message.get("content") or None,
            tool_calls=tool_calls or None,
            finish_reason=finish_reason,
            usage=usage,
        )

    async def invoke(self, payload: dict[str, Any], credentials: Credentials) -> dict[str, Any]:
        headers = {"Content-Type": "application/json", **credentials.headers}
        if credentials.api_key:
            headers["Authorization"] = f"Bearer {credentials.api_key}"
        base = credentials.url(self.default_base_url)
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        return await self.post_json(f"{base}/api/chat", payload, headers)

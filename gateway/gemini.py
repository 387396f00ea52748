"""Google Gemini ``generateContent`` REST driver."""

import json
from typing import Any

from core.models import ChatRequest, ChatResponse, Message, ToolCall, Usage

from .base import BaseDriver, Credentials, function_tools, loads_arguments, split_data_url, synthesize_call_id

FINISH_REASONS = {"STOP": "stop", "MAX_TOKENS": "length", "SAFETY": "content_filter"}

SCHEMA_TYPES = {"object": "OBJECT", "string": "STRING", "number": "NUMBER", "integer": "INTEGER", "boolean": "BOOLEAN", "array": "ARRAY"}


def sanitize_schema(schema: Any) -> Any:
    """Reduce a JSON schema to the subset Gemini accepts (type, description, properties, items)."""
    if not isinstance(schema, dict):
        return schema
    clean: dict[str, Any] = {"type": SCHEMA_TYPES.get(str(schema.get("type", "")).lower(), "STRING")}
    if schema.get("description"):
        clean["description"] = schema["description"]
    if schema.get("enum"):
        clean["enum"] = [str(v) for v in schema["enum"]]
    if isinstance(schema.get("properties"), dict):
        clean["properties"] = {k: sanitize_schema(v) for k, v in schema["properties"].items()}
    if schema.get("items"):
        clean["items"] = sanitize_schema(schema["items"])
    return clean


def _parts(message: Message) -> list[dict[str, Any]]:
    if isinstance(message.content, str):
        return [{"text": message.content}] if message.content.strip() else []
    parts = []
    for part in message.content or []:
        if part.get("type") == "text":
            parts.append({"text": part.get("text", "")})
        elif part.get("type") == "image_url":
            parsed = split_data_url((part.get("image_url") or {}).get("url", ""))
            if parsed:
                parts.append({"inlineData": {"mimeType": parsed[0], "data": parsed[1]}})
    return parts


def to_gemini_contents(messages: list[Message]) -> list[dict[str, Any]]:
    """Map non-system messages to Gemini ``contents``; tool results need the function name."""
    id_to_name = {
        call.id: call.name
        for m in messages
        if m.role == "assistant" and m.tool_calls
        for call in m.tool_calls
    }
    contents = []
    for message in messages:
        if message.role == "system":
            continue
        if message.role == "assistant" and message.tool_calls:
            contents.append(
                {
                    "role": "model",
                    "parts": [
                        {"functionCall": {"name": c.name, "args": loads_arguments(c.argumentsText)}}
                        for c in message.tool_calls
                    ],
                }
            )
        elif message.role == "tool":
            try:
                data = json.loads(message.text())
            except json.JSONDecodeError:
                data = message.text()
            if not isinstance(data, dict):
                data = {"result": data}
            contents.append(
                {
                    "role": "function",
                    "parts": [
                        {
                            "functionResponse": {
                                "name": id_to_name.get(message.tool_call_id or "", "unknown"),
                                "response": data,
                            }
                        }
                    ],
                }
            )
        else:
            role = "model" if message.role == "assistant" else "user"
            contents.append({"role": role, "parts": _parts(message)})
    return contents


class GeminiDriver(BaseDriver):
    name = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def build_payload(self, request: ChatRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": request.model, "contents": to_gemini_contents(request.messages)}
        system = [m.text() for m in request.messages if m.role == "system"]
        if system:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system)}]}
        declarations = [
            {"name": fn["name"], "description": fn.get("description", ""), "parameters": sanitize_schema(fn.get("parameters"))}
            for fn in function_tools(request.tools)
        ]
        if declarations:
            payload["tools"] = [{"functionDeclarations": declarations}]
        generation: dict[str, Any] = {}
        if request.temperature is not None:
            generation["temperature"] = request.temperature
        if request.max_output_tokens:
            generation["maxOutputTokens"] = request.max_output_tokens
        if generation:
            payload["generationConfig"] = generation
        return payload

    def parse_response(self, raw: dict[str, Any], request: ChatRequest) -> ChatResponse:
        candidate = (raw.get("candidates") or [{}])[0]
        texts, tool_calls = [], []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "text" in part and not part.get("thought"):
                texts.append(part["text"])
            elif "functionCall" in part:
                call = part["functionCall"]
                name = call.get("name") or ""
                arguments_text = json.dumps(call.get("args") or {})
                tool_calls.append(
                    ToolCall(
                        id=synthesize_call_id(request, len(tool_calls), name, arguments_text),
                        name=name,
                        argumentsText=arguments_text,
                    )
                )

        reason = candidate.get("finishReason")
        finish_reason = FINISH_REASONS.get(reason, reason.lower() if reason else "stop")
        if tool_calls:
            finish_reason = "tool_calls"

        meta = raw.get("usageMetadata") or {}
        usage = None
        if meta.get("promptTokenCount") is not None:
            usage = Usage(
                prompt_tokens=meta.get("promptTokenCount") or 0,
                completion_tokens=meta.get("candidatesTokenCount") or 0,
                total_tokens=meta.get("totalTokenCount") or 0,
            )
        return ChatResponse(
            content="".join(texts) or None,
            tool_calls=tool_calls or None,
            finish_reason=finish_reason,
            usage=usage,
        )

    async def invoke(self, payload: dict[str, Any], credentials: Credentials) -> dict[str, Any]:
        body = dict(payload)
        model = body.pop("model")
        headers = {"Content-Type": "application/json", **credentials.headers}
        if credentials.api_key:
            headers["x-goog-api-key"] = credentials.api_key
        url = f"{credentials.url(self.default_base_url)}/models/{model}:generateContent"
        return await self.post_json(url, body, headers)

"""
Model quirks.

Some models need request or response adjustments that do not belong in a
driver. Quirks are looked up by ``(driver name, model name substring)``; the
first matching entry wins.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from core.models import ChatRequest, ChatResponse, ToolCall

from .base import synthesize_call_id

logger = logging.getLogger(__name__)

PayloadHook = Callable[[dict[str, Any], ChatRequest], dict[str, Any]]
ResponseHook = Callable[[ChatResponse, ChatRequest], ChatResponse]

THINK_RE = re.compile(r"<think>(.*?)</think>", re.DOTALL)
TOOL_CALL_RE = re.compile(r"<tool_call>(.*?)</tool_call>", re.DOTALL)


@dataclass(frozen=True)
class ModelQuirk:
    driver: str
    model_substring: str
    adjust_payload: PayloadHook | None = None
    adjust_response: ResponseHook | None = None


def use_max_completion_tokens(payload: dict[str, Any], request: ChatRequest) -> dict[str, Any]:
    """Reasoning models take ``max_completion_tokens`` and reject ``temperature``."""
    payload = dict(payload)
    if "max_tokens" in payload:
        payload["max_completion_tokens"] = payload.pop("max_tokens")
    payload.pop("temperature", None)
    return payload


def parse_text_tool_calls(response: ChatResponse, request: ChatRequest) -> ChatResponse:
    """
    Recover reasoning and tool calls that a model wrote into its text.

    ``<think>...</think>`` becomes ``reasoning``. Each ``<tool_call>`` block
    holds one JSON object ``{"name", "arguments"}`` per line; every parsed
    object becomes a tool call with a synthesized id. Unparseable lines are
    skipped. Structured tool calls already present are left alone.
    """
    text = response.content or ""
    if not text:
        return response

    reasoning = [m.strip() for m in THINK_RE.findall(text)]
    if reasoning:
        response.reasoning = "\n".join(r for r in reasoning if r) or None
        text = THINK_RE.sub("", text)

    if not response.tool_calls:
        calls: list[ToolCall] = []
        for block in TOOL_CALL_RE.findall(text):
            for line in block.splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping unparseable tool call line: %s", line[:200])
                    continue
                if not isinstance(obj, dict) or not obj.get("name"):
                    continue
                arguments = obj.get("arguments", {})
                arguments_text = arguments if isinstance(arguments, str) else json.dumps(arguments)
                index = len(calls)
                calls.append(
                    ToolCall(
                        id=synthesize_call_id(request, index, obj["name"], arguments_text),
                        name=obj["name"],
                        argumentsText=arguments_text,
                    )
                )
        if calls:
            response.tool_calls = calls
            response.finish_reason = "tool_calls"
    text = TOOL_CALL_RE.sub("", text)

    response.content = text.strip() or None
    return response


QUIRKS: list[ModelQuirk] = [
    ModelQuirk("openai", "o3", adjust_payload=use_max_completion_tokens),
    ModelQuirk("openai", "o4-mini", adjust_payload=use_max_completion_tokens),
    ModelQuirk("ollama", "qwen", adjust_response=parse_text_tool_calls),
    ModelQuirk("ollama", "deepseek-r1", adjust_response=parse_text_tool_calls),
    ModelQuirk("ollama", "hermes", adjust_response=parse_text_tool_calls),
]


def find_quirk(driver: str, model: str) -> ModelQuirk | None:
    for quirk in QUIRKS:
        if quirk.driver == driver and quirk.model_substring in (model or ""):
            return quirk
    return None


def register_quirk(quirk: ModelQuirk) -> None:
    """Add a quirk ahead of the built-in ones."""
    QUIRKS.insert(0, quirk)

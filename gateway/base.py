"""
Driver base class.

Every backend driver translates the canonical ``ChatRequest`` into a vendor
payload (``build_payload``), sends it (``invoke``) and translates the vendor
reply back into a ``ChatResponse`` (``parse_response``). The two translation
steps are pure so they can be exercised with fixtures. ``chat`` glues them
together with the model-quirk hooks, cancellation and error wrapping.
"""

import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from core.cancellation import run_cancellable
from core.exceptions import Cancelled, ProviderError
from core.logging_config import log_timing
from core.models import ChatRequest, ChatResponse, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(600.0, connect=30.0)

DATA_URL_RE = re.compile(r"^data:(image/[a-z0-9.+-]+);base64,(.+)$", re.IGNORECASE | re.DOTALL)


@dataclass
class Credentials:
    """Read-only connection settings for one provider."""

    api_key: str | None = None
    base_url: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def url(self, default: str) -> str:
        return (self.base_url or default).rstrip("/")


def synthesize_call_id(request: ChatRequest, index: int, name: str, arguments_text: str) -> str:
    """Deterministic tool-call id, unique per request position, index, name and arguments."""
    seed = f"{request.model}|{len(request.messages)}|{index}|{name}|{arguments_text}"
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()[:12]
    return f"call_{index}_{digest}"


def split_data_url(url: str) -> tuple[str, str] | None:
    """``(media_type, base64_data)`` for a ``data:`` image URL, else None."""
    match = DATA_URL_RE.match(url or "")
    if not match:
        return None
    return match.group(1), re.sub(r"\s+", "", match.group(2))


def function_tools(tools: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """The ``function`` members of OpenAI-style tool schemas."""
    return [t["function"] for t in tools or [] if t.get("type") == "function" and t.get("function")]


def sanitize_tool_calls(response: ChatResponse) -> ChatResponse:
    """Drop tool calls that are empty or unusable, clearing the list when none survive."""
    if not response.tool_calls:
        response.tool_calls = None
        return response
    valid = [c for c in response.tool_calls if isinstance(c, ToolCall) and c.id and c.name]
    if len(valid) != len(response.tool_calls):
        logger.warning("Discarded %d malformed tool call(s)", len(response.tool_calls) - len(valid))
    response.tool_calls = valid or None
    if response.tool_calls is None and response.finish_reason == "tool_calls":
        response.finish_reason = "stop"
    return response


class BaseDriver(ABC):
    """One LLM backend."""

    name: str = ""
    default_base_url: str = ""

    @abstractmethod
    def build_payload(self, request: ChatRequest) -> dict[str, Any]:
        """Translate the canonical request into the vendor request body."""

    @abstractmethod
    def parse_response(self, raw: dict[str, Any], request: ChatRequest) -> ChatResponse:
        """Translate the vendor reply into the canonical response."""

    @abstractmethod
    async def invoke(self, payload: dict[str, Any], credentials: Credentials) -> dict[str, Any]:
        """Send ``payload`` to the vendor endpoint and return the decoded reply."""

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        """POST JSON with httpx, raising ``ProviderError`` on non-2xx replies."""
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
            response = await client.post(url, json=payload, headers=headers)
        if response.status_code >= 400:
            raise ProviderError(self.name, response.text[:500], status_code=response.status_code)
        return response.json()

    async def chat(self, request: ChatRequest, credentials: Credentials | None = None) -> ChatResponse:
        """
        Run one canonical chat call through this driver.

        Args:
            request: Canonical request; its cancel token is honoured before,
                during and after the call
            credentials: Provider connection settings

        Returns:
            Canonical response

        Raises:
            Cancelled: If the request's cancel token fired
            ProviderError: On transport, authentication or vendor errors
        """
        from .quirks import find_quirk

        credentials = credentials or Credentials()
        token = request.cancel_token
        if token is not None:
            token.raise_if_cancelled()

        quirk = find_quirk(self.name, request.model)
        payload = self.build_payload(request)
        if quirk is not None and quirk.adjust_payload is not None:
            payload = quirk.adjust_payload(payload, request)

        try:
            with log_timing(logger, f"{self.name} chat {request.model}"):
                raw = await run_cancellable(self.invoke(payload, credentials), token)
        except (Cancelled, ProviderError):
            raise
        except httpx.HTTPError as e:
            raise ProviderError(self.name, str(e) or type(e).__name__) from e
        except (ValueError, KeyError) as e:
            raise ProviderError(self.name, f"Invalid response: {e}") from e

        response = self.parse_response(raw, request)
        if quirk is not None and quirk.adjust_response is not None:
            response = quirk.adjust_response(response, request)
        response = sanitize_tool_calls(response)

        if token is not None:
            token.raise_if_cancelled()
        return response


def dumps_arguments(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value if value is not None else {})


def loads_arguments(text: str | None) -> dict[str, Any]:
    """Decode tool-call arguments for vendors that want an object; bad JSON becomes ``{}``."""
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Sending malformed tool arguments as an empty object")
        return {}
    return value if isinstance(value, dict) else {}

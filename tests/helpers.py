"""
Test doubles shared by the test modules.

``ScriptedChat`` stands in for the gateway dispatch passed to ``LLMService``:
it replays queued responses in order, unless a route matches the request
first.
"""

import inspect
import json
from typing import Any, Callable

from core.models import ChatRequest, ChatResponse, ToolCall, Usage


def text_response(text: str, prompt_tokens: int = 0, completion_tokens: int = 0) -> ChatResponse:
    usage = None
    if prompt_tokens or completion_tokens:
        usage = Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
    return ChatResponse(content=text, finish_reason="stop", usage=usage)


def tool_call_response(*calls: tuple[str, Any], content: str | None = None, usage: Usage | None = None) -> ChatResponse:
    """Response asking for ``(name, arguments)`` calls; dict arguments are JSON encoded."""
    tool_calls = [
        ToolCall(
            id=f"call_{index}",
            name=name,
            argumentsText=arguments if isinstance(arguments, str) else json.dumps(arguments),
        )
        for index, (name, arguments) in enumerate(calls, start=1)
    ]
    return ChatResponse(content=content, tool_calls=tool_calls, finish_reason="tool_calls", usage=usage)


class ScriptedChat:
    """Replays canned responses and records every request."""

    def __init__(self, *responses: Any):
        self.responses: list[Any] = list(responses)
        self.requests: list[ChatRequest] = []
        self.drivers: list[str] = []
        self.routes: list[tuple[Callable[[ChatRequest], bool], Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def route(self, predicate: Callable[[ChatRequest], bool], responder: Any) -> None:
        """Answer matching requests with ``responder`` (a response or a callable)."""
        self.routes.append((predicate, responder))

    def route_model(self, model: str, responder: Any) -> None:
        self.route(lambda request: request.model == model, responder)

    async def _resolve(self, item: Any, request: ChatRequest) -> ChatResponse:
        if callable(item):
            item = item(request)
            if inspect.isawaitable(item):
                item = await item
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return text_response(item)
        return item.model_copy(deep=True)

    async def __call__(self, driver_name: str, request: ChatRequest, credentials: Any = None) -> ChatResponse:
        self.requests.append(request)
        self.drivers.append(driver_name)
        for predicate, responder in self.routes:
            if predicate(request):
                return await self._resolve(responder, request)
        if not self.responses:
            raise AssertionError(f"No scripted response left for request to {request.model}")
        return await self._resolve(self.responses.pop(0), request)

    def main_requests(self, model: str) -> list[ChatRequest]:
        return [r for r in self.requests if r.model == model]


class FakeMCPConnection:
    """In-process stand-in for an MCP client session."""

    def __init__(self, tools: list[dict[str, Any]] | None = None):
        self.tools = tools if tools is not None else [
            {
                "name": "search",
                "description": "Search the docs",
                "inputSchema": {"type": "object", "properties": {"q": {"type": "string"}}},
            }
        ]
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def list_tools(self) -> list[dict[str, Any]]:
        return self.tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        return {"content": [{"type": "text", "text": f"{name} result"}], "isError": False}

    async def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """Connection factory recording the options it was asked to connect."""

    def __init__(self, fail_for: set[str] | None = None):
        self.fail_for = fail_for or set()
        self.opened: list[Any] = []
        self.connections: list[FakeMCPConnection] = []

    async def __call__(self, options: Any) -> FakeMCPConnection:
        target = options.url or options.command
        if target in self.fail_for:
            raise ConnectionError(f"cannot connect to {target}")
        self.opened.append(options)
        connection = FakeMCPConnection()
        self.connections.append(connection)
        return connection

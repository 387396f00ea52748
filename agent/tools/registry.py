"""
Tool registry.

Maps tool names to implementations and runs model tool calls against them.
Every failure other than cancellation becomes an ``{"error": ...}`` result so
the agent loop can keep going.
"""

import logging
from typing import Any, Iterable

from config.personas import Persona
from core.exceptions import Cancelled, ToolError
from core.logging_config import log_timing
from core.models import ToolCall

from .base import Tool, ToolContext

logger = logging.getLogger(__name__)

_TOOL_CLASSES: dict[str, type[Tool]] = {}


def register_tool(cls: type[Tool]) -> type[Tool]:
    """Class decorator adding a tool to the built-in set."""
    _TOOL_CLASSES[cls.name] = cls
    return cls


def get_all_tool_names() -> list[str]:
    return list(_TOOL_CLASSES)


class ToolRegistry:
    """The tools available to one agent loop."""

    def __init__(self, tools: Iterable[Tool]):
        self._tools: dict[str, Tool] = {tool.name: tool for tool in tools}

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def add(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get_schemas(self, persona: Persona | None = None) -> list[dict[str, Any]]:
        """Schemas offered to the model, filtered by the persona's allow-list."""
        return [
            tool.schema()
            for tool in self._tools.values()
            if persona is None or persona.allows_tool(tool.name)
        ]

    def get_descriptive_text(self, call: ToolCall) -> str | None:
        tool = self._tools.get(call.name)
        if tool is None:
            return None
        try:
            return tool.get_descriptive_text(call.parse_arguments())
        except ValueError:
            return None

    async def run(self, call: ToolCall, context: ToolContext) -> Any:
        """
        Execute one tool call.

        Args:
            call: Tool call from the model
            context: Execution context

        Returns:
            The tool result, or ``{"error": ...}``

        Raises:
            Cancelled: If the call was cancelled
        """
        tool = self._tools.get(call.name)
        if tool is None:
            return {"error": f'Tool "{call.name}" is not available.'}

        try:
            args = call.parse_arguments()
        except ValueError as e:
            return {"error": str(e)}

        if tool.uses_path and not args.get("path") and context.working_directory:
            args["path"] = context.working_directory

        try:
            with log_timing(logger, f"tool {call.name}"):
                return await tool.execute(args, context)
        except Cancelled:
            raise
        except ToolError as e:
            logger.info("[%s] Tool %s failed: %s", context.session_id, call.name, e)
            return {"error": str(e)}
        except Exception as e:
            logger.exception("[%s] Tool %s raised", context.session_id, call.name)
            return {"error": str(e) or type(e).__name__}


def create_tool_registry(allowed_names: Iterable[str] | None = None) -> ToolRegistry:
    """Registry holding the built-in tools named in ``allowed_names`` (all by default)."""
    names = list(_TOOL_CLASSES) if allowed_names is None else list(allowed_names)
    unknown = [n for n in names if n not in _TOOL_CLASSES]
    if unknown:
        logger.warning("Ignoring unknown tool names: %s", ", ".join(unknown))
    return ToolRegistry(_TOOL_CLASSES[n]() for n in names if n in _TOOL_CLASSES)

"""Batch tool: several independent tool invocations in one call."""

import asyncio
import logging
from typing import Any

from core.exceptions import Cancelled
from core.models import ToolCall, gen_id

from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)


@register_tool
class BatchTool(Tool):
    name = "BatchTool"
    description = (
        "- Batch execution tool that runs multiple tool invocations in a single request\n"
        '- Example: {"description": "grep sockets", "invocations": [{"tool_name": "GrepTool", '
        '"arguments": {"pattern": "socket", "include": "*.py"}}]}\n'
        "- Every invocation MUST be an object {tool_name, arguments: {...}}\n"
        "- Invocations run concurrently, so only batch independent operations\n"
        "- Returns the collected results of all invocations; one failure does not stop the others"
    )
    parameters = {
        "type": "object",
        "properties": {
            "description": {"type": "string", "description": "A short (3-5 word) description of the batch operation"},
            "invocations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "tool_name": {"type": "string", "description": "The name of the tool to invoke"},
                        "arguments": {
                            "type": "object",
                            "additionalProperties": {},
                            "description": "The arguments to pass to the tool",
                        },
                    },
                    "required": ["tool_name", "arguments"],
                    "additionalProperties": False,
                },
                "description": "The list of tool invocations to execute",
            },
        },
        "required": ["description", "invocations"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        count = len(args.get("invocations") or [])
        return args.get("description") or f"Running {count} tools"

    async def _invoke(self, invocation: Any, context: ToolContext) -> Any:
        if not isinstance(invocation, dict) or not invocation.get("tool_name"):
            return {"error": "Invalid invocation: expected {tool_name, arguments}"}
        name = invocation["tool_name"]
        try:
            call = ToolCall.from_any({"id": gen_id("batch_"), "name": name, "arguments": invocation.get("arguments") or {}})
            return await context.registry.run(call, context)
        except Cancelled:
            raise
        except Exception as e:
            logger.exception("Batch invocation of %s failed", name)
            return {"error": f"Error executing tool {name}: {e}", "tool": name}

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        if context.registry is None:
            return {"error": "BatchTool requires a valid tool registry"}
        invocations = args.get("invocations")
        if not isinstance(invocations, list) or not invocations:
            return {"error": "Invalid invocations: must be a non-empty array"}

        description = args.get("description")
        logger.info("Executing batch operation: %s with %d invocations", description or "unnamed", len(invocations))
        results = await asyncio.gather(
            *(self._invoke(invocation, context) for invocation in invocations), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return {"description": description, "results": list(results), "count": len(results)}

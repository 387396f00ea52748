"""Tools of a connected MCP server, exposed to the model under ``mcp__<alias>__<name>``."""

import logging
from typing import Any

from core.cancellation import run_cancellable
from core.mcp import MCPRegistry

from .base import Tool, ToolContext

logger = logging.getLogger(__name__)


class MCPTool(Tool):
    """Proxy for one tool of an MCP server."""

    def __init__(self, registry: MCPRegistry, alias: str, schema: dict[str, Any]):
        function = schema["function"]
        self.registry = registry
        self.alias = alias
        self.remote_name = function["name"]
        self.name = f"mcp__{alias}__{self.remote_name}"
        self.description = function.get("description") or ""
        self.parameters = function.get("parameters") or {"type": "object", "properties": {}}

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Calling {self.remote_name} on {self.alias}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        return await run_cancellable(
            self.registry.call_tool(self.alias, self.remote_name, args), context.cancel_token
        )


async def load_mcp_tools(registry: MCPRegistry, alias: str | None) -> list[Tool]:
    """Proxies for every tool of ``alias``; empty if it is unset or not connected."""
    if not alias or alias not in registry.aliases():
        return []
    try:
        schemas = await registry.list_tools(alias)
    except Exception:
        logger.exception("Failed to list tools of MCP server %s", alias)
        return []
    return [MCPTool(registry, alias, schema) for schema in schemas]

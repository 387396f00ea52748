"""
Agent tools.

Importing this package registers every built-in tool with the registry.
"""

from . import bash, batch, dispatch, expert, filesystem, search, tasks, web_fetch
from .base import Tool, ToolContext
from .mcp_tools import MCPTool, load_mcp_tools
from .registry import ToolRegistry, create_tool_registry, get_all_tool_names, register_tool

__all__ = [
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "create_tool_registry",
    "get_all_tool_names",
    "register_tool",
    "MCPTool",
    "load_mcp_tools",
    "bash",
    "batch",
    "dispatch",
    "expert",
    "filesystem",
    "search",
    "tasks",
    "web_fetch",
]

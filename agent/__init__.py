"""
Agent package.

The LLM service, prompts, the agent loop, the request handler and the tools
the model can call.
"""

from .handler import RequestHandler
from .llm import LLMService
from .loop import AgentLoop
from .tools import Tool, ToolContext, ToolRegistry, create_tool_registry, get_all_tool_names

__all__ = [
    "AgentLoop",
    "LLMService",
    "RequestHandler",
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "create_tool_registry",
    "get_all_tool_names",
]

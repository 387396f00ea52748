"""
Domain models for the agent orchestrator.

These are the core data structures used throughout the application.
"""

from .llm import ChatRequest, ChatResponse, Usage
from .message import Message, ToolCall, assistant_message, tool_result_message, user_message
from .session import Accounting, AgentState, AgentStatus, ModelUsage, SessionData
from .task import Task, TaskStatus
from .utils import gen_id, now_iso, now_ms

__all__ = [
    # Utils
    "gen_id",
    "now_iso",
    "now_ms",
    # Message models
    "Message",
    "ToolCall",
    "user_message",
    "assistant_message",
    "tool_result_message",
    # LLM envelope
    "ChatRequest",
    "ChatResponse",
    "Usage",
    # Session models
    "AgentState",
    "AgentStatus",
    "Accounting",
    "ModelUsage",
    "SessionData",
    # Tasks
    "Task",
    "TaskStatus",
]

"""
Core business logic package.

Transport-agnostic pieces of the agent: canonical models, the session state
manager, the task tree, accounting, cooperative cancellation and the tool
execution sandbox.
"""

from .cancellation import CancelToken, check_cancelled, run_cancellable
from .events import Event, EventBus, NullEventBus, RecordingEventBus
from .exceptions import (
    Cancelled,
    CoreError,
    InvalidOperationError,
    NotFoundError,
    ProviderError,
    SandboxDenied,
    SessionNotFound,
    ToolError,
)
from .mcp import MCPRegistry, get_mcp_registry
from .sessions import SessionStateManager, is_sub_session, normalize_session_data
from .store import JsonFileSessionStore, MemorySessionStore, SessionStore

__all__ = [
    # Exceptions
    "CoreError",
    "NotFoundError",
    "SessionNotFound",
    "InvalidOperationError",
    "ProviderError",
    "ToolError",
    "SandboxDenied",
    "Cancelled",
    # Events
    "Event",
    "EventBus",
    "NullEventBus",
    "RecordingEventBus",
    # Cancellation
    "CancelToken",
    "check_cancelled",
    "run_cancellable",
    # Sessions
    "SessionStateManager",
    "SessionStore",
    "MemorySessionStore",
    "JsonFileSessionStore",
    "is_sub_session",
    "normalize_session_data",
    # MCP
    "MCPRegistry",
    "get_mcp_registry",
]

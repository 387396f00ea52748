"""
Tool base class and execution context.

A tool exposes a name, a JSON parameter schema, ``execute(args, context)``
and an optional human-readable progress description. Tools raise
``ToolError`` (or ``SandboxDenied``) for expected failures; the registry turns
those into ``{"error": ...}`` results.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from config import Config
from core.cancellation import CancelToken, check_cancelled
from core.events import EventBus
from core.sandbox import resolve_secure_path
from core.sessions import SessionStateManager, is_sub_session

if TYPE_CHECKING:
    from ..llm import LLMService
    from .registry import ToolRegistry


@dataclass
class ToolContext:
    """Everything a tool may touch while handling one call."""

    session_id: str
    working_directory: str | None
    sessions: SessionStateManager
    llm: LLMService
    config: Config
    cancel_token: CancelToken | None = None
    progress_sink: EventBus | None = None
    registry: ToolRegistry | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sub_session(self) -> bool:
        return is_sub_session(self.session_id)

    def interrupted(self) -> bool:
        return self.sessions.is_interruption_requested(self.session_id)

    def check_cancelled(self) -> None:
        check_cancelled(self.cancel_token, self.interrupted)

    def resolve_path(self, path: str | None) -> str:
        """Confine ``path`` to the working directory (which it defaults to)."""
        base = self.working_directory or ""
        return resolve_secure_path(path or base, base)


class Tool(ABC):
    """One function the model may call."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}
    # Path-bearing tools get ``path`` defaulted to the working directory
    uses_path: bool = False

    def schema(self) -> dict[str, Any]:
        """OpenAI-style function schema offered to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return None

    @abstractmethod
    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        """Run the tool and return a JSON-serializable result."""

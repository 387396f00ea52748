"""
Sub-agent dispatch.

Runs a nested agent loop with read-only tools under a throwaway ``sub_``
session. The sub-session never reaches durable storage and is dropped from the
cache when the sub-agent finishes, whether it succeeded or not.
"""

import logging
import secrets
from typing import Any

from core.exceptions import Cancelled
from core.models import AgentState, SessionData, now_ms
from core.constants import SUB_SESSION_PREFIX

from ..prompts import build_sub_agent_messages
from .base import Tool, ToolContext
from .registry import create_tool_registry, register_tool

logger = logging.getLogger(__name__)

SUB_AGENT_TOOLS = ["View", "GlobTool", "GrepTool", "LS", "WebFetchTool"]


def sub_session_id(parent_session_id: str) -> str:
    return f"{SUB_SESSION_PREFIX}{parent_session_id}_{now_ms()}_{secrets.token_hex(4)}"


@register_tool
class DispatchAgentTool(Tool):
    name = "dispatch_agent"
    description = (
        "Launch a new agent that has access to the following tools: View, GlobTool, GrepTool, LS, WebFetchTool. "
        "When you are searching for a keyword or file and are not confident that you will find the right match "
        "in the first few tries, use this tool to perform the search for you.\n\n"
        "Usage notes:\n"
        "1. When the agent is done, it returns a single message back to you. The result is not visible to the "
        "user; summarize it for them.\n"
        "2. Each invocation is stateless. Your prompt should contain a detailed task description and say exactly "
        "what information the agent should return.\n"
        "3. The agent cannot use Bash, Replace or Edit, so it cannot modify files."
    )
    parameters = {
        "type": "object",
        "properties": {"prompt": {"type": "string", "description": "The task for the agent to perform"}},
        "required": ["prompt"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return "Dispatching sub-agent"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        from ..loop import AgentLoop

        prompt = args.get("prompt") or "No prompt provided"
        sub_id = sub_session_id(context.session_id)
        logger.info("[%s] Dispatching sub-agent %s", context.session_id, sub_id)

        sessions = context.sessions
        await sessions.reset_session(
            sub_id,
            SessionData(
                workingDirectory=context.working_directory,
                agentState=AgentState(status="thinking", statusText="Initializing sub-agent...", startTime=now_ms()),
            ),
        )
        try:
            messages = await build_sub_agent_messages(context.working_directory, prompt)
            loop = AgentLoop(sessions, context.llm)
            final = await loop.run(
                sub_id,
                messages,
                create_tool_registry(SUB_AGENT_TOOLS),
                working_directory=context.working_directory,
                cancel_token=context.cancel_token,
            )
        except Cancelled:
            raise
        except Exception as e:
            logger.exception("[%s] Sub-agent %s failed", context.session_id, sub_id)
            return {"error": f"Sub-agent execution failed: {e}"}
        finally:
            sessions.delete_session(sub_id)
            logger.info("[%s] Cleaned up sub-agent session %s", context.session_id, sub_id)

        return {"subAgentResponse": final.content or "Sub-agent did not provide content."}

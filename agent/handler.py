"""
Request handler.

Top of the agent stack: takes one user message for a session, prepares the
context, runs the agent loop and turns the outcome into a response. This is
the one place ``Cancelled`` is recovered; any other failure ends in a
best-effort assistant error message with the session forced back to idle.
"""

import asyncio
import logging
from typing import Any

from config.personas import Persona, PersonaStore
from core.cancellation import CancelToken
from core.constants import INTERRUPT_POLL_INTERVAL_SECONDS
from core.events import Event, EventBus
from core.exceptions import Cancelled
from core.mcp import MCPRegistry
from core.models import Message, assistant_message, now_ms, user_message
from core.sessions import SessionStateManager, is_sub_session

from .image import describe_image_safely
from .llm import LLMService
from .loop import AgentLoop
from .prompts import build_system_messages, detect_topic, generate_gerund
from .tools import ToolRegistry, create_tool_registry, load_mcp_tools

logger = logging.getLogger(__name__)


def split_user_message(message: Message) -> tuple[str, str | None, str]:
    """User text, the attached image URL (if any) and a display name for the image."""
    if not isinstance(message.content, list):
        return message.content or "", None, "image"
    text = ""
    image_url = None
    image_name = "image"
    for part in message.content:
        if part.get("type") == "text":
            text += part.get("text", "")
        elif part.get("type") == "image_url" and (part.get("image_url") or {}).get("url"):
            image_url = part["image_url"]["url"]
            if not image_url.startswith("data:"):
                image_name = image_url.split("?")[0].rsplit("/", 1)[-1] or "image"
    return text, image_url, image_name


class RequestHandler:
    """Runs user requests against sessions."""

    def __init__(
        self,
        sessions: SessionStateManager,
        llm: LLMService,
        personas: PersonaStore | None = None,
        mcp_registry: MCPRegistry | None = None,
        poll_interval: float = INTERRUPT_POLL_INTERVAL_SECONDS,
    ):
        self.sessions = sessions
        self.llm = llm
        self.config = llm.config
        self.personas = personas or PersonaStore(self.config.agent.personas_dir)
        self.mcp_registry = mcp_registry
        self.poll_interval = poll_interval
        self.loop = AgentLoop(sessions, llm)

    async def _emit(self, sink: EventBus | None, event_type: str, **properties: Any) -> None:
        if sink is not None:
            await sink.publish(Event(type=event_type, properties=properties))

    async def _poll_interruption(self, session_id: str, token: CancelToken) -> None:
        """Bridge the sticky interruption flag into the cancel token."""
        while not token.cancelled:
            await asyncio.sleep(self.poll_interval)
            if self.sessions.is_interruption_requested(session_id):
                logger.info("[%s] Cancel token triggered by interruption flag", session_id)
                token.cancel("interruption requested")

    async def build_tools(self, session_id: str) -> ToolRegistry:
        registry = create_tool_registry(self.config.tools.enabled)
        if self.mcp_registry is not None:
            mcp = await self.sessions.get_mcp_data(session_id)
            for tool in await load_mcp_tools(self.mcp_registry, mcp["mcpAlias"]):
                registry.add(tool)
        return registry

    async def handle_request(
        self,
        session_id: str,
        message: Message | dict[str, Any] | str,
        progress_sink: EventBus | None = None,
        cancel_token: CancelToken | None = None,
    ) -> dict[str, Any]:
        """
        Process one user message.

        Args:
            session_id: Target session (must exist in the store or the cache)
            message: The user turn: text, a message dict or a Message
            progress_sink: Receives progress events
            cancel_token: Optional external token; one is created otherwise

        Returns:
            ``{message, sessionId, tokenCount, maxTokens}`` on success,
            ``{interrupted: True, sessionId}`` when interrupted, or
            ``{message, sessionId, error}`` on failure

        Raises:
            SessionNotFound: If the session does not exist
        """
        if isinstance(message, str):
            message = user_message(message)
        elif isinstance(message, dict):
            message = Message.model_validate({"role": "user", **message})

        sub = is_sub_session(session_id)
        token = cancel_token or CancelToken()
        await self.sessions.append_user_message_only(session_id, message)
        poller = asyncio.create_task(self._poll_interruption(session_id, token))
        image_task: asyncio.Task | None = None

        try:
            session = await self.sessions.get_session(session_id)
            if self.sessions.is_interruption_requested(session_id) or token.cancelled:
                await self.sessions.finalize_interruption(session_id)
                return {"interrupted": True, "sessionId": session_id}

            await self.sessions.set_agent_state(
                session_id,
                status="thinking",
                status_text="Processing request...",
                start_time=now_ms(),
                active_tool_call_id=None,
            )

            user_text, image_url, image_name = split_user_message(message)
            if image_url:
                image_task = asyncio.create_task(
                    describe_image_safely(self.llm, image_url, None if sub else session_id)
                )

            persona = self.personas.get(session.agentId)
            working_directory = session.workingDirectory
            system_messages = await build_system_messages(working_directory, self.config.agent.name, persona)

            if self.config.agent.topic_detection:
                topic = await detect_topic(self.llm, user_text)
                await self._emit(progress_sink, "topic_detection", topic=topic)
                words = user_text.split()
                gerund = await generate_gerund(self.llm, words[0] if words else "Processing")
                await self._emit(progress_sink, "gerund_generation", gerund=gerund)
                await self.sessions.set_agent_state(
                    session_id,
                    status="thinking",
                    status_text=f"{gerund}...",
                    start_time=now_ms(),
                    active_tool_call_id=None,
                )

            model, provider = self._model_override(persona)
            final = await self.loop.run(
                session_id,
                system_messages + list(session.history),
                await self.build_tools(session_id),
                model=model,
                working_directory=working_directory,
                progress_sink=progress_sink,
                cancel_token=token,
                persona=persona,
                provider=provider,
            )

            if image_task is not None:
                await self._emit(progress_sink, "image_description_wait")
                description = await image_task
                await self.sessions.update_last_user_message(
                    session_id, f"{user_text}\n\n--- Attached Image: {image_name} ---\n{description}"
                )
                await self._emit(progress_sink, "image_description_ready", description=description)

            final_message = final.to_message()
            if not sub and final.has_content and not final.has_tool_calls:
                await self.sessions.append_assistant_message(session_id, final_message)

            token_count = 0
            max_tokens = self.config.agent.max_context_tokens
            if not sub:
                await self.sessions.set_agent_state(session_id, status="idle")
                accounting = (await self.sessions.get_session(session_id)).accounting
                token_count = accounting.input + accounting.output
                await self._emit(progress_sink, "token_count", current=token_count, max=max_tokens)

            response = {
                "message": final_message.to_record(),
                "sessionId": session_id,
                "tokenCount": token_count,
                "maxTokens": max_tokens,
            }
            await self._emit(progress_sink, "final_response", response=response)
            return response

        except Cancelled:
            logger.info("[%s] Request interrupted", session_id)
            await self.sessions.finalize_interruption(session_id)
            await self._emit(progress_sink, "interrupt_complete", sessionId=session_id)
            return {"interrupted": True, "sessionId": session_id}

        except Exception as e:
            logger.exception("[%s] Error handling request", session_id)
            try:
                await self.sessions.set_agent_state(session_id, status="idle")
            except Exception:
                logger.exception("[%s] Failed to set idle state after error", session_id)
            error_text = str(e) or "Failed to process request"
            await self._emit(progress_sink, "error", error={"message": error_text})
            return {
                "message": assistant_message(f"Error processing request: {error_text}").to_record(),
                "sessionId": session_id,
                "error": error_text,
            }

        finally:
            poller.cancel()
            if image_task is not None and not image_task.done():
                image_task.cancel()
            self.sessions.clear_interruption(session_id)

    def _model_override(self, persona: Persona | None) -> tuple[str | None, str | None]:
        main = (persona.models.get("main") if persona is not None else None) or {}
        return main.get("model"), main.get("provider")

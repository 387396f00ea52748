"""
Agent loop.

Drives one session turn: call the model, run the tool calls it asks for one at
a time, feed the results back and repeat until the model answers in plain
text. Cancellation (the explicit token or the session's sticky interruption
flag) is checked before every model call and tool execution and surfaces as
``Cancelled``; every other failure is turned into data.

Sessions whose id starts with ``sub_`` skip all durable history and
operational state updates.
"""

import json
import logging
from typing import Any

from config.personas import Persona
from core.cancellation import CancelToken, check_cancelled
from core.events import Event, EventBus
from core.exceptions import Cancelled
from core.models import ChatResponse, Message, ToolCall, now_ms, tool_result_message
from core.sessions import SessionStateManager, is_sub_session

from .llm import LLMService
from .tools.base import ToolContext
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SYSTEM_IMAGE_MARKER = "[system-image]"


def is_system_image_message(message: Message) -> bool:
    """Temporary user message carrying a tool-produced image to the model."""
    if message.role != "user" or not isinstance(message.content, list):
        return False
    return any(p.get("type") == "text" and p.get("text") == SYSTEM_IMAGE_MARKER for p in message.content)


def image_message(data_url: str) -> Message:
    return Message(
        role="user",
        content=[
            {"type": "text", "text": SYSTEM_IMAGE_MARKER},
            {"type": "image_url", "image_url": {"url": data_url}},
        ],
    )


def tool_result_content(result: Any) -> tuple[str, str | None]:
    """Tool message content and, for image results, the image data URL."""
    if isinstance(result, dict) and "image-base64" in result and "text" in result:
        return str(result["text"]), result["image-base64"]
    if isinstance(result, str):
        return result, None
    return json.dumps(result, default=str), None


class AgentLoop:
    """The think/act state machine for one session turn."""

    def __init__(self, sessions: SessionStateManager, llm: LLMService):
        self.sessions = sessions
        self.llm = llm

    async def _emit(self, sink: EventBus | None, event_type: str, **properties: Any) -> None:
        if sink is not None:
            await sink.publish(Event(type=event_type, properties=properties))

    def _check(self, session_id: str, cancel_token: CancelToken | None) -> None:
        check_cancelled(cancel_token, lambda: self.sessions.is_interruption_requested(session_id))

    async def run(
        self,
        session_id: str,
        messages: list[Message],
        tools: ToolRegistry,
        model: str | None = None,
        working_directory: str | None = None,
        progress_sink: EventBus | None = None,
        cancel_token: CancelToken | None = None,
        persona: Persona | None = None,
        provider: str | None = None,
    ) -> ChatResponse:
        """
        Run the loop until the model replies without tool calls.

        Args:
            session_id: Session the turn belongs to
            messages: System prompt, history and the new user turn
            tools: Tools offered to the model
            model: Model override; defaults to the main role
            working_directory: Root that confines tool I/O
            progress_sink: Receives progress events in causal order
            cancel_token: Explicit cancellation token
            persona: Persona whose tool allow-list filters the schemas
            provider: Provider override for ``model``

        Returns:
            The final assistant reply

        Raises:
            Cancelled: If the token fired or interruption was requested
        """
        sub = is_sub_session(session_id)
        loop_messages = list(messages)
        schemas = tools.get_schemas(persona)
        context = ToolContext(
            session_id=session_id,
            working_directory=working_directory,
            sessions=self.sessions,
            llm=self.llm,
            config=self.llm.config,
            cancel_token=cancel_token,
            progress_sink=progress_sink,
            registry=tools,
        )

        self._check(session_id, cancel_token)
        while True:
            self._check(session_id, cancel_token)
            response = await self.llm.call(
                loop_messages,
                model=model,
                provider=provider,
                tools=schemas,
                session_id=None if sub else session_id,
                cancel_token=cancel_token,
            )
            self._check(session_id, cancel_token)

            # Images only need to reach the model once
            loop_messages = [m for m in loop_messages if not is_system_image_message(m)]
            assistant = response.to_message()
            loop_messages.append(assistant)

            if not response.has_tool_calls:
                return response

            if response.has_content:
                await self._emit(
                    progress_sink,
                    "interim_content",
                    content=response.content,
                    tool_calls=[c.model_dump() for c in response.tool_calls],
                    sessionId=session_id,
                )
            if not sub:
                await self.sessions.append_assistant_message(session_id, assistant)
            await self._emit(progress_sink, "tool_calls_received", count=len(response.tool_calls))

            calls = response.tool_calls
            for index, call in enumerate(calls):
                await self._run_call(call, index == len(calls) - 1, tools, context, loop_messages)

            await self._emit(progress_sink, "all_tools_complete", count=len(calls))
            self._check(session_id, cancel_token)

    async def _run_call(
        self,
        call: ToolCall,
        is_last: bool,
        tools: ToolRegistry,
        context: ToolContext,
        loop_messages: list[Message],
    ) -> None:
        session_id = context.session_id
        sub = context.is_sub_session
        sink = context.progress_sink
        logger.info("[%s] Processing tool call: %s", session_id, call.name)

        descriptive_text = tools.get_descriptive_text(call)
        try:
            args: Any = call.parse_arguments()
        except ValueError:
            args = call.argumentsText

        if not sub:
            await self.sessions.set_agent_state(
                session_id,
                status="tool_running",
                status_text=descriptive_text or f"Running {call.name}...",
                start_time=now_ms(),
                active_tool_call_id=call.id,
            )
            await self.sessions.append_tool_log(
                session_id,
                {
                    "type": "TOOL_START",
                    "toolCallId": call.id,
                    "toolName": call.name,
                    "args": args,
                    "descriptiveText": descriptive_text,
                },
            )
        await self._emit(
            sink,
            "tool_execution_start",
            tool=call.name,
            id=call.id,
            args=call.argumentsText,
            descriptiveText=descriptive_text,
        )

        self._check(session_id, context.cancel_token)
        try:
            result = await tools.run(call, context)
        except Cancelled:
            logger.info("[%s] Tool execution aborted: %s", session_id, call.name)
            raise
        except Exception as e:
            logger.exception("[%s] Error executing tool %s", session_id, call.name)
            result = {"error": f"Tool execution failed: {e}"}

        content, image = tool_result_content(result)
        tool_message = tool_result_message(call.id, content)
        loop_messages.append(tool_message)
        if image is not None:
            loop_messages.append(image_message(image))
            result = content

        if not sub:
            await self.sessions.append_user_message_only(session_id, tool_message)
            await self.sessions.append_tool_log(
                session_id,
                {"type": "TOOL_END", "toolCallId": call.id, "toolName": call.name, "result": result},
            )
            if is_last:
                await self.sessions.set_agent_state(
                    session_id,
                    status="thinking",
                    status_text="Processing tool results...",
                    start_time=now_ms(),
                    active_tool_call_id=None,
                )
        await self._emit(sink, "tool_execution_complete", tool=call.name, id=call.id, result=result)

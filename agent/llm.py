"""
LLM service.

Builds canonical requests, dispatches them through the provider gateway and
records token usage on the session. Provider failures are turned into a
degraded assistant reply so the agent loop can finish cleanly; cancellation
propagates.
"""

import json
import logging
from typing import Any, Awaitable, Callable

import gateway
from config import Config, ModelRole, ProviderRegistry
from core.accounting import estimate_tokens
from core.cancellation import CancelToken
from core.exceptions import ProviderError
from core.models import ChatRequest, ChatResponse, Message
from core.sessions import SessionStateManager, is_sub_session
from gateway.base import Credentials

logger = logging.getLogger(__name__)

ChatFn = Callable[[str, ChatRequest, Credentials | None], Awaitable[ChatResponse]]


class LLMService:
    """Single entry point for every model call the agent makes."""

    def __init__(
        self,
        config: Config,
        providers: ProviderRegistry,
        sessions: SessionStateManager | None = None,
        chat_fn: ChatFn = gateway.chat,
    ):
        """
        Args:
            config: Loaded configuration (model roles and agent defaults)
            providers: Provider registry supplying driver names and credentials
            sessions: Session manager for usage accounting; None disables it
            chat_fn: Gateway dispatch, replaceable in tests
        """
        self.config = config
        self.providers = providers
        self.sessions = sessions
        self.chat_fn = chat_fn

    def role(self, role: str) -> ModelRole:
        return self.config.models.for_role(role)

    async def call(
        self,
        messages: list[Message],
        model: str | None = None,
        provider: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        session_id: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ChatResponse:
        """
        Call a model and return its canonical reply.

        Args:
            messages: Conversation to send
            model: Model identifier; defaults to the main role's model
            provider: Provider id; defaults to the main role's provider
            tools: Function schemas offered to the model
            temperature: Sampling temperature; defaults to the agent setting
            max_output_tokens: Output limit; defaults to the agent setting
            session_id: Session to charge usage to (sub-agent sessions are skipped)
            cancel_token: Token that aborts the call

        Returns:
            The reply, or an assistant message describing a provider failure

        Raises:
            Cancelled: If the token fired before or during the call
        """
        main = self.role("main")
        model = model or main.model
        provider_id = provider or main.provider
        request = ChatRequest(
            model=model,
            messages=messages,
            tools=tools or None,
            temperature=self.config.agent.temperature if temperature is None else temperature,
            max_output_tokens=max_output_tokens or self.config.agent.max_output_tokens,
            cancel_token=cancel_token,
        )

        try:
            model_provider = self.providers.require(provider_id)
            response = await self.chat_fn(model_provider.driver_name, request, model_provider.credentials())
        except (ProviderError, ValueError) as e:
            logger.error("Error calling LLM API with model %s: %s", model, e)
            return ChatResponse(content=f"Error calling LLM API: {e}", finish_reason="error")

        if session_id and self.sessions is not None and not is_sub_session(session_id):
            await self._record_usage(session_id, model, messages, response)
        return response

    async def call_by_type(self, role: str, messages: list[Message], **kwargs: Any) -> ChatResponse:
        """Call the model configured for ``role`` (main, aux or expert)."""
        model_role = self.role(role)
        return await self.call(messages, model=model_role.model, provider=model_role.provider, **kwargs)

    async def _record_usage(
        self, session_id: str, model: str, messages: list[Message], response: ChatResponse
    ) -> None:
        if response.usage is not None:
            prompt_tokens = response.usage.prompt_tokens
            completion_tokens = response.usage.completion_tokens
        else:
            prompt_tokens = estimate_tokens(json.dumps([m.to_record() for m in messages]))
            completion_tokens = estimate_tokens(response.content or "")
        await self.sessions.add_usage(session_id, model, prompt_tokens, completion_tokens)

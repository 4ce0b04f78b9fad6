"""Host-facing assistant facade.

``create_assistant()`` turns host settings into a ready-to-use assistant:
the full conversation loop for a real endpoint, or :class:`EchoAssistant`
when the API key is the literal ``"test"``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from openai import AsyncOpenAI

from ..document.store import DocumentStore
from ..services.settings import AssistantSettings
from .client import ClientSettings, CompletionClient, SleepFn
from .errors import AssistantError
from .orchestration.runner import ConversationLoop, LoopConfig, TelemetryEmitter
from .orchestration.tool_dispatcher import ToolDispatcher
from .orchestration.types import (
    AssistanceRequest,
    AssistanceResponse,
    AssistantMessage,
    ConversationState,
    SystemMessage,
    UserMessage,
)
from .prompts import PromptBuilder
from .tools.tool_wiring import create_tool_registry

LOGGER = logging.getLogger(__name__)

ECHO_API_KEY = "test"


class SupportsAssistance(Protocol):
    async def get_assistance(
        self,
        session: Any,
        document: DocumentStore,
        request: AssistanceRequest,
    ) -> AssistanceResponse:
        ...

    async def aclose(self) -> None:
        ...


class Assistant:
    """Assistant backed by a completion endpoint."""

    def __init__(self, loop: ConversationLoop, client: CompletionClient) -> None:
        self._loop = loop
        self._client = client

    @property
    def loop(self) -> ConversationLoop:
        return self._loop

    async def get_assistance(
        self,
        session: Any,
        document: DocumentStore,
        request: AssistanceRequest,
    ) -> AssistanceResponse:
        return await self._loop.get_assistance(session, document, request)

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        await self._client.aclose()


class EchoAssistant:
    """Replies with the user's own text without contacting any endpoint.

    The text ``ERROR`` raises an :class:`AssistantError` and ``SLOW`` waits
    one second first, so hosts can exercise their error and loading paths.
    """

    def __init__(self, *, sleep: SleepFn | None = None) -> None:
        self._sleep = sleep or asyncio.sleep

    async def get_assistance(
        self,
        session: Any,
        document: DocumentStore,
        request: AssistanceRequest,
    ) -> AssistanceResponse:
        if request.text == "ERROR":
            raise AssistantError("ERROR")
        if request.text == "SLOW":
            await self._sleep(1.0)

        messages = list(request.state.messages) if request.state is not None else []
        if not messages:
            messages.append(SystemMessage(content=""))
        reply = request.text or ""
        messages.append(UserMessage(content=reply))
        messages.append(AssistantMessage(content=reply))
        state = ConversationState(messages=tuple(messages), conversation_id=request.conversation_id)
        return AssistanceResponse(reply=reply, confirmation_required=False, state=state)

    async def aclose(self) -> None:
        return None


def _client_settings(settings: AssistantSettings) -> ClientSettings:
    return ClientSettings(
        api_key=settings.api_key or None,
        base_url=settings.base_url,
        model=settings.model,
        longer_context_model=settings.longer_context_model,
        max_tokens=settings.max_tokens,
        request_timeout=settings.request_timeout,
        max_attempts=settings.max_attempts,
        retry_delay_seconds=settings.retry_delay_seconds,
        organization=settings.organization,
        default_headers=dict(settings.default_headers) or None,
        debug_logging=settings.debug_logging,
    )


def create_assistant(
    settings: AssistantSettings,
    *,
    client: AsyncOpenAI | None = None,
    telemetry: TelemetryEmitter | None = None,
    sleep: SleepFn | None = None,
) -> SupportsAssistance:
    """Build an assistant from host settings.

    Args:
        settings: Host configuration.
        client: Pre-built ``AsyncOpenAI`` instance, mostly for tests.
        telemetry: Receiver for send/receive events.
        sleep: Coroutine used to wait between retries.

    Raises:
        ValueError: If neither an API key nor a custom endpoint is configured.
    """
    if settings.api_key == ECHO_API_KEY:
        LOGGER.info("Using the echo assistant")
        return EchoAssistant(sleep=sleep)

    completion_client = CompletionClient(_client_settings(settings), client=client, sleep=sleep)
    loop = ConversationLoop(
        client=completion_client,
        dispatcher=ToolDispatcher(create_tool_registry()),
        prompt_builder=PromptBuilder(),
        config=LoopConfig(max_tool_calls=settings.max_tool_calls),
        telemetry=telemetry,
    )
    LOGGER.info(
        "Assistant ready (model=%s, longer_context_model=%s, max_tool_calls=%d)",
        completion_client.settings.model,
        completion_client.settings.longer_context_model,
        settings.max_tool_calls,
    )
    return Assistant(loop, completion_client)


__all__ = ["Assistant", "EchoAssistant", "SupportsAssistance", "create_assistant"]

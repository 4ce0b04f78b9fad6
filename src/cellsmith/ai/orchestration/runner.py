"""Conversation loop: prompt, complete, dispatch tools, repeat.

One call to :meth:`ConversationLoop.get_assistance` runs a whole turn:

    Prompting -> WaitingCompletion -> {Replying | DispatchingTools}
    DispatchingTools -> WaitingCompletion -> ... -> Replying

Tool calls within a completion run one at a time in the order received,
since later calls may depend on what earlier ones changed. Mutations that
succeed stay applied even if a later call fails.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from ...document.model import ApplyResult
from ...document.store import DocumentStore
from ..client import parse_reply
from ..errors import ToolCallLimitError
from ..prompts import PROMPT_VERSION, PromptBuilder
from .tool_dispatcher import ToolDispatcher
from .types import (
    AssistanceRequest,
    AssistanceResponse,
    CompletionResult,
    ConversationState,
    Message,
    ToolMessage,
)

__all__ = [
    "ConversationLoop",
    "CompletionBackend",
    "LoopConfig",
    "LoopState",
    "TelemetryEmitter",
    "get_user_hash",
]

LOGGER = logging.getLogger(__name__)

SEND_EVENT = "assistant_send"
RECEIVE_EVENT = "assistant_receive"


# -----------------------------------------------------------------------------
# Collaborator Protocols
# -----------------------------------------------------------------------------


class CompletionBackend(Protocol):
    """What the loop needs from a completion client."""

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        user: str | None = None,
    ) -> CompletionResult:
        ...


class TelemetryEmitter(Protocol):
    """Receives conversation telemetry events."""

    def emit(self, event: str, payload: Mapping[str, Any]) -> None:
        ...


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class LoopState(Enum):
    PROMPTING = "prompting"
    WAITING_COMPLETION = "waiting_completion"
    DISPATCHING_TOOLS = "dispatching_tools"
    REPLYING = "replying"


@dataclass(slots=True, frozen=True)
class LoopConfig:
    """Configuration for the conversation loop.

    Attributes:
        max_tool_calls: Dispatch rounds allowed past the first before the turn fails.
    """

    max_tool_calls: int = 10

    def __post_init__(self) -> None:
        if self.max_tool_calls < 0:
            raise ValueError("max_tool_calls must not be negative")


def get_user_hash(session: Any) -> str:
    """Stable, anonymized identifier for the user behind ``session``."""
    user_id = getattr(session, "user_id", None)
    source = str(user_id) if user_id is not None else "anonymous"
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


# -----------------------------------------------------------------------------
# Conversation Loop
# -----------------------------------------------------------------------------


class ConversationLoop:
    """Runs assistant turns against a live document.

    Example:
        >>> loop = ConversationLoop(
        ...     client=CompletionClient(settings),
        ...     dispatcher=ToolDispatcher(create_tool_registry()),
        ...     prompt_builder=PromptBuilder(),
        ... )
        >>> response = await loop.get_assistance(session, document, request)
    """

    def __init__(
        self,
        client: CompletionBackend,
        dispatcher: ToolDispatcher,
        prompt_builder: PromptBuilder | None = None,
        *,
        config: LoopConfig | None = None,
        telemetry: TelemetryEmitter | None = None,
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher
        self._prompts = prompt_builder or PromptBuilder()
        self._config = config or LoopConfig()
        self._telemetry = telemetry

    @property
    def config(self) -> LoopConfig:
        return self._config

    async def get_assistance(
        self,
        session: Any,
        document: DocumentStore,
        request: AssistanceRequest,
    ) -> AssistanceResponse:
        """Run one conversation turn.

        Args:
            session: Caller session; forwarded to the document store and hashed
                to identify the user to the completion endpoint.
            document: The live document.
            request: User text, context and prior conversation state.

        Returns:
            The parsed reply, the new conversation state and every action
            batch applied during the turn.

        Raises:
            ToolCallLimitError: If the model keeps requesting tools past the limit.
            AssistantError: For completion failures and unparseable replies.
        """
        conversation_id = request.conversation_id
        self._transition(conversation_id, LoopState.PROMPTING)
        messages = await self._prompts.build(session, document, request)
        prior_count = len(request.state.messages) if request.state is not None else 0
        self._emit_sent(request, messages, start=max(prior_count - 1, 0))

        user = get_user_hash(session)
        tools = self._dispatcher.tool_definitions()

        self._transition(conversation_id, LoopState.WAITING_COMPLETION)
        completion = await self._client.complete(messages, tools, user=user)

        calls = 0
        applied_actions: list[ApplyResult] = []
        while completion.finish_reason == "tool_calls":
            if calls > self._config.max_tool_calls:
                LOGGER.error(
                    "Conversation %s exceeded the tool call limit (%d rounds, max %d)",
                    conversation_id,
                    calls,
                    self._config.max_tool_calls,
                )
                raise ToolCallLimitError()

            self._transition(conversation_id, LoopState.DISPATCHING_TOOLS)
            history = list(completion.messages)
            sent_before = len(history)
            for call in completion.tool_calls:
                result = await self._dispatcher.dispatch(session, document, call.name, call.arguments)
                history.append(ToolMessage(tool_call_id=call.id, content=result.to_message_content()))
                applied_actions.extend(result.applied_actions)
            calls += 1

            messages = await self._prompts.refresh(session, document, request.context, history)
            self._emit_sent(request, messages, start=sent_before)

            self._transition(conversation_id, LoopState.WAITING_COMPLETION)
            completion = await self._client.complete(messages, tools, user=user)

        self._transition(conversation_id, LoopState.REPLYING)
        reply, confirmation_required = parse_reply(completion)
        state = ConversationState(
            messages=tuple(completion.messages),
            conversation_id=conversation_id,
            prompt_version=PROMPT_VERSION,
        )
        self._emit(
            RECEIVE_EVENT,
            {
                "conversation_id": conversation_id,
                "context": {"view_id": request.context.view_id},
                "index": len(state.messages) - 1,
                "reply": reply,
                "confirmation_required": confirmation_required,
                "model": completion.model,
                "tool_rounds": calls,
            },
        )
        return AssistanceResponse(
            reply=reply,
            confirmation_required=confirmation_required,
            state=state,
            applied_actions=tuple(applied_actions),
        )

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def _transition(self, conversation_id: str, state: LoopState) -> None:
        LOGGER.debug("Conversation %s: %s", conversation_id, state.value)

    def _emit_sent(self, request: AssistanceRequest, messages: Sequence[Message], *, start: int) -> None:
        for index in range(start, len(messages)):
            message = messages[index]
            self._emit(
                SEND_EVENT,
                {
                    "conversation_id": request.conversation_id,
                    "context": {"view_id": request.context.view_id},
                    "index": index,
                    "role": message.role,
                    "content": message.to_chat_param().get("content"),
                },
            )

    def _emit(self, event: str, payload: Mapping[str, Any]) -> None:
        if self._telemetry is None:
            LOGGER.debug("Telemetry %s: %s", event, dict(payload))
            return
        self._telemetry.emit(event, payload)

"""Core type definitions for the conversation loop.

Conversation history is an ordered log of four message kinds. Each kind
carries only the fields valid for it, and each converts to and from the
chat-completions wire format so callers can persist state as plain JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Mapping, Sequence, Union

from ...document.model import ApplyResult

__all__ = [
    # Messages
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
    "ToolMessage",
    "Message",
    "message_from_chat_param",
    "history_to_chat_params",
    # Tool calls
    "ToolCallRequest",
    # Conversation
    "ConversationState",
    "CompletionResult",
    "FinishReason",
    # Caller contract
    "AssistanceContext",
    "AssistanceRequest",
    "AssistanceResponse",
]

FinishReason = Literal["stop", "tool_calls", "length"]


# -----------------------------------------------------------------------------
# Tool Calls
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCallRequest:
    """A tool call emitted by the model.

    Attributes:
        id: Call identifier; the matching tool message must carry it.
        name: Requested tool name, not yet checked against the catalog.
        arguments: Raw JSON argument payload, untrusted.
    """

    id: str
    name: str
    arguments: str = "{}"

    def to_chat_param(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_chat_param(cls, param: Mapping[str, Any]) -> ToolCallRequest:
        function = param.get("function") or {}
        return cls(
            id=str(param.get("id", "")),
            name=str(function.get("name", "")),
            arguments=function.get("arguments") or "{}",
        )


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SystemMessage:
    content: str

    role: ClassVar[str] = "system"

    def to_chat_param(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class UserMessage:
    content: str

    role: ClassVar[str] = "user"

    def to_chat_param(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class AssistantMessage:
    """A model turn: text, tool calls, or a refusal."""

    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()
    refusal: str | None = None

    role: ClassVar[str] = "assistant"

    def to_chat_param(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_chat_param() for call in self.tool_calls]
        if self.refusal is not None:
            payload["refusal"] = self.refusal
        return payload


@dataclass(slots=True, frozen=True)
class ToolMessage:
    tool_call_id: str
    content: str

    role: ClassVar[str] = "tool"

    def to_chat_param(self) -> dict[str, Any]:
        return {"role": self.role, "tool_call_id": self.tool_call_id, "content": self.content}


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage]


def message_from_chat_param(param: Mapping[str, Any]) -> Message:
    """Rebuild a message from its wire format.

    Raises:
        ValueError: If the role is missing or unknown.
    """
    role = param.get("role")
    content = param.get("content")
    if role == "system":
        return SystemMessage(content=str(content or ""))
    if role == "user":
        return UserMessage(content=str(content or ""))
    if role == "assistant":
        return AssistantMessage(
            content=content,
            tool_calls=tuple(ToolCallRequest.from_chat_param(call) for call in param.get("tool_calls") or ()),
            refusal=param.get("refusal"),
        )
    if role == "tool":
        return ToolMessage(tool_call_id=str(param.get("tool_call_id", "")), content=str(content or ""))
    raise ValueError(f"Unknown message role: {role!r}")


# -----------------------------------------------------------------------------
# Conversation State
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ConversationState:
    """Conversation history owned and persisted by the caller.

    The first message is the system prompt. It is regenerated on every
    turn, so a persisted copy only matters for its position.
    """

    messages: tuple[Message, ...] = ()
    conversation_id: str | None = None
    prompt_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [message.to_chat_param() for message in self.messages],
            "conversation_id": self.conversation_id,
            "prompt_version": self.prompt_version,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ConversationState:
        return cls(
            messages=tuple(message_from_chat_param(item) for item in payload.get("messages") or ()),
            conversation_id=payload.get("conversation_id"),
            prompt_version=payload.get("prompt_version"),
        )


@dataclass(slots=True, frozen=True)
class CompletionResult:
    """One completion exchange.

    Attributes:
        reply_text: Raw assistant content, if any.
        finish_reason: Why the model stopped.
        tool_calls: Calls requested by the model; non-empty iff finish_reason is "tool_calls".
        messages: History sent plus the assistant message received.
        refusal: Refusal text when the model declined.
        model: Model that produced the completion.
    """

    reply_text: str | None
    finish_reason: FinishReason
    tool_calls: tuple[ToolCallRequest, ...] = ()
    messages: tuple[Message, ...] = ()
    refusal: str | None = None
    model: str | None = None

    def __post_init__(self) -> None:
        if bool(self.tool_calls) != (self.finish_reason == "tool_calls"):
            raise ValueError(
                f"tool_calls must be non-empty iff finish_reason is 'tool_calls' "
                f"(finish_reason={self.finish_reason!r}, tool_calls={len(self.tool_calls)})"
            )


# -----------------------------------------------------------------------------
# Caller Contract
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class AssistanceContext:
    """What the user is looking at. ``view_id`` is the visible page, if any."""

    view_id: int | None = None


@dataclass(slots=True, frozen=True)
class AssistanceRequest:
    text: str | None
    conversation_id: str
    context: AssistanceContext = field(default_factory=AssistanceContext)
    state: ConversationState | None = None


@dataclass(slots=True, frozen=True)
class AssistanceResponse:
    """Final output of one conversation turn.

    Attributes:
        reply: Text to show the user.
        confirmation_required: Whether the reply asks the user to confirm a change.
        state: New conversation state for the caller to persist.
        applied_actions: Every action batch applied during the turn, in order.
    """

    reply: str
    confirmation_required: bool
    state: ConversationState
    applied_actions: tuple[ApplyResult, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "reply": self.reply,
            "confirmation_required": self.confirmation_required,
            "state": self.state.to_dict(),
            "applied_actions": [result.to_dict() for result in self.applied_actions],
        }


def history_to_chat_params(messages: Sequence[Message]) -> list[dict[str, Any]]:
    return [message.to_chat_param() for message in messages]

"""Conversation types and tool dispatch.

The conversation loop itself lives in :mod:`.runner`; it depends on the
completion client, which imports the types defined here.
"""

from .tool_dispatcher import ToolDispatcher, parse_arguments
from .types import (
    AssistanceContext,
    AssistanceRequest,
    AssistanceResponse,
    AssistantMessage,
    CompletionResult,
    ConversationState,
    Message,
    SystemMessage,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)

__all__ = [
    "AssistanceContext",
    "AssistanceRequest",
    "AssistanceResponse",
    "AssistantMessage",
    "CompletionResult",
    "ConversationState",
    "Message",
    "SystemMessage",
    "ToolCallRequest",
    "ToolDispatcher",
    "ToolMessage",
    "UserMessage",
    "parse_arguments",
]

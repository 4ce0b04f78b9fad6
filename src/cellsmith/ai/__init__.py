"""Completion client, conversation loop, and tool wiring."""

from .client import ClientSettings, CompletionClient, parse_reply
from .orchestration.runner import ConversationLoop, LoopConfig
from .prompts import PromptBuilder
from .assistant import Assistant, EchoAssistant, create_assistant

__all__ = [
    "Assistant",
    "ClientSettings",
    "CompletionClient",
    "ConversationLoop",
    "EchoAssistant",
    "LoopConfig",
    "PromptBuilder",
    "create_assistant",
    "parse_reply",
]

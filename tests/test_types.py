"""Tests for conversation types."""

from __future__ import annotations

import pytest

from cellsmith.ai.orchestration.types import (
    AssistanceResponse,
    AssistantMessage,
    CompletionResult,
    ConversationState,
    SystemMessage,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
    message_from_chat_param,
)
from cellsmith.document.model import ApplyResult


def test_completion_result_requires_calls_for_tool_calls_finish() -> None:
    with pytest.raises(ValueError):
        CompletionResult(reply_text=None, finish_reason="tool_calls")


def test_completion_result_rejects_calls_on_stop() -> None:
    call = ToolCallRequest(id="c1", name="get_tables")
    with pytest.raises(ValueError):
        CompletionResult(reply_text=None, finish_reason="stop", tool_calls=(call,))


def test_assistant_message_wire_format() -> None:
    call = ToolCallRequest(id="c1", name="get_table_columns", arguments='{"table_id": "T1"}')
    message = AssistantMessage(tool_calls=(call,))

    assert message.to_chat_param() == {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {"id": "c1", "type": "function", "function": {"name": "get_table_columns", "arguments": '{"table_id": "T1"}'}}
        ],
    }


def test_conversation_state_survives_json_persistence() -> None:
    call = ToolCallRequest(id="c1", name="get_tables")
    state = ConversationState(
        messages=(
            SystemMessage(content="prompt"),
            UserMessage(content="What tables?"),
            AssistantMessage(tool_calls=(call,)),
            ToolMessage(tool_call_id="c1", content='{"ok": true}'),
            AssistantMessage(content="Three.", refusal=None),
        ),
        conversation_id="conv-1",
        prompt_version="2",
    )

    assert ConversationState.from_dict(state.to_dict()) == state


def test_message_from_chat_param_rejects_unknown_roles() -> None:
    with pytest.raises(ValueError):
        message_from_chat_param({"role": "developer", "content": "x"})


def test_response_to_dict_includes_applied_actions() -> None:
    applied = ApplyResult(action_num=3, ret_values=[[4]], actions=[["BulkAddRecord", "T1", [None], {}]])
    response = AssistanceResponse(
        reply="Done.",
        confirmation_required=False,
        state=ConversationState(conversation_id="c"),
        applied_actions=(applied,),
    )

    payload = response.to_dict()

    assert payload["applied_actions"][0]["actions"] == [["BulkAddRecord", "T1", [None], {}]]
    assert payload["state"] == {"messages": [], "conversation_id": "c", "prompt_version": None}

"""Tests for the host-facing assistant factory."""

from __future__ import annotations

import pytest

from cellsmith.ai.assistant import Assistant, EchoAssistant, create_assistant
from cellsmith.ai.errors import AssistantError
from cellsmith.ai.orchestration.types import (
    AssistanceRequest,
    AssistantMessage,
    ConversationState,
    SystemMessage,
    UserMessage,
)
from cellsmith.services.settings import AssistantSettings
from tests.helpers import RecordingSleep, envelope, make_openai, make_response


def test_test_key_selects_echo_assistant() -> None:
    assert isinstance(create_assistant(AssistantSettings(api_key="test")), EchoAssistant)


def test_missing_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        create_assistant(AssistantSettings())


def test_settings_flow_into_the_loop() -> None:
    fake, _ = make_openai([])
    settings = AssistantSettings(api_key="sk-test", longer_context_model="gpt-long", max_tool_calls=3)

    assistant = create_assistant(settings, client=fake)

    assert isinstance(assistant, Assistant)
    assert assistant.loop.config.max_tool_calls == 3


@pytest.mark.asyncio
async def test_echo_assistant_repeats_the_user() -> None:
    assistant = EchoAssistant()

    response = await assistant.get_assistance(None, None, AssistanceRequest(text="Hi there", conversation_id="c"))

    assert response.reply == "Hi there"
    assert response.confirmation_required is False
    assert response.state.messages == (
        SystemMessage(content=""),
        UserMessage(content="Hi there"),
        AssistantMessage(content="Hi there"),
    )


@pytest.mark.asyncio
async def test_echo_assistant_extends_prior_state() -> None:
    prior = ConversationState(messages=(SystemMessage(content=""), UserMessage(content="a"), AssistantMessage(content="a")))

    response = await EchoAssistant().get_assistance(
        None, None, AssistanceRequest(text="b", conversation_id="c", state=prior)
    )

    assert len(response.state.messages) == 5


@pytest.mark.asyncio
async def test_echo_assistant_error_and_slow_modes() -> None:
    sleep = RecordingSleep()
    assistant = EchoAssistant(sleep=sleep)

    with pytest.raises(AssistantError):
        await assistant.get_assistance(None, None, AssistanceRequest(text="ERROR", conversation_id="c"))

    response = await assistant.get_assistance(None, None, AssistanceRequest(text="SLOW", conversation_id="c"))
    assert response.reply == "SLOW"
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_assistant_runs_a_turn_end_to_end(session, document) -> None:
    fake, completions = make_openai(
        [
            make_response(tool_calls=[("call_1", "get_tables", "{}")]),
            make_response(envelope("You have Projects, Orders and T1.")),
        ]
    )
    assistant = create_assistant(AssistantSettings(api_key="sk-test"), client=fake)

    response = await assistant.get_assistance(
        session, document, AssistanceRequest(text="Which tables do I have?", conversation_id="c")
    )
    await assistant.aclose()

    assert response.reply == "You have Projects, Orders and T1."
    assert len(completions.calls) == 2
    assert completions.calls[1]["messages"][-1]["role"] == "tool"
    assert completions.calls[0]["model"] == "gpt-4o-2024-08-06"
    assert fake.closed is True

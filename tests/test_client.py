"""Tests for the OpenAI-compatible completion client."""

from __future__ import annotations

from typing import Any

import openai
import pytest
from openai import NOT_GIVEN

from cellsmith.ai.client import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    RESPONSE_FORMAT,
    ClientSettings,
    CompletionClient,
    parse_reply,
)
from cellsmith.ai.errors import (
    AuthenticationFailedError,
    InvalidResponseError,
    NonRetryableError,
    QuotaExceededError,
    RetryableError,
    TokensExceededFirstMessageError,
    TokensExceededLaterMessageError,
)
from cellsmith.ai.orchestration.types import (
    AssistantMessage,
    CompletionResult,
    SystemMessage,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)
from tests.helpers import (
    RecordingSleep,
    envelope,
    make_connection_error,
    make_openai,
    make_response,
    make_status_error,
)

FIRST_TURN = [SystemMessage(content="You are helpful."), UserMessage(content="hello")]
LATER_TURN = [
    SystemMessage(content="You are helpful."),
    UserMessage(content="hello"),
    AssistantMessage(content=envelope("Hi!")),
    UserMessage(content="add a table"),
]
TOOLS: list[dict[str, Any]] = [
    {"type": "function", "function": {"name": "get_tables", "description": "", "parameters": {"type": "object"}}}
]


def _client(script: list[Any], **overrides: Any) -> tuple[CompletionClient, Any, RecordingSleep]:
    options: dict[str, Any] = {"api_key": "sk-test", "model": "gpt-primary"}
    options.update(overrides)
    fake, completions = make_openai(script)
    sleep = RecordingSleep()
    return CompletionClient(ClientSettings(**options), client=fake, sleep=sleep), completions, sleep


# =============================================================================
# Settings
# =============================================================================


def test_settings_require_key_for_default_endpoint() -> None:
    with pytest.raises(ValueError):
        ClientSettings()


def test_settings_default_model_on_default_endpoint() -> None:
    settings = ClientSettings(api_key="sk-test")
    assert settings.model == DEFAULT_MODEL
    assert settings.custom_endpoint is False


def test_settings_custom_endpoint_needs_no_key_or_model() -> None:
    settings = ClientSettings(base_url="http://localhost:8080/v1")
    assert settings.custom_endpoint is True
    assert settings.model is None


def test_settings_empty_base_url_means_default() -> None:
    settings = ClientSettings(api_key="sk-test", base_url="")
    assert settings.base_url == DEFAULT_BASE_URL


@pytest.mark.parametrize("overrides", [{"max_attempts": 0}, {"retry_delay_seconds": -1.0}])
def test_settings_reject_invalid_retry_options(overrides: dict[str, Any]) -> None:
    with pytest.raises(ValueError):
        ClientSettings(api_key="sk-test", **overrides)


# =============================================================================
# Requests
# =============================================================================


@pytest.mark.asyncio
async def test_complete_sends_deterministic_structured_request() -> None:
    client, completions, _ = _client([make_response(envelope("Hi"))], max_tokens=512)

    result = await client.complete(FIRST_TURN, TOOLS, user="hashed-user")

    payload = completions.calls[0]
    assert payload["model"] == "gpt-primary"
    assert payload["temperature"] == 0
    assert payload["response_format"] == RESPONSE_FORMAT
    assert payload["tools"] == TOOLS
    assert payload["user"] == "hashed-user"
    assert payload["max_tokens"] == 512
    assert payload["messages"] == [
        {"role": "system", "content": "You are helpful."},
        {"role": "user", "content": "hello"},
    ]
    assert result.finish_reason == "stop"
    assert result.reply_text == envelope("Hi")
    assert result.messages[:2] == tuple(FIRST_TURN)
    assert result.messages[-1] == AssistantMessage(content=envelope("Hi"))
    assert result.model == "gpt-test"


@pytest.mark.asyncio
async def test_complete_omits_unset_options() -> None:
    fake, completions = make_openai([make_response(envelope("Hi"))])
    client = CompletionClient(ClientSettings(base_url="http://localhost:8080/v1"), client=fake)

    await client.complete(FIRST_TURN, [])

    payload = completions.calls[0]
    assert payload["model"] is NOT_GIVEN
    for key in ("tools", "user", "max_tokens"):
        assert key not in payload


@pytest.mark.asyncio
async def test_complete_history_includes_tool_messages() -> None:
    client, completions, _ = _client([make_response(envelope("Done"))])
    call = ToolCallRequest(id="call_1", name="get_tables", arguments="{}")
    history = [
        *FIRST_TURN,
        AssistantMessage(tool_calls=(call,)),
        ToolMessage(tool_call_id="call_1", content='{"ok": true, "result": {"tables": []}}'),
    ]

    await client.complete(history, TOOLS)

    sent = completions.calls[0]["messages"]
    assert sent[2]["tool_calls"][0] == {
        "id": "call_1",
        "type": "function",
        "function": {"name": "get_tables", "arguments": "{}"},
    }
    assert sent[3] == {"role": "tool", "tool_call_id": "call_1", "content": '{"ok": true, "result": {"tables": []}}'}


@pytest.mark.asyncio
async def test_complete_normalizes_tool_calls() -> None:
    response = make_response(
        tool_calls=[("call_1", "get_tables", ""), ("call_2", "get_pages", "{}")],
        finish_reason="stop",
    )
    client, _, _ = _client([response])

    result = await client.complete(FIRST_TURN, TOOLS)

    assert result.finish_reason == "tool_calls"
    assert result.tool_calls == (
        ToolCallRequest(id="call_1", name="get_tables", arguments="{}"),
        ToolCallRequest(id="call_2", name="get_pages", arguments="{}"),
    )
    assert result.messages[-1].tool_calls == result.tool_calls


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    client, _, _ = _client([])
    await client.aclose()
    assert client._client.closed is True


# =============================================================================
# Retries
# =============================================================================


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_fixed_delay() -> None:
    client, completions, sleep = _client(
        [
            make_connection_error(),
            make_status_error(openai.InternalServerError, 500),
            make_response(envelope("ok")),
        ]
    )

    result = await client.complete(FIRST_TURN, TOOLS)

    assert result.reply_text == envelope("ok")
    assert len(completions.calls) == 3
    assert sleep.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_exhausted_retries_raise_retryable_error() -> None:
    client, completions, sleep = _client([make_connection_error() for _ in range(3)])

    with pytest.raises(RetryableError) as excinfo:
        await client.complete(FIRST_TURN, TOOLS)

    assert excinfo.value.retryable is True
    assert isinstance(excinfo.value.__cause__, openai.APIConnectionError)
    assert len(completions.calls) == 3
    assert sleep.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_retry_options_come_from_settings() -> None:
    client, completions, sleep = _client(
        [make_connection_error(), make_connection_error()],
        max_attempts=2,
        retry_delay_seconds=0.25,
    )

    with pytest.raises(RetryableError):
        await client.complete(FIRST_TURN, TOOLS)

    assert len(completions.calls) == 2
    assert sleep.delays == [0.25]


@pytest.mark.asyncio
async def test_tool_calls_finish_without_calls_is_retried() -> None:
    client, completions, _ = _client(
        [
            make_response(None, finish_reason="tool_calls"),
            make_response(envelope("recovered")),
        ]
    )

    result = await client.complete(FIRST_TURN, TOOLS)

    assert result.finish_reason == "stop"
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_quota_errors_are_not_retried() -> None:
    client, completions, sleep = _client(
        [make_status_error(openai.RateLimitError, 429, "insufficient_quota")]
    )

    with pytest.raises(QuotaExceededError) as excinfo:
        await client.complete(FIRST_TURN, TOOLS)

    assert isinstance(excinfo.value, NonRetryableError)
    assert excinfo.value.retryable is False
    assert len(completions.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limits_without_quota_code_are_retried() -> None:
    client, completions, _ = _client(
        [make_status_error(openai.RateLimitError, 429, "rate_limit_exceeded"), make_response(envelope("ok"))]
    )

    await client.complete(FIRST_TURN, TOOLS)

    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_authentication_errors_are_not_retried() -> None:
    client, completions, _ = _client([make_status_error(openai.AuthenticationError, 401, "invalid_api_key")])

    with pytest.raises(AuthenticationFailedError):
        await client.complete(FIRST_TURN, TOOLS)

    assert len(completions.calls) == 1


# =============================================================================
# Context length
# =============================================================================


def _context_error() -> openai.APIStatusError:
    return make_status_error(openai.BadRequestError, 400, "context_length_exceeded", "too many tokens")


@pytest.mark.asyncio
async def test_context_error_falls_back_to_longer_model() -> None:
    client, completions, sleep = _client(
        [_context_error(), make_response(envelope("done"), model="gpt-long")],
        longer_context_model="gpt-long",
    )

    result = await client.complete(FIRST_TURN, TOOLS)

    assert len(completions.calls) == 2
    assert [call["model"] for call in completions.calls] == ["gpt-primary", "gpt-long"]
    assert result.model == "gpt-long"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_context_error_on_first_message() -> None:
    client, completions, _ = _client([_context_error()])

    with pytest.raises(TokensExceededFirstMessageError):
        await client.complete(FIRST_TURN, TOOLS)

    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_context_error_on_later_message() -> None:
    client, _, _ = _client([_context_error()])

    with pytest.raises(TokensExceededLaterMessageError):
        await client.complete(LATER_TURN, TOOLS)


@pytest.mark.asyncio
async def test_fallback_model_is_tried_only_once() -> None:
    client, completions, _ = _client(
        [_context_error(), _context_error()],
        longer_context_model="gpt-long",
    )

    with pytest.raises(TokensExceededLaterMessageError):
        await client.complete(LATER_TURN, TOOLS)

    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_length_finish_reason_is_a_context_error() -> None:
    client, completions, _ = _client([make_response("{\"response_te", finish_reason="length")])

    with pytest.raises(TokensExceededFirstMessageError):
        await client.complete(FIRST_TURN, TOOLS)

    assert len(completions.calls) == 1


# =============================================================================
# Reply parsing
# =============================================================================


def _final(content: str | None, refusal: str | None = None) -> CompletionResult:
    return CompletionResult(reply_text=content, finish_reason="stop", refusal=refusal)


def test_parse_reply_reads_envelope() -> None:
    assert parse_reply(_final(envelope("Shall I add it?", True))) == ("Shall I add it?", True)


def test_parse_reply_ignores_duplicated_payload() -> None:
    content = envelope("Only once") + "\n" + envelope("Only once")
    assert parse_reply(_final(content)) == ("Only once", False)


def test_parse_reply_prefers_refusal() -> None:
    assert parse_reply(_final(None, refusal="I can't help with that.")) == ("I can't help with that.", False)


def test_parse_reply_accepts_free_text() -> None:
    assert parse_reply(_final("  There are 3 tables.  ")) == ("There are 3 tables.", False)


@pytest.mark.parametrize(
    "content",
    [None, "", "   ", "{not json", '{"confirmation_required": true}', '{"response_text": 5}'],
)
def test_parse_reply_rejects_unusable_content(content: str | None) -> None:
    with pytest.raises(InvalidResponseError):
        parse_reply(_final(content))

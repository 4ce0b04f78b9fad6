"""Shared test helpers and stub classes.

Fakes for the chat-completions endpoint, the completion backend used by
the conversation loop, and the telemetry sink. Import from here instead
of duplicating these classes in individual test files.
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Iterable, Mapping, Sequence, cast

import httpx
import openai
from openai import AsyncOpenAI

from cellsmith.ai.orchestration.types import (
    AssistantMessage,
    CompletionResult,
    Message,
    ToolCallRequest,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


# -----------------------------------------------------------------------------
# Chat completions endpoint
# -----------------------------------------------------------------------------


def envelope(text: str, confirmation_required: bool = False) -> str:
    """Structured reply content as the endpoint returns it."""
    return json.dumps({"response_text": text, "confirmation_required": confirmation_required})


def make_response(
    content: str | None = None,
    *,
    tool_calls: Sequence[tuple[str, str, str]] = (),
    finish_reason: str | None = None,
    refusal: str | None = None,
    model: str = "gpt-test",
) -> SimpleNamespace:
    """Build an object shaped like ``ChatCompletion``.

    ``tool_calls`` items are ``(id, name, arguments)`` triples.
    """
    calls = [
        SimpleNamespace(
            id=call_id,
            type="function",
            function=SimpleNamespace(name=name, arguments=arguments),
        )
        for call_id, name, arguments in tool_calls
    ]
    if finish_reason is None:
        finish_reason = "tool_calls" if calls else "stop"
    message = SimpleNamespace(content=content, tool_calls=calls or None, refusal=refusal)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        model=model,
    )


def make_status_error(
    cls: type[openai.APIStatusError],
    status_code: int,
    code: str | None = None,
    message: str = "request failed",
) -> openai.APIStatusError:
    body = {"error": {"message": message, "type": "invalid_request_error", "code": code}}
    response = httpx.Response(status_code, request=_REQUEST, json=body)
    return cls(message, response=response, body=body["error"])


def make_connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=_REQUEST)


class FakeCompletions:
    """Replays scripted responses; exceptions in the script are raised."""

    def __init__(self, script: Iterable[Any]) -> None:
        self._script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if not self._script:
            raise AssertionError("FakeCompletions script exhausted")
        outcome = self._script.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeOpenAI(SimpleNamespace):
    closed: bool = False

    async def close(self) -> None:
        self.closed = True


def make_openai(script: Iterable[Any]) -> tuple[AsyncOpenAI, FakeCompletions]:
    completions = FakeCompletions(script)
    fake = FakeOpenAI(chat=SimpleNamespace(completions=completions))
    return cast(AsyncOpenAI, fake), completions


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# -----------------------------------------------------------------------------
# Completion backend
# -----------------------------------------------------------------------------


def tool_call(call_id: str, name: str, arguments: Mapping[str, Any] | str = "{}") -> ToolCallRequest:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ToolCallRequest(id=call_id, name=name, arguments=raw)


class ScriptedBackend:
    """Completion backend for the conversation loop.

    Each script step is a list of :class:`ToolCallRequest` (the model asks
    for tools), a string (final content), or an exception to raise.
    """

    def __init__(self, script: Iterable[Any], *, model: str = "gpt-test") -> None:
        self._script = list(script)
        self._model = model
        self.calls: list[list[Message]] = []
        self.tools: list[list[Mapping[str, Any]]] = []
        self.users: list[str | None] = []

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        user: str | None = None,
    ) -> CompletionResult:
        self.calls.append(list(messages))
        self.tools.append(list(tools))
        self.users.append(user)
        if not self._script:
            raise AssertionError("ScriptedBackend script exhausted")
        step = self._script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, str):
            reply = AssistantMessage(content=step)
            return CompletionResult(
                reply_text=step,
                finish_reason="stop",
                messages=(*messages, reply),
                model=self._model,
            )
        calls = tuple(step)
        request = AssistantMessage(tool_calls=calls)
        return CompletionResult(
            reply_text=None,
            finish_reason="tool_calls",
            tool_calls=calls,
            messages=(*messages, request),
            model=self._model,
        )


class LoopingBackend(ScriptedBackend):
    """Asks for the same tool on every completion, forever."""

    def __init__(self, call: ToolCallRequest) -> None:
        super().__init__([])
        self._call = call

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        user: str | None = None,
    ) -> CompletionResult:
        self._script.append([self._call])
        return await super().complete(messages, tools, user=user)


class RecordingTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, payload: Mapping[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def named(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]

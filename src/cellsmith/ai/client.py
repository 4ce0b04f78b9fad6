"""Completion client for OpenAI-compatible chat endpoints.

Sends the conversation plus the tool catalog, retries transient failures
with a fixed delay, and falls back to a longer-context model when the
conversation outgrows the primary one.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

import httpx
from openai import (
    NOT_GIVEN,
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    PermissionDeniedError,
)
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .errors import (
    AuthenticationFailedError,
    InvalidResponseError,
    NonRetryableError,
    QuotaExceededError,
    RetryableError,
    TokensExceededError,
    TokensExceededFirstMessageError,
    TokensExceededLaterMessageError,
)
from .orchestration.types import (
    AssistantMessage,
    CompletionResult,
    FinishReason,
    Message,
    ToolCallRequest,
    history_to_chat_params,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-2024-08-06"

CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
INSUFFICIENT_QUOTA = "insufficient_quota"

# Conversations this short are still on their first user message.
_FIRST_MESSAGE_LIMIT = 2

RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "response",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "response_text": {"type": "string"},
                "confirmation_required": {"type": "boolean"},
            },
            "required": ["response_text", "confirmation_required"],
            "additionalProperties": False,
        },
    },
}

SleepFn = Callable[[float], Awaitable[None]]


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ClientSettings:
    """Connection and retry options for :class:`CompletionClient`.

    Attributes:
        api_key: Key sent as a bearer token. Optional for custom endpoints.
        base_url: Root of the OpenAI-compatible API.
        model: Primary model. Defaults to ``DEFAULT_MODEL`` on the default endpoint.
        longer_context_model: Model tried once when the primary runs out of context.
        max_tokens: Completion token ceiling, if any.
        request_timeout: HTTP timeout in seconds.
        max_attempts: Attempts per model before giving up on transient failures.
        retry_delay_seconds: Fixed wait between attempts.
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str | None = None
    longer_context_model: str | None = None
    max_tokens: int | None = None
    request_timeout: float | None = 90.0
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0
    organization: str | None = None
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    def __post_init__(self) -> None:
        if not self.base_url:
            object.__setattr__(self, "base_url", DEFAULT_BASE_URL)
        if not self.api_key and not self.custom_endpoint:
            raise ValueError("An API key is required unless a custom base_url is configured")
        if not self.custom_endpoint and not self.model:
            object.__setattr__(self, "model", DEFAULT_MODEL)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must not be negative")

    @property
    def custom_endpoint(self) -> bool:
        return self.base_url.rstrip("/") != DEFAULT_BASE_URL


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class _MalformedCompletionError(Exception):
    """The endpoint answered, but not with a usable completion."""


class CompletionClient:
    """Requests chat completions with retry and model fallback.

    Args:
        settings: Connection and retry options.
        client: Pre-built ``AsyncOpenAI`` instance, mostly for tests.
        sleep: Coroutine used to wait between attempts.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._sleep = sleep or asyncio.sleep

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        user: str | None = None,
    ) -> CompletionResult:
        """Request one completion for ``messages``.

        The primary model is tried first. If the conversation exceeds its
        context window and a longer-context model is configured, the request
        is repeated once against that model.

        Raises:
            TokensExceededError: If every candidate model ran out of context.
            QuotaExceededError: If the provider reports an exhausted quota.
            AuthenticationFailedError: If the provider rejects the credentials.
            RetryableError: If transient failures outlasted every attempt.
        """
        models = self._candidate_models()
        for model, next_model in zip(models, models[1:]):
            try:
                return await self._complete_with_retries(messages, tools, model=model, user=user)
            except TokensExceededError:
                LOGGER.info("Context length exceeded on %s; retrying with %s", model, next_model)
        return await self._complete_with_retries(messages, tools, model=models[-1], user=user)

    async def aclose(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _candidate_models(self) -> list[str | None]:
        models: list[str | None] = [self._settings.model]
        if self._settings.longer_context_model:
            models.append(self._settings.longer_context_model)
        return models

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key or "",
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_fixed(self._settings.retry_delay_seconds),
            retry=retry_if_not_exception_type(NonRetryableError),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            sleep=self._sleep,
        )

    async def _complete_with_retries(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        model: str | None,
        user: str | None,
    ) -> CompletionResult:
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await self._complete_once(messages, tools, model=model, user=user)
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            LOGGER.warning("Completion failed after %d attempt(s): %s", self._settings.max_attempts, cause)
            raise RetryableError(f"Completion failed after retries: {cause}") from cause
        raise RetryableError("Completion failed without a response")

    async def _complete_once(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        model: str | None,
        user: str | None,
    ) -> CompletionResult:
        payload = self._build_payload(messages, tools, model=model, user=user)
        LOGGER.debug("Requesting completion via %s with %d message(s)", model or "<endpoint default>", len(messages))
        if self._settings.debug_logging:
            self._log_payload(payload)

        try:
            response = await self._client.chat.completions.create(**payload)
        except APIStatusError as exc:
            mapped = self._map_status_error(exc, messages)
            if mapped is None:
                raise
            raise mapped from exc
        except (APIConnectionError, httpx.TimeoutException) as exc:
            LOGGER.debug("Completion transport error: %s", exc)
            raise

        return self._normalize_response(response, messages, model=model)

    def _build_payload(
        self,
        messages: Sequence[Message],
        tools: Sequence[Mapping[str, Any]],
        *,
        model: str | None,
        user: str | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model if model else NOT_GIVEN,
            "messages": history_to_chat_params(messages),
            "temperature": 0,
            "response_format": RESPONSE_FORMAT,
        }
        if tools:
            payload["tools"] = list(tools)
        if user:
            payload["user"] = user
        if self._settings.max_tokens:
            payload["max_tokens"] = self._settings.max_tokens
        return payload

    def _map_status_error(self, exc: APIStatusError, messages: Sequence[Message]) -> NonRetryableError | None:
        """Translate provider errors that must not be retried; ``None`` leaves ``exc`` retryable."""
        code = getattr(exc, "code", None)
        if code == CONTEXT_LENGTH_EXCEEDED:
            LOGGER.warning("Context length exceeded: %s", exc.message)
            return self._tokens_exceeded(messages)
        if code == INSUFFICIENT_QUOTA:
            LOGGER.error("Completion provider quota exceeded")
            return QuotaExceededError()
        if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
            LOGGER.error("Completion provider rejected credentials (status %s)", exc.status_code)
            return AuthenticationFailedError()
        return None

    @staticmethod
    def _tokens_exceeded(messages: Sequence[Message]) -> TokensExceededError:
        if len(messages) <= _FIRST_MESSAGE_LIMIT:
            return TokensExceededFirstMessageError()
        return TokensExceededLaterMessageError()

    def _normalize_response(
        self,
        response: Any,
        messages: Sequence[Message],
        *,
        model: str | None,
    ) -> CompletionResult:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise _MalformedCompletionError("Completion response has no choices")
        choice = choices[0]
        message = choice.message
        raw_finish = getattr(choice, "finish_reason", None)

        if raw_finish == "length":
            LOGGER.warning("Completion stopped at the length limit")
            raise self._tokens_exceeded(messages)

        tool_calls = tuple(
            ToolCallRequest(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in (getattr(message, "tool_calls", None) or ())
        )
        finish_reason: FinishReason
        if tool_calls:
            finish_reason = "tool_calls"
        elif raw_finish == "tool_calls":
            raise _MalformedCompletionError("finish_reason is tool_calls but no tool calls were returned")
        else:
            finish_reason = "stop"

        content = getattr(message, "content", None)
        refusal = getattr(message, "refusal", None)
        assistant_message = AssistantMessage(content=content, tool_calls=tool_calls, refusal=refusal)
        return CompletionResult(
            reply_text=content,
            finish_reason=finish_reason,
            tool_calls=tool_calls,
            messages=(*messages, assistant_message),
            refusal=refusal,
            model=getattr(response, "model", None) or model,
        )

    def _log_payload(self, payload: Mapping[str, Any]) -> None:
        loggable = {key: value for key, value in payload.items() if value is not NOT_GIVEN}
        try:
            serialized = json.dumps(loggable, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Completion payload (unserializable): %s", loggable)
        else:
            LOGGER.debug("Completion payload:\n%s", serialized)


# -----------------------------------------------------------------------------
# Reply Parsing
# -----------------------------------------------------------------------------


def parse_reply(result: CompletionResult) -> tuple[str, bool]:
    """Extract ``(reply, confirmation_required)`` from a final completion.

    A refusal becomes the reply as-is. Otherwise the content is expected to
    be the ``{response_text, confirmation_required}`` envelope. Structured
    output occasionally repeats the payload after a newline, so only the
    first line is parsed. Content that is not a JSON object at all is taken
    as a free-text reply.

    Raises:
        InvalidResponseError: If the content is empty or a malformed envelope.
    """
    if result.refusal:
        return result.refusal, False

    content = result.reply_text
    if not isinstance(content, str) or not content.strip():
        raise InvalidResponseError("Expected non-empty content in the final response")

    first_line = content.strip().split("\n")[0].strip()
    if not first_line.startswith("{"):
        return content.strip(), False
    try:
        parsed = json.loads(first_line)
    except json.JSONDecodeError as exc:
        raise InvalidResponseError(f"Failed to parse response content as JSON: {first_line!r}") from exc

    if not isinstance(parsed, dict) or not isinstance(parsed.get("response_text"), str):
        raise InvalidResponseError("Response content is missing required field: response_text")
    return parsed["response_text"], bool(parsed.get("confirmation_required", False))


__all__ = [
    "CompletionClient",
    "ClientSettings",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
    "RESPONSE_FORMAT",
    "parse_reply",
]

"""Errors surfaced to the host by the assistant.

Unlike tool errors, which are reported back to the model, these abort the
conversation turn. Each carries a ``retryable`` flag so the host can tell
"please try again" apart from conditions that will not clear on retry.
"""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    "AssistantError",
    "NonRetryableError",
    "RetryableError",
    "QuotaExceededError",
    "AuthenticationFailedError",
    "TokensExceededError",
    "TokensExceededFirstMessageError",
    "TokensExceededLaterMessageError",
    "ToolCallLimitError",
    "InvalidResponseError",
]


class AssistantError(Exception):
    """Base class for errors that end a conversation turn."""

    retryable: ClassVar[bool] = False
    default_message: ClassVar[str] = "The assistant could not complete your request."

    def __init__(self, message: str | None = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class RetryableError(AssistantError):
    """A transient failure persisted through every retry attempt."""

    retryable: ClassVar[bool] = True
    default_message: ClassVar[str] = "The assistant is temporarily unavailable. Please try again."


class NonRetryableError(AssistantError):
    """A failure that retrying the same request will not fix."""


class QuotaExceededError(NonRetryableError):
    default_message: ClassVar[str] = (
        "Sorry, the assistant is unavailable right now. "
        "Try again in a few minutes, or contact the administrator if the problem persists."
    )


class AuthenticationFailedError(NonRetryableError):
    default_message: ClassVar[str] = (
        "The assistant is not configured correctly. Contact the administrator."
    )


class TokensExceededError(NonRetryableError):
    default_message: ClassVar[str] = "Sorry, the conversation is too long for the assistant."


class TokensExceededFirstMessageError(TokensExceededError):
    default_message: ClassVar[str] = (
        "Sorry, there's too much information for the assistant to handle. "
        "Try removing some tables or columns from the document."
    )


class TokensExceededLaterMessageError(TokensExceededError):
    default_message: ClassVar[str] = (
        "Sorry, there's too much information for the assistant to handle. "
        "Try starting a new conversation."
    )


class ToolCallLimitError(NonRetryableError):
    """The model kept requesting tools past the configured ceiling."""

    default_message: ClassVar[str] = "There was a problem fulfilling your request. Please try again."


class InvalidResponseError(NonRetryableError):
    """The final completion could not be turned into a reply."""

    default_message: ClassVar[str] = "The assistant returned a response that could not be understood."

"""Tool dispatcher for the conversation loop.

Turns one model-emitted tool call (name plus raw JSON arguments) into a
:class:`ToolCallResult`. Dispatch never raises: malformed arguments, an
unknown tool name, schema violations and failures inside the tool are
all reported as a :class:`ToolFailure` the model can read and recover
from.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Mapping

from ...document.store import DocumentStore
from ..tools.base import ToolCallResult, ToolContext, ToolFailure, ToolSuccess
from ..tools.errors import InvalidArgumentsError, ToolError
from ..tools.tool_registry import ToolRegistry

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Argument Parsing
# -----------------------------------------------------------------------------


def parse_arguments(raw_args: str | Mapping[str, Any] | None) -> dict[str, Any]:
    """Decode a raw argument payload into a JSON object.

    An empty payload means no arguments.

    Raises:
        InvalidArgumentsError: If the payload is not valid JSON or not an object.
    """
    if raw_args is None:
        return {}
    if isinstance(raw_args, Mapping):
        return dict(raw_args)
    text = raw_args.strip()
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidArgumentsError(
            message=f"Arguments are not valid JSON: {exc.msg} at position {exc.pos}",
            suggestion="Send the arguments as a single JSON object",
        ) from exc
    if not isinstance(decoded, dict):
        raise InvalidArgumentsError(
            message=f"Arguments must be a JSON object, got {type(decoded).__name__}",
            suggestion="Send the arguments as a single JSON object",
        )
    return decoded


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Routes tool calls to registered implementations.

    Example:
        dispatcher = ToolDispatcher(create_tool_registry())
        result = await dispatcher.dispatch(session, document, "get_tables", "{}")
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Tool definitions to advertise to the model."""
        return self._registry.to_openai_tools()

    async def dispatch(
        self,
        session: Any,
        document: DocumentStore,
        tool_name: str,
        raw_args: str | Mapping[str, Any] | None,
    ) -> ToolCallResult:
        """Dispatch one tool call.

        Args:
            session: Caller session, forwarded to the document store.
            document: The live document.
            tool_name: Name requested by the model.
            raw_args: JSON-encoded arguments as emitted by the model.

        Returns:
            ToolSuccess with the tool's result, or ToolFailure describing the error.
        """
        start_time = time.perf_counter()
        try:
            registration = self._registry.get(tool_name)
            params = self._registry.validate_arguments(tool_name, parse_arguments(raw_args))
        except ToolError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000.0
            LOGGER.info("Rejected tool call %s: %s", tool_name, exc.message)
            return ToolFailure(error=exc, duration_ms=duration_ms)

        context = ToolContext(session=session, document=document, tool_name=tool_name)
        LOGGER.debug("Dispatching tool %s", tool_name)
        result = await registration.impl.run(context, params)

        if isinstance(result, ToolSuccess):
            LOGGER.debug(
                "Tool %s completed in %.1fms (%d action batch(es) applied)",
                tool_name,
                result.duration_ms,
                len(result.applied_actions),
            )
        else:
            LOGGER.info("Tool %s failed: %s", tool_name, result.error.message)
        return result


__all__ = ["ToolDispatcher", "parse_arguments"]

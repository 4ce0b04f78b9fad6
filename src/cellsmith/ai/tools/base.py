"""Base classes for assistant tools.

Each tool is a small class declaring its name, family, parameter schema
and whether it writes to the document. ``run()`` wraps the tool's logic
with timing and error handling so a failing tool always produces a
:class:`ToolFailure` instead of raising.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Sequence, Union

from ...document.actions import UserAction
from ...document.model import ApplyResult, DocumentMetadata, TableMeta
from ...document.store import DocumentStore, SandboxError
from .errors import DocumentActionError, ErrorCode, TableNotFoundError, ToolError, describe_sandbox_error
from .tool_registry import ParameterSchema, ToolCategory, ToolName, ToolSchema

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


def _json_default(value: Any) -> Any:
    if isinstance(value, ApplyResult):
        return value.to_dict()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


@dataclass(slots=True, frozen=True)
class ToolSuccess:
    """A tool ran to completion.

    Attributes:
        result: JSON-serializable payload returned to the model.
        is_mutation: Whether the tool is classified as writing to the document.
        applied_actions: Store results for every action batch the tool applied.
        duration_ms: Execution time in milliseconds.
    """

    result: Any
    is_mutation: bool = False
    applied_actions: tuple[ApplyResult, ...] = ()
    duration_ms: float = 0.0

    ok: ClassVar[bool] = True

    def to_message_content(self) -> str:
        return json.dumps({"ok": True, "result": self.result}, default=_json_default)


@dataclass(slots=True, frozen=True)
class ToolFailure:
    """A tool could not run; ``error`` is reported to the model.

    ``applied_actions`` holds batches the tool applied before it failed.
    """

    error: ToolError
    applied_actions: tuple[ApplyResult, ...] = ()
    duration_ms: float = 0.0

    ok: ClassVar[bool] = False

    def to_message_content(self) -> str:
        return json.dumps({"ok": False, "error": self.error.to_model_text()})


ToolCallResult = Union[ToolSuccess, ToolFailure]


# -----------------------------------------------------------------------------
# Context
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolContext:
    """Runtime context handed to a tool for one invocation.

    Attributes:
        session: Opaque caller session, forwarded to the store.
        document: The live document.
        tool_name: Name of the running tool, used in action descriptions.
        applied: Results of every action batch applied so far.
    """

    session: Any
    document: DocumentStore
    tool_name: str = ""
    applied: list[ApplyResult] = field(default_factory=list)

    async def metadata(self) -> DocumentMetadata:
        return await self.document.fetch_metadata(self.session)

    async def require_table(self, table_id: str) -> tuple[DocumentMetadata, TableMeta]:
        """Fetch metadata and resolve ``table_id`` or raise :class:`TableNotFoundError`."""
        meta = await self.metadata()
        table = meta.table_by_id(table_id)
        if table is None:
            raise TableNotFoundError.for_table(table_id)
        return meta, table

    async def apply(
        self,
        actions: Sequence[UserAction],
        *,
        parse_strings: bool = False,
        table_id: str | None = None,
        column_ids: Sequence[str] = (),
    ) -> ApplyResult:
        """Apply ``actions`` in one transaction and record the result.

        Args:
            actions: Document actions to apply together.
            parse_strings: Ask the store to parse string cell values by column type.
            table_id: Table the actions target, used to explain store errors.
            column_ids: Columns the actions touch, used to explain store errors.

        Raises:
            DocumentActionError: If the store rejects the batch.
        """
        try:
            result = await self.document.apply_user_actions(
                self.session,
                actions,
                desc=f"Called by assistant (tool: {self.tool_name})",
                parse_strings=parse_strings,
            )
        except SandboxError as exc:
            raise DocumentActionError(
                message=describe_sandbox_error(str(exc), table_id=table_id, column_ids=column_ids),
                details={"actions": [action[0] for action in actions]},
            ) from exc
        self.applied.append(result)
        return result


# -----------------------------------------------------------------------------
# Tool Base Classes
# -----------------------------------------------------------------------------


class BaseTool(ABC):
    """Abstract base class for all assistant tools.

    Subclasses declare:
    - ``name``: member of :class:`ToolName`
    - ``description``: text shown to the model
    - ``parameters``: top-level parameter schemas
    - ``category``: tool family
    """

    name: ClassVar[ToolName]
    description: ClassVar[str] = ""
    parameters: ClassVar[tuple[ParameterSchema, ...]] = ()
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    writes_document: ClassVar[bool] = False
    strict: ClassVar[bool] = False

    @classmethod
    def schema(cls) -> ToolSchema:
        return ToolSchema(
            name=cls.name.value,
            description=cls.description,
            parameters=list(cls.parameters),
            category=cls.category,
            writes_document=cls.writes_document,
            strict=cls.strict,
        )

    async def run(self, context: ToolContext, params: Mapping[str, Any]) -> ToolCallResult:
        """Execute the tool with standardized error handling.

        Args:
            context: Runtime context including the document and session.
            params: Validated tool parameters.

        Returns:
            ToolSuccess with the result, or ToolFailure with the error.
        """
        start_time = time.perf_counter()
        try:
            result = await self.execute(context, dict(params))
        except ToolError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000.0
            return ToolFailure(error=exc, applied_actions=tuple(context.applied), duration_ms=duration_ms)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000.0
            LOGGER.exception("Tool %s failed unexpectedly", self.name.value)
            error = ToolError(error_code=ErrorCode.INTERNAL_ERROR, message=f"Internal error: {exc}")
            return ToolFailure(error=error, applied_actions=tuple(context.applied), duration_ms=duration_ms)

        duration_ms = (time.perf_counter() - start_time) * 1000.0
        return ToolSuccess(
            result=result,
            is_mutation=self.writes_document,
            applied_actions=tuple(context.applied),
            duration_ms=duration_ms,
        )

    @abstractmethod
    async def execute(self, context: ToolContext, params: dict[str, Any]) -> Any:
        """Run the tool's logic and return a JSON-serializable result.

        Raises:
            ToolError: For expected error conditions.
        """
        ...


class ReadOnlyTool(BaseTool):
    """Base class for tools that only read the document."""

    writes_document: ClassVar[bool] = False

    async def execute(self, context: ToolContext, params: dict[str, Any]) -> Any:
        return await self.read(context, params)

    @abstractmethod
    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        ...


class WriteTool(BaseTool):
    """Base class for tools that change the document.

    Writes go through :meth:`ToolContext.apply` so the applied actions are
    captured for audit and undo.
    """

    writes_document: ClassVar[bool] = True

    async def execute(self, context: ToolContext, params: dict[str, Any]) -> Any:
        return await self.write(context, params)

    @abstractmethod
    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        ...


__all__ = [
    "BaseTool",
    "ReadOnlyTool",
    "ToolCallResult",
    "ToolContext",
    "ToolFailure",
    "ToolSuccess",
    "WriteTool",
]

"""Error types raised by assistant tools.

Every error here is reported back to the model as a tool result, never
raised to the end user, so messages are written for the model to act on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Sequence


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    # Argument errors
    INVALID_ARGUMENTS = "invalid_arguments"
    UNKNOWN_TOOL = "unknown_tool"
    MISSING_REFERENCE_TARGET = "missing_reference_target"
    UNSUPPORTED_OPTION = "unsupported_option"

    # Lookup errors
    TABLE_NOT_FOUND = "table_not_found"
    COLUMN_NOT_FOUND = "column_not_found"
    PAGE_NOT_FOUND = "page_not_found"
    WIDGET_NOT_FOUND = "widget_not_found"

    # Document errors
    DOCUMENT_ACTION_FAILED = "document_action_failed"
    QUERY_FAILED = "query_failed"

    # General errors
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for structured logging."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def to_model_text(self) -> str:
        """Text reported to the model in the tool message."""
        if self.suggestion:
            return f"{self.message}. {self.suggestion}"
        return self.message

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Argument Errors
# -----------------------------------------------------------------------------

@dataclass
class InvalidArgumentsError(ToolError):
    """Arguments failed to parse or did not match the tool's parameter schema."""

    error_code: str = field(default=ErrorCode.INVALID_ARGUMENTS)
    message: str = field(default="Invalid arguments")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    path: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.path:
            result["path"] = self.path
        return result


@dataclass
class UnknownToolError(ToolError):
    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    tool_name: str | None = field(default=None)


@dataclass
class MissingReferenceTargetError(ToolError):
    """A reference column has no target table, neither given nor previously set."""

    error_code: str = field(default=ErrorCode.MISSING_REFERENCE_TARGET)
    message: str = field(default="reference_table_id parameter is required")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


@dataclass
class UnsupportedOptionError(ToolError):
    error_code: str = field(default=ErrorCode.UNSUPPORTED_OPTION)
    message: str = field(default="Unsupported option")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


# -----------------------------------------------------------------------------
# Lookup Errors
# -----------------------------------------------------------------------------

@dataclass
class TableNotFoundError(ToolError):
    error_code: str = field(default=ErrorCode.TABLE_NOT_FOUND)
    message: str = field(default="Table not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call get_tables to list valid table IDs")

    table_id: str | None = field(default=None)

    @classmethod
    def for_table(cls, table_id: str) -> "TableNotFoundError":
        return cls(message=f'Table not found "{table_id}"', table_id=table_id)


@dataclass
class ColumnNotFoundError(ToolError):
    error_code: str = field(default=ErrorCode.COLUMN_NOT_FOUND)
    message: str = field(default="Column not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call get_table_columns to list valid column IDs")

    table_id: str | None = field(default=None)
    column_id: str | None = field(default=None)

    @classmethod
    def for_column(cls, table_id: str, column_id: str) -> "ColumnNotFoundError":
        return cls(
            message=f'Column "{column_id}" not found in table "{table_id}"',
            table_id=table_id,
            column_id=column_id,
        )


@dataclass
class PageNotFoundError(ToolError):
    error_code: str = field(default=ErrorCode.PAGE_NOT_FOUND)
    message: str = field(default="Page not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call get_pages to list valid page IDs")

    page_id: int | None = field(default=None)


@dataclass
class WidgetNotFoundError(ToolError):
    error_code: str = field(default=ErrorCode.WIDGET_NOT_FOUND)
    message: str = field(default="Widget not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call get_page_widgets to list valid widget IDs")

    widget_id: int | None = field(default=None)


# -----------------------------------------------------------------------------
# Document Errors
# -----------------------------------------------------------------------------

@dataclass
class DocumentActionError(ToolError):
    """The document store rejected an action."""

    error_code: str = field(default=ErrorCode.DOCUMENT_ACTION_FAILED)
    message: str = field(default="The document rejected the change")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


@dataclass
class QueryError(ToolError):
    error_code: str = field(default=ErrorCode.QUERY_FAILED)
    message: str = field(default="Query failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")


_KEY_ERROR = re.compile(r"\[Sandbox\] KeyError u?'(.*?)'")


def describe_sandbox_error(
    raw_message: str,
    *,
    table_id: str | None = None,
    column_ids: Sequence[str] = (),
) -> str:
    """Rewrite a store ``KeyError`` into something the model can act on.

    >>> describe_sandbox_error("[Sandbox] KeyError 'Amt'", table_id="T1", column_ids=["Amt"])
    'Invalid column "Amt"'
    """
    match = _KEY_ERROR.search(raw_message)
    if match:
        key = match.group(1)
        if table_id is not None and key == table_id:
            return f'Table not found "{key}"'
        if key in column_ids:
            return f'Invalid column "{key}"'
    return raw_message


__all__ = [
    "ColumnNotFoundError",
    "DocumentActionError",
    "ErrorCode",
    "InvalidArgumentsError",
    "MissingReferenceTargetError",
    "PageNotFoundError",
    "QueryError",
    "TableNotFoundError",
    "ToolError",
    "UnknownToolError",
    "UnsupportedOptionError",
    "WidgetNotFoundError",
    "describe_sandbox_error",
]

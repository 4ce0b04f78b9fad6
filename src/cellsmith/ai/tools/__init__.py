"""Registry of assistant tools."""

from . import (
    column_options,
    page_tools,
    query_document,
    record_tools,
    reference_help,
    table_tools,
)
from .base import ToolCallResult, ToolContext, ToolFailure, ToolSuccess
from .tool_registry import ToolCategory, ToolName, ToolRegistry
from .tool_wiring import create_tool_registry

__all__ = [
    "ToolCallResult",
    "ToolCategory",
    "ToolContext",
    "ToolFailure",
    "ToolName",
    "ToolRegistry",
    "ToolSuccess",
    "column_options",
    "create_tool_registry",
    "page_tools",
    "query_document",
    "record_tools",
    "reference_help",
    "table_tools",
]

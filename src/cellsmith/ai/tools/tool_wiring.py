"""Assemble the assistant's tool catalog.

``create_tool_registry()`` registers one instance of every tool class and
seals the registry, which fails unless every :class:`ToolName` is covered.
"""

from __future__ import annotations

import logging

from .base import BaseTool
from .page_tools import (
    AddPageWidgetTool,
    GetAvailableCustomWidgetsTool,
    GetPageWidgetSelectByOptionsTool,
    GetPageWidgetsTool,
    GetPagesTool,
    RemovePageTool,
    RemovePageWidgetTool,
    SetPageWidgetSelectByTool,
    UpdatePageTool,
    UpdatePageWidgetTool,
)
from .query_document import QueryDocumentTool
from .record_tools import AddRecordsTool, RemoveRecordsTool, UpdateRecordsTool
from .reference_help import GetAccessRulesReferenceTool
from .table_tools import (
    AddTableColumnTool,
    AddTableTool,
    GetTableColumnsTool,
    GetTablesTool,
    RemoveTableColumnTool,
    RemoveTableTool,
    RenameTableTool,
    UpdateTableColumnTool,
)
from .tool_registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

# Order here is the order tools are presented to the model.
TOOL_CLASSES: tuple[type[BaseTool], ...] = (
    GetTablesTool,
    AddTableTool,
    RenameTableTool,
    RemoveTableTool,
    GetTableColumnsTool,
    AddTableColumnTool,
    UpdateTableColumnTool,
    RemoveTableColumnTool,
    GetPagesTool,
    UpdatePageTool,
    RemovePageTool,
    GetPageWidgetsTool,
    AddPageWidgetTool,
    UpdatePageWidgetTool,
    RemovePageWidgetTool,
    GetPageWidgetSelectByOptionsTool,
    SetPageWidgetSelectByTool,
    GetAvailableCustomWidgetsTool,
    QueryDocumentTool,
    AddRecordsTool,
    UpdateRecordsTool,
    RemoveRecordsTool,
    GetAccessRulesReferenceTool,
)


def create_tool_registry() -> ToolRegistry:
    """Build and seal the full tool catalog."""
    registry = ToolRegistry()
    for tool_cls in TOOL_CLASSES:
        registry.register(tool_cls())
    registry.seal()
    LOGGER.debug(
        "Tool catalog ready: %d tools, %d mutating",
        len(registry.list_tools()),
        len(registry.mutating_tools()),
    )
    return registry


__all__ = ["TOOL_CLASSES", "create_tool_registry"]

"""Shared pytest fixtures."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from cellsmith.ai.orchestration.tool_dispatcher import ToolDispatcher
from cellsmith.ai.tools.tool_registry import ToolRegistry
from cellsmith.ai.tools.tool_wiring import create_tool_registry
from cellsmith.document.memory import MemoryDocument


@pytest.fixture
def session() -> SimpleNamespace:
    return SimpleNamespace(user_id="user-42")


@pytest.fixture
def document() -> MemoryDocument:
    """A small document with a projects table, an orders table and T1."""
    doc = MemoryDocument()
    doc.create_table("Projects", ["Name", "Status"])
    doc.add_rows(
        "Projects",
        [
            {"Name": "Alpha", "Status": "Active"},
            {"Name": "Beta", "Status": "Archived"},
        ],
    )
    doc.create_table("Orders", ["Region", "Sales"])
    doc.add_rows(
        "Orders",
        [
            {"Region": "East", "Sales": 10},
            {"Region": "West", "Sales": 7},
            {"Region": "East", "Sales": 5},
        ],
    )
    doc.create_table("T1", ["A", "B"])
    return doc


@pytest.fixture
def registry() -> ToolRegistry:
    return create_tool_registry()


@pytest.fixture
def dispatcher(registry: ToolRegistry) -> ToolDispatcher:
    return ToolDispatcher(registry)

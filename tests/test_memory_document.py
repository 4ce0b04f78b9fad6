"""Tests for the in-memory document store."""

from __future__ import annotations

import pytest

from cellsmith.document.actions import PAGES_TABLE, WIDGETS_TABLE
from cellsmith.document.memory import MemoryDocument
from cellsmith.document.model import CustomWidgetInfo
from cellsmith.document.store import DocumentStore, SandboxError


def test_memory_document_implements_the_store_protocol() -> None:
    assert isinstance(MemoryDocument(), DocumentStore)


def test_create_table_adds_page_and_widget(document) -> None:
    meta = document.metadata()

    assert [table.table_id for table in meta.tables] == ["Projects", "Orders", "T1"]
    assert [page.name for page in meta.pages] == ["Projects", "Orders", "T1"]
    assert meta.table_ids_on_page(2) == ["Orders"]
    assert meta.widget_by_ref(1).parent_key == "record"


def test_table_ids_are_made_unique() -> None:
    doc = MemoryDocument()
    assert doc.create_table("projects", ["Name"]) == "Projects"
    assert doc.create_table("Projects", ["Name"]) == "Projects_2"


@pytest.mark.asyncio
async def test_batch_is_atomic(session, document) -> None:
    before = document.metadata()

    with pytest.raises(SandboxError) as excinfo:
        await document.apply_user_actions(
            session,
            [
                ["AddVisibleColumn", "Projects", "Owner", {}],
                ["BulkAddRecord", "Projects", [None], {"Missing": ["x"]}],
            ],
        )

    assert str(excinfo.value) == "[Sandbox] KeyError 'Missing'"
    assert document.metadata() == before
    assert "Owner" not in document.fetch_rows("Projects")[0]


@pytest.mark.asyncio
async def test_apply_records_history(session, document) -> None:
    result = await document.apply_user_actions(session, [["BulkRemoveRecord", "Projects", [1]]], desc="cleanup")

    assert document.history[-1] is result
    assert result.desc == "cleanup"
    assert result.actions == [["BulkRemoveRecord", "Projects", [1]]]
    assert [row["id"] for row in document.fetch_rows("Projects")] == [2]


def test_list_values_are_stored_as_json(document) -> None:
    ids = document.add_rows("T1", [{"A": ["L", 1, 2], "B": True}])

    row = document.fetch_rows("T1")[0]
    assert ids == [1]
    assert row["A"] == '["L", 1, 2]'
    assert row["B"] == 1


@pytest.mark.asyncio
async def test_query_read_only_rejects_writes(session, document) -> None:
    with pytest.raises(SandboxError):
        await document.query_read_only(session, "DELETE FROM Orders")

    rows = await document.query_read_only(session, "SELECT COUNT(*) AS n FROM Orders")
    assert rows == [{"n": 3}]


@pytest.mark.asyncio
async def test_get_table_columns_unknown_table(session, document) -> None:
    with pytest.raises(SandboxError):
        await document.get_table_columns(session, "Nope")


@pytest.mark.asyncio
async def test_remove_table_downgrades_references(session, document) -> None:
    await document.apply_user_actions(session, [["AddVisibleColumn", "Orders", "Project", {"type": "Ref:Projects"}]])

    await document.apply_user_actions(session, [["RemoveTable", "Projects"]])

    meta = document.metadata()
    assert meta.table_by_id("Projects") is None
    assert meta.find_column("Orders", "Project").type == "Int"
    assert [page.name for page in meta.pages] == ["Orders", "T1"]


@pytest.mark.asyncio
async def test_rename_table_retargets_references(session, document) -> None:
    await document.apply_user_actions(session, [["AddVisibleColumn", "Orders", "Project", {"type": "Ref:Projects"}]])

    await document.apply_user_actions(session, [["RenameTable", "Projects", "Work"]])

    meta = document.metadata()
    assert meta.find_column("Orders", "Project").type == "Ref:Work"
    assert meta.page_by_ref(1).name == "Work"
    rows = await document.query_read_only(session, "SELECT Name FROM Work ORDER BY id")
    assert rows == [{"Name": "Alpha"}, {"Name": "Beta"}]


@pytest.mark.asyncio
async def test_create_view_section_with_new_page_and_table(session, document) -> None:
    result = await document.apply_user_actions(session, [["CreateViewSection", 0, 0, "single", None, None]])

    created = result.ret_values[0]
    meta = document.metadata()
    table = meta.table_by_ref(created["tableRef"])
    assert table is not None
    assert [col.col_id for col in meta.columns_for(table.ref)] == ["A", "B", "C"]
    assert meta.page_by_ref(created["viewRef"]).name == table.table_id
    assert meta.widget_by_ref(created["sectionRef"]).parent_key == "single"


@pytest.mark.asyncio
async def test_metadata_records_update_and_remove(session, document) -> None:
    await document.apply_user_actions(
        session,
        [
            ["UpdateRecord", PAGES_TABLE, 1, {"name": "Work"}],
            ["UpdateRecord", WIDGETS_TABLE, 2, {"title": "All orders"}],
            ["RemoveRecord", WIDGETS_TABLE, 3],
        ],
    )

    meta = document.metadata()
    assert meta.page_by_ref(1).name == "Work"
    assert meta.widget_by_ref(2).title == "All orders"
    assert meta.widget_by_ref(3) is None

    with pytest.raises(SandboxError):
        await document.apply_user_actions(session, [["UpdateRecord", WIDGETS_TABLE, 2, {"colour": "red"}]])


@pytest.mark.asyncio
async def test_custom_widgets_are_listed(session) -> None:
    widget = CustomWidgetInfo(widget_id="map", name="Map", url="https://widgets.example/map")
    doc = MemoryDocument(custom_widgets=[widget])

    assert await doc.list_custom_widgets(session) == [widget]

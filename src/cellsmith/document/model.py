"""Metadata records describing a document's schema and layout.

These are the shapes a :class:`~cellsmith.document.store.DocumentStore`
hands back from ``fetch_metadata``. A :class:`DocumentMetadata` is a
snapshot: mutating it never touches the live document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass(slots=True, frozen=True)
class DocInfo:
    """Document-wide settings that influence column formatting."""

    timezone: str = "UTC"
    currency: str = "USD"
    locale: str = "en-US"


@dataclass(slots=True)
class TableMeta:
    """A user table. ``ref`` is the numeric row id of the table's metadata record."""

    ref: int
    table_id: str
    hidden: bool = False


@dataclass(slots=True)
class ColumnMeta:
    """A column of a user table.

    Attributes:
        ref: Numeric id of the column's metadata record.
        table_ref: Ref of the owning table.
        col_id: Identifier used in formulas and SQL.
        type: Column type, e.g. ``Text`` or ``Ref:Projects``.
        widget_options: JSON-encoded display options ("" when unset).
        visible_col: Ref of the column shown for reference columns (0 if none).
        recalc_when: 0 = on add and on dependency change, 1 = never, 2 = manual.
        recalc_deps: Refs of trigger columns, ``None`` when unset.
    """

    ref: int
    table_ref: int
    col_id: str
    type: str = "Any"
    label: str = ""
    formula: str = ""
    is_formula: bool = False
    description: str = ""
    widget_options: str = ""
    visible_col: int = 0
    display_formula: str = ""
    recalc_when: int = 0
    recalc_deps: tuple[int, ...] | None = None
    untie_col_id_from_label: bool = False

    @property
    def ref_table_id(self) -> str | None:
        """Target table id for ``Ref:X`` / ``RefList:X`` columns."""
        prefix, _, target = self.type.partition(":")
        if prefix in ("Ref", "RefList") and target:
            return target
        return None

    @property
    def base_type(self) -> str:
        return self.type.partition(":")[0]


@dataclass(slots=True)
class PageMeta:
    ref: int
    name: str


@dataclass(slots=True)
class WidgetMeta:
    """A widget (view section) placed on a page.

    ``parent_key`` holds the storage key of the widget type (``record``,
    ``single``, ``detail``, ``custom``, ...).
    """

    ref: int
    page_ref: int
    table_ref: int
    parent_key: str = "record"
    title: str = ""
    description: str = ""
    group_by_col_refs: tuple[int, ...] = ()
    link_src_widget_ref: int = 0
    link_src_col_ref: int = 0
    link_target_col_ref: int = 0
    custom_view: str = ""


@dataclass(slots=True, frozen=True)
class CustomWidgetInfo:
    widget_id: str
    name: str
    url: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.widget_id,
            "name": self.name,
            "url": self.url,
            "description": self.description,
        }


@dataclass(slots=True)
class ApplyResult:
    """Outcome of one ``apply_user_actions`` call.

    Attributes:
        action_num: Sequence number assigned by the store.
        ret_values: One return value per applied action.
        actions: The actions exactly as applied, kept for audit and undo.
        desc: Free-form description attached by the caller.
    """

    action_num: int
    ret_values: list[Any]
    actions: list[list[Any]]
    desc: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_num": self.action_num,
            "ret_values": list(self.ret_values),
            "actions": [list(action) for action in self.actions],
            "desc": self.desc,
        }


@dataclass(slots=True)
class DocumentMetadata:
    """Point-in-time view of a document's schema with lookup helpers."""

    doc_info: DocInfo = field(default_factory=DocInfo)
    tables: list[TableMeta] = field(default_factory=list)
    columns: list[ColumnMeta] = field(default_factory=list)
    pages: list[PageMeta] = field(default_factory=list)
    widgets: list[WidgetMeta] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def table_by_id(self, table_id: str) -> TableMeta | None:
        for table in self.tables:
            if table.table_id == table_id:
                return table
        return None

    def table_by_ref(self, ref: int) -> TableMeta | None:
        for table in self.tables:
            if table.ref == ref:
                return table
        return None

    def visible_tables(self) -> list[TableMeta]:
        return [table for table in self.tables if not table.hidden]

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def columns_for(self, table_ref: int) -> list[ColumnMeta]:
        return [col for col in self.columns if col.table_ref == table_ref]

    def column_by_ref(self, ref: int) -> ColumnMeta | None:
        for col in self.columns:
            if col.ref == ref:
                return col
        return None

    def find_column(self, table_id: str, col_id: str) -> ColumnMeta | None:
        table = self.table_by_id(table_id)
        if table is None:
            return None
        for col in self.columns_for(table.ref):
            if col.col_id == col_id:
                return col
        return None

    def col_ids_to_refs(self, table_id: str, col_ids: Sequence[str]) -> list[int]:
        """Map column ids of ``table_id`` to refs, skipping unknown ids."""
        table = self.table_by_id(table_id)
        if table is None:
            return []
        by_id = {col.col_id: col.ref for col in self.columns_for(table.ref)}
        return [by_id[col_id] for col_id in col_ids if col_id in by_id]

    # ------------------------------------------------------------------
    # Pages and widgets
    # ------------------------------------------------------------------

    def page_by_ref(self, ref: int) -> PageMeta | None:
        for page in self.pages:
            if page.ref == ref:
                return page
        return None

    def widget_by_ref(self, ref: int) -> WidgetMeta | None:
        for widget in self.widgets:
            if widget.ref == ref:
                return widget
        return None

    def widgets_on_page(self, page_ref: int) -> list[WidgetMeta]:
        return [widget for widget in self.widgets if widget.page_ref == page_ref]

    def table_ids_on_page(self, page_ref: int) -> list[str]:
        """Table ids shown by the widgets of a page, in widget order, without duplicates."""
        seen: list[str] = []
        for widget in self.widgets_on_page(page_ref):
            table = self.table_by_ref(widget.table_ref)
            if table is not None and table.table_id not in seen:
                seen.append(table.table_id)
        return seen

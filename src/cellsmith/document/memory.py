"""In-memory document backed by SQLite.

``MemoryDocument`` implements :class:`~cellsmith.document.store.DocumentStore`
for local runs and tests. User tables live in an in-memory SQLite database
so read-only queries run real SQL. Schema metadata lives in Python records.

Every ``apply_user_actions`` call is atomic. The metadata is snapshotted
and the SQL changes run inside a savepoint, and both are rolled back
together if any action in the batch fails.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
import sqlite3
from typing import Any, Callable, Mapping, Sequence

from .actions import LIST_MARKER, PAGES_TABLE, WIDGETS_TABLE, UserAction
from .model import (
    ApplyResult,
    ColumnMeta,
    CustomWidgetInfo,
    DocInfo,
    DocumentMetadata,
    PageMeta,
    TableMeta,
    WidgetMeta,
)
from .store import SandboxError

LOGGER = logging.getLogger(__name__)

DEFAULT_COLUMNS: tuple[str, ...] = ("A", "B", "C")

_COLUMN_FIELDS: dict[str, str] = {
    "type": "type",
    "label": "label",
    "formula": "formula",
    "isFormula": "is_formula",
    "description": "description",
    "widgetOptions": "widget_options",
    "visibleCol": "visible_col",
    "recalcWhen": "recalc_when",
    "recalcDeps": "recalc_deps",
    "untieColIdFromLabel": "untie_col_id_from_label",
}

_WIDGET_FIELDS = frozenset(
    {
        "title",
        "description",
        "parent_key",
        "custom_view",
        "link_src_widget_ref",
        "link_src_col_ref",
        "link_target_col_ref",
    }
)

_IDENT_INVALID = re.compile(r"[^0-9A-Za-z_]+")


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _sanitize_identifier(value: str, *, fallback: str, capitalize: bool = False) -> str:
    cleaned = _IDENT_INVALID.sub("_", value.strip()).strip("_")
    if not cleaned:
        cleaned = fallback
    if cleaned[0].isdigit():
        cleaned = f"{fallback[0]}{cleaned}"
    if capitalize:
        cleaned = cleaned[0].upper() + cleaned[1:]
    return cleaned


def _encode_cell(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


class MemoryDocument:
    """A self-contained document implementing the ``DocumentStore`` protocol.

    Example:
        doc = MemoryDocument()
        doc.create_table("Projects", ["Name", "Owner"])
        doc.add_rows("Projects", [{"Name": "Alpha"}])
    """

    def __init__(
        self,
        *,
        doc_info: DocInfo | None = None,
        custom_widgets: Sequence[CustomWidgetInfo] = (),
    ) -> None:
        self._conn = sqlite3.connect(":memory:", isolation_level=None)
        self._lock = asyncio.Lock()
        self._meta = DocumentMetadata(doc_info=doc_info or DocInfo())
        self._next_ref: dict[str, int] = {"table": 1, "column": 1, "page": 1, "widget": 1}
        self._action_num = 0
        self._custom_widgets = list(custom_widgets)
        self.history: list[ApplyResult] = []
        self._handlers: dict[str, Callable[..., Any]] = {
            "AddEmptyTable": self._add_empty_table,
            "AddTable": self._add_table,
            "RenameTable": self._rename_table,
            "RemoveTable": self._remove_table,
            "AddVisibleColumn": self._add_visible_column,
            "ModifyColumn": self._modify_column,
            "SetDisplayFormula": self._set_display_formula,
            "RemoveColumn": self._remove_column,
            "BulkAddRecord": self._bulk_add_record,
            "BulkUpdateRecord": self._bulk_update_record,
            "BulkRemoveRecord": self._bulk_remove_record,
            "CreateViewSection": self._create_view_section,
            "UpdateRecord": self._update_record,
            "RemoveRecord": self._remove_record,
        }

    # ------------------------------------------------------------------
    # DocumentStore protocol
    # ------------------------------------------------------------------

    async def fetch_metadata(self, session: Any) -> DocumentMetadata:
        return copy.deepcopy(self._meta)

    async def get_table_columns(self, session: Any, table_id: str) -> list[ColumnMeta]:
        table = self._meta.table_by_id(table_id)
        if table is None:
            raise SandboxError(f"[Sandbox] KeyError '{table_id}'")
        return copy.deepcopy(self._meta.columns_for(table.ref))

    async def apply_user_actions(
        self,
        session: Any,
        actions: Sequence[UserAction],
        *,
        desc: str | None = None,
        parse_strings: bool = False,
    ) -> ApplyResult:
        async with self._lock:
            return self._apply(actions, desc=desc)

    async def query_read_only(
        self,
        session: Any,
        sql: str,
        args: Sequence[Any] | None = None,
    ) -> list[dict[str, Any]]:
        async with self._lock:
            self._conn.execute("PRAGMA query_only = ON")
            try:
                cursor = self._conn.execute(sql, list(args or []))
                if cursor.description is None:
                    return []
                names = [column[0] for column in cursor.description]
                return [dict(zip(names, row)) for row in cursor.fetchall()]
            except sqlite3.Error as exc:
                raise SandboxError(f"[Sandbox] {exc}") from exc
            finally:
                self._conn.execute("PRAGMA query_only = OFF")

    async def list_custom_widgets(self, session: Any) -> list[CustomWidgetInfo]:
        return list(self._custom_widgets)

    # ------------------------------------------------------------------
    # Synchronous setup helpers
    # ------------------------------------------------------------------

    def create_table(self, table_id: str, columns: Sequence[str | Mapping[str, Any]]) -> str:
        """Create a table with a page and return its final id."""
        specs = [{"id": col} if isinstance(col, str) else dict(col) for col in columns]
        result = self._apply([["AddTable", table_id, specs]], desc="setup")
        return result.ret_values[0]["table_id"]

    def add_rows(self, table_id: str, rows: Sequence[Mapping[str, Any]]) -> list[int]:
        col_ids: list[str] = []
        for row in rows:
            col_ids.extend(key for key in row if key not in col_ids)
        values = {col_id: [row.get(col_id) for row in rows] for col_id in col_ids}
        result = self._apply([["BulkAddRecord", table_id, [None] * len(rows), values]], desc="setup")
        return result.ret_values[0]

    def fetch_rows(self, table_id: str) -> list[dict[str, Any]]:
        self._require_table(table_id)
        cursor = self._conn.execute(f"SELECT * FROM {_quote(table_id)} ORDER BY id")
        names = [column[0] for column in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def metadata(self) -> DocumentMetadata:
        return copy.deepcopy(self._meta)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _apply(self, actions: Sequence[UserAction], *, desc: str | None) -> ApplyResult:
        snapshot = copy.deepcopy(self._meta)
        next_ref = dict(self._next_ref)
        ret_values: list[Any] = []
        self._conn.execute("SAVEPOINT apply_actions")
        try:
            for action in actions:
                ret_values.append(self._apply_one(list(action)))
        except (SandboxError, sqlite3.Error, KeyError, ValueError, TypeError, IndexError) as exc:
            self._conn.execute("ROLLBACK TO apply_actions")
            self._conn.execute("RELEASE apply_actions")
            self._meta = snapshot
            self._next_ref = next_ref
            LOGGER.debug("Rolled back %d action(s): %s", len(actions), exc)
            if isinstance(exc, SandboxError):
                raise
            raise SandboxError(f"[Sandbox] {type(exc).__name__} {exc}") from exc
        self._conn.execute("RELEASE apply_actions")

        self._action_num += 1
        result = ApplyResult(
            action_num=self._action_num,
            ret_values=ret_values,
            actions=[list(action) for action in actions],
            desc=desc,
        )
        self.history.append(result)
        return result

    def _apply_one(self, action: list[Any]) -> Any:
        if not action:
            raise ValueError("Empty action")
        handler = self._handlers.get(action[0])
        if handler is None:
            raise ValueError(f"Unknown action {action[0]!r}")
        return handler(*action[1:])

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _new_ref(self, kind: str) -> int:
        ref = self._next_ref[kind]
        self._next_ref[kind] = ref + 1
        return ref

    def _require_table(self, table_id: str) -> TableMeta:
        table = self._meta.table_by_id(table_id)
        if table is None:
            raise KeyError(table_id)
        return table

    def _require_column(self, table: TableMeta, col_id: str) -> ColumnMeta:
        for col in self._meta.columns_for(table.ref):
            if col.col_id == col_id:
                return col
        raise KeyError(col_id)

    def _require_rows(self, table: TableMeta, row_ids: Sequence[int]) -> None:
        for row_id in row_ids:
            found = self._conn.execute(
                f"SELECT 1 FROM {_quote(table.table_id)} WHERE id = ?", (row_id,)
            ).fetchone()
            if found is None:
                raise ValueError(f"Record #{row_id} not found in {table.table_id}")

    def _unique_table_id(self, candidate: str) -> str:
        base = _sanitize_identifier(candidate, fallback="Table", capitalize=True)
        taken = {table.table_id.lower() for table in self._meta.tables}
        if base.lower() not in taken:
            return base
        counter = 2
        while f"{base}_{counter}".lower() in taken:
            counter += 1
        return f"{base}_{counter}"

    def _unique_col_id(self, table: TableMeta, candidate: str) -> str:
        base = _sanitize_identifier(candidate, fallback="A")
        taken = {col.col_id.lower() for col in self._meta.columns_for(table.ref)} | {"id"}
        if base.lower() not in taken:
            return base
        counter = 2
        while f"{base}_{counter}".lower() in taken:
            counter += 1
        return f"{base}_{counter}"

    # ------------------------------------------------------------------
    # Table actions
    # ------------------------------------------------------------------

    def _add_empty_table(self, table_id: str | None) -> dict[str, Any]:
        return self._create_table(table_id, [{"id": col_id} for col_id in DEFAULT_COLUMNS])

    def _add_table(self, table_id: str | None, columns: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        return self._create_table(table_id, columns)

    def _create_table(
        self,
        table_id: str | None,
        columns: Sequence[Mapping[str, Any]],
        *,
        with_page: bool = True,
    ) -> dict[str, Any]:
        final_id = self._unique_table_id(table_id or f"Table{len(self._meta.tables) + 1}")
        table = TableMeta(ref=self._new_ref("table"), table_id=final_id)
        self._meta.tables.append(table)
        self._conn.execute(f"CREATE TABLE {_quote(final_id)} (id INTEGER PRIMARY KEY)")

        col_ids = []
        for spec in columns:
            info = {key: value for key, value in spec.items() if key != "id"}
            col = self._create_column(table, spec.get("id") or info.get("label") or "A", info)
            col_ids.append(col.col_id)

        page_refs: list[int] = []
        if with_page:
            page = PageMeta(ref=self._new_ref("page"), name=final_id)
            self._meta.pages.append(page)
            self._meta.widgets.append(
                WidgetMeta(ref=self._new_ref("widget"), page_ref=page.ref, table_ref=table.ref)
            )
            page_refs.append(page.ref)
        return {"id": table.ref, "table_id": final_id, "columns": col_ids, "views": page_refs}

    def _rename_table(self, table_id: str, new_table_id: str) -> str:
        table = self._require_table(table_id)
        final_id = self._unique_table_id(new_table_id)
        self._conn.execute(f"ALTER TABLE {_quote(table_id)} RENAME TO {_quote(final_id)}")
        for col in self._meta.columns:
            if col.ref_table_id == table_id:
                col.type = f"{col.base_type}:{final_id}"
        for page in self._meta.pages:
            if page.name == table_id:
                page.name = final_id
        table.table_id = final_id
        return final_id

    def _remove_table(self, table_id: str) -> None:
        table = self._require_table(table_id)
        self._conn.execute(f"DROP TABLE {_quote(table_id)}")
        removed_cols = {col.ref for col in self._meta.columns_for(table.ref)}
        self._meta.columns = [col for col in self._meta.columns if col.table_ref != table.ref]
        for col in self._meta.columns:
            if col.ref_table_id == table_id:
                col.type = "Int" if col.base_type == "Ref" else "Any"
                col.visible_col = 0
        affected_pages = {w.page_ref for w in self._meta.widgets if w.table_ref == table.ref}
        for widget in [w for w in self._meta.widgets if w.table_ref == table.ref]:
            self._drop_widget(widget.ref)
        self._meta.pages = [
            page
            for page in self._meta.pages
            if page.ref not in affected_pages or self._meta.widgets_on_page(page.ref)
        ]
        self._clear_column_links(removed_cols)
        self._meta.tables.remove(table)

    # ------------------------------------------------------------------
    # Column actions
    # ------------------------------------------------------------------

    def _create_column(self, table: TableMeta, col_id: str, info: Mapping[str, Any]) -> ColumnMeta:
        final_id = self._unique_col_id(table, col_id)
        col = ColumnMeta(ref=self._new_ref("column"), table_ref=table.ref, col_id=final_id, label=final_id)
        self._set_col_info(col, info)
        self._meta.columns.append(col)
        self._conn.execute(f"ALTER TABLE {_quote(table.table_id)} ADD COLUMN {_quote(final_id)}")
        return col

    def _set_col_info(self, col: ColumnMeta, info: Mapping[str, Any]) -> None:
        for key, value in info.items():
            attr = _COLUMN_FIELDS.get(key)
            if attr is None:
                raise ValueError(f"Unknown column field {key!r}")
            if key == "recalcDeps" and value is not None:
                items = list(value)
                if items and items[0] == LIST_MARKER:
                    items = items[1:]
                value = tuple(items)
            setattr(col, attr, value)

    def _add_visible_column(self, table_id: str, col_id: str, info: Mapping[str, Any]) -> dict[str, Any]:
        table = self._require_table(table_id)
        col = self._create_column(table, col_id, info)
        return {"colRef": col.ref, "colId": col.col_id}

    def _modify_column(self, table_id: str, col_id: str, info: Mapping[str, Any]) -> None:
        table = self._require_table(table_id)
        col = self._require_column(table, col_id)
        fields = dict(info)
        new_id = fields.pop("colId", None)
        if new_id and new_id != col.col_id:
            final_id = self._unique_col_id(table, new_id)
            self._conn.execute(
                f"ALTER TABLE {_quote(table_id)} RENAME COLUMN {_quote(col.col_id)} TO {_quote(final_id)}"
            )
            col.col_id = final_id
        self._set_col_info(col, fields)

    def _set_display_formula(self, table_id: str, field_ref: int | None, col_ref: int, formula: str) -> None:
        self._require_table(table_id)
        col = self._meta.column_by_ref(col_ref)
        if col is None:
            raise KeyError(col_ref)
        col.display_formula = formula

    def _remove_column(self, table_id: str, col_id: str) -> None:
        table = self._require_table(table_id)
        col = self._require_column(table, col_id)
        self._conn.execute(f"ALTER TABLE {_quote(table_id)} DROP COLUMN {_quote(col_id)}")
        self._meta.columns.remove(col)
        for widget in self._meta.widgets:
            if col.ref in widget.group_by_col_refs:
                widget.group_by_col_refs = tuple(r for r in widget.group_by_col_refs if r != col.ref)
        self._clear_column_links({col.ref})

    # ------------------------------------------------------------------
    # Record actions
    # ------------------------------------------------------------------

    def _bulk_add_record(
        self,
        table_id: str,
        row_ids: Sequence[int | None],
        col_values: Mapping[str, Sequence[Any]],
    ) -> list[int]:
        table = self._require_table(table_id)
        for col_id, values in col_values.items():
            self._require_column(table, col_id)
            if len(values) != len(row_ids):
                raise ValueError(f"Column {col_id} has {len(values)} values for {len(row_ids)} rows")

        new_ids: list[int] = []
        col_ids = list(col_values)
        for index, row_id in enumerate(row_ids):
            names = (["id"] if row_id is not None else []) + col_ids
            values = ([row_id] if row_id is not None else []) + [
                _encode_cell(col_values[col_id][index]) for col_id in col_ids
            ]
            if names:
                placeholders = ", ".join("?" for _ in names)
                sql = (
                    f"INSERT INTO {_quote(table_id)} ({', '.join(_quote(n) for n in names)}) "
                    f"VALUES ({placeholders})"
                )
                cursor = self._conn.execute(sql, values)
            else:
                cursor = self._conn.execute(f"INSERT INTO {_quote(table_id)} DEFAULT VALUES")
            new_ids.append(int(cursor.lastrowid))
        return new_ids

    def _bulk_update_record(
        self,
        table_id: str,
        row_ids: Sequence[int],
        col_values: Mapping[str, Sequence[Any]],
    ) -> None:
        table = self._require_table(table_id)
        self._require_rows(table, row_ids)
        for col_id, values in col_values.items():
            self._require_column(table, col_id)
            if len(values) != len(row_ids):
                raise ValueError(f"Column {col_id} has {len(values)} values for {len(row_ids)} rows")
            for row_id, value in zip(row_ids, values):
                self._conn.execute(
                    f"UPDATE {_quote(table_id)} SET {_quote(col_id)} = ? WHERE id = ?",
                    (_encode_cell(value), row_id),
                )

    def _bulk_remove_record(self, table_id: str, row_ids: Sequence[int]) -> None:
        table = self._require_table(table_id)
        self._require_rows(table, row_ids)
        self._conn.executemany(
            f"DELETE FROM {_quote(table_id)} WHERE id = ?", [(row_id,) for row_id in row_ids]
        )

    # ------------------------------------------------------------------
    # Page and widget actions
    # ------------------------------------------------------------------

    def _create_view_section(
        self,
        table_ref: int,
        page_ref: int,
        section_type: str,
        groupby_col_refs: Sequence[int] | None,
        table_id: str | None = None,
    ) -> dict[str, int]:
        if table_ref:
            table = self._meta.table_by_ref(table_ref)
            if table is None:
                raise ValueError(f"Invalid table ref {table_ref}")
        else:
            created = self._create_table(
                table_id, [{"id": col_id} for col_id in DEFAULT_COLUMNS], with_page=False
            )
            table = self._require_table(created["table_id"])

        if page_ref:
            page = self._meta.page_by_ref(page_ref)
            if page is None:
                raise ValueError(f"Invalid page ref {page_ref}")
        else:
            page = PageMeta(ref=self._new_ref("page"), name=table.table_id)
            self._meta.pages.append(page)

        table_cols = {col.ref for col in self._meta.columns_for(table.ref)}
        for col_ref in groupby_col_refs or ():
            if col_ref not in table_cols:
                raise ValueError(f"Invalid group-by column ref {col_ref}")

        widget = WidgetMeta(
            ref=self._new_ref("widget"),
            page_ref=page.ref,
            table_ref=table.ref,
            parent_key=section_type,
            group_by_col_refs=tuple(groupby_col_refs or ()),
        )
        self._meta.widgets.append(widget)
        return {"tableRef": table.ref, "viewRef": page.ref, "sectionRef": widget.ref}

    def _update_record(self, meta_table: str, row_id: int, values: Mapping[str, Any]) -> None:
        if meta_table == PAGES_TABLE:
            page = self._meta.page_by_ref(row_id)
            if page is None:
                raise ValueError(f"Page #{row_id} not found")
            for key, value in values.items():
                if key != "name":
                    raise ValueError(f"Unknown page field {key!r}")
                page.name = value
            return
        if meta_table == WIDGETS_TABLE:
            widget = self._meta.widget_by_ref(row_id)
            if widget is None:
                raise ValueError(f"Widget #{row_id} not found")
            for key, value in values.items():
                if key not in _WIDGET_FIELDS:
                    raise ValueError(f"Unknown widget field {key!r}")
                setattr(widget, key, value)
            return
        raise ValueError(f"Unknown metadata table {meta_table!r}")

    def _remove_record(self, meta_table: str, row_id: int) -> None:
        if meta_table == PAGES_TABLE:
            page = self._meta.page_by_ref(row_id)
            if page is None:
                raise ValueError(f"Page #{row_id} not found")
            self._meta.pages.remove(page)
            for widget in self._meta.widgets_on_page(page.ref):
                self._drop_widget(widget.ref)
            return
        if meta_table == WIDGETS_TABLE:
            if self._meta.widget_by_ref(row_id) is None:
                raise ValueError(f"Widget #{row_id} not found")
            self._drop_widget(row_id)
            return
        raise ValueError(f"Unknown metadata table {meta_table!r}")

    def _drop_widget(self, widget_ref: int) -> None:
        widget = self._meta.widget_by_ref(widget_ref)
        if widget is None:
            return
        self._meta.widgets.remove(widget)
        for other in self._meta.widgets:
            if other.link_src_widget_ref == widget_ref:
                other.link_src_widget_ref = 0
                other.link_src_col_ref = 0
                other.link_target_col_ref = 0

    def _clear_column_links(self, col_refs: set[int]) -> None:
        for widget in self._meta.widgets:
            if widget.link_src_col_ref in col_refs or widget.link_target_col_ref in col_refs:
                widget.link_src_widget_ref = 0
                widget.link_src_col_ref = 0
                widget.link_target_col_ref = 0

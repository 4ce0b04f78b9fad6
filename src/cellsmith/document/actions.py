"""Native document action vocabulary.

A document action is a plain list whose first element names the action,
e.g. ``["BulkRemoveRecord", "Orders", [1, 2]]``. Actions are what the
store applies and what it records for audit; keeping them as lists means
they serialize to JSON unchanged.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

UserAction = list[Any]

# Metadata tables addressable through UpdateRecord/RemoveRecord.
PAGES_TABLE = "_doc_pages"
WIDGETS_TABLE = "_doc_widgets"

# Recalculation modes stored on ColumnMeta.recalc_when.
RECALC_DEFAULT = 0
RECALC_NEVER = 1
RECALC_MANUAL_UPDATES = 2

# Marker for list-encoded cell values: ["L", 1, 2, 3].
LIST_MARKER = "L"


def add_empty_table(table_id: str | None) -> UserAction:
    return ["AddEmptyTable", table_id]


def add_table(table_id: str, columns: Sequence[Mapping[str, Any]]) -> UserAction:
    return ["AddTable", table_id, [dict(col) for col in columns]]


def rename_table(table_id: str, new_table_id: str) -> UserAction:
    return ["RenameTable", table_id, new_table_id]


def remove_table(table_id: str) -> UserAction:
    return ["RemoveTable", table_id]


def add_visible_column(table_id: str, col_id: str, col_info: Mapping[str, Any]) -> UserAction:
    return ["AddVisibleColumn", table_id, col_id, dict(col_info)]


def modify_column(table_id: str, col_id: str, col_info: Mapping[str, Any]) -> UserAction:
    return ["ModifyColumn", table_id, col_id, dict(col_info)]


def set_display_formula(table_id: str, field_ref: int | None, col_ref: int, formula: str) -> UserAction:
    return ["SetDisplayFormula", table_id, field_ref, col_ref, formula]


def remove_column(table_id: str, col_id: str) -> UserAction:
    return ["RemoveColumn", table_id, col_id]


def bulk_add_record(table_id: str, records: Sequence[Mapping[str, Any]]) -> UserAction:
    return ["BulkAddRecord", table_id, [None] * len(records), to_column_values(records)]


def bulk_update_record(
    table_id: str,
    row_ids: Sequence[int],
    records: Sequence[Mapping[str, Any]],
) -> UserAction:
    return ["BulkUpdateRecord", table_id, list(row_ids), to_column_values(records)]


def bulk_remove_record(table_id: str, row_ids: Sequence[int]) -> UserAction:
    return ["BulkRemoveRecord", table_id, list(row_ids)]


def create_view_section(
    table_ref: int,
    page_ref: int,
    section_type: str,
    groupby_col_refs: Sequence[int] | None,
    table_id: str | None = None,
) -> UserAction:
    """Add a widget. ``table_ref`` 0 creates a new table, ``page_ref`` 0 a new page."""
    groupby = list(groupby_col_refs) if groupby_col_refs is not None else None
    return ["CreateViewSection", table_ref, page_ref, section_type, groupby, table_id]


def update_record(meta_table: str, row_id: int, values: Mapping[str, Any]) -> UserAction:
    return ["UpdateRecord", meta_table, row_id, dict(values)]


def remove_record(meta_table: str, row_id: int) -> UserAction:
    return ["RemoveRecord", meta_table, row_id]


def to_column_values(records: Sequence[Mapping[str, Any]]) -> dict[str, list[Any]]:
    """Pivot row dicts into column lists, filling gaps with ``None``.

    >>> to_column_values([{"A": 1}, {"B": 2}])
    {'A': [1, None], 'B': [None, 2]}
    """
    col_ids: list[str] = []
    for record in records:
        for key in record:
            if key not in col_ids:
                col_ids.append(key)
    return {col_id: [record.get(col_id) for record in records] for col_id in col_ids}

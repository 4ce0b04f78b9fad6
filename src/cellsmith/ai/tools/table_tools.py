"""Tools for discovering and changing tables and columns."""

from __future__ import annotations

import json
from typing import Any, ClassVar, Mapping

from ...document import actions
from ...document.model import ColumnMeta, DocumentMetadata
from .base import ReadOnlyTool, ToolContext, WriteTool
from .column_options import build_col_info, column_option_properties
from .errors import ColumnNotFoundError, InvalidArgumentsError
from .tool_registry import ParameterSchema, ToolCategory, ToolName

TABLE_ID_PARAM = ParameterSchema(
    name="table_id",
    type="string",
    description="The ID of the table.",
    required=True,
)

COLUMN_ID_PARAM = ParameterSchema(
    name="column_id",
    type="string",
    description="The ID of the column.",
    required=True,
)


def describe_column(col: ColumnMeta, meta: DocumentMetadata | None = None) -> dict[str, Any]:
    """Column fields as reported to the model."""
    try:
        widget_options = json.loads(col.widget_options) if col.widget_options else {}
    except ValueError:
        widget_options = {}
    described: dict[str, Any] = {
        "id": col.col_id,
        "label": col.label,
        "type": col.type,
        "formula": col.formula,
        "is_formula": col.is_formula,
        "description": col.description,
        "widget_options": widget_options,
    }
    if col.ref_table_id:
        described["reference_table_id"] = col.ref_table_id
        shown = meta.column_by_ref(col.visible_col) if meta is not None and col.visible_col else None
        if shown is not None:
            described["reference_show_column_id"] = shown.col_id
    return described


# -----------------------------------------------------------------------------
# Discovery
# -----------------------------------------------------------------------------


class GetTablesTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_TABLES
    description: ClassVar[str] = "Returns the IDs of all tables in the document."
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        meta = await context.metadata()
        return {"tables": [table.table_id for table in meta.visible_tables()]}


class GetTableColumnsTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_TABLE_COLUMNS
    description: ClassVar[str] = "Returns all columns in a table, with their types, formulas and display options."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (TABLE_ID_PARAM,)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        meta, _ = await context.require_table(params["table_id"])
        columns = await context.document.get_table_columns(context.session, params["table_id"])
        return {"columns": [describe_column(col, meta) for col in columns]}


# -----------------------------------------------------------------------------
# Tables
# -----------------------------------------------------------------------------


class AddTableTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.ADD_TABLE
    description: ClassVar[str] = (
        "Adds a table to the document, along with a new page showing it. "
        "If columns is null, the table gets default columns A, B and C."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(
            name="table_id",
            type="string",
            description="The ID of the table to add. Must start with an uppercase letter.",
            required=True,
        ),
        ParameterSchema(
            name="columns",
            type="array",
            nullable=True,
            required=True,
            description="The columns to create the table with, or null for default columns.",
            items=ParameterSchema(
                name="column",
                type="object",
                properties=(
                    ParameterSchema(name="id", type="string", description="The column ID.", required=True),
                ),
            ),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        columns = params.get("columns")
        if columns:
            action = actions.add_table(table_id, columns)
        else:
            action = actions.add_empty_table(table_id)
        result = await context.apply([action], table_id=table_id)
        created = result.ret_values[0] if result.ret_values else None
        if isinstance(created, Mapping):
            return {"table_id": created.get("table_id", table_id), "columns": list(created.get("columns", []))}
        return {"table_id": table_id}


class RenameTableTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.RENAME_TABLE
    description: ClassVar[str] = "Renames a table."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(name="table_id", type="string", description="The ID of the table to rename.", required=True),
        ParameterSchema(name="new_table_id", type="string", description="The new ID of the table.", required=True),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        result = await context.apply([actions.rename_table(table_id, params["new_table_id"])], table_id=table_id)
        renamed = result.ret_values[0] if result.ret_values else None
        return {"table_id": renamed if isinstance(renamed, str) else params["new_table_id"]}


class RemoveTableTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.REMOVE_TABLE
    description: ClassVar[str] = "Removes a table and all of its data."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (TABLE_ID_PARAM,)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        await context.apply([actions.remove_table(table_id)], table_id=table_id)
        return {"removed": table_id}


# -----------------------------------------------------------------------------
# Columns
# -----------------------------------------------------------------------------


class AddTableColumnTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.ADD_TABLE_COLUMN
    description: ClassVar[str] = "Adds a column to a table."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        TABLE_ID_PARAM,
        COLUMN_ID_PARAM,
        ParameterSchema(
            name="column_options",
            type="object",
            nullable=True,
            required=True,
            description='The options to create the column with. Example: `{"type": "Text", "label": "Name"}`',
            properties=column_option_properties(for_update=False),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        column_id = params["column_id"]
        options = params.get("column_options")
        col_info = build_col_info(await context.metadata(), None, options) if options else {}
        result = await context.apply(
            [actions.add_visible_column(table_id, column_id, col_info)],
            table_id=table_id,
            column_ids=[column_id],
        )
        added = result.ret_values[0] if result.ret_values else None
        if isinstance(added, Mapping):
            return {"column_id": added.get("colId", column_id), "column_ref": added.get("colRef")}
        return {"column_id": column_id}


class UpdateTableColumnTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.UPDATE_TABLE_COLUMN
    description: ClassVar[str] = "Updates a column's type, formula, label or display options."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        TABLE_ID_PARAM,
        COLUMN_ID_PARAM,
        ParameterSchema(
            name="column_options",
            type="object",
            required=True,
            description='The options to update. Example: `{"type": "Numeric", "number_format": "currency"}`',
            properties=column_option_properties(for_update=True),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        column_id = params["column_id"]
        options = params["column_options"]
        meta, _ = await context.require_table(table_id)
        column = meta.find_column(table_id, column_id)
        if column is None:
            raise ColumnNotFoundError.for_column(table_id, column_id)

        col_info = build_col_info(meta, column, options)
        if not col_info:
            raise InvalidArgumentsError(
                message="column_options did not specify any change",
                path="column_options",
            )
        batch = [actions.modify_column(table_id, column_id, col_info)]
        if col_info.get("visibleCol"):
            formula = f"${col_info.get('colId', column_id)}.{options['reference_show_column_id']}"
            batch.append(actions.set_display_formula(table_id, None, column.ref, formula))
        await context.apply(batch, table_id=table_id, column_ids=[column_id])
        return {"column_id": col_info.get("colId", column_id), "updated": sorted(col_info)}


class RemoveTableColumnTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.REMOVE_TABLE_COLUMN
    description: ClassVar[str] = "Removes a column from a table."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (TABLE_ID_PARAM, COLUMN_ID_PARAM)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        column_id = params["column_id"]
        meta, _ = await context.require_table(table_id)
        if meta.find_column(table_id, column_id) is None:
            raise ColumnNotFoundError.for_column(table_id, column_id)
        await context.apply([actions.remove_column(table_id, column_id)], table_id=table_id, column_ids=[column_id])
        return {"removed": column_id}


__all__ = [
    "AddTableColumnTool",
    "AddTableTool",
    "GetTableColumnsTool",
    "GetTablesTool",
    "RemoveTableColumnTool",
    "RemoveTableTool",
    "RenameTableTool",
    "UpdateTableColumnTool",
    "describe_column",
]

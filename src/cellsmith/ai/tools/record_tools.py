"""Tools that add, update and remove records in a single table."""

from __future__ import annotations

from typing import Any, ClassVar

from ...document import actions
from .base import ToolContext, WriteTool
from .errors import InvalidArgumentsError
from .tool_registry import ParameterSchema, ToolCategory, ToolName

_RECORD = ParameterSchema(
    name="record",
    type="object",
    description="A record. Keys are column IDs (e.g., 'Name', 'Age'). Example: `{\"Name\": \"Alice\", \"Age\": 30}`",
)

_RECORD_IDS = ParameterSchema(
    name="record_ids",
    type="array",
    required=True,
    min_items=1,
    items=ParameterSchema(name="record_id", type="integer"),
    description="The IDs of the records.",
)


def _record_columns(records: list[dict[str, Any]]) -> list[str]:
    col_ids: list[str] = []
    for record in records:
        col_ids.extend(key for key in record if key not in col_ids)
    return col_ids


class AddRecordsTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.ADD_RECORDS
    description: ClassVar[str] = "Adds one or more records to a table."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(
            name="table_id",
            type="string",
            required=True,
            description="The ID of the table to add the records to.",
        ),
        ParameterSchema(
            name="records",
            type="array",
            required=True,
            min_items=1,
            items=_RECORD,
            description="The records to add.",
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.DATA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        records = params["records"]
        result = await context.apply(
            [actions.bulk_add_record(table_id, records)],
            parse_strings=True,
            table_id=table_id,
            column_ids=_record_columns(records),
        )
        return {"record_ids": list(result.ret_values[0] or [])}


class UpdateRecordsTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.UPDATE_RECORDS
    description: ClassVar[str] = "Updates one or more records in a table."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(
            name="table_id",
            type="string",
            required=True,
            description="The ID of the table to update the records in.",
        ),
        _RECORD_IDS,
        ParameterSchema(
            name="records",
            type="array",
            required=True,
            min_items=1,
            items=_RECORD,
            description="The new values, in the same order as record_ids.",
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.DATA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        record_ids = params["record_ids"]
        records = params["records"]
        if len(record_ids) != len(records):
            raise InvalidArgumentsError(
                message=f"record_ids has {len(record_ids)} items but records has {len(records)}",
                suggestion="Pass one record per record ID, in the same order",
                path="records",
            )
        await context.apply(
            [actions.bulk_update_record(table_id, record_ids, records)],
            parse_strings=True,
            table_id=table_id,
            column_ids=_record_columns(records),
        )
        return {"updated_record_ids": list(record_ids)}


class RemoveRecordsTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.REMOVE_RECORDS
    description: ClassVar[str] = "Removes one or more records from a table."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(
            name="table_id",
            type="string",
            required=True,
            description="The ID of the table to remove the records from.",
        ),
        _RECORD_IDS,
    )
    category: ClassVar[ToolCategory] = ToolCategory.DATA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        table_id = params["table_id"]
        record_ids = params["record_ids"]
        await context.apply([actions.bulk_remove_record(table_id, record_ids)], table_id=table_id)
        return {"removed_record_ids": list(record_ids)}


__all__ = ["AddRecordsTool", "RemoveRecordsTool", "UpdateRecordsTool"]

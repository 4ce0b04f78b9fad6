"""Tools for pages, the widgets placed on them, and widget linking.

A page shows one or more widgets. Each widget displays one table as a
grid, card, card list or custom widget. A widget can be linked to
another widget on the same page ("select by") so that selecting a row
in the source filters or moves the cursor in the target.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar

from ...document import actions
from ...document.actions import PAGES_TABLE, WIDGETS_TABLE
from ...document.model import DocumentMetadata, PageMeta, WidgetMeta
from .base import ReadOnlyTool, ToolContext, WriteTool
from .errors import (
    ColumnNotFoundError,
    InvalidArgumentsError,
    PageNotFoundError,
    TableNotFoundError,
    WidgetNotFoundError,
)
from .tool_registry import ParameterSchema, ToolCategory, ToolName
from .widget_types import WidgetType


PAGE_ID_PARAM = ParameterSchema(
    name="page_id",
    type="integer",
    description="The ID of the page.",
    required=True,
)

WIDGET_ID_PARAM = ParameterSchema(
    name="widget_id",
    type="integer",
    description="The ID of the widget.",
    required=True,
)

_CUSTOM_WIDGET_ID = ParameterSchema(
    name="custom_widget_id",
    type="string",
    description="ID of a custom widget from get_available_custom_widgets. Only applies if type is custom.",
)
_CUSTOM_WIDGET_URL = ParameterSchema(
    name="custom_widget_url",
    type="string",
    description="URL of a custom widget not in the available list. Only applies if type is custom.",
)
_TITLE = ParameterSchema(name="title", type="string", description="The widget title.")
_DESCRIPTION = ParameterSchema(name="description", type="string", description="The widget description.")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _require_page(meta: DocumentMetadata, page_id: int) -> PageMeta:
    page = meta.page_by_ref(page_id)
    if page is None:
        raise PageNotFoundError(message=f"Page {page_id} not found", page_id=page_id)
    return page


def _require_widget(meta: DocumentMetadata, widget_id: int) -> WidgetMeta:
    widget = meta.widget_by_ref(widget_id)
    if widget is None:
        raise WidgetNotFoundError(message=f"Widget {widget_id} not found", widget_id=widget_id)
    return widget


def _widget_type_name(widget: WidgetMeta) -> str:
    try:
        return WidgetType.from_storage_key(widget.parent_key).ui_name
    except ValueError:
        return widget.parent_key


def _col_id(meta: DocumentMetadata, col_ref: int) -> str | None:
    if not col_ref:
        return None
    col = meta.column_by_ref(col_ref)
    return col.col_id if col is not None else None


def describe_widget(meta: DocumentMetadata, widget: WidgetMeta) -> dict[str, Any]:
    """Widget fields as reported to the model."""
    table = meta.table_by_ref(widget.table_ref)
    described: dict[str, Any] = {
        "id": widget.ref,
        "page_id": widget.page_ref,
        "type": _widget_type_name(widget),
        "table_id": table.table_id if table is not None else None,
        "title": widget.title,
        "description": widget.description,
    }
    if widget.group_by_col_refs:
        described["group_by_column_ids"] = [_col_id(meta, ref) for ref in widget.group_by_col_refs]
    if widget.custom_view:
        try:
            custom = json.loads(widget.custom_view)
        except ValueError:
            custom = {}
        described["custom_widget_id"] = custom.get("widgetId")
        described["custom_widget_url"] = custom.get("url")
    if widget.link_src_widget_ref:
        described["select_by"] = {
            "link_from_widget_id": widget.link_src_widget_ref,
            "link_from_column_id": _col_id(meta, widget.link_src_col_ref),
            "link_to_column_id": _col_id(meta, widget.link_target_col_ref),
        }
    return described


def select_by_options(meta: DocumentMetadata, widget: WidgetMeta) -> list[dict[str, Any]]:
    """Ways ``widget`` may be linked to other widgets on its page.

    A link is one of:
    - same table: the target follows the source's selected row;
    - source reference column pointing at the target's table: the target's
      cursor moves to the referenced record;
    - target reference column pointing at the source's table: the target is
      filtered to records referencing the selected source row;
    - reference columns in both pointing at the same table: the target is
      filtered to records referencing the same record as the source row.
    """
    target_table = meta.table_by_ref(widget.table_ref)
    if target_table is None or widget.group_by_col_refs:
        return []
    target_cols = meta.columns_for(target_table.ref)

    options: list[dict[str, Any]] = []

    def add(source: WidgetMeta, from_col: str | None, to_col: str | None) -> None:
        options.append(
            {
                "link_from_widget_id": source.ref,
                "link_from_column_id": from_col,
                "link_to_column_id": to_col,
            }
        )

    for source in meta.widgets_on_page(widget.page_ref):
        if source.ref == widget.ref or source.group_by_col_refs:
            continue
        if source.link_src_widget_ref == widget.ref:
            continue
        source_table = meta.table_by_ref(source.table_ref)
        if source_table is None:
            continue
        source_cols = meta.columns_for(source_table.ref)

        if source_table.ref == target_table.ref:
            add(source, None, None)
        for col in source_cols:
            if col.base_type == "Ref" and col.ref_table_id == target_table.table_id:
                add(source, col.col_id, None)
        for col in target_cols:
            if col.ref_table_id == source_table.table_id:
                add(source, None, col.col_id)
        for src_col in source_cols:
            if src_col.base_type != "Ref" or not src_col.ref_table_id:
                continue
            for tgt_col in target_cols:
                if tgt_col.ref_table_id == src_col.ref_table_id:
                    add(source, src_col.col_id, tgt_col.col_id)
    return options


async def _custom_view(context: ToolContext, options: dict[str, Any]) -> str | None:
    widget_id = options.get("custom_widget_id")
    url = options.get("custom_widget_url")
    if widget_id:
        available = await context.document.list_custom_widgets(context.session)
        for custom in available:
            if custom.widget_id == widget_id:
                return json.dumps({"widgetId": custom.widget_id, "url": custom.url})
        raise InvalidArgumentsError(
            message=f"Custom widget {widget_id} not found",
            suggestion="Call get_available_custom_widgets to list valid custom widget IDs",
            path="widget_options.custom_widget_id",
        )
    if url:
        return json.dumps({"widgetId": None, "url": url})
    return None


# -----------------------------------------------------------------------------
# Pages
# -----------------------------------------------------------------------------


class GetPagesTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_PAGES
    description: ClassVar[str] = "Returns all pages in the document."
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        meta = await context.metadata()
        return {
            "pages": [
                {"id": page.ref, "name": page.name, "widget_count": len(meta.widgets_on_page(page.ref))}
                for page in meta.pages
            ]
        }


class UpdatePageTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.UPDATE_PAGE
    description: ClassVar[str] = "Updates a page's name."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        PAGE_ID_PARAM,
        ParameterSchema(
            name="page_options",
            type="object",
            required=True,
            description="The options to update.",
            properties=(
                ParameterSchema(name="name", type="string", description="The new page name.", required=True),
            ),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        page_id = params["page_id"]
        _require_page(await context.metadata(), page_id)
        name = params["page_options"]["name"]
        await context.apply([actions.update_record(PAGES_TABLE, page_id, {"name": name})])
        return {"page_id": page_id, "name": name}


class RemovePageTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.REMOVE_PAGE
    description: ClassVar[str] = (
        "Removes a page and its widgets. The tables shown on the page are kept."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (PAGE_ID_PARAM,)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        page_id = params["page_id"]
        _require_page(await context.metadata(), page_id)
        await context.apply([actions.remove_record(PAGES_TABLE, page_id)])
        return {"removed_page_id": page_id}


# -----------------------------------------------------------------------------
# Widgets
# -----------------------------------------------------------------------------


class GetPageWidgetsTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_PAGE_WIDGETS
    description: ClassVar[str] = "Returns all widgets on a page."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (PAGE_ID_PARAM,)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        meta = await context.metadata()
        page = _require_page(meta, params["page_id"])
        return {"widgets": [describe_widget(meta, widget) for widget in meta.widgets_on_page(page.ref)]}


class AddPageWidgetTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.ADD_PAGE_WIDGET
    description: ClassVar[str] = (
        "Adds a widget to a page. If page_id is null, a new page is created. "
        "If table_id is null, a new table is created for the widget."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(
            name="page_id",
            type="integer",
            nullable=True,
            required=True,
            description="The ID of the page to add the widget to, or null to add a new page.",
        ),
        ParameterSchema(
            name="widget_options",
            type="object",
            required=True,
            description="The options to create the widget with.",
            properties=(
                ParameterSchema(
                    name="table_id",
                    type="string",
                    nullable=True,
                    required=True,
                    description="The ID of the table to show, or null to create a new table.",
                ),
                ParameterSchema(
                    name="type",
                    type="string",
                    enum=tuple(WidgetType.creatable()),
                    required=True,
                    description="The widget type.",
                ),
                ParameterSchema(
                    name="group_by_column_ids",
                    type="array",
                    min_items=1,
                    items=ParameterSchema(name="column_id", type="string"),
                    description="Columns to group by, producing a summary of the table.",
                ),
                _CUSTOM_WIDGET_ID,
                _CUSTOM_WIDGET_URL,
                _TITLE,
                _DESCRIPTION,
            ),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        meta = await context.metadata()
        page_id = params.get("page_id")
        if page_id is not None:
            _require_page(meta, page_id)

        options = params["widget_options"]
        widget_type = WidgetType.from_ui_name(options["type"])
        table_id = options.get("table_id")
        table_ref = 0
        if table_id is not None:
            table = meta.table_by_id(table_id)
            if table is None:
                raise TableNotFoundError.for_table(table_id)
            table_ref = table.ref

        group_by = options.get("group_by_column_ids")
        group_by_refs: list[int] | None = None
        if group_by:
            if table_id is None:
                raise InvalidArgumentsError(
                    message="group_by_column_ids requires table_id",
                    path="widget_options.group_by_column_ids",
                )
            group_by_refs = []
            for col_id in group_by:
                refs = meta.col_ids_to_refs(table_id, [col_id])
                if not refs:
                    raise ColumnNotFoundError.for_column(table_id, col_id)
                group_by_refs.append(refs[0])

        custom_view = None
        if widget_type is WidgetType.CUSTOM:
            custom_view = await _custom_view(context, options)
            if custom_view is None:
                raise InvalidArgumentsError(
                    message="custom_widget_id or custom_widget_url is required when type is custom",
                    path="widget_options",
                )

        result = await context.apply(
            [actions.create_view_section(table_ref, page_id or 0, widget_type.storage_key, group_by_refs)],
            table_id=table_id,
            column_ids=group_by or (),
        )
        created = result.ret_values[0]
        widget_id = created["sectionRef"]

        followup: dict[str, Any] = {}
        for key in ("title", "description"):
            if options.get(key) is not None:
                followup[key] = options[key]
        if custom_view is not None:
            followup["custom_view"] = custom_view
        if followup:
            await context.apply([actions.update_record(WIDGETS_TABLE, widget_id, followup)])

        new_meta = await context.metadata()
        new_table = new_meta.table_by_ref(created["tableRef"])
        return {
            "widget_id": widget_id,
            "page_id": created["viewRef"],
            "table_id": new_table.table_id if new_table is not None else table_id,
        }


class UpdatePageWidgetTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.UPDATE_PAGE_WIDGET
    description: ClassVar[str] = "Updates a widget's type, title, description or custom widget."
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        WIDGET_ID_PARAM,
        ParameterSchema(
            name="widget_options",
            type="object",
            required=True,
            description="The options to update.",
            properties=(
                ParameterSchema(
                    name="type",
                    type="string",
                    enum=tuple(WidgetType.creatable()),
                    description="The widget type.",
                ),
                _CUSTOM_WIDGET_ID,
                _CUSTOM_WIDGET_URL,
                _TITLE,
                _DESCRIPTION,
            ),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        widget_id = params["widget_id"]
        widget = _require_widget(await context.metadata(), widget_id)
        options = params["widget_options"]

        values: dict[str, Any] = {}
        widget_type = WidgetType.from_ui_name(options["type"]) if options.get("type") else None
        if widget_type is not None:
            values["parent_key"] = widget_type.storage_key
        is_custom = widget_type is WidgetType.CUSTOM or (
            widget_type is None and widget.parent_key == WidgetType.CUSTOM.storage_key
        )

        custom_view = await _custom_view(context, options)
        if custom_view is not None:
            if not is_custom:
                raise InvalidArgumentsError(
                    message="custom_widget_id and custom_widget_url only apply to custom widgets",
                    path="widget_options",
                )
            values["custom_view"] = custom_view
        elif widget_type is WidgetType.CUSTOM and not widget.custom_view:
            raise InvalidArgumentsError(
                message="custom_widget_id or custom_widget_url is required when type is custom",
                path="widget_options",
            )
        elif widget_type is not None and not is_custom and widget.custom_view:
            values["custom_view"] = ""

        for key in ("title", "description"):
            if options.get(key) is not None:
                values[key] = options[key]
        if not values:
            raise InvalidArgumentsError(message="widget_options did not specify any change", path="widget_options")

        await context.apply([actions.update_record(WIDGETS_TABLE, widget_id, values)])
        return {"widget_id": widget_id, "updated": sorted(values)}


class RemovePageWidgetTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.REMOVE_PAGE_WIDGET
    description: ClassVar[str] = (
        "Removes a widget from its page. If it is the only widget on the page, the page is removed too."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (WIDGET_ID_PARAM,)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        widget_id = params["widget_id"]
        meta = await context.metadata()
        widget = _require_widget(meta, widget_id)
        if len(meta.widgets_on_page(widget.page_ref)) == 1:
            await context.apply([actions.remove_record(PAGES_TABLE, widget.page_ref)])
            return {"removed_widget_id": widget_id, "removed_page_id": widget.page_ref}
        await context.apply([actions.remove_record(WIDGETS_TABLE, widget_id)])
        return {"removed_widget_id": widget_id}


class GetPageWidgetSelectByOptionsTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_PAGE_WIDGET_SELECT_BY_OPTIONS
    description: ClassVar[str] = (
        "Returns the ways a widget can be linked to other widgets on its page. "
        "Use one of these with set_page_widget_select_by."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (WIDGET_ID_PARAM,)
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        meta = await context.metadata()
        widget = _require_widget(meta, params["widget_id"])
        return {"options": select_by_options(meta, widget)}


class SetPageWidgetSelectByTool(WriteTool):
    name: ClassVar[ToolName] = ToolName.SET_PAGE_WIDGET_SELECT_BY
    description: ClassVar[str] = (
        "Links a widget to another widget on the same page, or unlinks it when widget_select_by is null. "
        "The link must be one returned by get_page_widget_select_by_options."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        WIDGET_ID_PARAM,
        ParameterSchema(
            name="widget_select_by",
            type="object",
            nullable=True,
            required=True,
            description="The link to set, or null to remove the current link.",
            properties=(
                ParameterSchema(
                    name="link_from_widget_id",
                    type="integer",
                    required=True,
                    description="The widget to link from.",
                ),
                ParameterSchema(
                    name="link_from_column_id",
                    type="string",
                    nullable=True,
                    required=True,
                    description="The column in the source widget to match on, or null to match by row ID.",
                ),
                ParameterSchema(
                    name="link_to_column_id",
                    type="string",
                    nullable=True,
                    required=True,
                    description="The column in this widget to match on, or null to match by row ID.",
                ),
            ),
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_MUTATION
    strict: ClassVar[bool] = True

    async def write(self, context: ToolContext, params: dict[str, Any]) -> Any:
        widget_id = params["widget_id"]
        meta = await context.metadata()
        widget = _require_widget(meta, widget_id)
        select_by = params.get("widget_select_by")

        if select_by is None:
            values = {"link_src_widget_ref": 0, "link_src_col_ref": 0, "link_target_col_ref": 0}
        else:
            requested = {
                "link_from_widget_id": select_by["link_from_widget_id"],
                "link_from_column_id": select_by.get("link_from_column_id"),
                "link_to_column_id": select_by.get("link_to_column_id"),
            }
            if requested not in select_by_options(meta, widget):
                raise InvalidArgumentsError(
                    message="Invalid widget_select_by",
                    suggestion="Call get_page_widget_select_by_options and pick one of the returned options",
                    path="widget_select_by",
                )
            source = _require_widget(meta, requested["link_from_widget_id"])
            values = {
                "link_src_widget_ref": source.ref,
                "link_src_col_ref": self._col_ref(meta, source, requested["link_from_column_id"]),
                "link_target_col_ref": self._col_ref(meta, widget, requested["link_to_column_id"]),
            }

        await context.apply([actions.update_record(WIDGETS_TABLE, widget_id, values)])
        return {"widget_id": widget_id, "widget_select_by": select_by}

    @staticmethod
    def _col_ref(meta: DocumentMetadata, widget: WidgetMeta, col_id: str | None) -> int:
        if col_id is None:
            return 0
        for col in meta.columns_for(widget.table_ref):
            if col.col_id == col_id:
                return col.ref
        return 0


class GetAvailableCustomWidgetsTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_AVAILABLE_CUSTOM_WIDGETS
    description: ClassVar[str] = "Returns the custom widgets that can be added to pages."
    category: ClassVar[ToolCategory] = ToolCategory.SCHEMA_DISCOVERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        widgets = await context.document.list_custom_widgets(context.session)
        return {"custom_widgets": [widget.to_dict() for widget in widgets]}


__all__ = [
    "AddPageWidgetTool",
    "GetAvailableCustomWidgetsTool",
    "GetPageWidgetSelectByOptionsTool",
    "GetPageWidgetsTool",
    "GetPagesTool",
    "RemovePageTool",
    "RemovePageWidgetTool",
    "SetPageWidgetSelectByTool",
    "UpdatePageTool",
    "UpdatePageWidgetTool",
    "describe_widget",
    "select_by_options",
]

"""Translate model-facing column options into a column-info struct.

The model describes columns with flat, friendly options such as
``number_format="currency"`` or ``cell_bold=True``. The document stores
a column as a type string plus a JSON blob of display options. This
module owns that translation for ``add_table_column`` and
``update_table_column``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from ...document.actions import LIST_MARKER, RECALC_DEFAULT, RECALC_MANUAL_UPDATES, RECALC_NEVER
from ...document.model import ColumnMeta, DocumentMetadata
from .errors import ColumnNotFoundError, InvalidArgumentsError, MissingReferenceTargetError, TableNotFoundError
from .tool_registry import ParameterSchema

LOGGER = logging.getLogger(__name__)

COLUMN_TYPES = (
    "Any",
    "Text",
    "Numeric",
    "Int",
    "Bool",
    "Date",
    "DateTime",
    "Choice",
    "ChoiceList",
    "Ref",
    "RefList",
    "Attachments",
)

DATE_FORMATS = (
    "YYYY-MM-DD",
    "MM-DD-YYYY",
    "MM/DD/YYYY",
    "MM-DD-YY",
    "MM/DD/YY",
    "DD MMM YYYY",
    "MMMM Do, YYYY",
    "DD-MM-YYYY",
    "custom",
)

TIME_FORMATS = ("h:mma", "h:mma z", "HH:mm", "HH:mm z", "HH:mm:ss", "HH:mm:ss z", "custom")

_TEXT_WIDGETS = {"text": "TextBox", "markdown": "Markdown", "hyperlink": "HyperLink"}
_TOGGLE_WIDGETS = {"text": "TextBox", "checkbox": "CheckBox", "switch": "Switch"}
_NUM_MODES = {"text": None, "currency": "currency", "decimal": "decimal", "percent": "percent", "scientific": "scientific"}
_NUM_SIGNS = {"minus": None, "parens": "parens"}

# option name -> widgetOptions key, copied through unchanged
_STYLE_OPTIONS = {
    "number_currency_code": "currency",
    "number_min_decimals": "decimals",
    "number_max_decimals": "maxDecimals",
    "attachment_height": "height",
    "text_alignment": "alignment",
    "text_wrap": "wrap",
    "choices": "choices",
    "choice_styles": "choiceOptions",
    "cell_text_color": "textColor",
    "cell_fill_color": "fillColor",
    "cell_bold": "fontBold",
    "cell_underline": "fontUnderline",
    "cell_italic": "fontItalic",
    "cell_strikethrough": "fontStrikethrough",
    "header_text_color": "headerTextColor",
    "header_fill_color": "headerFillColor",
    "header_bold": "headerFontBold",
    "header_underline": "headerFontUnderline",
    "header_italic": "headerFontItalic",
    "header_strikethrough": "headerFontStrikethrough",
}


# -----------------------------------------------------------------------------
# Parameter schemas
# -----------------------------------------------------------------------------


def _hex_color(name: str, what: str) -> ParameterSchema:
    return ParameterSchema(
        name=name,
        type="string",
        description=f"The {what} color, as a six-value hexadecimal string. Example: `\"#16B378\"`",
    )


def _flag(name: str, what: str) -> ParameterSchema:
    return ParameterSchema(name=name, type="boolean", description=f"If {what}.")


def column_option_properties(*, for_update: bool) -> tuple[ParameterSchema, ...]:
    """Properties of the ``column_options`` object for add or update."""
    properties: list[ParameterSchema] = []
    if for_update:
        properties.append(
            ParameterSchema(name="id", type="string", description="A new ID for the column.")
        )
    properties += [
        ParameterSchema(name="type", type="string", enum=COLUMN_TYPES, description="The column type."),
        ParameterSchema(
            name="text_format",
            type="string",
            enum=tuple(_TEXT_WIDGETS),
            description="The format of Text columns. If unset, defaults to text.",
        ),
        ParameterSchema(
            name="number_show_spinner",
            type="boolean",
            description="Whether to show increment/decrement buttons. If unset, defaults to false.",
        ),
        ParameterSchema(
            name="number_format",
            type="string",
            enum=tuple(_NUM_MODES),
            description="The format of Int and Numeric columns. If unset, defaults to text.",
        ),
        ParameterSchema(
            name="number_currency_code",
            type="string",
            nullable=True,
            description=(
                "ISO 4217 currency code (e.g. 'USD', 'GBP'). Uses the document's currency if "
                "null or unset. Only applies if number_format is currency."
            ),
        ),
        ParameterSchema(
            name="number_minus_sign",
            type="string",
            enum=tuple(_NUM_SIGNS),
            description="How to format negative numbers. If unset, defaults to minus.",
        ),
        ParameterSchema(
            name="number_min_decimals",
            type="number",
            minimum=0,
            maximum=20,
            description="Minimum number of decimals for Int and Numeric columns.",
        ),
        ParameterSchema(
            name="number_max_decimals",
            type="number",
            minimum=0,
            maximum=20,
            description="Maximum number of decimals for Int and Numeric columns.",
        ),
        ParameterSchema(
            name="toggle_format",
            type="string",
            enum=tuple(_TOGGLE_WIDGETS),
            description="The format of Bool columns. If unset, defaults to checkbox.",
        ),
        ParameterSchema(
            name="reference_table_id",
            type="string",
            description="The ID of the referenced table. Required if type is Ref or RefList.",
        ),
    ]
    if for_update:
        properties.append(
            ParameterSchema(
                name="reference_show_column_id",
                type="string",
                description="The ID of the column in the referenced table to show in Ref and RefList cells.",
            )
        )
    properties += [
        ParameterSchema(
            name="date_format",
            type="string",
            enum=DATE_FORMATS,
            description="The date format of Date and DateTime columns. If custom, date_custom_format must be set.",
        ),
        ParameterSchema(
            name="date_custom_format",
            type="string",
            description="A Moment.js date format string (e.g. 'ddd, hA'). Only applied if date_format is custom.",
        ),
        ParameterSchema(
            name="time_format",
            type="string",
            enum=TIME_FORMATS,
            description="The time format of DateTime columns. If custom, time_custom_format must be set.",
        ),
        ParameterSchema(
            name="time_custom_format",
            type="string",
            description="A Moment.js time format string (e.g. 'h:mm a'). Only applied if time_format is custom.",
        ),
        ParameterSchema(
            name="timezone",
            type="string",
            description="IANA timezone (e.g. 'America/New_York') for DateTime columns. Defaults to the document's.",
        ),
        ParameterSchema(
            name="attachment_height",
            type="number",
            minimum=16,
            maximum=96,
            description="Height of attachment thumbnails in pixels.",
        ),
        ParameterSchema(name="label", type="string", description="The column label."),
        ParameterSchema(
            name="formula",
            type="string",
            nullable=True,
            description="The column formula, in Python syntax (e.g. `$Amount * 1.1`).",
        ),
        ParameterSchema(
            name="formula_type",
            type="string",
            nullable=True,
            enum=("regular", "trigger"),
            description=(
                "Regular formulas recalculate whenever the document changes. Trigger formulas only "
                "recalculate according to formula_recalc_behavior. Required if formula is not null."
            ),
        ),
    ]
    if for_update:
        properties += [
            ParameterSchema(
                name="formula_recalc_behavior",
                type="string",
                enum=("add-record", "add-or-update-record", "custom", "never"),
                description=(
                    "When a trigger formula recalculates: on new records, on new records and any update, "
                    "when a column in formula_recalc_col_ids is updated (custom), or never."
                ),
            ),
            ParameterSchema(
                name="formula_recalc_col_ids",
                type="array",
                items=ParameterSchema(name="col_id", type="string"),
                description="Columns that trigger recalculation. Required if formula_recalc_behavior is custom.",
            ),
        ]
    properties += [
        ParameterSchema(
            name="untie_col_id_from_label",
            type="boolean",
            description="True if the column ID should not follow changes to the label.",
        ),
        ParameterSchema(name="description", type="string", description="The column description."),
        ParameterSchema(
            name="text_alignment",
            type="string",
            enum=("left", "center", "right"),
            description="The column text alignment.",
        ),
        ParameterSchema(name="text_wrap", type="boolean", description="True if cell text should wrap."),
        ParameterSchema(
            name="choices",
            type="array",
            items=ParameterSchema(name="choice", type="string"),
            description="Valid choices for Choice and ChoiceList columns.",
        ),
        ParameterSchema(
            name="choice_styles",
            type="object",
            description=(
                "Styles keyed by choice. Values may set textColor, fillColor, fontUnderline, fontItalic "
                'and fontStrikethrough. Example: `{"Done": {"fillColor": "#16B378"}}`'
            ),
        ),
        _hex_color("cell_text_color", "cell text"),
        _hex_color("cell_fill_color", "cell fill"),
        _flag("cell_bold", "cell text should be bold"),
        _flag("cell_underline", "cell text should be underlined"),
        _flag("cell_italic", "cell text should be italic"),
        _flag("cell_strikethrough", "cell text should be struck through"),
        _hex_color("header_text_color", "header text"),
        _hex_color("header_fill_color", "header fill"),
        _flag("header_bold", "header text should be bold"),
        _flag("header_underline", "header text should be underlined"),
        _flag("header_italic", "header text should be italic"),
        _flag("header_strikethrough", "header text should be struck through"),
        ParameterSchema(
            name="conditional_formatting_rules",
            type=None,
            description="Not yet supported. Tell the user to configure conditional formatting in the column's creator panel.",
        ),
    ]
    return tuple(properties)


# -----------------------------------------------------------------------------
# Column info
# -----------------------------------------------------------------------------


def build_col_info(
    meta: DocumentMetadata,
    column: ColumnMeta | None,
    options: Mapping[str, Any],
) -> dict[str, Any]:
    """Build the column-info struct for ``AddVisibleColumn`` / ``ModifyColumn``.

    Args:
        meta: Current document metadata, used to resolve column refs.
        column: The existing column when updating, ``None`` when adding.
        options: Validated ``column_options`` from the model.

    Returns:
        Column fields keyed by their storage names (``type``, ``widgetOptions``, ...).

    Raises:
        MissingReferenceTargetError: A Ref/RefList type has no target table.
        InvalidArgumentsError: A custom format was chosen without a format string.
    """
    col_info: dict[str, Any] = {}
    for key in ("type", "label", "formula", "description"):
        if key in options:
            col_info[key] = options[key]
    if col_info.get("formula") is None and "formula" in col_info:
        col_info["formula"] = ""
    if options.get("id"):
        col_info["colId"] = options["id"]

    if col_info.get("type") == "DateTime":
        timezone = options.get("timezone")
        if timezone is None:
            timezone = meta.doc_info.timezone or "UTC"
        col_info["type"] = f"DateTime:{timezone}"

    original_ref_table = column.ref_table_id if column is not None else None
    ref_table_id = options.get("reference_table_id") or original_ref_table
    new_type = col_info.get("type")
    if new_type in ("Ref", "RefList"):
        if not ref_table_id:
            raise MissingReferenceTargetError(
                suggestion="Set reference_table_id to the ID of the table this column should reference",
            )
        col_info["type"] = f"{new_type}:{ref_table_id}"
    elif new_type is None and original_ref_table and options.get("reference_table_id"):
        col_info["type"] = f"{column.base_type}:{options['reference_table_id']}"

    show_col_id = options.get("reference_show_column_id")
    if show_col_id is not None:
        if not ref_table_id:
            raise InvalidArgumentsError(
                message="reference_show_column_id parameter is only valid for Ref or RefList columns",
                path="column_options.reference_show_column_id",
            )
        if meta.table_by_id(ref_table_id) is None:
            raise TableNotFoundError.for_table(ref_table_id)
        refs = meta.col_ids_to_refs(ref_table_id, [show_col_id])
        if not refs:
            raise ColumnNotFoundError.for_column(ref_table_id, show_col_id)
        col_info["visibleCol"] = refs[0]

    if options.get("formula_type") is not None:
        col_info["isFormula"] = options["formula_type"] == "regular"
    if "formula" in col_info and not col_info["formula"]:
        col_info["isFormula"] = False

    if options.get("formula_recalc_col_ids") is not None and column is not None:
        table = meta.table_by_ref(column.table_ref)
        refs = meta.col_ids_to_refs(table.table_id, options["formula_recalc_col_ids"]) if table else []
        col_info["recalcDeps"] = [LIST_MARKER, *refs]
    _apply_recalc_behavior(col_info, options.get("formula_recalc_behavior"))

    if options.get("untie_col_id_from_label") is not None:
        col_info["untieColIdFromLabel"] = options["untie_col_id_from_label"]

    widget_options = build_widget_options(options)
    if widget_options:
        merged = _parse_widget_options(column.widget_options if column is not None else "")
        merged.update(widget_options)
        col_info["widgetOptions"] = json.dumps(merged)
    return col_info


def _apply_recalc_behavior(col_info: dict[str, Any], behavior: str | None) -> None:
    if behavior is None:
        return
    if behavior == "add-record":
        col_info["recalcWhen"] = RECALC_DEFAULT
        col_info["recalcDeps"] = None
    elif behavior == "add-or-update-record":
        col_info["recalcWhen"] = RECALC_MANUAL_UPDATES
        col_info["recalcDeps"] = None
    elif behavior == "custom":
        col_info["recalcWhen"] = RECALC_DEFAULT
    elif behavior == "never":
        col_info["recalcWhen"] = RECALC_NEVER
        col_info["recalcDeps"] = None
    else:
        raise InvalidArgumentsError(message=f"Invalid formula_recalc_behavior: {behavior}")


def build_widget_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """Collect display options set in ``options``; empty when none are set."""
    widget_options: dict[str, Any] = {}

    if "text_format" in options:
        widget_options["widget"] = _TEXT_WIDGETS[options["text_format"]]
    if "number_show_spinner" in options:
        widget_options["widget"] = "Spinner" if options["number_show_spinner"] else "TextBox"
    if "number_format" in options:
        widget_options["numMode"] = _NUM_MODES[options["number_format"]]
    if "number_minus_sign" in options:
        widget_options["numSign"] = _NUM_SIGNS[options["number_minus_sign"]]
    if "toggle_format" in options:
        widget_options["widget"] = _TOGGLE_WIDGETS[options["toggle_format"]]

    if "date_format" in options:
        if options["date_format"] == "custom":
            if not options.get("date_custom_format"):
                raise InvalidArgumentsError(
                    message="date_custom_format is required when date_format is custom",
                    path="column_options.date_custom_format",
                )
            widget_options["dateFormat"] = options["date_custom_format"]
            widget_options["isCustomDateFormat"] = True
        else:
            widget_options["dateFormat"] = options["date_format"]
            widget_options["isCustomDateFormat"] = False

    if "time_format" in options:
        if options["time_format"] == "custom":
            if not options.get("time_custom_format"):
                raise InvalidArgumentsError(
                    message="time_custom_format is required when time_format is custom",
                    path="column_options.time_custom_format",
                )
            widget_options["timeFormat"] = options["time_custom_format"]
            widget_options["isCustomTimeFormat"] = True
        else:
            widget_options["timeFormat"] = options["time_format"]
            widget_options["isCustomTimeFormat"] = False

    for option, key in _STYLE_OPTIONS.items():
        if option in options:
            widget_options[key] = options[option]
    return widget_options


def _parse_widget_options(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        LOGGER.debug("Ignoring unparseable widget options: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}

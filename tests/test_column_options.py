"""Tests for column option translation."""

from __future__ import annotations

import json

import pytest

from cellsmith.ai.tools.column_options import build_col_info, build_widget_options
from cellsmith.ai.tools.errors import (
    ColumnNotFoundError,
    InvalidArgumentsError,
    MissingReferenceTargetError,
    TableNotFoundError,
)
from cellsmith.document.actions import LIST_MARKER, RECALC_DEFAULT, RECALC_MANUAL_UPDATES, RECALC_NEVER
from cellsmith.document.model import ColumnMeta, DocInfo, DocumentMetadata, TableMeta


@pytest.fixture
def meta() -> DocumentMetadata:
    return DocumentMetadata(
        doc_info=DocInfo(timezone="Europe/Paris"),
        tables=[TableMeta(ref=1, table_id="Projects"), TableMeta(ref=2, table_id="People")],
        columns=[
            ColumnMeta(ref=1, table_ref=1, col_id="Name", type="Text"),
            ColumnMeta(ref=2, table_ref=1, col_id="Lead", type="Ref:People", widget_options='{"alignment": "left"}'),
            ColumnMeta(ref=3, table_ref=2, col_id="Email", type="Text"),
            ColumnMeta(ref=4, table_ref=1, col_id="Budget", type="Numeric"),
        ],
    )


def _column(meta: DocumentMetadata, col_id: str) -> ColumnMeta:
    column = meta.find_column("Projects", col_id)
    assert column is not None
    return column


def test_plain_fields_are_copied(meta) -> None:
    info = build_col_info(meta, None, {"type": "Text", "label": "Full name", "description": "Who"})
    assert info == {"type": "Text", "label": "Full name", "description": "Who"}


def test_datetime_uses_given_or_document_timezone(meta) -> None:
    assert build_col_info(meta, None, {"type": "DateTime"})["type"] == "DateTime:Europe/Paris"
    info = build_col_info(meta, None, {"type": "DateTime", "timezone": "America/New_York"})
    assert info["type"] == "DateTime:America/New_York"


@pytest.mark.parametrize("kind", ["Ref", "RefList"])
def test_reference_type_is_suffixed_with_target(meta, kind) -> None:
    info = build_col_info(meta, None, {"type": kind, "reference_table_id": "People"})
    assert info["type"] == f"{kind}:People"


def test_reference_type_reuses_previous_target(meta) -> None:
    info = build_col_info(meta, _column(meta, "Lead"), {"type": "RefList"})
    assert info["type"] == "RefList:People"


def test_reference_type_without_any_target(meta) -> None:
    with pytest.raises(MissingReferenceTargetError):
        build_col_info(meta, _column(meta, "Name"), {"type": "Ref"})


def test_show_column_resolves_to_a_ref(meta) -> None:
    info = build_col_info(meta, _column(meta, "Lead"), {"reference_show_column_id": "Email"})
    assert info == {"visibleCol": 3}


def test_show_column_errors(meta) -> None:
    with pytest.raises(InvalidArgumentsError):
        build_col_info(meta, _column(meta, "Name"), {"reference_show_column_id": "Email"})
    with pytest.raises(ColumnNotFoundError):
        build_col_info(meta, _column(meta, "Lead"), {"reference_show_column_id": "Phone"})
    with pytest.raises(TableNotFoundError):
        build_col_info(
            meta,
            _column(meta, "Lead"),
            {"reference_table_id": "Nowhere", "reference_show_column_id": "Email"},
        )


def test_formula_flags(meta) -> None:
    assert build_col_info(meta, None, {"formula": "$Budget * 2", "formula_type": "regular"})["isFormula"] is True
    assert build_col_info(meta, None, {"formula": "NOW()", "formula_type": "trigger"})["isFormula"] is False
    cleared = build_col_info(meta, _column(meta, "Budget"), {"formula": None})
    assert cleared == {"formula": "", "isFormula": False}


@pytest.mark.parametrize(
    ("behavior", "expected"),
    [
        ("add-record", {"recalcWhen": RECALC_DEFAULT, "recalcDeps": None}),
        ("add-or-update-record", {"recalcWhen": RECALC_MANUAL_UPDATES, "recalcDeps": None}),
        ("never", {"recalcWhen": RECALC_NEVER, "recalcDeps": None}),
    ],
)
def test_recalc_behaviors(meta, behavior, expected) -> None:
    assert build_col_info(meta, _column(meta, "Budget"), {"formula_recalc_behavior": behavior}) == expected


def test_custom_recalc_tracks_columns(meta) -> None:
    info = build_col_info(
        meta,
        _column(meta, "Budget"),
        {"formula_recalc_behavior": "custom", "formula_recalc_col_ids": ["Name", "Lead"]},
    )
    assert info == {"recalcWhen": RECALC_DEFAULT, "recalcDeps": [LIST_MARKER, 1, 2]}


def test_widget_options_merge_with_existing(meta) -> None:
    info = build_col_info(meta, _column(meta, "Lead"), {"cell_bold": True, "cell_fill_color": "#16B378"})
    assert json.loads(info["widgetOptions"]) == {"alignment": "left", "fontBold": True, "fillColor": "#16B378"}


def test_number_options() -> None:
    options = build_widget_options(
        {"number_format": "currency", "number_currency_code": "EUR", "number_minus_sign": "parens"}
    )
    assert options == {"numMode": "currency", "currency": "EUR", "numSign": "parens"}
    assert build_widget_options({"number_format": "text"}) == {"numMode": None}


def test_date_and_time_formats() -> None:
    options = build_widget_options({"date_format": "YYYY-MM-DD", "time_format": "custom", "time_custom_format": "h:mm a"})
    assert options == {
        "dateFormat": "YYYY-MM-DD",
        "isCustomDateFormat": False,
        "timeFormat": "h:mm a",
        "isCustomTimeFormat": True,
    }


def test_custom_date_format_requires_pattern() -> None:
    with pytest.raises(InvalidArgumentsError):
        build_widget_options({"date_format": "custom"})


def test_conditional_formatting_is_ignored() -> None:
    assert build_widget_options({"conditional_formatting_rules": [{"rule": "$x > 1"}]}) == {}


def test_widget_choice() -> None:
    assert build_widget_options({"toggle_format": "switch"}) == {"widget": "Switch"}
    assert build_widget_options({"text_format": "markdown"}) == {"widget": "Markdown"}

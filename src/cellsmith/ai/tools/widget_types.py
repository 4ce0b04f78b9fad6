"""Widget types as the model names them and as the document stores them."""

from __future__ import annotations

from enum import Enum


class WidgetType(Enum):
    """Bidirectional mapping between UI widget names and storage keys.

    >>> WidgetType.from_ui_name("card_list").storage_key
    'detail'
    >>> WidgetType.from_storage_key("single").ui_name
    'card'
    """

    TABLE = ("table", "record")
    CARD = ("card", "single")
    CARD_LIST = ("card_list", "detail")
    CUSTOM = ("custom", "custom")
    CHART = ("chart", "chart")
    FORM = ("form", "form")

    def __init__(self, ui_name: str, storage_key: str) -> None:
        self.ui_name = ui_name
        self.storage_key = storage_key

    @classmethod
    def from_ui_name(cls, ui_name: str) -> "WidgetType":
        for member in cls:
            if member.ui_name == ui_name:
                return member
        raise ValueError(f"Unknown widget type: {ui_name}")

    @classmethod
    def from_storage_key(cls, storage_key: str) -> "WidgetType":
        for member in cls:
            if member.storage_key == storage_key:
                return member
        raise ValueError(f"Unknown widget storage key: {storage_key}")

    @classmethod
    def creatable(cls) -> list[str]:
        """UI names the assistant may create or switch to."""
        return [member.ui_name for member in (cls.TABLE, cls.CARD, cls.CARD_LIST, cls.CUSTOM)]


def _check_bijection() -> None:
    ui_names = [member.ui_name for member in WidgetType]
    storage_keys = [member.storage_key for member in WidgetType]
    if len(set(ui_names)) != len(ui_names) or len(set(storage_keys)) != len(storage_keys):
        raise RuntimeError("WidgetType mapping must be one-to-one")


_check_bijection()

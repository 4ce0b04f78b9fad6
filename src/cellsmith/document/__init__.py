"""Document collaborator: store protocol, metadata model and action vocabulary."""

from .memory import MemoryDocument
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
from .store import DocumentStore, SandboxError

__all__ = [
    "ApplyResult",
    "ColumnMeta",
    "CustomWidgetInfo",
    "DocInfo",
    "DocumentMetadata",
    "DocumentStore",
    "MemoryDocument",
    "PageMeta",
    "SandboxError",
    "TableMeta",
    "WidgetMeta",
]

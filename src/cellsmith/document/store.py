"""Protocol for the document storage collaborator."""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from .actions import UserAction
from .model import ApplyResult, ColumnMeta, CustomWidgetInfo, DocumentMetadata


class SandboxError(Exception):
    """Raised by a store when it rejects an action or query.

    The message is what the store's engine reported, e.g.
    ``"[Sandbox] KeyError 'Amount'"``.
    """


@runtime_checkable
class DocumentStore(Protocol):
    """What the assistant needs from a live document.

    ``session`` is opaque to the assistant and passed through unchanged so
    the store can apply its own access rules.
    """

    async def fetch_metadata(self, session: Any) -> DocumentMetadata:
        """Return a snapshot of tables, columns, pages and widgets."""
        ...

    async def get_table_columns(self, session: Any, table_id: str) -> list[ColumnMeta]:
        """Return the columns of ``table_id``; raise :class:`SandboxError` if unknown."""
        ...

    async def apply_user_actions(
        self,
        session: Any,
        actions: Sequence[UserAction],
        *,
        desc: str | None = None,
        parse_strings: bool = False,
    ) -> ApplyResult:
        """Apply ``actions`` atomically: either all of them or none."""
        ...

    async def query_read_only(
        self,
        session: Any,
        sql: str,
        args: Sequence[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a parameterized SELECT without side effects."""
        ...

    async def list_custom_widgets(self, session: Any) -> list[CustomWidgetInfo]:
        ...


__all__ = ["DocumentStore", "SandboxError"]

"""Read-only SQL over the document's tables."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from ...document.store import SandboxError
from .base import ReadOnlyTool, ToolContext
from .errors import InvalidArgumentsError, QueryError
from .tool_registry import ParameterSchema, ToolCategory, ToolName

LOGGER = logging.getLogger(__name__)


def wrap_select(query: str) -> str:
    """Wrap ``query`` so that only a single SELECT can run.

    >>> wrap_select("SELECT 1;")
    'SELECT * FROM (SELECT 1)'
    """
    sql = query.strip()
    while sql.endswith(";"):
        sql = sql[:-1].rstrip()
    if not sql:
        raise InvalidArgumentsError(message="query must not be empty", path="query")
    return f"SELECT * FROM ({sql})"


class QueryDocumentTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.QUERY_DOCUMENT
    description: ClassVar[str] = (
        "Runs a SQL SELECT query against the document and returns matching rows. "
        "Only SQLite-compatible SQL is supported."
    )
    parameters: ClassVar[tuple[ParameterSchema, ...]] = (
        ParameterSchema(
            name="query",
            type="string",
            required=True,
            description=(
                "A single SQL SELECT statement with no trailing semicolon. "
                "WITH clauses are permitted. Must be valid SQLite syntax."
            ),
        ),
        ParameterSchema(
            name="args",
            type="array",
            nullable=True,
            required=True,
            items=ParameterSchema(name="arg", type=("string", "number", "boolean", "null")),
            description="Arguments for ? placeholders in query. Null if the query is not parameterized.",
        ),
    )
    category: ClassVar[ToolCategory] = ToolCategory.DATA_QUERY
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        sql = wrap_select(params["query"])
        args = params.get("args") or []
        try:
            rows = await context.document.query_read_only(context.session, sql, args)
        except SandboxError as exc:
            LOGGER.debug("Query failed: %s", exc)
            raise QueryError(
                message=str(exc),
                suggestion="Check table and column IDs with get_tables and get_table_columns",
            ) from exc
        return {"rows": rows, "row_count": len(rows)}


__all__ = ["QueryDocumentTool", "wrap_select"]

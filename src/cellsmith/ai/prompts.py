"""System prompt for the document assistant.

The prompt is split into XML-style sections: identity and instructions,
tool guidance, value encodings for each column type, formula hints,
worked examples, and the live context (date and what the user is looking
at). It is rebuilt from the document on every completion because the
schema may change between turns, or between rounds of the same turn.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Sequence

from ..document.store import DocumentStore
from .orchestration.types import (
    AssistanceContext,
    AssistanceRequest,
    Message,
    SystemMessage,
    UserMessage,
)

LOGGER = logging.getLogger(__name__)

PROMPT_VERSION = "2"

Clock = Callable[[], datetime]


def _identity_section() -> str:
    return """<assistant_info>
You are an AI assistant for a collaborative spreadsheet-database document.
Help users answer questions about their document, modify records or schema, or write formulas.
Always explain the proposed changes in plain language.
Do not call tools that modify the document (e.g. add_records, update_records) until the user confirms explicitly.
Set confirmation_required to true whenever your reply asks the user to confirm a change.
</assistant_info>"""


def _tool_section() -> str:
    return """<tool_instructions>
Use get_tables and get_table_columns to discover valid IDs.
Use get_pages and get_page_widgets to discover page and widget IDs.
When the user refers to a column label, match it to the ID using get_table_columns.
If a table or column doesn't exist, check it hasn't been removed since you last queried the schema.
If a call fails due to insufficient access, tell the user they need full access to the document.
For questions about access rules, call get_access_rules_reference first.
</tool_instructions>

<query_document_instructions>
Generate a single SQL SELECT query and call query_document.
Only SQLite-compatible SQL is supported.
Pass user-provided values through args with ? placeholders.
</query_document_instructions>"""


def _modification_section() -> str:
    return """<modification_instructions>
Always use column IDs, not labels.
Never set the id field in records.
For updates or deletions, first query the table for id values.
Only records, columns, tables, pages, and widgets can be modified.
When setting choice_styles, only use values like:
`{"Choice 1": {"textColor": "#FFFFFF", "fillColor": "#16B378",
"fontUnderline": false, "fontItalic": false, "fontStrikethrough": false}}`
conditional_formatting_rules is not yet supported. Tell users to
configure it manually from the column's cell style settings.
Use values appropriate for each column's type (see table below).
Prefix lists with an "L" element (e.g., `["L", 1, 2, 3]`).

| Column Type | Value Format | Description                                   | Examples                     |
|-------------|--------------|-----------------------------------------------|------------------------------|
| Any         | any          | Any value                                     | `"Alice"`, `123`, `true`     |
| Text        | string       | Plain text                                    | `"Bob"`                      |
| Numeric     | number       | Floating point number                         | `3.14`                       |
| Int         | number       | Whole number                                  | `42`, `3.0`                  |
| Bool        | boolean      | `true` or `false`                             | `false`                      |
| Date        | number       | Unix timestamp in seconds, or an ISO date     | `946771200`, `"2000-01-02"`  |
| DateTime    | number       | Unix timestamp in seconds                     | `1748890186`                 |
| Choice      | string       | One of the allowed choices                    | `"Active"`                   |
| ChoiceList  | array        | List of allowed choices                       | `["L", "Active", "Pending"]` |
| Ref         | number       | ID of a record in the referenced table        | `25`                         |
| RefList     | array        | List of record IDs from the referenced table  | `["L", 11, 12, 13]`          |
| Attachments | array        | List of record IDs from the attachments table | `["L", 98, 99]`              |
</modification_instructions>"""


def _formula_section() -> str:
    return """<formula_instructions>
Use Python syntax with `$` for fields of the current record (e.g. `$Amount * 1.1`).
Prefer lookupOne and lookupRecords over manually enumerating records
(e.g., `People.lookupOne(First_Name="Lewis", Last_Name="Carroll")`, `People.lookupRecords(Email=$Work_Email)`).
Access fields in linked tables like: `$Customer.Name`, `$Project.Owner.Email`.
Date/DateTime columns are Python datetime objects.
</formula_instructions>"""


def _examples_section() -> str:
    return """<examples>

<user_query>
What's the total sales by region?
</user_query>

<assistant_response>
Call query_document with:
```sql
SELECT Region, SUM(Sales) FROM Orders GROUP BY Region
```
</assistant_response>

<user_query>
Add a new project named 'Q4 Launch'.
</user_query>

<assistant_response>
Confirm with user, then call add_records with:
```json
{
  "table_id": "Projects",
  "records": [{ "Name": "Q4 Launch" }]
}
```
</assistant_response>

<user_query>
Delete all projects with status 'Archived'.
</user_query>

<assistant_response>
Call query_document with:
```sql
SELECT id FROM Projects WHERE Status = 'Archived'
```
Confirm with user, then call remove_records with:
```json
{
  "table_id": "Projects",
  "record_ids": [1, 2, 3]
}
```
</assistant_response>

</examples>"""


def format_current_date(now: datetime) -> str:
    """Format ``now`` like ``October 16, 2026``."""
    return f"{now:%B} {now.day}, {now.year}"


def _context_section(*, now: datetime, page_name: str | None, table_ids: Sequence[str]) -> str:
    lines = [f"The current date is {format_current_date(now)}."]
    if page_name:
        lines.append(f"The user is currently viewing the page: {page_name}.")
    if table_ids:
        lines.append(f"The user is currently viewing table(s): {', '.join(table_ids)}.")
    return "<current_context>\n" + "\n".join(lines) + "\n</current_context>"


class PromptBuilder:
    """Builds the message list sent with each completion.

    Args:
        clock: Returns the current time; injectable for tests.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or datetime.now

    async def build_system_message(
        self,
        session: Any,
        document: DocumentStore,
        context: AssistanceContext,
    ) -> SystemMessage:
        """Render the system prompt from the live document."""
        page_name: str | None = None
        table_ids: list[str] = []
        if context.view_id is not None:
            meta = await document.fetch_metadata(session)
            page = meta.page_by_ref(context.view_id)
            if page is not None:
                page_name = page.name
            table_ids = meta.table_ids_on_page(context.view_id)

        sections = (
            _identity_section(),
            _tool_section(),
            _modification_section(),
            _formula_section(),
            _examples_section(),
            _context_section(now=self._clock(), page_name=page_name, table_ids=table_ids),
        )
        return SystemMessage(content="\n\n".join(sections))

    async def refresh(
        self,
        session: Any,
        document: DocumentStore,
        context: AssistanceContext,
        messages: Sequence[Message],
    ) -> list[Message]:
        """Return ``messages`` with a freshly rendered system prompt first.

        A leading system message is replaced; otherwise one is prepended.
        """
        system = await self.build_system_message(session, document, context)
        history = list(messages)
        if history and isinstance(history[0], SystemMessage):
            history[0] = system
        else:
            history.insert(0, system)
        return history

    async def build(
        self,
        session: Any,
        document: DocumentStore,
        request: AssistanceRequest,
    ) -> list[Message]:
        """Build the opening message list for a turn.

        Starts from the caller's persisted history, regenerates the system
        prompt, and appends the user's text when there is any.
        """
        prior = request.state.messages if request.state is not None else ()
        messages = await self.refresh(session, document, request.context, prior)
        if request.text:
            messages.append(UserMessage(content=request.text))
        LOGGER.debug(
            "Built %d message(s) for conversation %s", len(messages), request.conversation_id
        )
        return messages


__all__ = ["PROMPT_VERSION", "PromptBuilder", "format_current_date"]

"""Static reference documentation the assistant can look up."""

from __future__ import annotations

from typing import Any, ClassVar

from .base import ReadOnlyTool, ToolContext
from .tool_registry import ToolCategory, ToolName

ACCESS_RULES_REFERENCE = """\
# Access rules

Access rules decide who may read or change which tables, columns and records.
Rules are checked top to bottom; the first rule whose condition matches decides
each permission it mentions.

## Structure

- Default rules apply to the whole document.
- Table rules apply to one table, optionally narrowed to a list of columns.
- Each rule has a condition and a permission string.

## Permissions

A permission string combines letters, each prefixed with + (allow) or - (deny):

- R: read
- U: update existing records
- C: create records
- D: delete records
- S: change the structure (tables, columns, formulas)

Examples: "+R-UCD" allows reading and denies changes. "all" and "none" are
shorthand for every permission allowed or denied.

## Condition variables

- user.Access: the user's role: "owners", "editors" or "viewers".
- user.Email, user.Name, user.UserID: identity of the signed-in user.
- user.LinkKey.<name>: values from the share link URL.
- user.<Attribute>.<Column>: a user attribute looked up from a table.
- rec: the record being read or changed (before the change).
- newRec: the record after a proposed change (update and create only).

## Condition syntax

Conditions are Python expressions, for example:

- user.Access in [OWNER, EDITOR]
- rec.Owner == user.Email
- newRec.Status != "Approved" or user.Access == OWNER
- user.Email.endswith("@example.com")

OWNER, EDITOR and VIEWER are constants for the role names. An empty condition
always matches.

## Guidance

- Access rules can only be changed by document owners, in the access rules
  page. The assistant cannot change them directly; describe the rules the user
  should add and where.
- Put the most specific rules first and a catch-all default last.
- Column rules are checked before the table rules for the same table.
"""


class GetAccessRulesReferenceTool(ReadOnlyTool):
    name: ClassVar[ToolName] = ToolName.GET_ACCESS_RULES_REFERENCE
    description: ClassVar[str] = (
        "Returns reference documentation on access rules: permissions, condition variables and syntax. "
        "Use it before answering questions about access rules."
    )
    category: ClassVar[ToolCategory] = ToolCategory.REFERENCE_HELP
    strict: ClassVar[bool] = True

    async def read(self, context: ToolContext, params: dict[str, Any]) -> Any:
        return {"reference": ACCESS_RULES_REFERENCE}


__all__ = ["ACCESS_RULES_REFERENCE", "GetAccessRulesReferenceTool"]

"""Tool catalog for the assistant.

The catalog is closed: every tool name is a member of :class:`ToolName`
and the registry refuses to seal unless each member has exactly one
implementation. Parameter schemas are strict JSON Schema objects
(``additionalProperties: false``) validated with ``jsonschema`` before
any tool runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import jsonschema

from .errors import InvalidArgumentsError, UnknownToolError

if TYPE_CHECKING:
    from .base import BaseTool

LOGGER = logging.getLogger(__name__)

MAX_SCHEMA_ERRORS = 5


# -----------------------------------------------------------------------------
# Tool Categories and Names
# -----------------------------------------------------------------------------


class ToolCategory(Enum):
    """Families of assistant tools."""

    SCHEMA_DISCOVERY = auto()  # List tables, columns, pages, widgets
    SCHEMA_MUTATION = auto()  # Add/rename/remove tables, columns, pages, widgets
    DATA_MUTATION = auto()  # Add/update/remove records
    DATA_QUERY = auto()  # Read-only SQL
    REFERENCE_HELP = auto()  # Static documentation


class ToolName(str, Enum):
    """Stable names of every tool the assistant may call."""

    GET_TABLES = "get_tables"
    ADD_TABLE = "add_table"
    RENAME_TABLE = "rename_table"
    REMOVE_TABLE = "remove_table"
    GET_TABLE_COLUMNS = "get_table_columns"
    ADD_TABLE_COLUMN = "add_table_column"
    UPDATE_TABLE_COLUMN = "update_table_column"
    REMOVE_TABLE_COLUMN = "remove_table_column"
    GET_PAGES = "get_pages"
    UPDATE_PAGE = "update_page"
    REMOVE_PAGE = "remove_page"
    GET_PAGE_WIDGETS = "get_page_widgets"
    ADD_PAGE_WIDGET = "add_page_widget"
    UPDATE_PAGE_WIDGET = "update_page_widget"
    REMOVE_PAGE_WIDGET = "remove_page_widget"
    GET_PAGE_WIDGET_SELECT_BY_OPTIONS = "get_page_widget_select_by_options"
    SET_PAGE_WIDGET_SELECT_BY = "set_page_widget_select_by"
    GET_AVAILABLE_CUSTOM_WIDGETS = "get_available_custom_widgets"
    QUERY_DOCUMENT = "query_document"
    ADD_RECORDS = "add_records"
    UPDATE_RECORDS = "update_records"
    REMOVE_RECORDS = "remove_records"
    GET_ACCESS_RULES_REFERENCE = "get_access_rules_reference"


# -----------------------------------------------------------------------------
# Tool Schema Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ParameterSchema:
    """Schema for a single tool parameter.

    Attributes:
        name: Parameter name.
        type: JSON Schema type, a tuple of types, or ``None`` for "any".
        description: Human-readable description shown to the model.
        required: Whether the parameter must be present.
        nullable: Whether ``null`` is accepted in addition to ``type``.
        enum: Allowed values.
        minimum: Minimum value for numbers.
        maximum: Maximum value for numbers.
        min_items: Minimum array length.
        properties: Nested properties for object types.
        items: Schema for array items.
    """

    name: str
    type: str | tuple[str, ...] | None
    description: str = ""
    required: bool = False
    nullable: bool = False
    enum: Sequence[Any] | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    min_items: int | None = None
    properties: Sequence["ParameterSchema"] | None = None
    items: "ParameterSchema" | None = None

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: dict[str, Any] = {}
        if self.type is not None:
            types = [self.type] if isinstance(self.type, str) else list(self.type)
            if self.nullable and "null" not in types:
                types.append("null")
            schema["type"] = types[0] if len(types) == 1 else types
        if self.description:
            schema["description"] = self.description
        if self.enum:
            values = list(self.enum)
            if self.nullable and None not in values:
                values.append(None)
            schema["enum"] = values
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.min_items is not None:
            schema["minItems"] = self.min_items
        if self.properties is not None:
            schema.update(_object_schema(self.properties))
        if self.items is not None:
            schema["items"] = self.items.to_json_schema()
        return schema


def _object_schema(properties: Sequence[ParameterSchema]) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "properties": {param.name: param.to_json_schema() for param in properties},
        "additionalProperties": False,
    }
    required = [param.name for param in properties if param.required]
    if required:
        schema["required"] = required
    return schema


@dataclass(slots=True)
class ToolSchema:
    """Complete schema for a tool.

    Attributes:
        name: Tool name (identifier).
        description: Human-readable description shown to the model.
        parameters: Top-level parameters.
        category: Tool family.
        writes_document: Whether the tool mutates the document.
        strict: Whether to request strict argument generation from the model.
            Only valid when every parameter, at every depth, is required.
    """

    name: str
    description: str
    parameters: Sequence[ParameterSchema] = field(default_factory=list)
    category: ToolCategory = ToolCategory.SCHEMA_DISCOVERY
    writes_document: bool = False
    strict: bool = False

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format for function calling."""
        schema: dict[str, Any] = {"type": "object"}
        schema.update(_object_schema(self.parameters))
        return schema

    def to_openai_tool(self) -> dict[str, Any]:
        function: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": self.to_json_schema(),
        }
        if self.strict:
            function["strict"] = True
        return {"type": "function", "function": function}


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """A registered tool with its implementation and compiled validator."""

    schema: ToolSchema
    impl: "BaseTool"
    validator: Any = None

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def writes_document(self) -> bool:
        return self.schema.writes_document


class RegistrationError(RuntimeError):
    """Raised when the catalog is incomplete or registered twice."""


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry of assistant tools.

    Example:
        registry = ToolRegistry()
        registry.register(GetTablesTool())
        registry.seal()
        registry.validate_arguments("get_tables", {})
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        self._sealed = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: "BaseTool") -> ToolRegistration:
        """Register a tool instance under its declared name."""
        if self._sealed:
            raise RegistrationError("Cannot register tools after the catalog is sealed")
        schema = tool.schema()
        try:
            ToolName(schema.name)
        except ValueError as exc:
            raise RegistrationError(f"Tool {schema.name!r} is not a known tool name") from exc
        if schema.name in self._tools:
            raise RegistrationError(f"Tool {schema.name!r} registered twice")

        json_schema = schema.to_json_schema()
        validator_cls = jsonschema.validators.validator_for(json_schema, default=jsonschema.Draft202012Validator)
        validator_cls.check_schema(json_schema)
        registration = ToolRegistration(schema=schema, impl=tool, validator=validator_cls(json_schema))
        self._tools[schema.name] = registration
        LOGGER.debug("Registered tool: %s (category=%s)", schema.name, schema.category.name)
        return registration

    def seal(self) -> None:
        """Check that every :class:`ToolName` has an implementation."""
        missing = [name.value for name in ToolName if name.value not in self._tools]
        if missing:
            raise RegistrationError(f"Missing tool implementation(s): {', '.join(missing)}")
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> ToolRegistration:
        """Return the registration for ``name`` or raise :class:`UnknownToolError`."""
        registration = self._tools.get(name)
        if registration is None:
            raise UnknownToolError(
                message=f"Unknown tool: {name}",
                suggestion="Only call tools from the provided tool list",
                tool_name=name,
            )
        return registration

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self, *, category: ToolCategory | None = None) -> list[ToolSchema]:
        """List tool schemas, optionally filtered by family."""
        return [
            reg.schema
            for reg in self._tools.values()
            if category is None or reg.schema.category is category
        ]

    def mutating_tools(self) -> list[str]:
        return [reg.name for reg in self._tools.values() if reg.writes_document]

    def to_openai_tools(self) -> list[dict[str, Any]]:
        """Convert all tools to the function-calling format."""
        return [reg.schema.to_openai_tool() for reg in self._tools.values()]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_arguments(self, name: str, arguments: Mapping[str, Any]) -> dict[str, Any]:
        """Validate ``arguments`` against the tool's schema.

        Parameters that are both required and nullable may be omitted; they
        are filled with ``None`` before validation.

        Returns:
            A plain-dict copy of the arguments.

        Raises:
            UnknownToolError: If ``name`` is not registered.
            InvalidArgumentsError: On the first schema violations found.
        """
        registration = self.get(name)
        arguments = _fill_absent_nullables(registration.schema.parameters, arguments)
        issues = list(registration.validator.iter_errors(arguments))
        if issues:
            messages: list[str] = []
            for issue in issues[:MAX_SCHEMA_ERRORS]:
                path = _format_schema_path(issue.absolute_path)
                messages.append(f"{path}: {issue.message}" if path else issue.message)
            first_path = _format_schema_path(issues[0].absolute_path) or None
            raise InvalidArgumentsError(
                message=f"Invalid arguments for {name}: " + "; ".join(messages),
                suggestion="Fix the arguments to match the tool's parameter schema and call it again",
                path=first_path,
            )
        return dict(arguments)


def _fill_absent_nullables(
    parameters: Sequence[ParameterSchema], arguments: Mapping[str, Any]
) -> dict[str, Any]:
    filled = dict(arguments)
    for param in parameters:
        if param.name not in filled:
            if param.required and param.nullable:
                filled[param.name] = None
            continue
        value = filled[param.name]
        if param.properties is not None and isinstance(value, Mapping):
            filled[param.name] = _fill_absent_nullables(param.properties, value)
        elif param.items is not None and param.items.properties is not None and isinstance(value, list):
            filled[param.name] = [
                _fill_absent_nullables(param.items.properties, item) if isinstance(item, Mapping) else item
                for item in value
            ]
    return filled


def _format_schema_path(path: Sequence[Any]) -> str:
    if not path:
        return ""
    components: list[str] = []
    for segment in path:
        if isinstance(segment, int):
            if components:
                components[-1] = f"{components[-1]}[{segment}]"
            else:
                components.append(f"[{segment}]")
        else:
            components.append(str(segment))
    return ".".join(filter(None, components))


__all__ = [
    "ParameterSchema",
    "RegistrationError",
    "ToolCategory",
    "ToolName",
    "ToolRegistration",
    "ToolRegistry",
    "ToolSchema",
]

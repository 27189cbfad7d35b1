"""
Tool catalog types.

A tool catalog is a plain mapping from a public tool name to a :class:`ToolDescriptor`.  The
descriptor is owned by whichever provider discovered the tool (usually an MCP server session, see
:mod:`agentic_chatbot.tools.mcp_provider`); the agent core only ever filters catalogs by key and
hands descriptors to :func:`agentic_chatbot.agent.tool_executor.execute_tool`.
"""

from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    TypedDict,
)

ToolInvoker = Callable[[Dict[str, Any]], Awaitable[Any]]

_EMPTY_OBJECT_SCHEMA: Mapping[str, Any] = {"type": "object", "properties": {}}


@dataclass(frozen=True)
class ToolDescriptor:
    """
    An invocable tool exposed by a provider.

    Parameters
    ----------
    name:
        Public name, unique within a catalog (``<provider>.<tool>`` when several providers are
        aggregated).
    description:
        Human readable description forwarded to the model.
    invoke:
        Coroutine function taking the argument dict and returning the raw provider payload.
    input_schema:
        JSON schema of the arguments.
    provider:
        Name of the provider that owns the tool.
    remote_name:
        Name of the tool on the provider side; defaults to *name*.
    category:
        Optional provider-declared result category (see :class:`agentic_chatbot.results.ResultCategory`).
    """

    name: str
    description: str
    invoke: ToolInvoker = field(repr=False, compare=False)
    input_schema: Mapping[str, Any] = field(default_factory=lambda: dict(_EMPTY_OBJECT_SCHEMA))
    provider: str = "local"
    remote_name: str | None = None
    category: str | None = None


ToolCatalog = Mapping[str, ToolDescriptor]


class ToolSchema(TypedDict):
    """
    Schema for a tool as presented to a model back-end.
    """

    description: str
    parameters: Mapping[str, Any]


def get_tool_schemas(catalog: ToolCatalog | None) -> Mapping[str, ToolSchema]:
    """Extract the model-facing schema of every tool in *catalog*."""
    tool_schemas: Dict[str, ToolSchema] = {}
    for name, tool in (catalog or {}).items():
        parameters = dict(tool.input_schema or _EMPTY_OBJECT_SCHEMA)
        parameters.setdefault("type", "object")
        parameters.setdefault("properties", {})
        tool_schemas[name] = {"description": tool.description or "", "parameters": parameters}
    return tool_schemas

"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

import pytest
from fakes import make_tool

from agentic_chatbot.agent.tool_executor import (
    ToolExecutionError,
    execute_tool,
)
from agentic_chatbot.tools import (
    ToolDescriptor,
    get_tool_schemas,
)


async def _add(args):
    """Return the sum of two integers (used only for tests)."""

    return args["a"] + args["b"]


async def _strict(args):
    raise TypeError("unexpected keyword 'c'")


CATALOG = {
    "add": ToolDescriptor(name="add", description="Add two ints", invoke=_add),
    "strict": ToolDescriptor(name="strict", description="Rejects arguments", invoke=_strict),
    "broken": make_tool("broken", error=ValueError("connection reset")),
}


@pytest.mark.asyncio
async def test_execute_tool_success() -> None:
    """Executor should return the correct value when the tool is valid."""

    assert await execute_tool(CATALOG, "add", {"a": 2, "b": 3}) == 5


@pytest.mark.asyncio
async def test_execute_tool_missing() -> None:
    """Executor should raise *ToolExecutionError* for an unknown tool."""

    with pytest.raises(ToolExecutionError, match="not_a_tool"):
        await execute_tool(CATALOG, "not_a_tool", {})


@pytest.mark.asyncio
async def test_execute_tool_bad_args() -> None:
    """Executor should raise *ToolExecutionError* for wrong arguments."""

    with pytest.raises(ToolExecutionError, match="Invalid arguments"):
        await execute_tool(CATALOG, "strict", {"c": 1})


@pytest.mark.asyncio
async def test_execute_tool_provider_failure() -> None:
    with pytest.raises(ToolExecutionError, match="connection reset"):
        await execute_tool(CATALOG, "broken")


@pytest.mark.asyncio
async def test_execute_tool_defaults_to_empty_args() -> None:
    tool = make_tool("ping", result="pong")

    assert await execute_tool({"ping": tool}, "ping") == "pong"
    assert tool.invoke.invocations == [{}]


def test_tool_schemas_default_to_empty_object() -> None:
    schemas = get_tool_schemas({"add": CATALOG["add"], "broken": CATALOG["broken"]})

    assert schemas["add"] == {
        "description": "Add two ints",
        "parameters": {"type": "object", "properties": {}},
    }
    assert schemas["broken"]["parameters"]["properties"] == {"database": {"type": "string"}}

"""
Tests for the MCP tool provider (config parsing, catalog building and session lifecycle).

No MCP server is spawned: the stdio transport is replaced by subclasses of the session.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest
from mcp.types import (
    CallToolResult,
    TextContent,
)

from agentic_chatbot.tools.mcp_provider import (
    McpProviderSession,
    McpServerConfig,
    ProviderConfigError,
    load_mcp_config,
)

MONGO = McpServerConfig(name="mongodb", command="npx", args=["-y", "mongodb-mcp-server"])


def _tool(name: str, meta=None):
    return SimpleNamespace(
        name=name,
        description=f"{name} description",
        inputSchema={"type": "object", "properties": {"database": {"type": "string"}}},
        meta=meta,
    )


class FakeClientSession:
    def __init__(self) -> None:
        self.calls = []

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        return CallToolResult(content=[TextContent(type="text", text=f"{name} ok")], isError=False)


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------
def test_load_config(tmp_path) -> None:
    path = tmp_path / "mcp-config.json"
    path.write_text(
        json.dumps(
            {
                "mongodb": {
                    "command": "npx",
                    "args": ["-y", "mongodb-mcp-server"],
                    "env": {"MDB_MCP_CONNECTION_STRING": "mongodb://localhost:27017"},
                }
            }
        )
    )

    (config,) = load_mcp_config(path)

    assert config.name == "mongodb"
    assert config.args == ["-y", "mongodb-mcp-server"]
    assert config.env["MDB_MCP_CONNECTION_STRING"] == "mongodb://localhost:27017"


def test_load_config_with_mcp_servers_wrapper(tmp_path) -> None:
    path = tmp_path / "servers.json"
    path.write_text(json.dumps({"mcpServers": {"a": {"command": "a"}, "b": {"command": "b"}}}))

    assert [config.name for config in load_mcp_config(path)] == ["a", "b"]


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        "[]",
        "{}",
        json.dumps({"mongodb": {"args": []}}),
        json.dumps({"mongodb": {"command": "npx", "args": "oops"}}),
    ],
)
def test_invalid_config(tmp_path, content: str) -> None:
    path = tmp_path / "mcp-config.json"
    path.write_text(content)

    with pytest.raises(ProviderConfigError):
        load_mcp_config(path)


def test_missing_config(tmp_path) -> None:
    with pytest.raises(ProviderConfigError, match="Cannot load"):
        load_mcp_config(tmp_path / "absent.json")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_single_provider_uses_bare_names() -> None:
    client = FakeClientSession()
    session = McpProviderSession([MONGO])

    catalog = session._build_catalog(  # pylint: disable=protected-access
        {"mongodb": (client, [_tool("find", meta={"resultCategory": "documents"}), _tool("count")])}
    )

    assert list(catalog) == ["find", "count"]
    assert catalog["find"].category == "documents"
    assert catalog["count"].category is None
    assert catalog["find"].provider == "mongodb"

    payload = await catalog["find"].invoke({"filter": {}})
    assert client.calls == [("find", {"filter": {}})]
    assert payload["content"][0]["text"] == "find ok"
    assert payload["isError"] is False


@pytest.mark.asyncio
async def test_several_providers_are_namespaced() -> None:
    mongo, files = FakeClientSession(), FakeClientSession()
    session = McpProviderSession([MONGO, McpServerConfig(name="files", command="files-mcp")])

    catalog = session._build_catalog(  # pylint: disable=protected-access
        {"mongodb": (mongo, [_tool("find")]), "files": (files, [_tool("find")])}
    )

    assert sorted(catalog) == ["files.find", "mongodb.find"]
    assert catalog["files.find"].remote_name == "find"

    await catalog["files.find"].invoke({})
    assert files.calls == [("find", {})]
    assert mongo.calls == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
class ReadySession(McpProviderSession):
    async def _run(self) -> None:
        self.tools = self._build_catalog({"mongodb": (FakeClientSession(), [_tool("find")])})
        self._ready.set_result(None)
        await self._closing.wait()


class FailingSession(McpProviderSession):
    async def _run(self) -> None:
        self._ready.set_exception(ConnectionError("server exited"))


class HangingSession(McpProviderSession):
    async def _run(self) -> None:
        await self._closing.wait()


@pytest.mark.asyncio
async def test_start_and_close() -> None:
    session = await ReadySession([MONGO], init_timeout=1).start()

    assert list(session.tools) == ["find"]
    await session.aclose()
    assert session._task.done()  # pylint: disable=protected-access


@pytest.mark.asyncio
async def test_start_failure_propagates() -> None:
    with pytest.raises(ConnectionError, match="server exited"):
        await FailingSession([MONGO], init_timeout=1).start()


@pytest.mark.asyncio
async def test_start_timeout_tears_down() -> None:
    session = HangingSession([MONGO], init_timeout=0.01)

    with pytest.raises(asyncio.TimeoutError):
        await session.start()

    assert session._task.done()  # pylint: disable=protected-access

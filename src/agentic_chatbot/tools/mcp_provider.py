"""
MCP tool provider.

Reads ``mcp-config.json``, starts every configured MCP server over stdio and exposes the discovered
tools as a :data:`~agentic_chatbot.tools.ToolCatalog`.  The config maps a provider name to its
launch command::

    {"mongodb": {"command": "npx", "args": ["-y", "mongodb-mcp-server"], "env": {...}}}

A Claude-desktop style ``{"mcpServers": {...}}`` wrapper is accepted too.  With one provider the
tool names are used as-is; with several they are namespaced as ``<provider>.<tool>``.
"""

import asyncio
import json
import logging
import os
from contextlib import AsyncExitStack
from functools import partial
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from agentic_chatbot.config import settings
from agentic_chatbot.tools import ToolDescriptor

logger = logging.getLogger(__name__)

_CLOSE_TIMEOUT_SECONDS = 5.0


class ProviderConfigError(RuntimeError):
    """Raised when the MCP config file is missing or malformed."""


class McpServerConfig(BaseModel):
    """Launch parameters of one MCP server."""

    name: str
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None


def load_mcp_config(path: str | Path | None = None) -> List[McpServerConfig]:
    """
    Parse the MCP config file.

    Raises
    ------
    ProviderConfigError
        If the file cannot be read, is not JSON, or an entry lacks a ``command``.
    """
    config_path = Path(path or settings.MCP_CONFIG_PATH)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ProviderConfigError(f"Cannot load {config_path}: {exc}") from exc

    servers = raw.get("mcpServers", raw) if isinstance(raw, dict) else None
    if not isinstance(servers, dict) or not servers:
        raise ProviderConfigError(f"Invalid {config_path.name}: expected an object of servers")

    configs: List[McpServerConfig] = []
    for name, entry in servers.items():
        if not isinstance(entry, dict) or not entry.get("command"):
            raise ProviderConfigError(f"Invalid {config_path.name}: missing {name}.command")
        try:
            configs.append(McpServerConfig(**{**entry, "name": name}))
        except ValidationError as exc:
            raise ProviderConfigError(f"Invalid {config_path.name} entry '{name}': {exc}") from exc
    return configs


def _declared_category(tool: Any) -> str | None:
    meta = getattr(tool, "meta", None)
    if isinstance(meta, Mapping):
        category = meta.get("resultCategory")
        return category if isinstance(category, str) else None
    return None


async def _call_tool(session: Any, remote_name: str, args: Dict[str, Any]) -> Any:
    result = await session.call_tool(remote_name, args)
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


class McpProviderSession:
    """
    Live connections to every configured MCP server plus the aggregated tool catalog.

    The stdio transports are entered and exited inside one owner task, so the session can be
    shared by request tasks and closed from any of them.
    """

    def __init__(self, configs: Sequence[McpServerConfig], init_timeout: float | None = None):
        self._configs = list(configs)
        self._init_timeout = init_timeout or settings.MCP_INIT_TIMEOUT_SECONDS
        self._closing = asyncio.Event()
        self._ready: asyncio.Future | None = None
        self._task: asyncio.Task | None = None
        self.tools: Dict[str, ToolDescriptor] = {}

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def start(self) -> "McpProviderSession":
        """Spawn the servers and wait until their tools are discovered."""
        self._ready = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._run(), name="mcp-provider-session")
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=self._init_timeout)
        except BaseException:
            await self.aclose()
            raise
        logger.info(
            "MCP providers ready: %d tool(s) from %s",
            len(self.tools),
            [cfg.name for cfg in self._configs],
        )
        return self

    async def aclose(self) -> None:
        """Shut the servers down and wait for the owner task to finish."""
        self._closing.set()
        if self._task is None or self._task.done():
            return
        try:
            await asyncio.wait_for(self._task, timeout=_CLOSE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("MCP provider session did not shut down within %.0fs", _CLOSE_TIMEOUT_SECONDS)

    async def _run(self) -> None:
        from mcp import ClientSession  # pylint: disable=import-outside-toplevel
        from mcp.client.stdio import (  # pylint: disable=import-outside-toplevel
            StdioServerParameters,
            stdio_client,
        )

        assert self._ready is not None
        try:
            async with AsyncExitStack() as stack:
                discovered: Dict[str, Any] = {}
                for cfg in self._configs:
                    params = StdioServerParameters(
                        command=cfg.command,
                        args=cfg.args,
                        env={**os.environ, **cfg.env},
                        cwd=cfg.cwd,
                    )
                    read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
                    session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                    await session.initialize()
                    listing = await session.list_tools()
                    discovered[cfg.name] = (session, listing.tools)
                    logger.debug("Provider '%s' offers %s", cfg.name, [t.name for t in listing.tools])

                self.tools = self._build_catalog(discovered)
                if not self._ready.done():
                    self._ready.set_result(None)
                await self._closing.wait()
        except Exception as exc:  # pylint: disable=broad-except
            if not self._ready.done():
                self._ready.set_exception(exc)
            else:
                logger.exception("MCP provider session failed")

    def _build_catalog(self, discovered: Mapping[str, Any]) -> Dict[str, ToolDescriptor]:
        namespaced = len(discovered) > 1
        catalog: Dict[str, ToolDescriptor] = {}
        for provider, (session, tools) in discovered.items():
            for tool in tools:
                name = f"{provider}.{tool.name}" if namespaced else tool.name
                if name in catalog:
                    logger.warning("Duplicate tool %r from provider %r ignored", name, provider)
                    continue
                catalog[name] = ToolDescriptor(
                    name=name,
                    description=tool.description or "",
                    invoke=partial(_call_tool, session, tool.name),
                    input_schema=tool.inputSchema or {"type": "object", "properties": {}},
                    provider=provider,
                    remote_name=tool.name,
                    category=_declared_category(tool),
                )
        return catalog


async def connect_providers(
    configs: Sequence[McpServerConfig] | None = None, init_timeout: float | None = None
) -> McpProviderSession:
    """Start a provider session for *configs* (default: the configured MCP config file)."""
    if configs is None:
        configs = load_mcp_config()
    return await McpProviderSession(configs, init_timeout).start()

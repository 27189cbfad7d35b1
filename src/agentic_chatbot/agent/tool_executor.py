"""Dispatches tool calls to catalog descriptors and wraps errors."""

import logging
from typing import (
    Any,
    Dict,
)

from agentic_chatbot.tools import ToolCatalog

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


async def execute_tool(catalog: ToolCatalog, name: str, args: Dict[str, Any] | None = None) -> Any:
    """
    Look up *name* in *catalog* and invoke it with *args*.

    Parameters
    ----------
    catalog:
        The tools attached to the current generation call.
    name:
        The public tool name.
    args:
        Arguments forwarded verbatim to the provider.  If *None*, an empty dict is assumed.

    Returns
    -------
    Any
        Whatever payload the provider returns.

    Raises
    ------
    ToolExecutionError
        If the tool is not in the catalog or its invocation raises an exception.
    """

    if args is None:
        args = {}

    tool = catalog.get(name)
    if tool is None:
        raise ToolExecutionError(f"Tool '{name}' is not available.")

    try:
        logger.debug("Executing tool '%s' with args=%s", name, args)
        return await tool.invoke(args)
    except TypeError as exc:
        # Argument mismatch: surface as a tool error.
        logger.exception("Argument error while executing tool '%s'", name)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc

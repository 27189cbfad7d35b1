"""
Execution loop.

Runs the primary generation call with the planned tools attached, under a wall-clock timeout that
cancels the in-flight call.  A database-looking request that produced no tool call is retried once
with a system instruction that insists on a tool call.
"""

import asyncio
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from agentic_chatbot.agent.budget import CallBudget
from agentic_chatbot.agent.gate import looks_db_related
from agentic_chatbot.agent.model_interface import BaseModelClient
from agentic_chatbot.agent.prompts import NUDGE_DIRECTIVE
from agentic_chatbot.config import settings
from agentic_chatbot.core.schema import ExecutionResult
from agentic_chatbot.tools import ToolCatalog

logger = logging.getLogger(__name__)


class ExecutionTimeout(RuntimeError):
    """Raised when the model and tools did not finish within the response budget."""


def _last_user_text(messages: Sequence[Dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


def with_nudge(messages: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy *messages* with the must-call-a-tool directive added to the system instruction."""
    nudged = [dict(message) for message in messages]
    if nudged and nudged[0].get("role") == "system":
        nudged[0]["content"] = f"{nudged[0]['content']}\n\n{NUDGE_DIRECTIVE}"
    else:
        nudged.insert(0, {"role": "system", "content": NUDGE_DIRECTIVE})
    return nudged


async def _run(
    model: BaseModelClient,
    messages: Sequence[Dict[str, Any]],
    tools: ToolCatalog,
    max_roundtrips: int,
    query: str,
    budget: CallBudget,
) -> ExecutionResult:
    budget.spend()
    result = await model.generate(messages, tools, max_roundtrips)
    logger.info(
        "Primary call finished: %d step(s), %d tool call(s)", result.steps, len(result.tool_calls)
    )

    if tools and not result.tool_calls and looks_db_related(query):
        if budget.try_spend("database-relevance nudge"):
            logger.info("Database query answered without tools; retrying with a tool mandate")
            result = await model.generate(with_nudge(messages), tools, max_roundtrips)
            logger.info("Nudge retry made %d tool call(s)", len(result.tool_calls))
    return result


async def execute(
    model: BaseModelClient,
    messages: Sequence[Dict[str, Any]],
    exec_tools: ToolCatalog,
    max_roundtrips: int | None = None,
    timeout: float | None = None,
    *,
    query: str | None = None,
    budget: CallBudget | None = None,
) -> ExecutionResult:
    """
    Run the tool-calling conversation for one turn.

    Parameters
    ----------
    model:
        Model client performing the generation.
    messages:
        System instruction, history and current query.
    exec_tools:
        Tools the model may call.
    max_roundtrips:
        Cap on automatic tool round-trips (default ``settings.MAX_TOOL_ROUNDTRIPS``).
    timeout:
        Wall-clock budget in seconds for the whole stage, nudge retry included
        (default ``settings.RESPONSE_TIMEOUT_SECONDS``).
    query:
        Raw user query used for the database-relevance test; defaults to the last user message.
    budget:
        Per-turn generation call ceiling.

    Raises
    ------
    ExecutionTimeout
        If the budget expires.  The in-flight call is cancelled and no partial result is kept.
    """
    if max_roundtrips is None:
        max_roundtrips = settings.MAX_TOOL_ROUNDTRIPS
    if timeout is None:
        timeout = settings.RESPONSE_TIMEOUT_SECONDS
    if query is None:
        query = _last_user_text(messages)
    if budget is None:
        budget = CallBudget(settings.MAX_GENERATION_CALLS)

    try:
        return await asyncio.wait_for(
            _run(model, messages, exec_tools, max_roundtrips, query, budget), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        logger.warning("Execution timed out after %.3fs", timeout)
        raise ExecutionTimeout(
            f"Timed out after {timeout:g}s waiting for the model or tools to respond"
        ) from exc

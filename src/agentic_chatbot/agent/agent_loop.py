"""
Main orchestration pipeline for one user turn.

Visibility gate -> planner -> plan filter -> execution loop -> degenerate-output guard -> reply split.
Stages run strictly one after the other; only the HTTP layer decides whether the caller sees the
events as they happen (streaming) or only the final :class:`TurnResult`.
"""

from __future__ import annotations

import logging
import re
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Sequence,
    Tuple,
)

from agentic_chatbot.agent.budget import CallBudget
from agentic_chatbot.agent.executor import (
    ExecutionTimeout,
    execute,
)
from agentic_chatbot.agent.gate import (
    build_tool_set,
    looks_db_related,
)
from agentic_chatbot.agent.guard import ensure_meaningful_response
from agentic_chatbot.agent.guidance import load_domain_instruction
from agentic_chatbot.agent.model_interface import BaseModelClient
from agentic_chatbot.agent.planner import (
    filter_tools,
    plan_tools,
)
from agentic_chatbot.agent.prompts import build_system_prompt
from agentic_chatbot.agent.reply import split_reply
from agentic_chatbot.config import settings
from agentic_chatbot.core.schema import (
    ChatMessage,
    ExecutionResult,
    Turn,
    TurnResult,
)
from agentic_chatbot.results import declared_categories
from agentic_chatbot.tools import ToolCatalog

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response generated. The database tools may be unavailable or timed out."

_PARAGRAPH_RE = re.compile(r"(?<=\n\n)")


def build_turn(query: str, messages: Sequence[ChatMessage] | None = None) -> Turn:
    """Create the :class:`Turn` for a request."""
    return Turn(query=query, history=list(messages or []), looks_tool_related=looks_db_related(query))


def _conversation(turn: Turn) -> List[Dict[str, Any]]:
    history = [{"role": msg.role, "content": msg.content} for msg in turn.history]
    return [*history, {"role": "user", "content": turn.query}]


async def iter_turn(
    turn: Turn,
    model: BaseModelClient,
    all_tools: ToolCatalog | None,
    timeout: float | None = None,
    max_roundtrips: int | None = None,
) -> AsyncIterator[Tuple[str, Any]]:
    """
    Run the pipeline, yielding ``(stage, value)`` pairs as stages complete.

    Stages are ``"planned"`` (list of tool names), ``"executed"`` (:class:`ExecutionResult`) and
    ``"final"`` (:class:`TurnResult`).  Timeouts and execution failures propagate.
    """
    all_tools = all_tools or {}
    budget = CallBudget(settings.MAX_GENERATION_CALLS)
    conversation = _conversation(turn)

    visible = build_tool_set(all_tools, turn.query)
    logger.info("Visible tools: %d of %d", len(visible), len(all_tools))

    planned: List[str] = []
    if visible:
        budget.spend()
        planned = await plan_tools(model, conversation, visible)
    yield "planned", planned

    exec_tools = filter_tools(visible, planned)
    system = build_system_prompt(exec_tools.keys(), load_domain_instruction())
    messages = [{"role": "system", "content": system}, *conversation]

    result: ExecutionResult = await execute(
        model,
        messages,
        exec_tools,
        max_roundtrips,
        timeout,
        query=turn.query,
        budget=budget,
    )
    yield "executed", result

    reply = split_reply(result.text)
    text = await ensure_meaningful_response(
        reply.content,
        result.tool_results,
        model,
        query=turn.query,
        budget=budget,
        declared=declared_categories(all_tools),
    )
    if not text.strip():
        text = NO_RESPONSE_TEXT

    logger.info("Turn finished using %d generation call(s)", budget.used)
    yield "final", TurnResult(
        result=text,
        reasoning=reply.explanation,
        planned_tools=planned,
        tool_calls=result.tool_calls,
        tool_results=result.tool_results,
    )


async def run_turn(
    turn: Turn,
    model: BaseModelClient,
    all_tools: ToolCatalog | None,
    timeout: float | None = None,
    max_roundtrips: int | None = None,
) -> TurnResult:
    """Run the pipeline and return only the final result."""
    final: TurnResult | None = None
    async for stage, value in iter_turn(turn, model, all_tools, timeout, max_roundtrips):
        if stage == "final":
            final = value
    if final is None:
        raise RuntimeError("Turn pipeline ended without a final result")
    return final


def content_chunks(text: str) -> List[str]:
    """Split *text* at paragraph boundaries for incremental delivery."""
    return [chunk for chunk in _PARAGRAPH_RE.split(text) if chunk]


async def stream_turn(
    turn: Turn,
    model: BaseModelClient,
    all_tools: ToolCatalog | None,
    timeout: float | None = None,
    max_roundtrips: int | None = None,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Run the pipeline as a stream of events.

    Event types: ``meta`` (planned tools, then issued tool calls), ``reasoning``, ``content``
    (text deltas), ``done`` and, on failure, ``error``.  Failures end the stream instead of raising.
    """
    try:
        async for stage, value in iter_turn(turn, model, all_tools, timeout, max_roundtrips):
            if stage == "planned":
                yield {"type": "meta", "plannedTools": value}
            elif stage == "executed":
                yield {
                    "type": "meta",
                    "toolCalls": [call.model_dump() for call in value.tool_calls],
                }
            elif stage == "final":
                if value.reasoning:
                    yield {"type": "reasoning", "text": value.reasoning}
                for chunk in content_chunks(value.result):
                    yield {"type": "content", "text": chunk}
                yield {"type": "done"}
    except ExecutionTimeout as exc:
        logger.warning("Streaming turn timed out: %s", exc)
        yield {"type": "error", "error": "Timed out waiting for the model or tools to respond"}
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Streaming turn failed")
        yield {"type": "error", "error": "Internal Server Error", "details": str(exc)}

"""
Degenerate-output guard.

Models sometimes finish a successful tool run with "Done." or nothing at all.  The guard asks the
model once more, without tools, to narrate the results it already has; if that still yields nothing
useful it builds an answer straight from the tool results.
"""

import asyncio
import logging
from typing import (
    Mapping,
    Sequence,
)

from agentic_chatbot.agent.budget import CallBudget
from agentic_chatbot.agent.model_interface import BaseModelClient
from agentic_chatbot.agent.prompts import NARRATION_PROMPT
from agentic_chatbot.common import to_text
from agentic_chatbot.config import settings
from agentic_chatbot.core.schema import ToolResultRecord
from agentic_chatbot.results import (
    format_tool_results,
    summarize_documents,
    text_fragments,
)

logger = logging.getLogger(__name__)

MINIMAL_RESPONSES = frozenset({"done", "done.", "completed", "finished", "ok", "okay"})
MIN_MEANINGFUL_LENGTH = 20


def is_minimal(text: str | None) -> bool:
    """True for empty, token-like ("Done.") or very short answers."""
    folded = (text or "").strip().casefold()
    return folded in MINIMAL_RESPONSES or len(folded) < MIN_MEANINGFUL_LENGTH


async def narrate_results(
    model: BaseModelClient,
    tool_results: Sequence[ToolResultRecord],
    query: str = "",
    timeout: float | None = None,
) -> str:
    """Ask the model, with no tools attached, to explain *tool_results*; ``""`` on any failure."""
    serialized = to_text([record.model_dump() for record in tool_results], indent=2)
    messages = [
        {"role": "system", "content": NARRATION_PROMPT.format(query=query or "(not given)", results=serialized)},
        {"role": "user", "content": query or "Summarize the tool results."},
    ]
    try:
        result = await asyncio.wait_for(
            model.generate(messages, tools={}, max_roundtrips=0),
            timeout=timeout or settings.RESPONSE_TIMEOUT_SECONDS,
        )
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Narration call failed: %s", exc)
        return ""
    return (result.text or "").strip()


def fallback_from_results(
    tool_results: Sequence[ToolResultRecord],
    query: str = "",
    declared: Mapping[str, str] | None = None,
) -> str:
    """
    Deterministic answer built from the tool results alone.

    Document-like payloads are summarized first; otherwise recognized result categories are
    rendered; otherwise the raw text fragments are concatenated.  Returns ``""`` if none applies.
    """
    documents = summarize_documents(tool_results)
    if documents:
        return documents

    rendered = format_tool_results(tool_results, query, declared, include_generic=False)
    if rendered.strip():
        return rendered

    fragments = [
        fragment
        for record in tool_results
        if not record.is_error
        for fragment in text_fragments(record.result)
    ]
    return "\n\n".join(fragments)


async def ensure_meaningful_response(
    text: str,
    tool_results: Sequence[ToolResultRecord],
    model: BaseModelClient | None = None,
    query: str = "",
    budget: CallBudget | None = None,
    declared: Mapping[str, str] | None = None,
) -> str:
    """
    Return *text*, or a better answer if *text* is degenerate and tools did run.

    Never raises; on any internal failure the best text obtained so far is returned.
    """
    best = text or ""
    if not is_minimal(best) or not tool_results:
        return best

    try:
        if model is not None and (budget is None or budget.try_spend("narration")):
            logger.info("Minimal answer %r after %d tool result(s); narrating", best, len(tool_results))
            narrated = await narrate_results(model, tool_results, query)
            if narrated:
                best = narrated
        if not is_minimal(best):
            return best

        fallback = fallback_from_results(tool_results, query, declared)
        if fallback.strip():
            logger.info("Using templated fallback built from tool results")
            return fallback
    except Exception:  # pylint: disable=broad-except
        logger.exception("Degenerate-output guard failed; keeping the best answer so far")
    return best

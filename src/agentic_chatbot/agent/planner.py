"""
Tool planner and plan filter.

The planner makes one constrained generation call, with no tools attached, asking the model which of
the visible tools it intends to use.  The plan only narrows what the execution call sees: a plan
that is empty or names nothing valid leaves the full visible set in place.
"""

import asyncio
import json
import logging
import re
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from agentic_chatbot.agent.guidance import load_domain_instruction
from agentic_chatbot.agent.model_interface import BaseModelClient
from agentic_chatbot.agent.prompts import PLANNER_PROMPT
from agentic_chatbot.config import settings
from agentic_chatbot.tools import (
    ToolCatalog,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.+?)```", re.DOTALL)


def _sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = _FENCE_RE.search(content)
        if match:
            content = match.group(1)
    return content.strip()


def parse_plan(text: str | None, tools: ToolCatalog) -> List[str]:
    """
    Extract validated tool names from a planner reply.

    Returns an empty list for anything other than a JSON object.  Names that are missing, empty or
    not keys of *tools* are dropped; duplicates keep their first position.
    """
    try:
        plan = json.loads(_sanitize_json_string(text or "") or "{}")
    except json.JSONDecodeError:
        logger.warning("Planner reply is not valid JSON: %r", text)
        return []
    if not isinstance(plan, dict):
        logger.warning("Planner reply is not a JSON object: %r", text)
        return []

    entries = plan.get("tools") or []
    if not isinstance(entries, list):
        return []

    chosen: List[str] = []
    for entry in entries:
        name = str(entry["name"]) if isinstance(entry, dict) and entry.get("name") else ""
        if name and name in tools and name not in chosen:
            chosen.append(name)
    return chosen


async def plan_tools(
    model: BaseModelClient,
    history_messages: Sequence[Dict[str, Any]],
    tools: ToolCatalog,
) -> List[str]:
    """
    Plan step: ask the model which tools it intends to use (no execution).

    Returns names that are keys of *tools*; any failure, including running past the response
    timeout, yields an empty list.
    """
    domain = load_domain_instruction()
    system = PLANNER_PROMPT.format(
        tool_names="\n".join(f"- {name}" for name in sorted(tools)) or "- (none)",
        default_database=settings.DEFAULT_DATABASE,
    )
    if domain:
        system = f"{system}\n{domain}"

    try:
        # planning only, do NOT execute tools here
        result = await asyncio.wait_for(
            model.generate(
                [{"role": "system", "content": system}, *history_messages], tools={}, max_roundtrips=0
            ),
            timeout=settings.RESPONSE_TIMEOUT_SECONDS,
        )
        planned = parse_plan(result.text, tools)
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Planner failed, continuing without a plan: %s", exc)
        return []

    logger.info("Planner selected tools: %s", planned)
    return planned


def filter_tools(
    all_tools: ToolCatalog, allow_list: Sequence[str] | None
) -> Dict[str, ToolDescriptor]:
    """Restrict *all_tools* to *allow_list*, falling back to all of them if nothing valid remains."""
    if not allow_list:
        return dict(all_tools)  # fallback: allow all visible tools

    filtered = {name: all_tools[name] for name in allow_list if name in all_tools}
    # If planner proposed nothing valid, fall back to all
    return filtered or dict(all_tools)

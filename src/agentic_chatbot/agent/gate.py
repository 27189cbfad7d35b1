"""
Tool visibility gate.

Decides which tools the model may see for a turn.  Mutating tools stay hidden unless the user put an
explicit ``confirm: true`` / ``confirm: yes`` in the query.
"""

import re
from typing import Dict

from agentic_chatbot.common import strip_namespace
from agentic_chatbot.tools import (
    ToolCatalog,
    ToolDescriptor,
)

CONFIRM_RE = re.compile(r"confirm\s*:\s*(true|yes)\b", re.IGNORECASE)

# Verbs are matched as whole segments of the (camelCase-split) tool name, so both
# ``bulk-write`` / ``mongo_out`` and ``drop-database`` / ``insert-many`` are caught.
WRITE_NAME_RE = re.compile(
    r"(?:^|[-_\s])(insert|update|delete|create[-_\s]?index|drop|write|bulk|merge|out)(?=$|[-_\s])",
    re.IGNORECASE,
)

# Any name ending in a write verb, separator or not (``bulkwrite``, ``findoneandupdate``).
WRITE_SUFFIX_RE = re.compile(
    r"(insert|update|delete|create[-_\s]?index|drop|write|bulk|merge|out)$", re.IGNORECASE
)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

DB_RELATED_RE = re.compile(
    r"\b(db|database|collection|collections|find|aggregate|count|index|indexes|schema|stats|log|"
    r"logs|explain|collstats|storage size|size on disk|perf|performance|mongodb)\b",
    re.IGNORECASE,
)


def is_confirmed(query: str | None) -> bool:
    """True if *query* carries the explicit write confirmation token."""
    return bool(CONFIRM_RE.search(query or ""))


def is_mutating(tool_name: str) -> bool:
    """True if *tool_name* names a write-capable operation."""
    local = strip_namespace(tool_name)
    if WRITE_SUFFIX_RE.search(local):
        return True
    return bool(WRITE_NAME_RE.search(_CAMEL_BOUNDARY_RE.sub("-", local)))


def looks_db_related(query: str | None) -> bool:
    """Lexical test for queries that should be answered with at least one tool call."""
    return bool(DB_RELATED_RE.search(query or ""))


def build_tool_set(all_tools: ToolCatalog | None, query: str | None) -> Dict[str, ToolDescriptor]:
    """Return the visible subset of *all_tools* for a turn whose raw text is *query*."""
    if is_confirmed(query):
        return dict(all_tools or {})

    # Hide write-capable tools unless explicitly confirmed
    return {name: tool for name, tool in (all_tools or {}).items() if not is_mutating(name)}

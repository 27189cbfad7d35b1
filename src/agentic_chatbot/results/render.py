"""
Render parsed tool results as Markdown / natural language.

Each renderer receives the parsed value and returns ``None`` when it has nothing meaningful to say,
in which case the result is echoed literally.  Previews are capped and always framed as
"showing up to N of M"; nothing else is truncated.
"""

import json
import logging
import math
import re
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
)

from agentic_chatbot.common import strip_namespace
from agentic_chatbot.core.schema import ToolResultRecord
from agentic_chatbot.results.categories import (
    ResultCategory,
    classify,
)
from agentic_chatbot.results.parsers import (
    LOG_DISPLAY_LIMIT,
    DatabaseEntry,
    IndexInfo,
    StorageSize,
    WriteAck,
    as_number,
    echo,
    parse_documents,
    parse_payload,
    text_fragments,
)

logger = logging.getLogger(__name__)

DOCUMENT_PREVIEW_LIMIT = 3

_TABLE_RE = re.compile(r"\btable\b|\btabular\b|\btable\s*form", re.IGNORECASE)
_UNITS = ["bytes", "KB", "MB", "GB", "TB"]

Renderer = Callable[[Any, str, bool], Optional[str]]


def wants_table(query: str | None) -> bool:
    """True if the user asked for tabular output."""
    return bool(_TABLE_RE.search(query or ""))


def human_bytes(value: Any) -> str:
    """Format a byte count with 1024-based units and two decimals; ``"—"`` if not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return "—"
    idx = 0
    val = float(value)
    while val >= 1024 and idx < len(_UNITS) - 1:
        val /= 1024
        idx += 1
    return f"{val:.2f} {_UNITS[idx]}"


def bytes_label(value: Any) -> str:
    """Raw and human-scaled byte count, e.g. ``"2048 bytes (2.00 KB)"``."""
    number = as_number(value)
    if number is None:
        return "—"
    return f"{number} bytes ({human_bytes(number)})"


def to_markdown_table(rows: Sequence[Sequence[Any]], headers: Sequence[str]) -> str:
    """Build a Markdown table; ``None`` cells render empty."""
    header = f"| {' | '.join(headers)} |"
    sep = f"| {' | '.join('---' for _ in headers)} |"
    body = "\n".join(
        f"| {' | '.join('' if cell is None else str(cell) for cell in row)} |" for row in rows
    )
    return f"{header}\n{sep}\n{body}"


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    return singular if count == 1 else (plural or f"{singular}s")


def _json_block(value: Any) -> str:
    return "```json\n" + json.dumps(value, indent=2, default=str, ensure_ascii=False) + "\n```"


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------
def _render_databases(parsed: List[DatabaseEntry], tool_name: str, table: bool) -> Optional[str]:
    if not parsed:
        return None
    if table:
        rows = [[db.name, bytes_label(db.size_bytes)] for db in parsed]
        return "Here are the databases:\n" + to_markdown_table(rows, ["Database Name", "Size on Disk"])
    names = ", ".join(
        f"{db.name} ({bytes_label(db.size_bytes)})" if db.size_bytes is not None else db.name
        for db in parsed
    )
    return f"I found {len(parsed)} {_plural(len(parsed), 'database')}: {names}."


def _render_collections(parsed: List[str], tool_name: str, table: bool) -> Optional[str]:
    if not parsed:
        return None
    if table:
        return "Here are the collections:\n" + to_markdown_table(
            [[name] for name in parsed], ["Collection Name"]
        )
    return f"The available collections are: {', '.join(parsed)}."


def _render_indexes(parsed: List[IndexInfo], tool_name: str, table: bool) -> Optional[str]:
    if not parsed:
        return None
    if table:
        rows = [
            [
                index.name or "—",
                json.dumps(index.key if index.key is not None else {}, default=str),
                index.unique,
                index.sparse,
                index.ttl_seconds if index.ttl_seconds is not None else "—",
            ]
            for index in parsed
        ]
        return "Indexes for the collection:\n" + to_markdown_table(
            rows, ["Index Name", "Key", "Unique", "Sparse", "TTL (s)"]
        )
    names = ", ".join(index.name or "unnamed" for index in parsed)
    return f"Found {len(parsed)} {_plural(len(parsed), 'index', 'indexes')}: {names}."


def _render_write_ack(parsed: WriteAck, tool_name: str, table: bool) -> Optional[str]:
    if parsed is None:
        return None
    is_index = "index" in strip_namespace(tool_name).lower()
    if not parsed.ok:
        label = "Index creation" if is_index else "Write operation"
        return f"{label} response: {echo(parsed.details)}" if parsed.details is not None else None
    if is_index:
        return f"Index created{f': {parsed.name}' if parsed.name else ''}."
    details = parsed.details if isinstance(parsed.details, str) else None
    return f"Write operation acknowledged{f': {details}' if details else ''}."


def _render_documents(parsed: List[Any], tool_name: str, table: bool) -> Optional[str]:
    if not parsed:
        return None
    total = len(parsed)
    preview = parsed[:DOCUMENT_PREVIEW_LIMIT]
    if strip_namespace(tool_name).lower() == "aggregate":
        lead = f"Aggregation returned {total} {_plural(total, 'result')}."
    else:
        lead = f"Found {total} {_plural(total, 'document')}."
    if total > DOCUMENT_PREVIEW_LIMIT:
        lead += f" Showing up to {DOCUMENT_PREVIEW_LIMIT} of {total}:"

    if table and all(isinstance(doc, dict) for doc in preview):
        headers: List[str] = []
        for doc in preview:
            headers.extend(key for key in doc if key not in headers)
        rows = [
            [
                doc.get(key) if isinstance(doc.get(key), (str, int, float)) else json.dumps(doc.get(key), default=str)
                for key in headers
            ]
            for doc in preview
        ]
        return f"{lead}\n{to_markdown_table(rows, headers)}"
    return f"{lead}\n{_json_block(preview)}"


def _render_storage_size(parsed: StorageSize, tool_name: str, table: bool) -> Optional[str]:
    if parsed is None or parsed.size_bytes is None:
        return None
    return f"Collection storage size: {bytes_label(parsed.size_bytes)}."


_STAT_FIELDS = (
    ("Collections", ("collections",), False),
    ("Documents", ("objects", "count"), False),
    ("Data size", ("dataSize", "size"), True),
    ("Storage size", ("storageSize", "totalSize"), True),
    ("Index size", ("indexSize",), True),
)


def _render_db_stats(parsed: Dict[str, Any], tool_name: str, table: bool) -> Optional[str]:
    if not parsed:
        return None
    rows = []
    for label, keys, is_bytes in _STAT_FIELDS:
        value = next((as_number(parsed[key]) for key in keys if as_number(parsed.get(key)) is not None), None)
        if value is None:
            continue
        rows.append([label, f"{human_bytes(value)} ({value} bytes)" if is_bytes else value])
    if not rows:
        return None
    if table:
        return "Database statistics:\n" + to_markdown_table(rows, ["Metric", "Value"])
    return "\n".join(f"{label}: {value}" for label, value in rows)


def _render_explain(parsed: str, tool_name: str, table: bool) -> Optional[str]:
    return parsed or None


def _render_logs(parsed: List[str], tool_name: str, table: bool) -> Optional[str]:
    if not parsed:
        return None
    total = len(parsed)
    lead = "Recent log entries"
    if total > LOG_DISPLAY_LIMIT:
        lead += f" (showing up to {LOG_DISPLAY_LIMIT} of {total})"
    shown = "\n".join(parsed[:LOG_DISPLAY_LIMIT])
    return f"{lead}:\n```\n{shown}\n```"


def _render_count(parsed: Optional[int], tool_name: str, table: bool) -> Optional[str]:
    return None if parsed is None else f"The count is {parsed}."


def _render_schema(parsed: str, tool_name: str, table: bool) -> Optional[str]:
    return f"Collection schema:\n```json\n{parsed}\n```" if parsed else None


def _render_connection(parsed: str, tool_name: str, table: bool) -> Optional[str]:
    return f"Switched MongoDB connection. Details: {parsed}" if parsed else "Switched MongoDB connection."


def _render_generic(parsed: str, tool_name: str, table: bool) -> Optional[str]:
    label = re.sub(r"mcp_|mongodb_|mongo_", "", strip_namespace(tool_name)) if tool_name else ""
    if label:
        return f"I ran {label} and obtained a result: {parsed}"
    return f"I obtained a result: {parsed}"


RENDERERS: Dict[ResultCategory, Renderer] = {
    ResultCategory.DATABASES: _render_databases,
    ResultCategory.COLLECTIONS: _render_collections,
    ResultCategory.INDEXES: _render_indexes,
    ResultCategory.WRITE_ACK: _render_write_ack,
    ResultCategory.DOCUMENTS: _render_documents,
    ResultCategory.STORAGE_SIZE: _render_storage_size,
    ResultCategory.DB_STATS: _render_db_stats,
    ResultCategory.EXPLAIN: _render_explain,
    ResultCategory.LOGS: _render_logs,
    ResultCategory.COUNT: _render_count,
    ResultCategory.SCHEMA: _render_schema,
    ResultCategory.CONNECTION: _render_connection,
    ResultCategory.GENERIC: _render_generic,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def render_result(
    record: ToolResultRecord, table: bool = False, declared: str | None = None
) -> str:
    """Render one tool result; unrecognized payloads are echoed literally."""
    if record.is_error:
        return f"The {strip_namespace(record.name)} tool reported an error: {echo(record.result)}"

    category = classify(record.name, declared)
    parsed = parse_payload(category, record.result)
    rendered: Optional[str] = None
    if parsed is not None:
        try:
            rendered = RENDERERS[category](parsed, record.name, table)
        except Exception:  # pylint: disable=broad-except
            logger.debug("Could not render %s result of %s", category.value, record.name, exc_info=True)
    if rendered is None:
        rendered = _render_generic(echo(record.result), record.name, table)
    return rendered


def format_tool_results(
    tool_results: Sequence[ToolResultRecord],
    query: str | None = None,
    declared: Mapping[str, str] | None = None,
    include_generic: bool = True,
) -> str:
    """
    Render every tool result as natural language / Markdown.

    With *include_generic* false, results that fall into :attr:`ResultCategory.GENERIC` are left
    out, so the output is empty unless at least one result was recognized.
    """
    declared = declared or {}
    table = wants_table(query)
    sentences: List[str] = []
    for record in tool_results:
        category = classify(record.name, declared.get(record.name))
        if not include_generic and (record.is_error or category is ResultCategory.GENERIC):
            continue
        sentences.append(render_result(record, table, declared.get(record.name)))
    return "\n".join(sentences)


def summarize_documents(tool_results: Sequence[ToolResultRecord]) -> str:
    """
    Summarize document-like payloads (records carrying an ``_id``/``id`` field).

    Returns ``""`` if no result looks like documents.
    """
    docs: List[Any] = []
    for record in tool_results:
        if record.is_error:
            continue
        parsed = [doc for doc in parse_documents(record.result) if isinstance(doc, dict)]
        found = [doc for doc in parsed if "_id" in doc or "id" in doc]
        if found:
            docs.extend(found)
            continue
        # Extended JSON that does not parse as JSON still shows its identifier field.
        docs.extend(
            fragment for fragment in text_fragments(record.result) if '"_id"' in fragment
        )
    if not docs:
        return ""

    total = len(docs)
    lines = [f"I found {total} {_plural(total, 'document')}."]
    if total > DOCUMENT_PREVIEW_LIMIT:
        lines.append(f"Showing up to {DOCUMENT_PREVIEW_LIMIT} of {total}:")
    else:
        lines.append("Here are the results:")
    lines.append("")
    for position, doc in enumerate(docs[:DOCUMENT_PREVIEW_LIMIT], start=1):
        lines.append(f"**Document {position}:**")
        if isinstance(doc, dict):
            for key, value in doc.items():
                if key != "_id":
                    lines.append(f"- {key}: {json.dumps(value, default=str, ensure_ascii=False)}")
        else:
            lines.append(str(doc))
        lines.append("")
    return "\n".join(lines).strip()

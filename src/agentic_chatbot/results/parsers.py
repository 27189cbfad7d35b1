"""
Payload parsers, one per :class:`ResultCategory`.

Tool providers return loosely structured payloads.  Every parser accepts at least three shapes:

1. a structured object with the expected field names (``{"databases": [...]}``),
2. a bare array of strings or objects,
3. an MCP ``{"content": [{"type": "text", "text": "..."}]}`` envelope, where the value is recovered
   from the fragment text by pattern matching or a nested JSON parse.

MCP envelopes may also carry ``structuredContent``; it is tried before the text fragments.  Parsers
never raise: :func:`parse_payload` degrades any failure to the category's empty value.
"""

import json
import logging
import math
import re
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)

from agentic_chatbot.results.categories import ResultCategory

logger = logging.getLogger(__name__)

LOG_DISPLAY_LIMIT = 20

_DB_LINE_RE = re.compile(r"Name:\s*\"?([^,\"]+)\"?,\s*Size:\s*([0-9]+)\s*bytes", re.IGNORECASE)
_NAME_RE = re.compile(r"Name:\s*\"?([^\"]+)\"?", re.IGNORECASE)
_INDEX_LINE_RE = re.compile(
    r"Name:\s*\"?([^,\"]+)\"?,\s*(?:Keys?|definition):\s*(\{.*\})", re.IGNORECASE
)
_INDEX_NAME_RE = re.compile(r"index\s+\"([^\"]+)\"", re.IGNORECASE)
_SIZE_RE = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*(bytes|KB|MB|GB|TB)\b", re.IGNORECASE)
_INT_RE = re.compile(r"\b([0-9]+)\b")
_NAME_PREFIX_RE = re.compile(r"^Name:\s*", re.IGNORECASE)

_UNIT_FACTORS = {"bytes": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3, "tb": 1024**4}


class DatabaseEntry(BaseModel):
    """A database and, when reported, its size on disk."""

    name: str
    size_bytes: Optional[int] = None


class IndexInfo(BaseModel):
    """One index of a collection."""

    name: str = ""
    key: Any = None
    unique: bool = False
    sparse: bool = False
    ttl_seconds: Optional[Union[int, float]] = None


class WriteAck(BaseModel):
    """Acknowledgement of a write or index creation."""

    ok: bool = False
    name: Optional[str] = None
    details: Any = None


class StorageSize(BaseModel):
    """Storage size of a collection."""

    size_bytes: Optional[Union[int, float]] = None
    raw: Any = Field(default=None, exclude=True)


# ---------------------------------------------------------------------------
# Shape helpers
# ---------------------------------------------------------------------------
def is_content_envelope(payload: Any) -> bool:
    """True for MCP ``{"content": [...]}`` payloads."""
    return isinstance(payload, dict) and isinstance(payload.get("content"), list)


def text_fragments(payload: Any) -> List[str]:
    """Return the non-empty text fragments of an MCP content envelope."""
    if not is_content_envelope(payload):
        return []
    fragments: List[str] = []
    for part in payload["content"]:
        if isinstance(part, dict):
            text = part.get("text") or part.get("content") or ""
        else:
            text = part
        text = str(text) if text is not None else ""
        if text.strip():
            fragments.append(text)
    return fragments


def _try_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _candidates(payload: Any) -> Iterator[Any]:
    """Yield the views of *payload* worth parsing, most structured first."""
    if isinstance(payload, str):
        decoded = _try_json(payload)
        if decoded is not None:
            yield decoded
        yield payload
        return
    if is_content_envelope(payload):
        structured = payload.get("structuredContent")
        if structured:
            yield structured
    yield payload


def as_number(value: Any) -> Optional[float]:
    """Coerce ints, floats, numeric strings and Extended JSON numbers; ``None`` otherwise."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, dict):
        for key in ("$numberLong", "$numberInt", "$numberDouble", "$numberDecimal"):
            if key in value:
                return as_number(value[key])
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _first(mapping: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------
def _database_from_item(item: Any) -> Optional[DatabaseEntry]:
    if isinstance(item, str):
        return DatabaseEntry(name=item) if item else None
    if isinstance(item, dict):
        name = str(_first(item, "name", "db", "database") or "")
        if not name:
            return None
        size = as_number(_first(item, "sizeOnDisk", "size", "bytes", "sizeBytes"))
        return DatabaseEntry(name=name, size_bytes=int(size) if size is not None else None)
    return None


def parse_databases(payload: Any) -> List[DatabaseEntry]:
    """Databases with optional byte sizes, deduplicated by name."""
    entries: List[DatabaseEntry] = []
    for candidate in _candidates(payload):
        items: Any = candidate
        if isinstance(candidate, dict) and isinstance(candidate.get("databases"), list):
            items = candidate["databases"]
        if isinstance(items, list):
            entries = [entry for entry in map(_database_from_item, items) if entry]
        elif is_content_envelope(candidate):
            entries = _databases_from_fragments(text_fragments(candidate))
        if entries:
            break
    return _unique_by_name(entries)


def _databases_from_fragments(fragments: List[str]) -> List[DatabaseEntry]:
    entries: List[DatabaseEntry] = []
    for text in fragments:
        nested = _try_json(text)
        if isinstance(nested, (dict, list)):
            entries.extend(parse_databases(nested))
            continue
        match = _DB_LINE_RE.search(text)
        if match:
            entries.append(DatabaseEntry(name=match.group(1).strip(), size_bytes=int(match.group(2))))
            continue
        stripped = text.strip()
        # Bare names, or "Name: x" without a size; other prose (e.g. "Found 3 databases") is skipped.
        if _NAME_PREFIX_RE.match(stripped) or " " not in stripped:
            name_only = _NAME_PREFIX_RE.sub("", stripped).strip().strip('"')
        else:
            name_only = ""
        if name_only:
            entries.append(DatabaseEntry(name=name_only))
    return entries


def _unique_by_name(entries: List[DatabaseEntry]) -> List[DatabaseEntry]:
    seen = set()
    unique: List[DatabaseEntry] = []
    for entry in entries:
        if entry.name and entry.name not in seen:
            seen.add(entry.name)
            unique.append(entry)
    return unique


def parse_collections(payload: Any) -> List[str]:
    """Collection names."""
    for candidate in _candidates(payload):
        items: Any = candidate
        if isinstance(candidate, dict) and isinstance(candidate.get("collections"), list):
            items = candidate["collections"]
        names: List[str] = []
        if isinstance(items, list):
            for item in items:
                if isinstance(item, str):
                    names.append(item)
                elif isinstance(item, dict):
                    candidate_name = _first(item, "name", "collection", "collectionName")
                    if isinstance(candidate_name, str):
                        names.append(candidate_name)
        elif is_content_envelope(candidate):
            for text in text_fragments(candidate):
                nested = _try_json(text)
                if isinstance(nested, (dict, list)):
                    names.extend(parse_collections(nested))
                    continue
                match = _NAME_RE.search(text)
                if match and match.group(1).strip():
                    names.append(match.group(1).strip())
        if names:
            return names
    return []


def _index_from_item(item: Any) -> Optional[IndexInfo]:
    if not isinstance(item, dict):
        return None
    ttl = as_number(item.get("expireAfterSeconds"))
    return IndexInfo(
        name=str(_first(item, "name", "index") or ""),
        key=_first(item, "key", "keys", "fields"),
        unique=bool(item.get("unique")),
        sparse=bool(item.get("sparse")),
        ttl_seconds=ttl,
    )


def parse_indexes(payload: Any) -> List[IndexInfo]:
    """Index descriptors with uniqueness, sparsity and TTL flags."""
    for candidate in _candidates(payload):
        items: Any = candidate
        if isinstance(candidate, dict) and isinstance(candidate.get("indexes"), list):
            items = candidate["indexes"]
        indexes: List[IndexInfo] = []
        if isinstance(items, list):
            indexes = [index for index in map(_index_from_item, items) if index]
        elif is_content_envelope(candidate):
            for text in text_fragments(candidate):
                nested = _try_json(text)
                if isinstance(nested, (dict, list)):
                    indexes.extend(parse_indexes(nested))
                    continue
                match = _INDEX_LINE_RE.search(text)
                if match:
                    indexes.append(IndexInfo(name=match.group(1).strip(), key=_try_json(match.group(2))))
        if indexes:
            return indexes
    return []


def parse_write_ack(payload: Any) -> WriteAck:
    """Acknowledgement flag plus index name / details when present."""
    if payload is None:
        return WriteAck(ok=False)
    if isinstance(payload, str):
        return WriteAck(ok=True, details=payload)
    if isinstance(payload, (int, float)) and not isinstance(payload, bool):
        return WriteAck(ok=payload == 1)
    if is_content_envelope(payload):
        fragments = text_fragments(payload)
        joined = "\n".join(fragments)
        match = _INDEX_NAME_RE.search(joined)
        return WriteAck(
            ok=bool(fragments) and not payload.get("isError"),
            name=match.group(1) if match else None,
            details=joined or None,
        )
    if isinstance(payload, dict):
        ok = payload.get("ok") == 1 or payload.get("acknowledged") is True or payload.get("success") is True
        name = _first(payload, "name", "index", "createdIndexName")
        return WriteAck(ok=ok, name=name if isinstance(name, str) else None, details=payload)
    return WriteAck(ok=False)


def parse_documents(payload: Any) -> List[Any]:
    """Documents returned by find/aggregate-like tools."""
    for candidate in _candidates(payload):
        if isinstance(candidate, list):
            return candidate
        if not isinstance(candidate, dict):
            continue
        for key in ("documents", "result", "data"):
            if isinstance(candidate.get(key), list):
                return candidate[key]
        if is_content_envelope(candidate):
            docs: List[Any] = []
            for text in text_fragments(candidate):
                maybe = _try_json(text)
                if isinstance(maybe, list):
                    docs.extend(maybe)
                elif isinstance(maybe, dict):
                    docs.append(maybe)
            if docs:
                return docs
    return []


def _size_from_text(text: str) -> Optional[float]:
    match = _SIZE_RE.search(text)
    if not match:
        return None
    return as_number(float(match.group(1)) * _UNIT_FACTORS[match.group(2).lower()])


def parse_storage_size(payload: Any) -> StorageSize:
    """Storage size in bytes when it can be found."""
    for candidate in _candidates(payload):
        number = as_number(candidate) if not isinstance(candidate, (dict, list)) else None
        if number is None and isinstance(candidate, str):
            number = _size_from_text(candidate)
        if number is not None:
            return StorageSize(size_bytes=number, raw=payload)
        if is_content_envelope(candidate):
            for text in text_fragments(candidate):
                nested = _try_json(text)
                if nested is not None:
                    size = parse_storage_size(nested)
                    if size.size_bytes is not None:
                        return StorageSize(size_bytes=size.size_bytes, raw=payload)
                number = _size_from_text(text)
                if number is not None:
                    return StorageSize(size_bytes=number, raw=payload)
        elif isinstance(candidate, dict):
            size = as_number(_first(candidate, "sizeBytes", "storageSize", "size", "totalSize", "bytes"))
            if size is not None:
                return StorageSize(size_bytes=size, raw=payload)
    return StorageSize(raw=payload)


def parse_db_stats(payload: Any) -> Dict[str, Any]:
    """Statistics object, passed through as-is."""
    for candidate in _candidates(payload):
        if is_content_envelope(candidate):
            for text in text_fragments(candidate):
                nested = _try_json(text)
                if isinstance(nested, dict):
                    return nested
        elif isinstance(candidate, dict):
            return candidate
    return {}


def parse_explain(payload: Any) -> str:
    """Short summary of a query plan: the winning plan when present, else a JSON echo."""
    plan: Any = None
    for candidate in _candidates(payload):
        if is_content_envelope(candidate):
            for text in text_fragments(candidate):
                nested = _try_json(text)
                if isinstance(nested, dict):
                    plan = nested
                    break
        elif isinstance(candidate, dict):
            plan = candidate
        if plan is not None:
            break
    if not isinstance(plan, dict):
        return ""

    planner = _first(plan, "queryPlanner", "queryPlannerExtended", "plan")
    if isinstance(planner, dict) and planner.get("winningPlan") is not None:
        return f"Winning plan: {json.dumps(planner['winningPlan'], default=str)}"
    if planner is not None:
        return f"Plan: {json.dumps(planner, default=str)}"
    return json.dumps(plan, default=str)


def _line(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)


def parse_logs(payload: Any) -> List[str]:
    """Log lines (uncapped; renderers cap the display)."""
    if payload is None:
        return []
    if isinstance(payload, list):
        return [_line(value) for value in payload]
    if isinstance(payload, dict) and isinstance(payload.get("logs"), list):
        return [_line(value) for value in payload["logs"]]
    if is_content_envelope(payload):
        return text_fragments(payload)
    return [_line(payload)]


def parse_count(payload: Any) -> Optional[int]:
    """Integer count, recovered from a number, an object or the fragment text."""
    for candidate in _candidates(payload):
        if is_content_envelope(candidate):
            match = _INT_RE.search("\n".join(text_fragments(candidate)))
            if match:
                return int(match.group(1))
        elif isinstance(candidate, dict):
            number = as_number(_first(candidate, "count", "total", "result"))
            if number is not None:
                return int(number)
        elif not isinstance(candidate, list):
            number = as_number(candidate)
            if number is not None:
                return int(number)
    return None


def echo(payload: Any) -> str:
    """Literal textual echo: fragment text for MCP envelopes, JSON for everything else."""
    fragments = text_fragments(payload)
    if fragments:
        return "\n".join(fragments)
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, default=str)
    except (TypeError, ValueError):
        return str(payload)


PARSERS: Dict[ResultCategory, Callable[[Any], Any]] = {
    ResultCategory.DATABASES: parse_databases,
    ResultCategory.COLLECTIONS: parse_collections,
    ResultCategory.INDEXES: parse_indexes,
    ResultCategory.WRITE_ACK: parse_write_ack,
    ResultCategory.DOCUMENTS: parse_documents,
    ResultCategory.STORAGE_SIZE: parse_storage_size,
    ResultCategory.DB_STATS: parse_db_stats,
    ResultCategory.EXPLAIN: parse_explain,
    ResultCategory.LOGS: parse_logs,
    ResultCategory.COUNT: parse_count,
    ResultCategory.SCHEMA: echo,
    ResultCategory.CONNECTION: echo,
    ResultCategory.GENERIC: echo,
}


def parse_payload(category: ResultCategory, payload: Any) -> Any:
    """Parse *payload* with the parser for *category*; ``None`` if the parser failed."""
    try:
        return PARSERS[category](payload)
    except Exception:  # pylint: disable=broad-except
        logger.debug("Could not parse %s payload: %r", category.value, payload, exc_info=True)
        return None

"""Classification of tool results into normalizer categories."""

import logging
from enum import Enum
from typing import (
    Dict,
    Mapping,
)

from agentic_chatbot.common import strip_namespace

logger = logging.getLogger(__name__)


class ResultCategory(str, Enum):
    """Shape families of tool-result payloads."""

    DATABASES = "databases"
    COLLECTIONS = "collections"
    INDEXES = "indexes"
    WRITE_ACK = "write_ack"
    DOCUMENTS = "documents"
    STORAGE_SIZE = "storage_size"
    DB_STATS = "db_stats"
    EXPLAIN = "explain"
    LOGS = "logs"
    COUNT = "count"
    SCHEMA = "schema"
    CONNECTION = "connection"
    GENERIC = "generic"


_CATEGORY_TABLE: Dict[str, ResultCategory] = {
    "list-databases": ResultCategory.DATABASES,
    "list-collections": ResultCategory.COLLECTIONS,
    "collection-indexes": ResultCategory.INDEXES,
    "create-index": ResultCategory.WRITE_ACK,
    "insert-many": ResultCategory.WRITE_ACK,
    "insert-one": ResultCategory.WRITE_ACK,
    "update-many": ResultCategory.WRITE_ACK,
    "update-one": ResultCategory.WRITE_ACK,
    "delete-many": ResultCategory.WRITE_ACK,
    "delete-one": ResultCategory.WRITE_ACK,
    "find": ResultCategory.DOCUMENTS,
    "aggregate": ResultCategory.DOCUMENTS,
    "collection-storage-size": ResultCategory.STORAGE_SIZE,
    "db-stats": ResultCategory.DB_STATS,
    "explain": ResultCategory.EXPLAIN,
    "mongodb-logs": ResultCategory.LOGS,
    "mongo-logs": ResultCategory.LOGS,
    "logs": ResultCategory.LOGS,
    "count": ResultCategory.COUNT,
    "collection-schema": ResultCategory.SCHEMA,
    "switch-connection": ResultCategory.CONNECTION,
    "connect": ResultCategory.CONNECTION,
}


def register_category(tool_name: str, category: ResultCategory | str) -> None:
    """Map the provider-local *tool_name* onto *category*."""
    _CATEGORY_TABLE[tool_name.lower()] = ResultCategory(category)


def classify(tool_name: str, declared: str | None = None) -> ResultCategory:
    """
    Return the category for a result produced by *tool_name*.

    A category declared by the provider wins; otherwise the registered name table is consulted
    with the provider namespace removed; anything else is :attr:`ResultCategory.GENERIC`.
    """
    if declared:
        try:
            return ResultCategory(declared)
        except ValueError:
            logger.debug("Ignoring unknown declared category %r for %s", declared, tool_name)
    return _CATEGORY_TABLE.get(strip_namespace(tool_name).lower(), ResultCategory.GENERIC)


def declared_categories(catalog: Mapping[str, object]) -> Dict[str, str]:
    """Collect provider-declared categories from a tool catalog, keyed by tool name."""
    return {
        name: category
        for name, tool in catalog.items()
        if (category := getattr(tool, "category", None))
    }

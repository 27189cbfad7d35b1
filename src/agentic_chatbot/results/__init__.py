"""
Result normalizer.

Tool results are classified once into a :class:`ResultCategory`, parsed into a canonical value by
the category's parser, and rendered as Markdown or prose.  Nothing in this package raises on a bad
payload: unrecognized shapes are echoed back as text.
"""

from agentic_chatbot.results.categories import (
    ResultCategory,
    classify,
    declared_categories,
    register_category,
)
from agentic_chatbot.results.parsers import (
    parse_payload,
    text_fragments,
)
from agentic_chatbot.results.render import (
    format_tool_results,
    human_bytes,
    render_result,
    summarize_documents,
    wants_table,
)

__all__ = [
    "ResultCategory",
    "classify",
    "declared_categories",
    "format_tool_results",
    "human_bytes",
    "parse_payload",
    "register_category",
    "render_result",
    "summarize_documents",
    "text_fragments",
    "wants_table",
]

"""
Split a model reply into its explanation and content fields.

The format directive asks for ``<EXPLANATION>...</EXPLANATION>`` followed by
``<CONTENT>...</CONTENT>``.  Models do not always comply, so parsing is best-effort: no tags means
the whole reply is content, and malformed tags are reported as an anomaly instead of failing.
"""

import logging
import re
from typing import (
    Dict,
    List,
)

from agentic_chatbot.core.schema import StructuredReply

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<\s*(/?)\s*(EXPLANATION|CONTENT)\s*>", re.IGNORECASE)


def split_reply(text: str | None) -> StructuredReply:
    """Return the content/explanation pair carried by *text*."""
    text = text or ""
    tags = list(_TAG_RE.finditer(text))
    if not tags:
        return StructuredReply(content=text.strip())

    sections: Dict[str, str] = {}
    anomalies: List[str] = []
    open_name: str | None = None
    open_end = 0
    last_end = 0

    for match in tags:
        closing, name = bool(match.group(1)), match.group(2).upper()
        if not closing:
            if open_name is not None:
                anomalies.append(f"<{open_name}> not closed before <{name}>")
                sections.setdefault(open_name, text[open_end : match.start()])
            open_name, open_end = name, match.end()
        elif open_name == name:
            sections.setdefault(name, text[open_end : match.start()])
            open_name = None
        else:
            anomalies.append(f"unexpected </{name}>")
            if open_name is None and name not in sections:
                sections[name] = text[last_end : match.start()]
        last_end = match.end()

    if open_name is not None:
        anomalies.append(f"<{open_name}> never closed")
        sections.setdefault(open_name, text[open_end:])

    explanation = _TAG_RE.sub("", sections.get("EXPLANATION") or "").strip() or None
    content = (sections.get("CONTENT") or "").strip()
    if not content:
        # Whatever sits outside the explanation section is the answer.
        remainder = text
        if "EXPLANATION" in sections:
            remainder = remainder.replace(sections["EXPLANATION"], "", 1)
        content = _TAG_RE.sub("", remainder).strip()

    anomaly = "; ".join(anomalies) or None
    if anomaly:
        logger.warning("Malformed reply tags: %s", anomaly)
    return StructuredReply(content=content, explanation=explanation, anomaly=anomaly)

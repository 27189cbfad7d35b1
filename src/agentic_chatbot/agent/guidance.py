"""Loader for the optional domain guidance text (default database/collection hints)."""

import logging
from pathlib import Path
from typing import List

from agentic_chatbot.config import settings

logger = logging.getLogger(__name__)

_GUIDANCE_HEADER = "Domain guidance for DB/collection selection (from {name}):\n"

_cached_instruction: str | None = None


def _candidate_paths() -> List[Path]:
    candidates: List[Path] = []
    if settings.DOMAIN_PROMPT_PATH:
        candidates.append(Path(settings.DOMAIN_PROMPT_PATH))
    cwd = Path.cwd()
    candidates.append(cwd / "prompt" / "chat-bot.md")
    candidates.append(cwd / "agentic-chatbot" / "prompt" / "chat-bot.md")
    return candidates


def load_domain_instruction() -> str:
    """
    Return the domain guidance text, or ``""`` when none is available.

    The first successful load is cached for the lifetime of the process.  A missing or unreadable
    file is not cached, so guidance dropped in later is still picked up.
    """
    global _cached_instruction  # pylint: disable=global-statement

    if _cached_instruction is not None:
        return _cached_instruction

    for path in _candidate_paths():
        if not path.is_file():
            continue
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not read domain guidance %s: %s", path, exc)
            return ""
        _cached_instruction = _GUIDANCE_HEADER.format(name=path.name) + raw
        logger.info("Loaded domain guidance from %s", path)
        return _cached_instruction

    return ""


def reset_domain_instruction_cache() -> None:
    """Forget the cached guidance so the next call reads the file again."""
    global _cached_instruction  # pylint: disable=global-statement
    _cached_instruction = None

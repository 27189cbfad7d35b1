"""Common utility functions for the project."""

import json
from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def to_text(value: Any, indent: int | None = None) -> str:
    """
    Render *value* as text without ever raising.

    Strings pass through untouched, everything else is JSON-encoded (falling back to
    ``str()`` for objects JSON cannot handle, e.g. BSON ObjectIds or datetimes).
    """
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=indent, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def strip_namespace(tool_name: str) -> str:
    """Return the provider-local part of a ``<provider>.<tool>`` name."""
    return tool_name.rsplit(".", 1)[-1]

"""CLI client for the chatbot API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    List,
    Tuple,
    cast,
)

import httpx

from agentic_chatbot.common import (
    AnsiColors,
    colored_print,
)
from agentic_chatbot.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def client_timeout() -> float:
    """Seconds to wait for a turn: the planner, execution and narration stages each get a full timeout."""
    return settings.RESPONSE_TIMEOUT_SECONDS * 3 + 5


def call_api(endpoint: str, data: Dict[str, Any], max_retries: int = 5) -> Dict[str, Any]:
    """POST *data* to the API and return the decoded body, retrying while the API starts up."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    timeout = client_timeout()

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(api_url, json=data)
        except httpx.ConnectError as exc:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            return {"error": f"Error connecting to API: {exc}"}
        except httpx.HTTPError as exc:
            logger.error("API request error: %s", exc)
            return {"error": f"Error connecting to API: {exc}"}

        try:
            body = cast(Dict[str, Any], response.json())
        except ValueError:
            body = {"error": response.text or f"HTTP {response.status_code}"}
        if response.is_error and "error" not in body:
            body["error"] = f"HTTP {response.status_code}"
        return body

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def run_cli() -> None:
    """Run the terminal client; the conversation history is kept here and sent with each query."""
    history: List[Dict[str, str]] = []

    colored_print("\nAgentic chatbot - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api("/chatbot", {"query": user_msg, "messages": history})

        if "error" in response:
            details = response.get("details")
            colored_print(f"{response['error']}{f': {details}' if details else ''}", AnsiColors.RED)
            continue

        for call in response.get("toolCalls") or []:
            colored_print(f"[{call.get('name')}] {call.get('args')}", AnsiColors.GREY)
        if response.get("reasoning"):
            colored_print(response["reasoning"], AnsiColors.CYAN)

        reply = response.get("result", "No response from API")
        colored_print(reply, AnsiColors.YELLOW)

        history.append({"role": "user", "content": user_msg})
        history.append({"role": "assistant", "content": reply})


if __name__ == "__main__":
    run_cli()

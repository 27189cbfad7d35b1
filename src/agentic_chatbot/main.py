"""
Agentic chatbot entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate interface
(API or CLI).
"""

import argparse
import logging
import sys

from agentic_chatbot.api.app import run_api
from agentic_chatbot.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the chatbot.

    Starts the HTTP API, or the API in a background thread plus the terminal client.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the agentic chatbot")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API only, or the API plus an interactive CLI (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting agentic chatbot [%s mode]", args.mode)

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    import threading  # pylint: disable=import-outside-toplevel

    # Reload doesn't work inside a thread
    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "0.0.0.0",
            "port": settings.API_PORT,
            "reload": False,
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()

    from agentic_chatbot.client.cli import (  # pylint: disable=import-outside-toplevel
        run_cli,
    )

    run_cli()


if __name__ == "__main__":
    main()

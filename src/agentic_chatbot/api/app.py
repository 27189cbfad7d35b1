"""
HTTP API for the agentic chatbot.

It exposes the following endpoints:
- **GET /health**      - liveness probe for health checks.
- **GET /mcp-status**  - whether the MCP tool providers can be reached, and their tools.
- **POST /chatbot**    - one user turn: {"query": "...", "messages": [...], "stream": false}
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Dict,
)

from fastapi import (
    Depends,
    FastAPI,
    Request,
)
from fastapi.responses import (
    JSONResponse,
    StreamingResponse,
)

from agentic_chatbot.agent.agent_loop import (
    build_turn,
    run_turn,
    stream_turn,
)
from agentic_chatbot.agent.executor import ExecutionTimeout
from agentic_chatbot.agent.model_interface import (
    BaseModelClient,
    ModelConfigError,
    load_model,
)
from agentic_chatbot.api.models import (
    ChatRequest,
    ChatResponse,
    McpStatusResponse,
)
from agentic_chatbot.common import (
    AnsiColors,
    colored_print,
)
from agentic_chatbot.config import settings
from agentic_chatbot.tools.mcp_provider import connect_providers
from agentic_chatbot.tools.session_manager import (
    ProviderSessionManager,
    SessionLease,
)

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Timed out waiting for the model or tools to respond"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.session_manager = ProviderSessionManager(connect_providers)
    yield
    await app.state.session_manager.aclose()


app = FastAPI(
    title="Agentic Chatbot API",
    version="0.1.0",
    description="Tool-using chatbot backed by MCP providers",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_model() -> BaseModelClient:
    """Model client for the configured back-end (overridden in tests)."""
    return load_model()


def get_session_manager(request: Request) -> ProviderSessionManager:
    """The process-wide provider session manager, created on first use."""
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        manager = ProviderSessionManager(connect_providers)
        request.app.state.session_manager = manager
    return manager


@app.exception_handler(ModelConfigError)
async def model_config_error_handler(_: Request, exc: ModelConfigError) -> JSONResponse:
    logger.error("Model back-end misconfigured: %s", exc)
    return JSONResponse(status_code=500, content={"error": f"Server misconfiguration: {exc}"})


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
async def _acquire_tools(manager: ProviderSessionManager) -> SessionLease | None:
    """Lease a provider session; the turn goes on without tools if none can be had."""
    try:
        return await manager.acquire()
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Tool providers unavailable, continuing without tools: %s", exc)
        return None


def _ndjson(event: Dict[str, Any]) -> str:
    return json.dumps(event, default=str) + "\n"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.get("/mcp-status", response_model=McpStatusResponse, summary="Tool provider status")
async def mcp_status(
    manager: ProviderSessionManager = Depends(get_session_manager),
) -> McpStatusResponse:
    """Connect to the providers on a private session and list their tools."""
    try:
        async with manager.lease(shared=False) as lease:
            return McpStatusResponse(connected=True, tools=sorted(lease.tools))
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("MCP status check failed: %s", exc)
        return McpStatusResponse(connected=False, error=str(exc))


@app.post("/chatbot", summary="Process one chat turn", response_model=None)
async def chatbot(
    req: ChatRequest,
    model: BaseModelClient = Depends(get_model),
    manager: ProviderSessionManager = Depends(get_session_manager),
) -> Any:
    """Run the agent pipeline for *req.query* and return or stream the reply."""
    if not isinstance(req.query, str) or not req.query.strip():
        return JSONResponse(status_code=400, content={"error": 'Invalid "query" provided'})

    model.check_credentials()

    turn = build_turn(req.query, req.messages)

    if req.stream:

        async def events() -> AsyncIterator[str]:
            # Nothing is held until the body is iterated.
            lease = await _acquire_tools(manager)
            try:
                async for event in stream_turn(turn, model, lease.tools if lease else {}):
                    yield _ndjson(event)
            finally:
                await manager.release_if_owned(lease)

        return StreamingResponse(events(), media_type="application/x-ndjson")

    lease = await _acquire_tools(manager)
    tools = lease.tools if lease else {}

    try:
        result = await run_turn(turn, model, tools)
    except ExecutionTimeout as exc:
        logger.warning("Turn timed out: %s", exc)
        return JSONResponse(status_code=504, content={"error": TIMEOUT_MESSAGE})
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Turn failed")
        return JSONResponse(
            status_code=500, content={"error": "Internal Server Error", "details": str(exc)}
        )
    finally:
        await manager.release_if_owned(lease)

    return ChatResponse.from_turn(result).model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the library modules
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting chatbot API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}))

    colored_print(f"Chatbot API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "agentic_chatbot.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m agentic_chatbot.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)

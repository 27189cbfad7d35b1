"""
Model interface for the agentic chatbot.

This module is the only place that *directly* calls an LLM.  Everything else (planning, execution,
narration) goes through :meth:`BaseModelClient.generate` and stays model-agnostic.

We support two back-ends out of the box:

1. **OpenAI** chat completions, which also covers any OpenAI-compatible endpoint (Gemini's
   OpenAI endpoint, vLLM, LM Studio, ...) through ``OPENAI_BASE_URL``.
2. **Anthropic** messages API.

Both back-ends only implement a single completion step.  The automatic tool round-trip loop
(model asks for a tool, the tool runs, the result goes back to the model) lives in the base class so
every back-end behaves the same way.  Additional providers can be added by subclassing
:class:`BaseModelClient` and registering via :func:`register_backend`.

Cancellation is plain asyncio cancellation: cancelling the task awaiting :meth:`generate`
propagates into the SDK's HTTP client and closes the in-flight request.
"""

import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Sequence,
    Tuple,
    Type,
)

from agentic_chatbot.agent.tool_executor import (
    ToolExecutionError,
    execute_tool,
)
from agentic_chatbot.common import to_text
from agentic_chatbot.config import settings
from agentic_chatbot.core.schema import (
    ExecutionResult,
    ToolCallRecord,
    ToolResultRecord,
)
from agentic_chatbot.tools import (
    ToolCatalog,
    ToolSchema,
    get_tool_schemas,
)

logger = logging.getLogger(__name__)

Message = Dict[str, Any]

_WIRE_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]")


class ModelConfigError(RuntimeError):
    """Raised when a back-end is unknown or lacks its credentials."""


@dataclass
class Completion:
    """Result of a single completion step."""

    text: str = ""
    tool_calls: List[ToolCallRecord] = field(default_factory=list)


def wire_name(tool_name: str) -> str:
    """Map a public tool name onto the ``[a-zA-Z0-9_-]`` alphabet model APIs accept."""
    return _WIRE_NAME_RE.sub("__", tool_name)[:64]


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_BACKEND_REGISTRY: dict[str, Type["BaseModelClient"]] = {}


def register_backend(name: str) -> Callable:
    """Decorator to register a model client class under *name*."""

    def wrapper(cls: Type["BaseModelClient"]) -> Type["BaseModelClient"]:
        _BACKEND_REGISTRY[name] = cls
        return cls

    return wrapper


def load_model(name: str | None = None) -> "BaseModelClient":
    """
    Factory that returns an instantiated model client.

    Fallback order:
    1. *name* arg
    2. ``settings.LLM_BACKEND`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "LLM_BACKEND", "openai")
    cls = _BACKEND_REGISTRY.get(target.lower())
    if cls is None:
        raise ModelConfigError(f"Model back-end '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseModelClient(ABC):
    """Abstract model client: message list + tools -> text, tool calls and tool results."""

    model: str = ""

    @abstractmethod
    def check_credentials(self) -> None:
        """Raise :class:`ModelConfigError` if the back-end cannot authenticate."""

    @abstractmethod
    async def _complete(
        self,
        transcript: Sequence[Message],
        tools: Mapping[str, ToolSchema],
        allow_calls: bool = True,
    ) -> Completion:
        """
        Run one completion step.

        *transcript* is back-end neutral: ``system``/``user``/``assistant`` messages with string
        content, assistant messages optionally carrying ``tool_calls`` (list of
        :class:`ToolCallRecord` using wire names) and ``tool`` messages carrying
        ``tool_call_id``, ``name`` and string ``content``.  *tools* is keyed by wire name.  With
        *allow_calls* false the schemas are still sent, since a transcript holding tool calls must
        declare them, but the model is told not to call any.
        """

    async def generate(
        self,
        messages: Sequence[Message],
        tools: ToolCatalog | None = None,
        max_roundtrips: int = 0,
    ) -> ExecutionResult:
        """
        Generate a reply, running up to *max_roundtrips* automatic tool round-trips.

        Tool calls and results are reported with their public names, in the order they were
        issued.  On the step after the last permitted round-trip tool calls are disabled, so the
        model has to answer in text.
        """
        catalog = dict(tools or {})
        schemas = get_tool_schemas(catalog)
        to_public = {wire_name(name): name for name in schemas}
        offered = {wire: schemas[name] for wire, name in to_public.items()}

        transcript: List[Message] = [dict(message) for message in messages]
        result = ExecutionResult()

        for step in range(max(max_roundtrips, 0) + 1):
            allow_calls = bool(offered) and step < max_roundtrips
            completion = await self._complete(transcript, offered, allow_calls)
            result.steps += 1
            if not completion.tool_calls or not allow_calls:
                result.text = completion.text or ""
                return result

            logger.info(
                "Round-trip %d: model requested %s",
                step + 1,
                [call.name for call in completion.tool_calls],
            )
            transcript.append(
                {"role": "assistant", "content": completion.text, "tool_calls": completion.tool_calls}
            )
            for call in completion.tool_calls:
                public = ToolCallRecord(
                    id=call.id, name=to_public.get(call.name, call.name), args=call.args
                )
                payload, is_error = await self._run_tool(catalog, public)
                result.tool_calls.append(public)
                result.tool_results.append(
                    ToolResultRecord(
                        id=public.id,
                        name=public.name,
                        args=public.args,
                        result=payload,
                        is_error=is_error,
                    )
                )
                transcript.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "name": call.name,
                        "content": to_text(payload),
                    }
                )

        return result

    @staticmethod
    async def _run_tool(catalog: ToolCatalog, call: ToolCallRecord) -> Tuple[Any, bool]:
        """Invoke one tool; failures become an error payload the model can read."""
        try:
            return await execute_tool(catalog, call.name, call.args), False
        except ToolExecutionError as exc:
            logger.warning("Tool call '%s' failed: %s", call.name, exc)
            return {"error": str(exc)}, True


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    """Tool arguments arrive as a JSON string or a dict; anything else becomes ``{}``."""
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, json.JSONDecodeError):
        logger.warning("Discarding unparseable tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Concrete back-ends
# ---------------------------------------------------------------------------
@register_backend("openai")
class OpenAIModelClient(BaseModelClient):
    """OpenAI (or OpenAI-compatible) chat completions with function tools."""

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self.model = model or settings.OPENAI_MODEL
        self._client = client

    def check_credentials(self) -> None:
        if not settings.OPENAI_API_KEY:
            raise ModelConfigError("OPENAI_API_KEY is not set")

    @property
    def client(self) -> Any:
        """Lazily constructed ``openai.AsyncOpenAI`` client."""
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL
            )
        return self._client

    @staticmethod
    def _to_openai(message: Message) -> Message:
        role = message["role"]
        if role == "tool":
            return {
                "role": "tool",
                "tool_call_id": message["tool_call_id"],
                "content": message["content"],
            }
        if role == "assistant" and message.get("tool_calls"):
            return {
                "role": "assistant",
                "content": message.get("content") or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args)},
                    }
                    for call in message["tool_calls"]
                ],
            }
        return {"role": role, "content": message.get("content") or ""}

    async def _complete(
        self,
        transcript: Sequence[Message],
        tools: Mapping[str, ToolSchema],
        allow_calls: bool = True,
    ) -> Completion:
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": name,
                        "description": schema["description"],
                        "parameters": schema["parameters"],
                    },
                }
                for name, schema in tools.items()
            ]
            if not allow_calls:
                kwargs["tool_choice"] = "none"

        resp = await self.client.chat.completions.create(
            model=self.model,
            messages=[self._to_openai(message) for message in transcript],
            temperature=0.2,
            **kwargs,
        )
        message = resp.choices[0].message
        logger.debug("OpenAI response: %s", message)

        calls = [
            ToolCallRecord(
                id=tool_call.id,
                name=tool_call.function.name,
                args=_parse_arguments(tool_call.function.arguments),
            )
            for tool_call in message.tool_calls or []
        ]
        return Completion(text=message.content or "", tool_calls=calls)


@register_backend("anthropic")
class AnthropicModelClient(BaseModelClient):
    """Anthropic Claude messages API with tool_use blocks."""

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self.model = model or settings.ANTHROPIC_MODEL
        self._client = client

    def check_credentials(self) -> None:
        if not settings.ANTHROPIC_API_KEY:
            raise ModelConfigError("ANTHROPIC_API_KEY is not set")

    @property
    def client(self) -> Any:
        """Lazily constructed ``anthropic.AsyncAnthropic`` client."""
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        return self._client

    @staticmethod
    def _to_anthropic(transcript: Sequence[Message]) -> Tuple[str, List[Message]]:
        """Split out the system prompt and fold tool results into user turns."""
        system_parts: List[str] = []
        messages: List[Message] = []

        for message in transcript:
            role = message["role"]
            if role == "system":
                system_parts.append(message.get("content") or "")
                continue

            if role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message["tool_call_id"],
                    "content": message["content"],
                }
                role, blocks = "user", [block]
            elif role == "assistant" and message.get("tool_calls"):
                blocks = [{"type": "text", "text": message["content"]}] if message.get("content") else []
                blocks += [
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": call.args}
                    for call in message["tool_calls"]
                ]
            else:
                blocks = [{"type": "text", "text": message.get("content") or ""}]

            # The API requires alternating roles, so consecutive same-role turns are merged.
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"].extend(blocks)
            else:
                messages.append({"role": role, "content": blocks})

        return "\n\n".join(part for part in system_parts if part), messages

    async def _complete(
        self,
        transcript: Sequence[Message],
        tools: Mapping[str, ToolSchema],
        allow_calls: bool = True,
    ) -> Completion:
        system, messages = self._to_anthropic(transcript)
        kwargs: Dict[str, Any] = {}
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [
                {
                    "name": name,
                    "description": schema["description"],
                    "input_schema": schema["parameters"],
                }
                for name, schema in tools.items()
            ]
            if not allow_calls:
                kwargs["tool_choice"] = {"type": "none"}

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=4096,
            messages=messages,
            temperature=0.2,
            **kwargs,
        )
        logger.debug("Anthropic response: %s", response)

        texts: List[str] = []
        calls: List[ToolCallRecord] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(
                    ToolCallRecord(id=block.id, name=block.name, args=_parse_arguments(block.input))
                )
        return Completion(text="".join(texts), tool_calls=calls)

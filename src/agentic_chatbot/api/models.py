"""
Pydantic models for the chatbot API requests and responses.
This module defines the request and response schemas used by the HTTP API.
"""

from typing import (
    Any,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from agentic_chatbot.core.schema import (
    ChatMessage,
    ToolCallRecord,
    ToolResultRecord,
    TurnResult,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class ChatRequest(BaseModel):
    """Incoming user query with the conversation so far."""

    # Validated by the route so that a missing or non-string query maps to a 400
    query: Any = Field(None, description="Current user message")
    messages: List[ChatMessage] = Field(default_factory=list, description="Prior conversation")
    stream: bool = Field(False, description="Stream NDJSON events instead of one JSON body")


class ChatResponse(BaseModel):
    """Non-streaming reply returned to the caller."""

    model_config = ConfigDict(populate_by_name=True)

    result: str
    reasoning: Optional[str] = None
    planned_tools: List[str] = Field(default_factory=list, alias="plannedTools")
    tool_calls: List[ToolCallRecord] = Field(default_factory=list, alias="toolCalls")
    tool_results: List[ToolResultRecord] = Field(default_factory=list, alias="toolResults")

    @classmethod
    def from_turn(cls, turn: TurnResult) -> "ChatResponse":
        return cls(
            result=turn.result,
            reasoning=turn.reasoning,
            planned_tools=turn.planned_tools,
            tool_calls=turn.tool_calls,
            tool_results=turn.tool_results,
        )


class McpStatusResponse(BaseModel):
    """Connectivity report for the configured tool providers."""

    connected: bool
    tools: Optional[List[str]] = None
    error: Optional[str] = None

"""
Schema definitions for request <-> agent <-> tool messages.

These data models serve as the contract between the model back-ends, the orchestration pipeline,
and the tool providers.  We keep them separate from runtime logic so they can be imported anywhere
without side-effects.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


class ChatMessage(BaseModel):
    """One prior message of the conversation, as sent by the caller."""

    role: Literal["user", "assistant"]
    content: str


class Turn(BaseModel):
    """A single user request together with the history that precedes it."""

    query: str
    history: List[ChatMessage] = Field(default_factory=list)
    looks_tool_related: bool = False


class ToolCallRecord(BaseModel):
    """A tool invocation the model asked for, with arguments as issued."""

    id: str
    name: str = Field(..., description="Public (possibly namespaced) tool name")
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResultRecord(BaseModel):
    """What the provider returned for a :class:`ToolCallRecord`."""

    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    is_error: bool = False


class ExecutionResult(BaseModel):
    """Output of one (possibly multi round-trip) generation call."""

    text: str = ""
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    tool_results: List[ToolResultRecord] = Field(default_factory=list)
    steps: int = 0


class StructuredReply(BaseModel):
    """User-facing content split from the optional side-channel explanation."""

    content: str
    explanation: Optional[str] = None
    anomaly: Optional[str] = None  # Set when the explanation/content tags were malformed


class TurnResult(BaseModel):
    """Everything the pipeline hands back to the HTTP layer for one turn."""

    result: str
    reasoning: Optional[str] = None
    planned_tools: List[str] = Field(default_factory=list)
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    tool_results: List[ToolResultRecord] = Field(default_factory=list)

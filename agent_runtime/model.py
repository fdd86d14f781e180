"""Model adapter boundary: request/response types, stream events, client ABC."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .schemas import ContentBlock, Message, ToolCallBlock, ToolDefinition


class FinishReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    MAX_TOKENS = "max_tokens"
    ERROR = "error"


class Usage(BaseModel):
    """Token usage counters reported by the model."""

    model_config = ConfigDict(extra="forbid")

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class ModelInput(BaseModel):
    """Normalized request handed to a model client."""

    model_config = ConfigDict(extra="forbid")

    model: str
    messages: list[Message] = Field(default_factory=list)
    system_prompt: str = ""
    tools: list[ToolDefinition] = Field(default_factory=list)
    max_tokens: int = 4096
    temperature: float | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class ModelOutput(BaseModel):
    """Complete response of a blocking model call."""

    model_config = ConfigDict(extra="forbid")

    content: list[ContentBlock] = Field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: Usage = Field(default_factory=Usage)

    def tool_calls(self) -> list[ToolCallBlock]:
        return [block for block in self.content if isinstance(block, ToolCallBlock)]


# ----- Stream events ---------------------------------------------------------


class TextDelta(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolCallStart(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_call_start"] = "tool_call_start"
    id: str
    name: str


class ToolCallDelta(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_call_delta"] = "tool_call_delta"
    id: str
    arguments: str


class ToolCallEnd(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_call_end"] = "tool_call_end"
    id: str


class Finish(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["finish"] = "finish"
    reason: FinishReason = FinishReason.STOP
    usage: Usage = Field(default_factory=Usage)


class StreamError(BaseModel):
    """In-band adapter failure; aborts the turn like a raised LLMError."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    Union[TextDelta, ToolCallStart, ToolCallDelta, ToolCallEnd, Finish, StreamError],
    Field(discriminator="type"),
]


class ModelClient(ABC):
    """Interface every model adapter implements.

    Both methods raise `LLMError` subclasses on failure. `stream` returns a
    finite, non-restartable async iterator of stream events.
    """

    @abstractmethod
    async def complete(self, request: ModelInput) -> ModelOutput:
        """Blocking completion."""

    @abstractmethod
    def stream(self, request: ModelInput) -> AsyncIterator[StreamEvent]:
        """Incremental completion."""

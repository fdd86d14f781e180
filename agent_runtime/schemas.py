"""Shared Pydantic schemas for messages, content blocks, and tool definitions."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Sequence, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp() -> str:
    """Return an ISO-8601 timestamp string (UTC)."""
    return utc_now().isoformat()


def new_id() -> str:
    return str(uuid4())


class MessageRole(str, Enum):
    """Author of a message in the conversation log."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TextBlock(BaseModel):
    """Plain text content."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolCallBlock(BaseModel):
    """A model-requested tool invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """Outcome of a tool invocation, correlated back to its call id."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    result: str
    is_error: bool | None = None


ContentBlock = Annotated[
    Union[TextBlock, ToolCallBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """One immutable entry of a session's message log."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=new_id)
    role: MessageRole
    content: list[ContentBlock] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=MessageRole.USER, content=[TextBlock(text=text)])

    @classmethod
    def assistant(cls, content: Sequence[ContentBlock]) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=list(content))

    @classmethod
    def tool_results(cls, results: Sequence[ToolResultBlock]) -> "Message":
        return cls(role=MessageRole.TOOL, content=list(results))

    def tool_calls(self) -> list[ToolCallBlock]:
        """Return the tool-call blocks in content order."""
        return [block for block in self.content if isinstance(block, ToolCallBlock)]

    def text(self) -> str:
        """Concatenate the text blocks of this message."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


class ToolDefinition(BaseModel):
    """Name, description, and JSON Schema of a tool offered to the model."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)


def compact_json(value: Any) -> str:
    """Serialize a JSON-like value without insignificant whitespace."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def serialize_event(event: Mapping[str, Any]) -> str:
    """Serialize an event dict as an NDJSON line with compact separators."""
    return compact_json(dict(event)) + "\n"

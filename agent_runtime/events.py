"""Caller-facing progress events emitted by the streaming agent loop."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .model import FinishReason, Usage
from .schemas import MessageRole, iso_timestamp, new_id

MESSAGE_START = "message.start"
TEXT_DELTA = "text.delta"
TOOL_CALL_START = "tool_call.start"
TOOL_CALL_END = "tool_call.end"
MESSAGE_END = "message.end"
TOOL_CALL_RESULT = "tool_call.result"
ERROR = "error"


class AgentEvent(BaseModel):
    """Event structure yielded by `Agent.stream`."""

    model_config = ConfigDict(extra="forbid")

    id: str
    session_id: str
    seq: int = Field(default=0)
    step: int = Field(default=0, ge=0)
    ts: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type == ERROR


class MessageStartPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    role: MessageRole


class ToolCallStartPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tool_call_id: str
    name: str


class ToolCallEndPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tool_call_id: str
    name: str
    arguments: dict[str, Any]


class MessageEndPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    finish_reason: FinishReason
    usage: Usage
    message_id: str
    truncated: bool = False


class ToolCallResultPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tool_call_id: str
    name: str
    result: str
    is_error: bool = False


class ErrorPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    error_type: str


def new_event(
    event_type: str,
    session_id: str,
    data: Mapping[str, Any],
    *,
    step: int = 0,
) -> AgentEvent:
    """Create a fresh event; the loop assigns `seq` when yielding."""
    return AgentEvent(
        id=new_id(),
        session_id=session_id,
        step=step,
        ts=iso_timestamp(),
        type=event_type,
        data=dict(data),
    )


def message_start_event(session_id: str, *, step: int) -> AgentEvent:
    payload = MessageStartPayload(role=MessageRole.ASSISTANT).model_dump()
    return new_event(MESSAGE_START, session_id, payload, step=step)


def text_delta_event(session_id: str, text: str, *, step: int) -> AgentEvent:
    return new_event(TEXT_DELTA, session_id, {"text": text}, step=step)


def tool_call_start_event(
    session_id: str, *, tool_call_id: str, name: str, step: int
) -> AgentEvent:
    payload = ToolCallStartPayload(tool_call_id=tool_call_id, name=name).model_dump()
    return new_event(TOOL_CALL_START, session_id, payload, step=step)


def tool_call_end_event(
    session_id: str,
    *,
    tool_call_id: str,
    name: str,
    arguments: Mapping[str, Any],
    step: int,
) -> AgentEvent:
    payload = ToolCallEndPayload(
        tool_call_id=tool_call_id, name=name, arguments=dict(arguments)
    ).model_dump()
    return new_event(TOOL_CALL_END, session_id, payload, step=step)


def message_end_event(
    session_id: str,
    *,
    finish_reason: FinishReason,
    usage: Usage,
    message_id: str,
    truncated: bool = False,
    step: int,
) -> AgentEvent:
    payload = MessageEndPayload(
        finish_reason=finish_reason,
        usage=usage,
        message_id=message_id,
        truncated=truncated,
    ).model_dump()
    return new_event(MESSAGE_END, session_id, payload, step=step)


def tool_call_result_event(
    session_id: str,
    *,
    tool_call_id: str,
    name: str,
    result: str,
    is_error: bool,
    step: int,
) -> AgentEvent:
    payload = ToolCallResultPayload(
        tool_call_id=tool_call_id,
        name=name,
        result=result,
        is_error=bool(is_error),
    ).model_dump()
    return new_event(TOOL_CALL_RESULT, session_id, payload, step=step)


def error_event(session_id: str, error: BaseException | str, *, step: int) -> AgentEvent:
    error_type = type(error).__name__ if isinstance(error, BaseException) else "StreamError"
    payload = ErrorPayload(error=str(error), error_type=error_type).model_dump()
    return new_event(ERROR, session_id, payload, step=step)

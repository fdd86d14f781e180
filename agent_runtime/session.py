"""Conversation session model and its lock-guarded in-memory store."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import SessionError
from .schemas import Message, MessageRole, ToolResultBlock, iso_timestamp, new_id

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Run status of a session."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


_ALLOWED_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {SessionStatus.RUNNING},
    SessionStatus.RUNNING: {
        SessionStatus.RUNNING,
        SessionStatus.COMPLETED,
        SessionStatus.ERROR,
    },
    SessionStatus.COMPLETED: {SessionStatus.RUNNING},
    SessionStatus.ERROR: {SessionStatus.RUNNING},
}


class ModelConfig(BaseModel):
    """Model parameters sent with every request of a session."""

    model_config = ConfigDict(extra="forbid")

    name: str = "gpt-4o"
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    extra: dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    """Ordered message log plus run status for one conversation."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_id)
    messages: list[Message] = Field(default_factory=list)
    system_prompt: str = ""
    model: ModelConfig = Field(default_factory=ModelConfig)
    status: SessionStatus = SessionStatus.IDLE
    created_at: str = Field(default_factory=iso_timestamp)
    updated_at: str = Field(default_factory=iso_timestamp)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("session id must be a non-empty string")
        return normalized

    def _touch(self) -> None:
        self.updated_at = iso_timestamp()

    def log_extra(self) -> dict[str, str]:
        """Return a logging extra payload tagged with the session id."""
        return {"session_id": self.id}

    def add_message(self, message: Message) -> None:
        """Append a message after checking tool-result correlation."""
        self._check_tool_ids(message)
        self.messages.append(message)
        self._touch()

    def message_count(self) -> int:
        return len(self.messages)

    def transition(self, status: SessionStatus) -> None:
        """Move the session to a new status, rejecting backwards moves."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise SessionError(
                f"invalid status transition {self.status.value} -> {status.value}",
                details={"session_id": self.id},
            )
        self.status = status
        self._touch()

    def clear_messages(self) -> None:
        """Reset the log; refused while a run is in progress."""
        if self.status == SessionStatus.RUNNING:
            raise SessionError(
                "cannot clear a session while a run is in progress",
                details={"session_id": self.id},
            )
        self.messages.clear()
        self.status = SessionStatus.IDLE
        self._touch()

    def _check_tool_ids(self, message: Message) -> None:
        if message.role == MessageRole.ASSISTANT:
            ids = [call.id for call in message.tool_calls()]
            if len(ids) != len(set(ids)):
                raise SessionError(
                    "duplicate tool call id in assistant message",
                    details={"message_id": message.id, "tool_call_ids": ids},
                )
            return
        if message.role != MessageRole.TOOL:
            return
        previous = self.messages[-1] if self.messages else None
        if previous is None or previous.role != MessageRole.ASSISTANT:
            raise SessionError(
                "tool results must follow an assistant message",
                details={"message_id": message.id},
            )
        known = {call.id for call in previous.tool_calls()}
        for block in message.content:
            if isinstance(block, ToolResultBlock) and block.tool_call_id not in known:
                raise SessionError(
                    f"tool result references unknown call id {block.tool_call_id}",
                    details={"message_id": message.id},
                )


class SessionStore:
    """Async-lock guarded handle shared by every task touching a session.

    Each method holds the lock only for a single read or write so that model
    and tool calls never run inside the critical section.
    """

    def __init__(self, session: Session | None = None):
        self._session = session or Session()
        self._lock = asyncio.Lock()

    @property
    def id(self) -> str:
        return self._session.id

    async def snapshot(self) -> Session:
        """Return a deep copy of the current session state."""
        async with self._lock:
            return self._session.model_copy(deep=True)

    async def messages(self) -> list[Message]:
        async with self._lock:
            return list(self._session.messages)

    async def append(self, *messages: Message) -> None:
        """Append one or more messages as a single critical section."""
        async with self._lock:
            count = len(self._session.messages)
            try:
                for message in messages:
                    self._session.add_message(message)
            except SessionError:
                del self._session.messages[count:]
                raise

    async def status(self) -> SessionStatus:
        async with self._lock:
            return self._session.status

    async def set_status(self, status: SessionStatus) -> None:
        async with self._lock:
            previous = self._session.status
            self._session.transition(status)
        logger.debug(
            "session status %s -> %s",
            previous.value,
            status.value,
            extra={"session_id": self.id},
        )

    async def clear(self) -> None:
        async with self._lock:
            self._session.clear_messages()

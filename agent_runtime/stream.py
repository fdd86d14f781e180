"""Assembles incremental model stream events into a finalized assistant message."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import LLMApiError, LLMInvalidResponseError
from .model import (
    Finish,
    FinishReason,
    StreamError,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    Usage,
)
from .schemas import Message, TextBlock, ToolCallBlock

logger = logging.getLogger(__name__)


class ArgumentStrategy(str, Enum):
    """How successive `ToolCallDelta` fragments combine.

    REPLACE treats every fragment as a complete JSON document that supersedes
    the previous one. CONCATENATE joins fragments and parses once at close.
    """

    REPLACE = "replace"
    CONCATENATE = "concatenate"


@dataclass
class _TextBuffer:
    parts: list[str] = field(default_factory=list)

    def to_block(self) -> TextBlock:
        return TextBlock(text="".join(self.parts))


@dataclass
class _ToolCallRecord:
    id: str
    name: str
    fragments: list[str] = field(default_factory=list)
    block: ToolCallBlock | None = None

    @property
    def closed(self) -> bool:
        return self.block is not None


def parse_arguments(raw: str, *, tool_call_id: str = "", extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """Parse a tool-call argument document, falling back to `{}`."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(
            "tool call arguments not valid JSON tool_call_id=%s error=%s",
            tool_call_id,
            exc.msg,
            extra=extra or {},
        )
        return {}
    if not isinstance(value, dict):
        logger.warning(
            "tool call arguments not an object tool_call_id=%s type=%s",
            tool_call_id,
            type(value).__name__,
            extra=extra or {},
        )
        return {}
    return value


class StreamAggregator:
    """Per-turn state machine fed with model stream events.

    `feed` returns the tool-call blocks closed by the event so the caller can
    announce them. `StreamError` and protocol violations raise `LLMError`
    subclasses; the caller treats any of them as an aborted turn.
    """

    def __init__(
        self,
        strategy: ArgumentStrategy = ArgumentStrategy.REPLACE,
        *,
        session_id: str | None = None,
    ):
        self.strategy = ArgumentStrategy(strategy)
        self._extra = {"session_id": session_id} if session_id else {}
        self._blocks: list[_TextBuffer | _ToolCallRecord] = []
        self._calls: dict[str, _ToolCallRecord] = {}
        self.finish_reason: FinishReason | None = None
        self.usage = Usage()

    @property
    def finished(self) -> bool:
        return self.finish_reason is not None

    def feed(self, event: Any) -> list[ToolCallBlock]:
        if self.finished:
            logger.warning(
                "stream event after finish ignored type=%s",
                getattr(event, "type", type(event).__name__),
                extra=self._extra,
            )
            return []
        if isinstance(event, TextDelta):
            self._on_text(event.text)
            return []
        if isinstance(event, ToolCallStart):
            self._on_start(event)
            return []
        if isinstance(event, ToolCallDelta):
            self._on_delta(event)
            return []
        if isinstance(event, ToolCallEnd):
            record = self._calls.get(event.id)
            if record is None or record.closed:
                logger.warning(
                    "tool call end for unknown or closed id=%s", event.id, extra=self._extra
                )
                return []
            return [self._close(record)]
        if isinstance(event, Finish):
            self.finish_reason = FinishReason(event.reason)
            self.usage = event.usage
            return [self._close(record) for record in self._calls.values() if not record.closed]
        if isinstance(event, StreamError):
            raise LLMApiError(event.error)
        raise LLMInvalidResponseError(f"unexpected stream event {type(event).__name__}")

    def _on_text(self, text: str) -> None:
        if not text:
            return
        if self._blocks and isinstance(self._blocks[-1], _TextBuffer):
            self._blocks[-1].parts.append(text)
        else:
            self._blocks.append(_TextBuffer(parts=[text]))

    def _on_start(self, event: ToolCallStart) -> None:
        if event.id in self._calls:
            raise LLMInvalidResponseError(
                f"duplicate tool call id {event.id}", details={"tool_call_id": event.id}
            )
        record = _ToolCallRecord(id=event.id, name=event.name)
        self._calls[event.id] = record
        self._blocks.append(record)

    def _on_delta(self, event: ToolCallDelta) -> None:
        record = self._calls.get(event.id)
        if record is None or record.closed:
            logger.warning(
                "tool call delta for unknown or closed id=%s", event.id, extra=self._extra
            )
            return
        if self.strategy == ArgumentStrategy.REPLACE:
            record.fragments = [event.arguments]
        else:
            record.fragments.append(event.arguments)

    def _close(self, record: _ToolCallRecord) -> ToolCallBlock:
        arguments = parse_arguments(
            "".join(record.fragments), tool_call_id=record.id, extra=self._extra
        )
        record.block = ToolCallBlock(id=record.id, name=record.name, arguments=arguments)
        return record.block

    def build_message(self) -> Message:
        """Finalize the turn into an assistant message."""
        if not self.finished:
            raise LLMInvalidResponseError("stream ended without a finish event")
        content: list[TextBlock | ToolCallBlock] = []
        for entry in self._blocks:
            if isinstance(entry, _TextBuffer):
                content.append(entry.to_block())
            elif entry.block is not None:
                content.append(entry.block)
        return Message.assistant(content)

"""Reference model client backed by the OpenAI chat completions API."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import openai
from openai import AsyncOpenAI

from .errors import (
    LLMApiError,
    LLMAuthError,
    LLMError,
    LLMInvalidResponseError,
    LLMNetworkError,
    LLMRateLimitError,
)
from .model import (
    Finish,
    FinishReason,
    ModelClient,
    ModelInput,
    ModelOutput,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    Usage,
)
from .schemas import (
    Message,
    MessageRole,
    TextBlock,
    ToolCallBlock,
    ToolDefinition,
    ToolResultBlock,
)
from .stream import parse_arguments

if TYPE_CHECKING:
    from .settings import Settings

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.MAX_TOKENS,
    "content_filter": FinishReason.ERROR,
}


def map_finish_reason(value: str | None) -> FinishReason:
    if value is None:
        return FinishReason.STOP
    return _FINISH_REASONS.get(value, FinishReason.STOP)


def map_openai_error(exc: Exception) -> LLMError:
    """Translate an SDK exception into the `LLMError` hierarchy."""
    if isinstance(exc, openai.AuthenticationError):
        return LLMAuthError(str(exc))
    if isinstance(exc, openai.RateLimitError):
        return LLMRateLimitError(str(exc))
    if isinstance(exc, openai.APIConnectionError):
        return LLMNetworkError(str(exc))
    if isinstance(exc, openai.APIStatusError):
        return LLMApiError(str(exc), details={"status_code": exc.status_code})
    return LLMApiError(str(exc))


def _tool_payload(definition: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": definition.name,
            "description": definition.description,
            "parameters": definition.input_schema or {"type": "object", "properties": {}},
        },
    }


def convert_messages(messages: list[Message], system_prompt: str = "") -> list[dict[str, Any]]:
    """Convert the session log into chat-completions messages."""
    payload: list[dict[str, Any]] = []
    if system_prompt:
        payload.append({"role": "system", "content": system_prompt})
    for message in messages:
        if message.role == MessageRole.USER:
            payload.append({"role": "user", "content": message.text()})
        elif message.role == MessageRole.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": message.text() or None}
            calls = message.tool_calls()
            if calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in calls
                ]
            payload.append(entry)
        else:
            for block in message.content:
                if isinstance(block, ToolResultBlock):
                    payload.append(
                        {
                            "role": "tool",
                            "tool_call_id": block.tool_call_id,
                            "content": block.result,
                        }
                    )
    return payload


def build_request(request: ModelInput) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": request.model,
        "messages": convert_messages(request.messages, request.system_prompt),
        "max_tokens": request.max_tokens,
    }
    if request.temperature is not None:
        kwargs["temperature"] = request.temperature
    if request.tools:
        kwargs["tools"] = [_tool_payload(tool) for tool in request.tools]
    kwargs.update(request.extra)
    return kwargs


def _usage(raw: Any) -> Usage:
    if raw is None:
        return Usage()
    return Usage(
        input_tokens=int(getattr(raw, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(raw, "completion_tokens", 0) or 0),
    )


@dataclass
class _PendingCall:
    id: str
    name: str
    fragments: list[str] = field(default_factory=list)


class OpenAIModelClient(ModelClient):
    """`ModelClient` over `AsyncOpenAI`.

    Streaming buffers each tool call's argument fragments and emits them as
    one complete `ToolCallDelta` right before `Finish`.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self._client = client
        self._api_key = api_key
        self._base_url = base_url

    @classmethod
    def from_settings(cls, settings: "Settings") -> "OpenAIModelClient":
        return cls(api_key=settings.openai.api_key, base_url=settings.openai.base_url)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise LLMAuthError("OPENAI_API_KEY missing")
            client_kwargs: dict[str, Any] = {"api_key": self._api_key}
            if self._base_url:
                client_kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def complete(self, request: ModelInput) -> ModelOutput:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(**build_request(request))
        except openai.OpenAIError as exc:
            raise map_openai_error(exc) from exc
        if not response.choices:
            raise LLMInvalidResponseError("response has no choices")
        choice = response.choices[0]
        logger.debug(
            "openai completion model=%s finish_reason=%s", request.model, choice.finish_reason
        )
        message = choice.message
        content: list[TextBlock | ToolCallBlock] = []
        if message.content:
            content.append(TextBlock(text=message.content))
        for call in message.tool_calls or []:
            content.append(
                ToolCallBlock(
                    id=call.id,
                    name=call.function.name,
                    arguments=parse_arguments(call.function.arguments or "", tool_call_id=call.id),
                )
            )
        return ModelOutput(
            content=content,
            finish_reason=map_finish_reason(choice.finish_reason),
            usage=_usage(getattr(response, "usage", None)),
        )

    async def stream(self, request: ModelInput) -> AsyncIterator[StreamEvent]:
        client = self._get_client()
        kwargs = build_request(request)
        kwargs["stream"] = True
        kwargs.setdefault("stream_options", {"include_usage": True})
        pending: dict[int, _PendingCall] = {}
        finish_reason: str | None = None
        usage = Usage()
        try:
            response = await client.chat.completions.create(**kwargs)
            async for chunk in response:
                if getattr(chunk, "usage", None) is not None:
                    usage = _usage(chunk.usage)
                for choice in chunk.choices or []:
                    delta = choice.delta
                    if delta is not None and delta.content:
                        yield TextDelta(text=delta.content)
                    for fragment in (delta.tool_calls if delta is not None else None) or []:
                        call = pending.get(fragment.index)
                        function = fragment.function
                        if call is None:
                            call = _PendingCall(
                                id=fragment.id or f"call_{fragment.index}",
                                name=(function.name if function else None) or "",
                            )
                            pending[fragment.index] = call
                            yield ToolCallStart(id=call.id, name=call.name)
                        if function is not None and function.arguments:
                            call.fragments.append(function.arguments)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason
        except openai.OpenAIError as exc:
            raise map_openai_error(exc) from exc

        for index in sorted(pending):
            call = pending[index]
            yield ToolCallDelta(id=call.id, arguments="".join(call.fragments))
            yield ToolCallEnd(id=call.id)
        yield Finish(reason=map_finish_reason(finish_reason), usage=usage)

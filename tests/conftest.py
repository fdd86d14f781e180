"""Shared fakes for the agent runtime tests."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import pytest

from agent_runtime.errors import ToolExecutionError
from agent_runtime.model import (
    Finish,
    FinishReason,
    ModelClient,
    ModelInput,
    ModelOutput,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    Usage,
)
from agent_runtime.schemas import TextBlock, ToolCallBlock
from agent_runtime.session import Session
from agent_runtime.tools import CalculatorTool, Tool, ToolOutput, ToolRegistry


class ScriptedModelClient(ModelClient):
    """Replays canned outputs; the last entry repeats once the script runs out."""

    def __init__(
        self,
        outputs: Sequence[ModelOutput | Exception] = (),
        streams: Sequence[Sequence[Any]] = (),
    ):
        self.outputs = list(outputs)
        self.streams = [list(events) for events in streams]
        self.requests: list[ModelInput] = []
        self.streams_closed = 0

    def _next(self, items: list[Any]) -> Any:
        return items.pop(0) if len(items) > 1 else items[0]

    async def complete(self, request: ModelInput) -> ModelOutput:
        self.requests.append(request)
        item = self._next(self.outputs)
        if isinstance(item, Exception):
            raise item
        return item

    async def stream(self, request: ModelInput):
        self.requests.append(request)
        events = self._next(self.streams)
        try:
            for event in events:
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            self.streams_closed += 1


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo the text argument."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        return ToolOutput.ok(str(arguments.get("text", "")))


class FailingTool(EchoTool):
    @property
    def name(self) -> str:
        return "failing"

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        raise ToolExecutionError("boom")


class CrashingTool(EchoTool):
    @property
    def name(self) -> str:
        return "crashing"

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        raise RuntimeError("kaboom")


class SoftErrorTool(EchoTool):
    @property
    def name(self) -> str:
        return "soft_error"

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        return ToolOutput.failure("quota exhausted")


def text_output(text: str) -> ModelOutput:
    return ModelOutput(
        content=[TextBlock(text=text)],
        finish_reason=FinishReason.STOP,
        usage=Usage(input_tokens=10, output_tokens=5),
    )


def tool_call_output(
    call_id: str = "call_1", name: str = "echo", arguments: dict[str, Any] | None = None
) -> ModelOutput:
    return ModelOutput(
        content=[ToolCallBlock(id=call_id, name=name, arguments=arguments or {"text": "hi"})],
        finish_reason=FinishReason.TOOL_CALLS,
    )


def text_stream(*chunks: str) -> list[Any]:
    return [*(TextDelta(text=chunk) for chunk in chunks), Finish(reason=FinishReason.STOP)]


def tool_call_stream(
    call_id: str = "call_1", name: str = "echo", arguments: str = '{"text": "hi"}'
) -> list[Any]:
    return [
        TextDelta(text="Let me check."),
        ToolCallStart(id=call_id, name=name),
        ToolCallDelta(id=call_id, arguments=arguments),
        ToolCallEnd(id=call_id),
        Finish(reason=FinishReason.TOOL_CALLS, usage=Usage(input_tokens=3, output_tokens=2)),
    ]


@pytest.fixture
def registry() -> ToolRegistry:
    tools = ToolRegistry()
    for tool in (EchoTool(), FailingTool(), CrashingTool(), SoftErrorTool(), CalculatorTool()):
        tools.register(tool)
    return tools


@pytest.fixture
def session() -> Session:
    return Session(id="session-test", system_prompt="You are terse.")

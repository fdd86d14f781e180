"""Tool contract, registry, schema-validated tools, and the calculator tool."""

from __future__ import annotations

import inspect
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidArgumentsError, ToolExecutionError
from .schemas import ToolDefinition


@dataclass
class ToolOutput:
    """Successful return value of a tool; `error` marks an in-band failure."""

    output: str
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, output: str, **metadata: Any) -> "ToolOutput":
        return cls(output=output, metadata=dict(metadata))

    @classmethod
    def failure(cls, error: str, output: str = "") -> "ToolOutput":
        return cls(output=output or error, error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class Tool(ABC):
    """Capability the agent can invoke by name.

    Implementations raise `ToolError` subclasses for invalid arguments or
    execution failures; the executor turns those into error results.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable name used as the registry key."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human readable summary shown to the model."""

    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema describing the tool arguments."""

    @abstractmethod
    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        """Run the tool with raw model-provided arguments."""

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.parameters_schema(),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class ToolRegistry:
    """In-memory registry of available tools keyed by name."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._lock = threading.Lock()

    def register(self, tool: Tool) -> Tool | None:
        """Insert a tool, replacing and returning any previous binding."""
        with self._lock:
            previous = self._tools.get(tool.name)
            self._tools[tool.name] = tool
        return previous

    def unregister(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(name)

    def list(self) -> list[Tool]:
        with self._lock:
            return list(self._tools.values())

    def names(self) -> list[str]:
        with self._lock:
            return list(self._tools)

    def count(self) -> int:
        with self._lock:
            return len(self._tools)

    def is_empty(self) -> bool:
        return self.count() == 0

    def to_tool_definitions(self) -> list[ToolDefinition]:
        """Project every registered tool into the definition sent to the model."""
        return [tool.to_definition() for tool in self.list()]

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self.list())

    def __repr__(self) -> str:
        return f"ToolRegistry(tools_count={self.count()})"


# ----- Schema-validated tools ----------------------------------------------


class ToolInputModel(BaseModel):
    """Base class with common config for tool argument schemas."""

    model_config = ConfigDict(extra="forbid")


ToolHandler = Callable[[Any], "ToolOutput | str | Awaitable[ToolOutput | str]"]


class SchemaTool(Tool):
    """Tool whose arguments are validated against a pydantic input model."""

    def __init__(
        self,
        name: str,
        description: str,
        input_model: type[ToolInputModel],
        handler: ToolHandler,
    ):
        self._name = name
        self._description = description
        self.input_model = input_model
        self._handler = handler

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def parameters_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        try:
            payload = self.input_model.model_validate(dict(arguments or {}))
        except ValidationError as exc:
            raise InvalidArgumentsError(
                _summarize_validation_error(exc), details={"errors": exc.errors()}
            ) from exc
        result = self._handler(payload)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ToolOutput):
            return result
        return ToolOutput.ok(str(result))


def _summarize_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


# ----- Calculator tool -----------------------------------------------------


class CalculatorOperation(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


class CalculatorInput(ToolInputModel):
    operation: CalculatorOperation
    a: float = Field(..., description="First operand")
    b: float = Field(..., description="Second operand")


def calculate(payload: CalculatorInput) -> float:
    if payload.operation == CalculatorOperation.ADD:
        return payload.a + payload.b
    if payload.operation == CalculatorOperation.SUBTRACT:
        return payload.a - payload.b
    if payload.operation == CalculatorOperation.MULTIPLY:
        return payload.a * payload.b
    if payload.b == 0:
        raise ToolExecutionError("division by zero")
    return payload.a / payload.b


def format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(value)


class CalculatorTool(SchemaTool):
    """Performs simple arithmetic operations safely."""

    TOOL_NAME = "calculator"

    def __init__(self) -> None:
        super().__init__(
            self.TOOL_NAME,
            "Performs simple arithmetic operations (add, subtract, multiply, divide).",
            CalculatorInput,
            lambda payload: format_number(calculate(payload)),
        )

"""Tool executor that resolves tool calls against the registry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Sequence

from .errors import ToolError
from .schemas import ToolCallBlock, ToolDefinition, ToolResultBlock
from .tools import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    """Identifies the session and assistant message a batch of calls belongs to."""

    session_id: str
    message_id: str = ""

    def log_extra(self) -> dict[str, str]:
        return {"session_id": self.session_id}


class ToolExecutor:
    """Executes tool calls and converts every failure into an error result."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def tool_definitions(self) -> list[ToolDefinition]:
        return self.registry.to_tool_definitions()

    async def execute(self, call: Any, context: ExecutionContext) -> ToolResultBlock:
        """Run one call; only task cancellation escapes."""
        log_extra = context.log_extra()
        if not isinstance(call, ToolCallBlock):
            logger.warning(
                "invalid tool call content type=%s", type(call).__name__, extra=log_extra
            )
            return ToolResultBlock(
                tool_call_id=str(getattr(call, "id", "")),
                result="Invalid tool call content",
                is_error=True,
            )

        tool = self.registry.get(call.name)
        if tool is None:
            logger.info("tool not found tool=%s", call.name, extra=log_extra)
            return _error_result(call, f"Tool not found: {call.name}")

        start = time.perf_counter()
        try:
            output = await tool.execute(call.arguments)
        except ToolError as exc:
            logger.info(
                "tool failed tool=%s error=%s duration_ms=%s",
                call.name,
                exc,
                _duration_ms(start),
                extra=log_extra,
            )
            return _error_result(call, str(exc))
        except Exception as exc:
            logger.exception("tool execution crashed tool=%s", call.name, extra=log_extra)
            return _error_result(call, f"Execution failed: {exc}")

        logger.info(
            "tool completed tool=%s is_error=%s duration_ms=%s",
            call.name,
            output.is_error,
            _duration_ms(start),
            extra=log_extra,
        )
        return ToolResultBlock(
            tool_call_id=call.id,
            result=output.output,
            is_error=True if output.is_error else None,
        )

    async def execute_all(
        self, calls: Sequence[Any], context: ExecutionContext
    ) -> list[ToolResultBlock]:
        """Run calls sequentially, one result per call in input order."""
        results: list[ToolResultBlock] = []
        for call in calls:
            results.append(await self.execute(call, context))
        return results


def _error_result(call: ToolCallBlock, message: str) -> ToolResultBlock:
    return ToolResultBlock(tool_call_id=call.id, result=message, is_error=True)


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)

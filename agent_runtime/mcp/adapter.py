"""Expose remote MCP tools through the local `Tool` contract."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from ..errors import MCPError, ToolExecutionError
from ..schemas import ToolDefinition
from ..tools import Tool, ToolOutput
from .client import MCPSession
from .schema import MCPToolInfo

logger = logging.getLogger(__name__)


class MCPToolAdapter(Tool):
    """Registry entry that forwards execution to an MCP session."""

    def __init__(self, session: MCPSession, definition: ToolDefinition | MCPToolInfo):
        if isinstance(definition, MCPToolInfo):
            definition = definition.to_definition()
        self.session = session
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def description(self) -> str:
        return self.definition.description

    def parameters_schema(self) -> dict[str, Any]:
        return dict(self.definition.input_schema)

    def to_definition(self) -> ToolDefinition:
        return self.definition

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        try:
            output = await self.session.call_tool(self.name, arguments)
        except MCPError as exc:
            logger.warning(
                "remote tool failed tool=%s server=%s error=%s",
                self.name,
                self.session.name,
                exc,
                extra={"session_id": "system"},
            )
            raise ToolExecutionError(
                str(exc), details={"server": self.session.name, **exc.details}
            ) from exc
        return ToolOutput.ok(output, server=self.session.name)

    def __repr__(self) -> str:
        return f"MCPToolAdapter(name={self.name!r}, server={self.session.name!r})"


def adapt_mcp_tools(
    session: MCPSession, definitions: Iterable[ToolDefinition | MCPToolInfo]
) -> list[MCPToolAdapter]:
    return [MCPToolAdapter(session, definition) for definition in definitions]

"""Exception types shared across the agent runtime."""

from __future__ import annotations

from typing import Any, Mapping


class AgentError(Exception):
    """Base class for agent runtime failures."""

    prefix = ""

    def __init__(self, message: str = "", *, details: Mapping[str, Any] | None = None):
        self.reason = message
        self.details = dict(details or {})
        super().__init__(f"{self.prefix}{message}" if self.prefix else message)


# ----- Model adapter ---------------------------------------------------------


class LLMError(AgentError):
    """Raised when the model adapter fails; aborts the current run."""

    prefix = "LLM error: "


class LLMApiError(LLMError):
    prefix = "API error: "


class LLMNetworkError(LLMError):
    prefix = "Network error: "


class LLMInvalidResponseError(LLMError):
    prefix = "Invalid response: "


class LLMAuthError(LLMError):
    prefix = "Authentication failed: "


class LLMRateLimitError(LLMError):
    prefix = "Rate limit exceeded: "


# ----- Tools -----------------------------------------------------------------


class ToolError(AgentError):
    """Raised by a tool; the executor converts it into an error result."""

    prefix = "Tool error: "


class InvalidArgumentsError(ToolError):
    prefix = "Invalid arguments: "


class ToolExecutionError(ToolError):
    prefix = "Execution failed: "


class ToolNotFoundError(ToolError):
    prefix = "Tool not found: "

    def __init__(self, name: str, *, details: Mapping[str, Any] | None = None):
        super().__init__(name, details=details)
        self.name = name


# ----- Remote tool protocol --------------------------------------------------


class MCPError(AgentError):
    """Raised when an MCP session cannot fulfill a request."""

    prefix = "MCP error: "


class MCPConnectionError(MCPError):
    prefix = "Connection error: "


class MCPProtocolError(MCPError):
    prefix = "Protocol error: "


class MCPToolNotFoundError(MCPError):
    prefix = "Tool not found: "


class MCPExecutionError(MCPError):
    prefix = "Execution error: "


class MCPTimeoutError(MCPError):
    prefix = "Timeout: "


class MCPHttpError(MCPError):
    prefix = "HTTP error: "

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.status_code = status_code


# ----- Session ---------------------------------------------------------------


class SessionError(AgentError):
    """Raised when a session mutation would break its invariants."""

    prefix = "Session error: "

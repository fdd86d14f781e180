"""Remote tool protocol (MCP) client package."""

from .adapter import MCPToolAdapter, adapt_mcp_tools
from .client import ConnectionState, MCPSession
from .schema import (
    HttpTransportConfig,
    MCPConfig,
    MCPToolInfo,
    ProcessTransportConfig,
    SseTransportConfig,
)

__all__ = [
    "ConnectionState",
    "HttpTransportConfig",
    "MCPConfig",
    "MCPSession",
    "MCPToolAdapter",
    "MCPToolInfo",
    "ProcessTransportConfig",
    "SseTransportConfig",
    "adapt_mcp_tools",
]

"""Tool-using agent runtime with local and MCP-backed tools."""

from .agent import Agent, AgentConfig, RunLog
from .errors import (
    AgentError,
    InvalidArgumentsError,
    LLMError,
    MCPError,
    SessionError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from .events import AgentEvent
from .executor import ExecutionContext, ToolExecutor
from .model import ModelClient, ModelInput, ModelOutput
from .schemas import Message, MessageRole, TextBlock, ToolCallBlock, ToolDefinition, ToolResultBlock
from .session import ModelConfig, Session, SessionStatus, SessionStore
from .stream import ArgumentStrategy, StreamAggregator
from .tools import CalculatorTool, SchemaTool, Tool, ToolOutput, ToolRegistry

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentError",
    "AgentEvent",
    "ArgumentStrategy",
    "CalculatorTool",
    "ExecutionContext",
    "InvalidArgumentsError",
    "LLMError",
    "MCPError",
    "Message",
    "MessageRole",
    "ModelClient",
    "ModelConfig",
    "ModelInput",
    "ModelOutput",
    "RunLog",
    "SchemaTool",
    "Session",
    "SessionError",
    "SessionStatus",
    "SessionStore",
    "StreamAggregator",
    "TextBlock",
    "Tool",
    "ToolCallBlock",
    "ToolDefinition",
    "ToolError",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolNotFoundError",
    "ToolOutput",
    "ToolRegistry",
    "ToolResultBlock",
]

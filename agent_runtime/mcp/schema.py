"""JSON-RPC envelopes, remote tool metadata, and transport configuration."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..schemas import ToolDefinition

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"


class JsonRpcRequest(BaseModel):
    """Request envelope written to a remote tool host."""

    model_config = ConfigDict(extra="forbid")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcError(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: int = 0
    message: str = ""
    data: Any = None


class JsonRpcResponse(BaseModel):
    """Response envelope; carries either `result` or `error`."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = JSONRPC_VERSION
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None

    @property
    def has_result(self) -> bool:
        return "result" in self.model_fields_set


class MCPToolInfo(BaseModel):
    """Tool metadata returned by `tools/list`."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> str:
        return value or ""

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )


# ----- Transport configuration -------------------------------------------


class ProcessTransportConfig(BaseModel):
    """Spawn a child process and speak newline-delimited JSON over its pipes."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["process"] = "process"
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None


class HttpTransportConfig(BaseModel):
    """POST every request to `{url}/rpc`."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["http"] = "http"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)


class SseTransportConfig(BaseModel):
    """Same request/response mechanism as HTTP plus an optional bearer token."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["sse"] = "sse"
    url: str
    auth: str | None = None


TransportConfig = Union[ProcessTransportConfig, HttpTransportConfig, SseTransportConfig]


class MCPConfig(BaseModel):
    """One remote tool host and how to reach it."""

    model_config = ConfigDict(extra="forbid")

    name: str
    transport: TransportConfig = Field(discriminator="kind")
    timeout_seconds: float = Field(default=30.0, gt=0)
    read_timeout_seconds: float | None = Field(default=None, gt=0)
    client_name: str = "agent-runtime"
    client_version: str = "0.1.0"

"""JSON-RPC session with one remote tool host."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Mapping

import httpx
from pydantic import ValidationError

from ..errors import MCPConnectionError, MCPExecutionError, MCPProtocolError
from ..schemas import compact_json
from .schema import PROTOCOL_VERSION, JsonRpcRequest, JsonRpcResponse, MCPConfig, MCPToolInfo
from .transport import Transport, build_transport

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class MCPSession:
    """Client side of one MCP conversation.

    Requests are serialized by a lock: the process transport correlates a
    response with its request only by arrival order.
    """

    def __init__(
        self,
        config: MCPConfig,
        *,
        transport: Transport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self._log_extra = {"session_id": "system", "mcp_server": config.name}
        self._transport = transport or build_transport(
            config.transport,
            timeout=config.timeout_seconds,
            read_timeout=config.read_timeout_seconds,
            client=http_client,
            log_extra=self._log_extra,
        )
        self._lock = asyncio.Lock()
        self._request_id = 0
        self.state = ConnectionState.DISCONNECTED

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def kind(self) -> str:
        return self.config.transport.kind

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _request(self, method: str, params: Mapping[str, Any]) -> dict[str, Any]:
        """Send one envelope; the caller holds `self._lock`."""
        request = JsonRpcRequest(id=self._next_id(), method=method, params=dict(params))
        logger.debug("mcp request method=%s id=%s", method, request.id, extra=self._log_extra)
        try:
            return await self._transport.request(request.model_dump())
        finally:
            if self.state == ConnectionState.CONNECTED and not self._transport.is_open:
                self.state = ConnectionState.DISCONNECTED
                logger.warning(
                    "mcp session lost its transport name=%s method=%s",
                    self.name,
                    method,
                    extra=self._log_extra,
                )

    async def _send(self, method: str, params: Mapping[str, Any]) -> dict[str, Any]:
        async with self._lock:
            return await self._request(method, params)

    async def _call(self, method: str, params: Mapping[str, Any]) -> Any:
        if not self.connected:
            raise MCPConnectionError(
                f"session {self.name} is not connected", details={"method": method}
            )
        document = await self._send(method, params)
        try:
            response = JsonRpcResponse.model_validate(document)
        except ValidationError as exc:
            raise MCPProtocolError(
                f"malformed response to {method}", details={"errors": exc.errors()}
            ) from exc
        if response.error is not None:
            raise MCPExecutionError(
                response.error.message or f"{method} failed",
                details={
                    "method": method,
                    "code": response.error.code,
                    "data": response.error.data,
                },
            )
        if not response.has_result:
            raise MCPProtocolError(
                f"response to {method} carries neither result nor error",
                details={"method": method},
            )
        return response.result

    async def connect(self) -> None:
        """Open the transport and perform the `initialize` handshake."""
        async with self._lock:
            if self.connected:
                return
            self.state = ConnectionState.CONNECTING
            try:
                await self._transport.open()
                await self._request(
                    "initialize",
                    {
                        "protocolVersion": PROTOCOL_VERSION,
                        "capabilities": {},
                        "clientInfo": {
                            "name": self.config.client_name,
                            "version": self.config.client_version,
                        },
                    },
                )
            except BaseException:
                self.state = ConnectionState.DISCONNECTED
                await self._transport.close()
                raise
            self.state = ConnectionState.CONNECTED
        logger.info(
            "mcp session connected name=%s transport=%s",
            self.name,
            self.kind,
            extra=self._log_extra,
        )

    async def list_tools(self) -> list[MCPToolInfo]:
        result = await self._call("tools/list", {})
        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list):
            raise MCPProtocolError(
                "tools/list result has no tools array", details={"result": result}
            )
        try:
            return [MCPToolInfo.model_validate(entry) for entry in tools]
        except ValidationError as exc:
            raise MCPProtocolError(
                "invalid tool entry in tools/list", details={"errors": exc.errors()}
            ) from exc

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> str:
        """Invoke a remote tool and return its result as compact JSON text."""
        result = await self._call(
            "tools/call", {"name": name, "arguments": dict(arguments or {})}
        )
        return compact_json(result)

    async def disconnect(self) -> None:
        if self.state == ConnectionState.DISCONNECTED:
            return
        self.state = ConnectionState.DISCONNECTED
        await self._transport.close()
        logger.info("mcp session disconnected name=%s", self.name, extra=self._log_extra)

    async def __aenter__(self) -> "MCPSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def __repr__(self) -> str:
        return f"MCPSession(name={self.name!r}, transport={self.kind!r}, state={self.state.value!r})"

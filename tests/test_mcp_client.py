"""Tests for the MCP session, its transports, and the tool adapter."""

from __future__ import annotations

import asyncio
import json
import sys
import textwrap
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from agent_runtime.errors import (
    MCPConnectionError,
    MCPExecutionError,
    MCPHttpError,
    MCPProtocolError,
    MCPTimeoutError,
    ToolExecutionError,
)
from agent_runtime.mcp.adapter import MCPToolAdapter, adapt_mcp_tools
from agent_runtime.mcp.bootstrap import connect_servers, disconnect_all, register_session_tools
from agent_runtime.mcp.client import ConnectionState, MCPSession
from agent_runtime.mcp.schema import (
    HttpTransportConfig,
    MCPConfig,
    MCPToolInfo,
    ProcessTransportConfig,
    SseTransportConfig,
)
from agent_runtime.mcp.transport import read_json_line
from agent_runtime.tools import ToolRegistry

SLOW_ECHO_SERVER = textwrap.dedent(
    """
    import json
    import sys
    import time

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        request = json.loads(line)
        arguments = (request.get("params") or {}).get("arguments") or {}
        if arguments.get("slow"):
            time.sleep(10)
        reply = {"jsonrpc": "2.0", "id": request["id"], "result": {"echo": arguments}}
        sys.stdout.write(json.dumps(reply) + "\\n")
        sys.stdout.flush()
    """
)

SEARCH_TOOL = {
    "name": "search",
    "description": "Search documents.",
    "inputSchema": {"type": "object", "properties": {"query": {"type": "string"}}},
}


def _rpc_handler(
    seen: list[httpx.Request],
    overrides: dict[str, Callable[[dict[str, Any]], httpx.Response]] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    overrides = overrides or {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        payload = json.loads(request.content)
        method = payload["method"]
        if method in overrides:
            return overrides[method](payload)
        if method == "initialize":
            result: Any = {"protocolVersion": "2024-11-05", "capabilities": {}}
        elif method == "tools/list":
            result = {"tools": [SEARCH_TOOL]}
        else:
            result = {"content": [{"type": "text", "text": "found 3"}]}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    return handler


def _http_session(
    handler: Callable[[httpx.Request], httpx.Response],
    transport: HttpTransportConfig | SseTransportConfig | None = None,
) -> MCPSession:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = MCPConfig(
        name="mock", transport=transport or HttpTransportConfig(url="http://tools.local/")
    )
    return MCPSession(config, http_client=client)


# ---------------------------------------------------------------------------
# Process read path
# ---------------------------------------------------------------------------


class TestReadJsonLine:
    @pytest.mark.asyncio
    async def test_skips_diagnostic_lines(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"server starting on stdio\n")
        reader.feed_data(b"warning: config file not found\n")
        reader.feed_data(b'{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}\n')
        reader.feed_eof()

        document = await read_json_line(reader)

        assert document == {"jsonrpc": "2.0", "id": 1, "result": {"tools": []}}

    @pytest.mark.asyncio
    async def test_skips_blank_lines(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b'\n   \n{"id":2,"result":null}\n')
        reader.feed_eof()
        assert await read_json_line(reader) == {"id": 2, "result": None}

    @pytest.mark.asyncio
    async def test_eof_is_connection_error(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"only noise\n")
        reader.feed_eof()
        with pytest.raises(MCPConnectionError):
            await read_json_line(reader)

    @pytest.mark.asyncio
    async def test_optional_timeout(self) -> None:
        reader = asyncio.StreamReader()
        with pytest.raises(MCPTimeoutError):
            await read_json_line(reader, timeout=0.05)


# ---------------------------------------------------------------------------
# HTTP / SSE transports
# ---------------------------------------------------------------------------


class TestHttpSession:
    @pytest.mark.asyncio
    async def test_connect_list_call(self) -> None:
        seen: list[httpx.Request] = []
        session = _http_session(_rpc_handler(seen))

        async with session:
            assert session.state == ConnectionState.CONNECTED
            tools = await session.list_tools()
            output = await session.call_tool("search", {"query": "mcp"})

        assert session.state == ConnectionState.DISCONNECTED
        assert tools == [MCPToolInfo.model_validate(SEARCH_TOOL)]
        assert tools[0].input_schema == SEARCH_TOOL["inputSchema"]
        assert output == '{"content":[{"type":"text","text":"found 3"}]}'

        payloads = [json.loads(request.content) for request in seen]
        assert [payload["method"] for payload in payloads] == [
            "initialize",
            "tools/list",
            "tools/call",
        ]
        assert [payload["id"] for payload in payloads] == [1, 2, 3]
        assert all(payload["jsonrpc"] == "2.0" for payload in payloads)
        assert payloads[0]["params"]["protocolVersion"] == "2024-11-05"
        assert payloads[0]["params"]["clientInfo"] == {"name": "agent-runtime", "version": "0.1.0"}
        assert payloads[1]["params"] == {}
        assert payloads[2]["params"] == {"name": "search", "arguments": {"query": "mcp"}}
        assert {str(request.url) for request in seen} == {"http://tools.local/rpc"}
        assert seen[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_concurrent_connects_initialize_once(self) -> None:
        seen: list[httpx.Request] = []
        handler = _rpc_handler(seen)

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.01)
            return handler(request)

        session = _http_session(slow_handler)
        await asyncio.gather(session.connect(), session.connect())
        try:
            assert session.connected
            methods = [json.loads(request.content)["method"] for request in seen]
            assert methods == ["initialize"]
        finally:
            await session.disconnect()

    @pytest.mark.asyncio
    async def test_sse_sends_authorization_header(self) -> None:
        seen: list[httpx.Request] = []
        session = _http_session(
            _rpc_handler(seen),
            SseTransportConfig(url="http://tools.local", auth="Bearer secret"),
        )
        async with session:
            await session.list_tools()
        assert session.kind == "sse"
        assert all(request.headers["authorization"] == "Bearer secret" for request in seen)

    @pytest.mark.asyncio
    async def test_jsonrpc_error_is_execution_error(self) -> None:
        def fail(payload: dict[str, Any]) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": payload["id"],
                    "error": {"code": -32000, "message": "index offline"},
                },
            )

        session = _http_session(_rpc_handler([], {"tools/call": fail}))
        async with session:
            with pytest.raises(MCPExecutionError, match="index offline") as excinfo:
                await session.call_tool("search", {})
        assert excinfo.value.details["code"] == -32000

    @pytest.mark.asyncio
    async def test_missing_result_and_error_is_protocol_error(self) -> None:
        def empty(payload: dict[str, Any]) -> httpx.Response:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"]})

        session = _http_session(_rpc_handler([], {"tools/list": empty}))
        async with session:
            with pytest.raises(MCPProtocolError):
                await session.list_tools()

    @pytest.mark.asyncio
    async def test_non_success_status(self) -> None:
        def broken(payload: dict[str, Any]) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        session = _http_session(_rpc_handler([], {"tools/list": broken}))
        async with session:
            with pytest.raises(MCPHttpError) as excinfo:
                await session.list_tools()
        assert excinfo.value.status_code == 503

    @pytest.mark.asyncio
    async def test_failed_probe_leaves_session_disconnected(self) -> None:
        def refuse(payload: dict[str, Any]) -> httpx.Response:
            return httpx.Response(404)

        session = _http_session(_rpc_handler([], {"initialize": refuse}))
        with pytest.raises(MCPHttpError):
            await session.connect()
        assert session.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_timeout_maps_to_mcp_timeout(self) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        session = _http_session(slow)
        with pytest.raises(MCPTimeoutError):
            await session.connect()

    @pytest.mark.asyncio
    async def test_unreachable_host_is_connection_error(self) -> None:
        def down(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        session = _http_session(down)
        with pytest.raises(MCPConnectionError):
            await session.connect()

    @pytest.mark.asyncio
    async def test_calls_require_connection(self) -> None:
        session = _http_session(_rpc_handler([]))
        with pytest.raises(MCPConnectionError):
            await session.list_tools()


class TestProcessSession:
    @pytest.mark.asyncio
    async def test_spawn_failure(self) -> None:
        config = MCPConfig(
            name="missing",
            transport=ProcessTransportConfig(command="/nonexistent/mcp-server-binary"),
        )
        session = MCPSession(config)
        with pytest.raises(MCPConnectionError):
            await session.connect()
        assert session.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_read_timeout_drops_connection(self) -> None:
        config = MCPConfig(
            name="slow",
            transport=ProcessTransportConfig(
                command=sys.executable, args=["-c", SLOW_ECHO_SERVER]
            ),
            read_timeout_seconds=2,
        )
        session = MCPSession(config)
        await session.connect()
        try:
            with pytest.raises(MCPTimeoutError):
                await session.call_tool("echo", {"slow": True})
            assert session.state == ConnectionState.DISCONNECTED

            with pytest.raises(MCPConnectionError):
                await session.call_tool("echo", {"which": "second"})

            await session.connect()
            result = await session.call_tool("echo", {"which": "second"})
            assert result == '{"echo":{"which":"second"}}'
        finally:
            await session.disconnect()


# ---------------------------------------------------------------------------
# Adapter and bootstrap
# ---------------------------------------------------------------------------


def _fake_session(name: str = "remote") -> MagicMock:
    session = MagicMock(spec=MCPSession)
    session.name = name
    session.call_tool = AsyncMock(return_value='{"ok":true}')
    session.list_tools = AsyncMock(return_value=[MCPToolInfo.model_validate(SEARCH_TOOL)])
    return session


class TestMCPToolAdapter:
    @pytest.mark.asyncio
    async def test_delegates_to_session(self) -> None:
        session = _fake_session()
        adapter = MCPToolAdapter(session, MCPToolInfo.model_validate(SEARCH_TOOL))

        output = await adapter.execute({"query": "x"})

        session.call_tool.assert_awaited_once_with("search", {"query": "x"})
        assert output.output == '{"ok":true}'
        assert adapter.name == "search"
        assert adapter.parameters_schema() == SEARCH_TOOL["inputSchema"]

    @pytest.mark.asyncio
    async def test_mcp_error_becomes_tool_error(self) -> None:
        session = _fake_session()
        session.call_tool.side_effect = MCPTimeoutError("no response")
        adapter = MCPToolAdapter(session, MCPToolInfo.model_validate(SEARCH_TOOL))

        with pytest.raises(ToolExecutionError, match="no response"):
            await adapter.execute({})

    def test_adapt_many(self) -> None:
        session = _fake_session()
        infos = [MCPToolInfo(name="a"), MCPToolInfo(name="b", description=None)]
        adapters = adapt_mcp_tools(session, infos)
        assert [adapter.name for adapter in adapters] == ["a", "b"]
        assert adapters[1].description == ""


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_register_session_tools(self) -> None:
        registry = ToolRegistry()
        names = await register_session_tools(registry, _fake_session())
        assert names == ["search"]
        assert isinstance(registry.get("search"), MCPToolAdapter)

    @pytest.mark.asyncio
    async def test_connect_servers_skips_failures(self) -> None:
        seen: list[httpx.Request] = []
        client = httpx.AsyncClient(transport=httpx.MockTransport(_rpc_handler(seen)))
        configs = [
            MCPConfig(name="ok", transport=HttpTransportConfig(url="http://tools.local")),
            MCPConfig(
                name="broken",
                transport=ProcessTransportConfig(command="/nonexistent/mcp-server-binary"),
            ),
        ]
        sessions = await connect_servers(configs, http_client=client)
        assert [session.name for session in sessions] == ["ok"]
        await disconnect_all(sessions)
        assert not sessions[0].connected

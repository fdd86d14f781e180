"""Minimal MCP host that exposes the calculator tool.

Serves JSON-RPC over stdio (one document per line) or over HTTP as a FastAPI
app with `POST /rpc`:

    python -m agent_runtime.mcp.servers.calculator_server
    python -m agent_runtime.mcp.servers.calculator_server --http --port 8765
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...errors import ToolError
from ...tools import CalculatorTool
from ..schema import JSONRPC_VERSION, PROTOCOL_VERSION

logger = logging.getLogger(__name__)

SERVER_NAME = "calculator-server"
SERVER_VERSION = "0.1.0"
BANNER = "calculator MCP server ready"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
TOOL_FAILED = -32000

_TOOL = CalculatorTool()


def _result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def list_tool_entries() -> list[dict[str, Any]]:
    return [
        {
            "name": _TOOL.name,
            "description": _TOOL.description,
            "inputSchema": _TOOL.parameters_schema(),
        }
    ]


async def handle_request(document: Any) -> dict[str, Any] | None:
    """Dispatch one JSON-RPC request; notifications produce no response."""
    if not isinstance(document, Mapping) or not isinstance(document.get("method"), str):
        request_id = document.get("id") if isinstance(document, Mapping) else None
        return _error(request_id, INVALID_REQUEST, "invalid request")
    if "id" not in document:
        return None
    request_id = document["id"]
    method = document["method"]
    params = document.get("params") or {}

    if method == "initialize":
        return _result(
            request_id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            },
        )
    if method == "tools/list":
        return _result(request_id, {"tools": list_tool_entries()})
    if method == "tools/call":
        name = params.get("name") if isinstance(params, Mapping) else None
        if name != _TOOL.name:
            return _error(request_id, INVALID_PARAMS, f"unknown tool: {name}")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, Mapping):
            return _error(request_id, INVALID_PARAMS, "arguments must be an object")
        try:
            output = await _TOOL.execute(arguments)
        except ToolError as exc:
            logger.info("calculator call failed error=%s", exc)
            return _error(request_id, TOOL_FAILED, str(exc))
        return _result(
            request_id,
            {"content": [{"type": "text", "text": output.output}], "isError": False},
        )
    return _error(request_id, METHOD_NOT_FOUND, f"method not found: {method}")


async def handle_line(line: str) -> dict[str, Any] | None:
    try:
        document = json.loads(line)
    except json.JSONDecodeError:
        return _error(None, PARSE_ERROR, "parse error")
    return await handle_request(document)


# ----- stdio -------------------------------------------------------------


async def serve_stdio() -> None:
    """Answer newline-delimited requests on stdin until it closes."""
    loop = asyncio.get_running_loop()
    # Diagnostic noise ahead of the protocol stream; clients must skip it.
    print(BANNER, flush=True)
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        if not line.strip():
            continue
        response = await handle_line(line)
        if response is not None:
            print(json.dumps(response, separators=(",", ":")), flush=True)


# ----- HTTP --------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct the FastAPI application serving `POST /rpc`."""
    app = FastAPI(title=SERVER_NAME, version=SERVER_VERSION)

    @app.post("/rpc")
    async def rpc(request: Request) -> JSONResponse:
        body = await request.body()
        response = await handle_line(body.decode("utf-8", errors="replace"))
        if response is None:
            return JSONResponse(status_code=202, content={})
        return JSONResponse(content=response)

    return app


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Calculator MCP server")
    parser.add_argument("--http", action="store_true", help="serve HTTP instead of stdio")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    args = parser.parse_args(argv)

    if args.http:
        import uvicorn

        uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")
        return 0
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
    asyncio.run(serve_stdio())
    return 0


if __name__ == "__main__":
    sys.exit(main())

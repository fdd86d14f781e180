"""Transports carrying JSON-RPC envelopes to a remote tool host."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx

from ..errors import (
    MCPConnectionError,
    MCPHttpError,
    MCPProtocolError,
    MCPTimeoutError,
)
from .schema import (
    HttpTransportConfig,
    ProcessTransportConfig,
    SseTransportConfig,
    TransportConfig,
)

logger = logging.getLogger(__name__)

_STREAM_LIMIT = 4 * 1024 * 1024
_TERMINATE_GRACE_SECONDS = 5.0


class Transport(ABC):
    """Sends one request envelope and returns the decoded response object.

    Callers serialize access; transports never have two requests in flight.
    """

    kind: str = ""

    @abstractmethod
    async def open(self) -> None:
        """Acquire the underlying channel."""

    @abstractmethod
    async def request(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Write `payload` and return the matching response document."""

    @abstractmethod
    async def close(self) -> None:
        """Release the channel; safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether requests can currently be sent."""


async def read_json_line(
    reader: asyncio.StreamReader,
    *,
    timeout: float | None = None,
    log_extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return the next JSON object line, discarding blank and non-JSON lines."""
    extra = dict(log_extra or {})
    while True:
        try:
            if timeout is None:
                raw = await reader.readline()
            else:
                raw = await asyncio.wait_for(reader.readline(), timeout)
        except asyncio.TimeoutError as exc:
            raise MCPTimeoutError(f"no response within {timeout}s") from exc
        except (ValueError, asyncio.LimitOverrunError) as exc:
            raise MCPProtocolError(f"response line too long: {exc}") from exc
        if not raw:
            raise MCPConnectionError("process closed its output stream")
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        try:
            document = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("discarding non-JSON line=%r", line[:200], extra=extra)
            continue
        if not isinstance(document, dict):
            logger.debug("discarding non-object JSON line=%r", line[:200], extra=extra)
            continue
        return document


# ----- Process transport -------------------------------------------------


class ProcessTransport(Transport):
    """Child process with piped stdin/stdout, one JSON document per line."""

    kind = "process"

    def __init__(
        self,
        config: ProcessTransportConfig,
        *,
        read_timeout: float | None = None,
        log_extra: Mapping[str, Any] | None = None,
    ):
        self.config = config
        self.read_timeout = read_timeout
        self._log_extra = dict(log_extra or {})
        self._process: asyncio.subprocess.Process | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_open(self) -> bool:
        return self._process is not None

    async def open(self) -> None:
        env = {**os.environ, **self.config.env} if self.config.env else None
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.config.command,
                *self.config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                env=env,
                cwd=self.config.cwd,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise MCPConnectionError(
                f"failed to spawn {self.config.command}: {exc}",
                details={"command": self.config.command},
            ) from exc
        logger.info(
            "mcp process started command=%s pid=%s",
            self.config.command,
            self._process.pid,
            extra=self._log_extra,
        )

    async def request(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        process = self._process
        if process is None or process.stdin is None or process.stdout is None:
            raise MCPConnectionError("process transport is not open")
        line = json.dumps(dict(payload), separators=(",", ":")) + "\n"
        try:
            process.stdin.write(line.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            await self.close()
            raise MCPConnectionError(
                f"failed to write to process: {exc}", details={"pid": process.pid}
            ) from exc
        try:
            return await read_json_line(
                process.stdout, timeout=self.read_timeout, log_extra=self._log_extra
            )
        except BaseException:
            # Replies pair with requests by line order only, so a late reply
            # must never be read by the next request.
            logger.warning(
                "mcp process read failed, closing pid=%s", process.pid, extra=self._log_extra
            )
            await self.close()
            raise

    async def close(self) -> None:
        process = self._process
        self._process = None
        if process is None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), _TERMINATE_GRACE_SECONDS)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
        logger.info(
            "mcp process stopped pid=%s returncode=%s",
            process.pid,
            process.returncode,
            extra=self._log_extra,
        )


# ----- HTTP transports ---------------------------------------------------


class HttpTransport(Transport):
    """Stateless POST of every envelope to `{url}/rpc`."""

    kind = "http"

    def __init__(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        log_extra: Mapping[str, Any] | None = None,
    ):
        self.url = url.rstrip("/")
        self.headers = dict(headers or {})
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._log_extra = dict(log_extra or {})

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rpc"

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True

    async def request(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        client = self._client
        if client is None:
            raise MCPConnectionError("http transport is not open")
        headers = {"Content-Type": "application/json", **self.headers}
        try:
            response = await client.post(
                self.endpoint,
                content=json.dumps(dict(payload)),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise MCPTimeoutError(
                f"request to {self.endpoint} timed out", details={"url": self.endpoint}
            ) from exc
        except httpx.HTTPError as exc:
            raise MCPConnectionError(
                f"request to {self.endpoint} failed: {exc}", details={"url": self.endpoint}
            ) from exc
        if not response.is_success:
            raise MCPHttpError(
                f"{self.endpoint} returned {response.status_code}",
                status_code=response.status_code,
                details={"url": self.endpoint, "body": response.text[:500]},
            )
        try:
            document = response.json()
        except ValueError as exc:
            raise MCPProtocolError(
                f"response from {self.endpoint} is not JSON", details={"url": self.endpoint}
            ) from exc
        if not isinstance(document, dict):
            raise MCPProtocolError(
                f"response from {self.endpoint} is not a JSON object",
                details={"url": self.endpoint},
            )
        return document

    async def close(self) -> None:
        client = self._client
        self._client = None
        if client is not None and self._owns_client:
            await client.aclose()


class SseTransport(HttpTransport):
    """Request/response over the HTTP endpoint; no server-push consumption."""

    kind = "sse"

    def __init__(
        self,
        url: str,
        *,
        auth: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        log_extra: Mapping[str, Any] | None = None,
    ):
        headers = {"Authorization": auth} if auth else {}
        super().__init__(
            url, headers=headers, timeout=timeout, client=client, log_extra=log_extra
        )


def build_transport(
    config: TransportConfig,
    *,
    timeout: float = 30.0,
    read_timeout: float | None = None,
    client: httpx.AsyncClient | None = None,
    log_extra: Mapping[str, Any] | None = None,
) -> Transport:
    """Create the transport matching a transport configuration."""
    if isinstance(config, ProcessTransportConfig):
        return ProcessTransport(config, read_timeout=read_timeout, log_extra=log_extra)
    if isinstance(config, SseTransportConfig):
        return SseTransport(
            config.url, auth=config.auth, timeout=timeout, client=client, log_extra=log_extra
        )
    if isinstance(config, HttpTransportConfig):
        return HttpTransport(
            config.url,
            headers=config.headers,
            timeout=timeout,
            client=client,
            log_extra=log_extra,
        )
    raise TypeError(f"unsupported transport config {type(config).__name__}")

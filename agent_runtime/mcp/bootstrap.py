"""MCP bootstrap helpers used by the CLI."""

from __future__ import annotations

import logging
from typing import Iterable

import httpx

from ..errors import MCPError
from ..tools import ToolRegistry
from .adapter import adapt_mcp_tools
from .client import MCPSession
from .schema import MCPConfig

logger = logging.getLogger(__name__)

_SYSTEM = {"session_id": "system"}


async def connect_servers(
    configs: Iterable[MCPConfig],
    *,
    http_client: httpx.AsyncClient | None = None,
) -> list[MCPSession]:
    """Connect every configured server, skipping the ones that fail."""
    sessions: list[MCPSession] = []
    for config in configs:
        session = MCPSession(config, http_client=http_client)
        try:
            await session.connect()
        except MCPError as exc:
            logger.warning(
                "mcp server unavailable name=%s transport=%s error=%s",
                config.name,
                config.transport.kind,
                exc,
                extra=_SYSTEM,
            )
            continue
        sessions.append(session)
    return sessions


async def register_session_tools(registry: ToolRegistry, session: MCPSession) -> list[str]:
    """Discover a session's tools and register an adapter for each."""
    infos = await session.list_tools()
    names: list[str] = []
    for adapter in adapt_mcp_tools(session, infos):
        previous = registry.register(adapter)
        if previous is not None:
            logger.info(
                "tool replaced tool=%s server=%s", adapter.name, session.name, extra=_SYSTEM
            )
        names.append(adapter.name)
    logger.info(
        "mcp tools registered server=%s tools=%s", session.name, names, extra=_SYSTEM
    )
    return names


async def disconnect_all(sessions: Iterable[MCPSession]) -> None:
    for session in sessions:
        try:
            await session.disconnect()
        except MCPError:
            logger.exception("mcp disconnect failed name=%s", session.name, extra=_SYSTEM)

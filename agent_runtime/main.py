"""Command-line interface for running one agent conversation."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from .agent import Agent, AgentConfig
from .env import load_dotenv_if_present
from .errors import AgentError
from .mcp.bootstrap import connect_servers, disconnect_all, register_session_tools
from .mcp.client import MCPSession
from .mcp.schema import HttpTransportConfig, MCPConfig, ProcessTransportConfig, SseTransportConfig
from .model import ModelClient
from .openai_client import OpenAIModelClient
from .schemas import MessageRole, serialize_event
from .session import ModelConfig, Session
from .settings import Settings, get_settings
from .tools import CalculatorTool, ToolRegistry

logger = logging.getLogger(__name__)


class _SessionIdFilter(logging.Filter):
    """Ensure every log record has a session_id attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = "system"
        return True


def _configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [session_id=%(session_id)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    root_logger = logging.getLogger()
    session_filter = _SessionIdFilter()
    for handler in root_logger.handlers:
        handler.addFilter(session_filter)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a tool-using agent for one prompt.")
    parser.add_argument("prompt", help="User message that starts the run.")
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Print streaming events as NDJSON instead of the final answer.",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Override the step budget (default: AGENT_MAX_STEPS or 100).",
    )
    parser.add_argument("--mcp-command", help="Spawn an MCP server process with this command.")
    parser.add_argument(
        "--mcp-arg",
        action="append",
        dest="mcp_args",
        default=[],
        help="Argument for --mcp-command (can be provided multiple times).",
    )
    parser.add_argument("--mcp-url", help="Base URL of an MCP server reachable over HTTP.")
    parser.add_argument(
        "--mcp-transport",
        choices=("http", "sse"),
        default="http",
        help="Transport used with --mcp-url (default: http).",
    )
    parser.add_argument("--mcp-auth", help="Authorization header value for the sse transport.")
    parser.add_argument(
        "--no-calculator",
        action="store_true",
        help="Do not register the built-in calculator tool.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def build_mcp_configs(args: argparse.Namespace, settings: Settings) -> list[MCPConfig]:
    common = {
        "timeout_seconds": settings.mcp.timeout_seconds,
        "read_timeout_seconds": settings.mcp.process_read_timeout_seconds,
        "client_name": settings.mcp.client_name,
        "client_version": settings.mcp.client_version,
    }
    configs: list[MCPConfig] = []
    if args.mcp_command:
        configs.append(
            MCPConfig(
                name="process",
                transport=ProcessTransportConfig(command=args.mcp_command, args=args.mcp_args),
                **common,
            )
        )
    if args.mcp_url:
        if args.mcp_transport == "sse":
            transport = SseTransportConfig(url=args.mcp_url, auth=args.mcp_auth)
        else:
            transport = HttpTransportConfig(url=args.mcp_url)
        configs.append(MCPConfig(name=args.mcp_transport, transport=transport, **common))
    return configs


def build_session(settings: Settings) -> Session:
    return Session(
        system_prompt=settings.agent.system_prompt,
        model=ModelConfig(
            name=settings.agent.model,
            max_tokens=settings.agent.max_tokens,
            temperature=settings.agent.temperature,
        ),
    )


async def run_prompt(
    args: argparse.Namespace,
    settings: Settings,
    model_client: ModelClient,
) -> int:
    registry = ToolRegistry()
    if not args.no_calculator:
        registry.register(CalculatorTool())

    sessions: list[MCPSession] = await connect_servers(build_mcp_configs(args, settings))
    try:
        for mcp_session in sessions:
            await register_session_tools(registry, mcp_session)

        config = AgentConfig.from_settings(settings)
        if args.max_steps is not None:
            config = AgentConfig(
                max_steps=args.max_steps, argument_strategy=config.argument_strategy
            )
        agent = Agent(build_session(settings), model_client, registry, config)

        if args.stream:
            failed = False
            async for event in agent.stream(args.prompt):
                sys.stdout.write(serialize_event(event.model_dump()))
                sys.stdout.flush()
                failed = failed or event.is_terminal
            return 1 if failed else 0

        log = await agent.run(args.prompt)
        answer = next(
            (message.text() for message in reversed(log) if message.role == MessageRole.ASSISTANT),
            "",
        )
        print(answer)
        if log.truncated:
            print(f"[stopped after {log.steps} steps]", file=sys.stderr)
        return 0
    finally:
        await disconnect_all(sessions)


async def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    load_dotenv_if_present()
    settings = get_settings()
    _configure_logging(settings.log_level)
    try:
        return await run_prompt(args, settings, OpenAIModelClient.from_settings(settings))
    except KeyboardInterrupt:
        print("Run interrupted.", file=sys.stderr)
        return 1
    except AgentError as exc:
        print(f"Run failed: {exc}", file=sys.stderr)
        return 1


def entrypoint() -> None:
    """Synchronously run the async CLI for convenience."""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":  # pragma: no cover
    entrypoint()

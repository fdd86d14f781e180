"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float | None = None) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or default


@dataclass(frozen=True)
class AgentSettings:
    """Model parameters and loop limits."""

    model: str
    max_tokens: int
    temperature: float | None
    max_steps: int
    system_prompt: str
    argument_strategy: str

    @classmethod
    def from_env(cls) -> "AgentSettings":
        strategy = (_env_str("AGENT_TOOL_ARGUMENT_STRATEGY", "replace") or "replace").lower()
        if strategy not in {"replace", "concatenate"}:
            strategy = "replace"
        temperature = _env_float("AGENT_TEMPERATURE")
        if temperature is not None:
            temperature = min(2.0, max(0.0, temperature))
        return cls(
            model=_env_str("AGENT_MODEL", "gpt-4o") or "gpt-4o",
            max_tokens=max(1, _env_int("AGENT_MAX_TOKENS", 4096)),
            temperature=temperature,
            max_steps=max(1, _env_int("AGENT_MAX_STEPS", 100)),
            system_prompt=_env_str("AGENT_SYSTEM_PROMPT", "") or "",
            argument_strategy=strategy,
        )


@dataclass(frozen=True)
class MCPSettings:
    """Client identity and timeouts for remote tool sessions."""

    timeout_seconds: float
    process_read_timeout_seconds: float | None
    client_name: str
    client_version: str

    @classmethod
    def from_env(cls) -> "MCPSettings":
        read_timeout = _env_float("MCP_PROCESS_READ_TIMEOUT_SECONDS")
        if read_timeout is not None and read_timeout <= 0:
            read_timeout = None
        return cls(
            timeout_seconds=max(1.0, _env_float("MCP_TIMEOUT_SECONDS", 30.0) or 30.0),
            process_read_timeout_seconds=read_timeout,
            client_name=_env_str("MCP_CLIENT_NAME", "agent-runtime") or "agent-runtime",
            client_version=_env_str("MCP_CLIENT_VERSION", "0.1.0") or "0.1.0",
        )


@dataclass(frozen=True)
class OpenAISettings:
    """Credentials for the reference model client."""

    api_key: str | None
    base_url: str | None

    @classmethod
    def from_env(cls) -> "OpenAISettings":
        return cls(
            api_key=_env_str("OPENAI_API_KEY"),
            base_url=_env_str("OPENAI_BASE_URL"),
        )


class Settings:
    """Container for application settings."""

    def __init__(
        self,
        *,
        agent: AgentSettings,
        mcp: MCPSettings,
        openai: OpenAISettings,
        log_level: str = "INFO",
    ) -> None:
        self.agent = agent
        self.mcp = mcp
        self.openai = openai
        self.log_level = log_level

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            agent=AgentSettings.from_env(),
            mcp=MCPSettings.from_env(),
            openai=OpenAISettings.from_env(),
            log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return a cached Settings instance built from the current environment."""

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    """Drop the cached instance so the next call re-reads the environment."""

    global _SETTINGS
    _SETTINGS = None

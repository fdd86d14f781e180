"""Tests for environment-driven settings and CLI wiring."""

from __future__ import annotations

import os

import pytest
from conftest import ScriptedModelClient, text_output, tool_call_output

from agent_runtime import settings as settings_module
from agent_runtime.agent import AgentConfig
from agent_runtime.env import load_dotenv_if_present
from agent_runtime.main import _parse_args, build_mcp_configs, build_session, run_prompt
from agent_runtime.mcp.schema import HttpTransportConfig, ProcessTransportConfig, SseTransportConfig
from agent_runtime.settings import Settings, get_settings, reset_settings
from agent_runtime.stream import ArgumentStrategy

_ENV_VARS = [
    "AGENT_MODEL",
    "AGENT_MAX_TOKENS",
    "AGENT_TEMPERATURE",
    "AGENT_MAX_STEPS",
    "AGENT_SYSTEM_PROMPT",
    "AGENT_TOOL_ARGUMENT_STRATEGY",
    "MCP_TIMEOUT_SECONDS",
    "MCP_PROCESS_READ_TIMEOUT_SECONDS",
    "MCP_CLIENT_NAME",
    "MCP_CLIENT_VERSION",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings.from_env()
        assert settings.agent.model == "gpt-4o"
        assert settings.agent.max_tokens == 4096
        assert settings.agent.temperature is None
        assert settings.agent.max_steps == 100
        assert settings.agent.argument_strategy == "replace"
        assert settings.mcp.timeout_seconds == 30.0
        assert settings.mcp.process_read_timeout_seconds is None
        assert settings.mcp.client_name == "agent-runtime"
        assert settings.openai.api_key is None
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENT_MODEL", "gpt-test")
        monkeypatch.setenv("AGENT_MAX_STEPS", "7")
        monkeypatch.setenv("AGENT_TEMPERATURE", "0.3")
        monkeypatch.setenv("AGENT_TOOL_ARGUMENT_STRATEGY", "CONCATENATE")
        monkeypatch.setenv("MCP_PROCESS_READ_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        settings = Settings.from_env()

        assert settings.agent.model == "gpt-test"
        assert settings.agent.max_steps == 7
        assert settings.agent.temperature == 0.3
        assert settings.agent.argument_strategy == "concatenate"
        assert settings.mcp.process_read_timeout_seconds == 12.5
        assert settings.openai.api_key == "sk-test"
        config = AgentConfig.from_settings(settings)
        assert config.max_steps == 7
        assert config.argument_strategy == ArgumentStrategy.CONCATENATE

    def test_invalid_values_fall_back(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENT_MAX_STEPS", "many")
        monkeypatch.setenv("AGENT_TOOL_ARGUMENT_STRATEGY", "merge")
        monkeypatch.setenv("AGENT_TEMPERATURE", "hot")
        settings = Settings.from_env()
        assert settings.agent.max_steps == 100
        assert settings.agent.argument_strategy == "replace"
        assert settings.agent.temperature is None

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
        first = get_settings()
        reset_settings()
        assert get_settings() is not first
        assert settings_module._SETTINGS is not None

    def test_dotenv_loading(self, tmp_path, monkeypatch) -> None:
        (tmp_path / ".env").write_text("AGENT_MODEL=from-dotenv\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        assert load_dotenv_if_present() is True
        try:
            assert Settings.from_env().agent.model == "from-dotenv"
        finally:
            os.environ.pop("AGENT_MODEL", None)


class TestCliWiring:
    def test_mcp_configs_from_args(self) -> None:
        args = _parse_args(
            [
                "hello",
                "--mcp-command",
                "python",
                "--mcp-arg",
                "-m",
                "--mcp-arg",
                "server",
                "--mcp-url",
                "http://localhost:8765",
                "--mcp-transport",
                "sse",
                "--mcp-auth",
                "Bearer t",
            ]
        )
        configs = build_mcp_configs(args, Settings.from_env())
        assert isinstance(configs[0].transport, ProcessTransportConfig)
        assert configs[0].transport.args == ["-m", "server"]
        assert isinstance(configs[1].transport, SseTransportConfig)
        assert configs[1].transport.auth == "Bearer t"

    def test_http_is_default_transport(self) -> None:
        args = _parse_args(["hello", "--mcp-url", "http://localhost:8765"])
        configs = build_mcp_configs(args, Settings.from_env())
        assert isinstance(configs[0].transport, HttpTransportConfig)

    def test_session_from_settings(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENT_SYSTEM_PROMPT", "Be precise.")
        session = build_session(Settings.from_env())
        assert session.system_prompt == "Be precise."
        assert session.model.name == "gpt-4o"

    @pytest.mark.asyncio
    async def test_run_prompt_batch(self, capsys) -> None:
        client = ScriptedModelClient(
            [
                tool_call_output(
                    name="calculator", arguments={"operation": "add", "a": 2, "b": 2}
                ),
                text_output("2 + 2 = 4"),
            ]
        )
        args = _parse_args(["what is 2 + 2?", "--max-steps", "5"])

        exit_code = await run_prompt(args, Settings.from_env(), client)

        assert exit_code == 0
        assert capsys.readouterr().out.strip() == "2 + 2 = 4"
        assert [tool.name for tool in client.requests[0].tools] == ["calculator"]
        assert client.requests[1].messages[-1].content[0].result == "4"

    @pytest.mark.asyncio
    async def test_run_prompt_no_calculator(self) -> None:
        client = ScriptedModelClient([text_output("ok")])
        args = _parse_args(["hi", "--no-calculator"])
        assert await run_prompt(args, Settings.from_env(), client) == 0
        assert client.requests[0].tools == []

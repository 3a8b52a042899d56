"""Tests for the CLI app and the interactive chat handler."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

from nexus.cli.app import app
from nexus.cli.chat import ChatHandler
from nexus.llm.transport import StreamTransport
from nexus.orchestrator.core import ConversationOrchestrator
from nexus.session.transcript import InMemoryTranscript
from nexus.tools.registry import ToolRegistry
from tests.mock_sse import SSEScript, SSEServer, text_response, tool_call_response
from tests.mock_tools import EchoTool

runner = CliRunner()


@pytest.fixture
def isolated(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("NEXUS_SESSION_HISTORY_DB", str(tmp_path / "history.db"))
    return tmp_path


def _handler(server: SSEServer | None = None) -> tuple[ChatHandler, io.StringIO]:
    out = io.StringIO()
    handler = ChatHandler(console=Console(file=out, width=200, color_system=None))
    transport = StreamTransport(
        lambda: "sk-test",
        http_transport=server.transport() if server else None,
    )
    handler.orchestrator = ConversationOrchestrator(
        InMemoryTranscript("chat-1"),
        transport,
        ToolRegistry([EchoTool()]),
        listener=handler.stream_handlers(),
    )
    return handler, out


class TestApp:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "nexus-core v0.1.0" in result.output

    def test_tools_list(self, isolated):
        result = runner.invoke(app, ["tools", "list"])
        assert result.exit_code == 0
        assert "search_web" in result.output

    def test_tools_info_unknown(self, isolated):
        result = runner.invoke(app, ["tools", "info", "nope"])
        assert result.exit_code == 1
        assert "Tool not found" in result.output

    def test_config_validate_defaults(self, isolated):
        result = runner.invoke(app, ["config", "validate"])
        assert result.exit_code == 0
        assert "No config file found" in result.output

    def test_config_file_is_picked_up(self, isolated):
        (isolated / "nexus.yaml").write_text("model:\n  code: file/model\n")
        result = runner.invoke(app, ["config", "validate"])
        assert result.exit_code == 0
        assert "file/model" in result.output

    def test_chat_without_key(self, isolated, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        result = runner.invoke(app, ["chat"])
        assert result.exit_code == 1
        assert "Missing API key" in result.output

    def test_chats_list_empty(self, isolated):
        result = runner.invoke(app, ["chats", "list"])
        assert result.exit_code == 0
        assert "No chats found" in result.output


class TestChatHandler:
    async def test_quit(self):
        handler, _ = _handler()
        assert await handler.handle_command("/quit") is True
        assert handler._running is False

    async def test_unknown_command_falls_through(self):
        handler, _ = _handler()
        assert await handler.handle_command("/bogus") is False

    async def test_resume_with_nothing(self):
        handler, out = _handler()
        assert await handler.handle_command("/resume") is True
        assert "Nothing to resume" in out.getvalue()

    async def test_tools(self):
        handler, out = _handler()
        await handler.handle_command("/tools")
        assert "echo" in out.getvalue()

    async def test_input_streams_reply(self):
        server = SSEServer(SSEScript(text_response("Hel", "lo")))
        handler, out = _handler(server)

        await handler.handle_input("hi")

        assert "Hello" in out.getvalue()
        turns = handler.orchestrator.transcript.turns
        assert turns[-1].content == "Hello"

    async def test_tool_round_is_shown(self):
        server = SSEServer(
            SSEScript(tool_call_response("c1", "echo", '{"message": "hi"}')),
            SSEScript(text_response("done")),
        )
        handler, out = _handler(server)

        await handler.handle_input("say hi")

        text = out.getvalue()
        assert "calling echo..." in text
        assert "Echoing 'hi'" in text
        assert "done" in text

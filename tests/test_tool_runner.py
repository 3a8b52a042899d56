"""Tests for nexus.orchestrator.tool_runner.ToolExecutionCoordinator."""

from __future__ import annotations

import asyncio
import json

import pytest

from nexus.llm.types import ConversationTurn, Role, ToolCall
from nexus.orchestrator.tool_runner import ToolExecutionCoordinator
from nexus.session.transcript import InMemoryTranscript
from nexus.tools.registry import ToolRegistry
from tests.mock_tools import EchoTool, FailingTool, SlowTool


@pytest.fixture
def echo():
    return EchoTool()


@pytest.fixture
def registry(echo):
    return ToolRegistry([echo, FailingTool(), SlowTool(delay=5.0)])


@pytest.fixture
async def transcript():
    t = InMemoryTranscript("chat-1")
    await t.append_turn(ConversationTurn(role=Role.USER, content="find things"))
    return t


@pytest.fixture
async def assistant_turn(transcript):
    turn = ConversationTurn(role=Role.ASSISTANT)
    await transcript.append_turn(turn)
    return turn


def _tool_turns(transcript):
    return [t for t in transcript.turns if t.role is Role.TOOL]


class TestCoordinator:
    async def test_success(self, registry, transcript, assistant_turn, echo):
        runner = ToolExecutionCoordinator(registry, transcript)
        calls = [ToolCall(id="c1", name="echo", arguments='{"message": "OK"}')]

        results = await runner.run(assistant_turn, calls)

        assert assistant_turn.tool_calls == calls
        assert len(results) == 1
        turn = results[0]
        assert turn.content == "OK"
        assert turn.tool_call_id == "c1"
        assert turn.tool_name == "echo"
        assert turn.tool_args_label == "Echoing 'OK'"
        assert turn.chat_id == "chat-1"
        assert _tool_turns(transcript) == results
        assert echo.calls[0][1] == "find things"

    async def test_failure_is_isolated(self, registry, transcript, assistant_turn):
        """One tool throws, the other answers."""
        runner = ToolExecutionCoordinator(registry, transcript)
        calls = [
            ToolCall(id="c1", name="explode", arguments="{}"),
            ToolCall(id="c2", name="echo", arguments='{"message": "OK"}'),
        ]

        results = await runner.run(assistant_turn, calls)

        assert [t.tool_call_id for t in results] == ["c1", "c2"]
        assert results[0].content == "Error executing web search: upstream unavailable"
        assert results[1].content == "OK"

    async def test_unknown_tool(self, registry, transcript, assistant_turn):
        runner = ToolExecutionCoordinator(registry, transcript)
        results = await runner.run(assistant_turn, [ToolCall(id="c1", name="nope", arguments="{}")])

        assert json.loads(results[0].content) == {"error": "No handler for tool: nope"}
        assert results[0].tool_name == "nope"

    async def test_invalid_json_arguments(self, registry, transcript, assistant_turn):
        runner = ToolExecutionCoordinator(registry, transcript)
        results = await runner.run(assistant_turn, [ToolCall(id="c1", name="echo", arguments='{"mess')])
        assert results[0].content.startswith("Error executing echo: invalid JSON arguments")

    async def test_schema_violation(self, registry, transcript, assistant_turn):
        runner = ToolExecutionCoordinator(registry, transcript)
        results = await runner.run(assistant_turn, [ToolCall(id="c1", name="echo", arguments='{"text": 1}')])
        assert results[0].content.startswith("Error executing echo: invalid arguments")

    async def test_timeout(self, registry, transcript, assistant_turn):
        runner = ToolExecutionCoordinator(registry, transcript, tool_timeout=0.1)
        calls = [
            ToolCall(id="c1", name="sleepy", arguments="{}"),
            ToolCall(id="c2", name="echo", arguments='{"message": "fast"}'),
        ]

        results = await asyncio.wait_for(runner.run(assistant_turn, calls), timeout=5)

        assert results[0].content == "Error executing sleepy: timed out after 0.1s"
        assert results[1].content == "fast"

    async def test_runs_concurrently(self, transcript, assistant_turn):
        registry = ToolRegistry([SlowTool(delay=0.3)])
        runner = ToolExecutionCoordinator(registry, transcript)
        loop = asyncio.get_running_loop()
        calls = [ToolCall(id=f"c{i}", name="sleepy", arguments="") for i in range(4)]

        start = loop.time()
        results = await runner.run(assistant_turn, calls)
        elapsed = loop.time() - start

        assert [t.content for t in results] == ["finally"] * 4
        assert elapsed < 1.0

    async def test_answered_calls_are_skipped(self, registry, transcript, assistant_turn):
        runner = ToolExecutionCoordinator(registry, transcript)
        calls = [ToolCall(id="c1", name="echo", arguments='{"message": "once"}')]

        await runner.run(assistant_turn, calls)
        again = await runner.run(assistant_turn, calls)

        assert again == []
        assert len(_tool_turns(transcript)) == 1

    async def test_results_appended_after_all_complete(self, registry, transcript, assistant_turn):
        runner = ToolExecutionCoordinator(registry, transcript, tool_timeout=0.2)
        calls = [
            ToolCall(id="c1", name="sleepy", arguments="{}"),
            ToolCall(id="c2", name="echo", arguments='{"message": "x"}'),
        ]
        task = asyncio.ensure_future(runner.run(assistant_turn, calls))
        await asyncio.sleep(0.05)
        assert _tool_turns(transcript) == []

        await task
        assert [t.tool_call_id for t in _tool_turns(transcript)] == ["c1", "c2"]

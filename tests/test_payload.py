"""Tests for request payload construction in nexus.orchestrator.payload."""

from __future__ import annotations

import json

from nexus.config import ModelConfig
from nexus.llm.types import ConversationTurn, Role, ToolCall
from nexus.orchestrator.payload import (
    build_payload,
    encode_payload,
    filter_history,
    turn_to_wire,
)

CALL = ToolCall(id="c1", name="echo", arguments='{"message":"x"}')


def _history() -> list[ConversationTurn]:
    return [
        ConversationTurn(role=Role.USER, content="hi"),
        ConversationTurn(role=Role.ASSISTANT, content=None, tool_calls=[CALL]),
        ConversationTurn(role=Role.TOOL, content="x", tool_call_id="c1", tool_name="echo"),
        ConversationTurn(role=Role.ASSISTANT, content="done"),
    ]


class TestFilterHistory:
    def test_keeps_paired_tool_turns(self):
        turns = _history()
        assert filter_history(turns) == turns

    def test_drops_orphan_tool_turn(self):
        turns = [
            ConversationTurn(role=Role.USER, content="hi"),
            ConversationTurn(role=Role.TOOL, content="x", tool_call_id="ghost", tool_name="echo"),
        ]
        assert [t.role for t in filter_history(turns)] == [Role.USER]

    def test_tool_turn_before_declaration_is_orphan(self):
        turns = [
            ConversationTurn(role=Role.TOOL, content="x", tool_call_id="c1", tool_name="echo"),
            ConversationTurn(role=Role.ASSISTANT, content=None, tool_calls=[CALL]),
        ]
        assert [t.role for t in filter_history(turns)] == [Role.ASSISTANT]

    def test_drops_error_and_empty_placeholder(self):
        placeholder = ConversationTurn(role=Role.ASSISTANT)
        turns = [
            ConversationTurn(role=Role.USER, content="hi"),
            ConversationTurn(role=Role.ERROR, content="rate limited"),
            placeholder,
        ]
        assert [t.role for t in filter_history(turns)] == [Role.USER]

    def test_exclude_id(self):
        turns = _history()
        kept = filter_history(turns, exclude_id=turns[-1].id)
        assert turns[-1] not in kept


class TestTurnToWire:
    def test_plain(self):
        assert turn_to_wire(ConversationTurn(role=Role.USER, content="hi")) == {
            "role": "user",
            "content": "hi",
        }

    def test_system_has_cache_control(self):
        wire = turn_to_wire(ConversationTurn(role=Role.SYSTEM, content="be nice"))
        assert wire["content"][0]["cache_control"] == {"type": "ephemeral"}

    def test_image(self):
        wire = turn_to_wire(ConversationTurn(role=Role.USER, content="what?", image_url="https://x/y.png"))
        assert wire["content"][1] == {"type": "image_url", "image_url": {"url": "https://x/y.png"}}

    def test_text_file(self):
        wire = turn_to_wire(ConversationTurn(role=Role.USER, content="summarize", file_data="abc"))
        assert "abc" in wire["content"][0]["text"]
        assert wire["content"][1] == {"type": "text", "text": "summarize"}

    def test_pdf(self):
        wire = turn_to_wire(ConversationTurn(
            role=Role.USER, content="read", pdf_data="data:application/pdf;base64,AA", file_name="a.pdf",
        ))
        assert wire["content"][1]["file"] == {"filename": "a.pdf", "file_data": "data:application/pdf;base64,AA"}

    def test_tool(self):
        wire = turn_to_wire(ConversationTurn(role=Role.TOOL, content="r", tool_call_id="c1", tool_name="echo"))
        assert wire == {"role": "tool", "tool_call_id": "c1", "name": "echo", "content": "r"}

    def test_assistant_with_tool_calls(self):
        wire = turn_to_wire(ConversationTurn(role=Role.ASSISTANT, tool_calls=[CALL]))
        assert wire["content"] == ""
        assert wire["tool_calls"] == [{
            "id": "c1",
            "type": "function",
            "function": {"name": "echo", "arguments": '{"message":"x"}'},
        }]


class TestBuildPayload:
    def test_basic_shape(self):
        model = ModelConfig(code="test/model")
        tools = [{"type": "function", "function": {"name": "echo"}}]
        payload = build_payload(_history(), model, tools=tools, system_prompt="sys")

        assert payload["model"] == "test/model"
        assert payload["stream"] is True
        assert payload["tool_choice"] == "auto"
        assert payload["tools"] == tools
        assert payload["usage"] == {"include": True}
        assert payload["messages"][0]["role"] == "system"
        assert [m["role"] for m in payload["messages"][1:]] == ["user", "assistant", "tool", "assistant"]
        assert "reasoning" not in payload

    def test_model_without_tools(self):
        model = ModelConfig(supports_tools=False)
        payload = build_payload(_history(), model, tools=[{"type": "function"}])
        assert "tools" not in payload
        assert "tool_choice" not in payload

    def test_reasoning_modalities_and_plugins(self):
        model = ModelConfig(
            supports_reasoning=True,
            reasoning_effort="high",
            output_modalities=["image", "text"],
            plugins=[{"id": "web"}],
            include_usage=False,
        )
        payload = build_payload([], model)
        assert payload["reasoning"] == {"effort": "high", "exclude": False, "enabled": True}
        assert payload["modalities"] == ["image", "text"]
        assert payload["plugins"] == [{"id": "web"}]
        assert "usage" not in payload

    def test_idempotent(self):
        turns = _history()
        model = ModelConfig()
        first = encode_payload(build_payload(turns, model, system_prompt="s"))
        second = encode_payload(build_payload(turns, model, system_prompt="s"))
        assert first == second
        assert json.loads(first)["messages"][1] == {"role": "user", "content": "hi"}

    def test_error_turns_never_sent(self):
        turns = [
            ConversationTurn(role=Role.USER, content="hi"),
            ConversationTurn(role=Role.ERROR, content="rate limited"),
        ]
        payload = build_payload(turns, ModelConfig())
        assert all(m["content"] != "rate limited" for m in payload["messages"])

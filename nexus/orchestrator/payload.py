"""
Outgoing request payload construction.

History filtering rules:
  - ``error`` turns are local only and never sent.
  - Assistant placeholders with no content and no tool calls are dropped.
  - A ``tool`` turn is sent only if an earlier assistant turn declared a
    tool call with the same id; orphans would be rejected upstream.

Building is a pure function of its inputs, so the same transcript always
produces the same JSON.
"""

from __future__ import annotations

import copy
import json
from typing import Any

from nexus.config import ModelConfig
from nexus.llm.types import ConversationTurn, Role


def filter_history(
    turns: list[ConversationTurn],
    exclude_id: str | None = None,
) -> list[ConversationTurn]:
    kept: list[ConversationTurn] = []
    declared: set[str] = set()
    for turn in turns:
        if turn.id == exclude_id or turn.role is Role.ERROR:
            continue
        if turn.role is Role.ASSISTANT:
            if not turn.content and not turn.tool_calls:
                continue
            declared.update(tc.id for tc in turn.tool_calls or [])
        if turn.role is Role.TOOL and turn.tool_call_id not in declared:
            continue
        kept.append(turn)
    return kept


def turn_to_wire(turn: ConversationTurn) -> dict[str, Any]:
    """Serialize one turn into a chat-completions message."""
    role = turn.role.value
    text = turn.content or ""

    if turn.role is Role.SYSTEM:
        return {
            "role": role,
            "content": [
                {"type": "text", "text": text, "cache_control": {"type": "ephemeral"}},
            ],
        }

    if turn.image_url:
        return {
            "role": role,
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": turn.image_url}},
            ],
        }

    if turn.file_data:
        return {
            "role": role,
            "content": [
                {
                    "type": "text",
                    "text": f"This is the content of a file attached by the user: {turn.file_data}",
                },
                {"type": "text", "text": text},
            ],
        }

    if turn.pdf_data:
        return {
            "role": role,
            "content": [
                {"type": "text", "text": text},
                {
                    "type": "file",
                    "file": {
                        "filename": turn.file_name or "file.pdf",
                        "file_data": turn.pdf_data,
                    },
                },
            ],
        }

    if turn.role is Role.TOOL:
        return {
            "role": "tool",
            "tool_call_id": turn.tool_call_id,
            "name": turn.tool_name,
            "content": text,
        }

    if turn.tool_calls:
        # Some providers require a string content next to tool_calls.
        return {
            "role": "assistant",
            "content": text,
            "tool_calls": [tc.to_dict() for tc in turn.tool_calls],
        }

    return {"role": role, "content": text}


def build_payload(
    turns: list[ConversationTurn],
    model: ModelConfig,
    *,
    tools: list[dict] | None = None,
    system_prompt: str | None = None,
    exclude_id: str | None = None,
) -> dict[str, Any]:
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append(turn_to_wire(ConversationTurn(role=Role.SYSTEM, content=system_prompt)))
    messages.extend(turn_to_wire(t) for t in filter_history(turns, exclude_id))

    payload: dict[str, Any] = {
        "model": model.code,
        "messages": messages,
        "stream": True,
    }
    if model.supports_tools and tools:
        payload["tools"] = copy.deepcopy(tools)
        payload["tool_choice"] = "auto"
    if model.supports_reasoning:
        payload["reasoning"] = {
            "effort": model.reasoning_effort,
            "exclude": False,
            "enabled": model.reasoning_enabled,
        }
    if model.output_modalities:
        payload["modalities"] = list(model.output_modalities)
    if model.plugins:
        payload["plugins"] = copy.deepcopy(model.plugins)
    if model.include_usage:
        payload["usage"] = {"include": True}
    return payload


def encode_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

"""
Decode chat-completion SSE payloads into ``ChunkDelta`` records.

The decoder is deliberately lenient about shape: unknown keys are ignored,
missing or mistyped keys default to empty values, and only a payload that is not a JSON
object at all is treated as a decode failure.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from nexus.llm.types import (
    ChoiceDelta,
    ChunkDelta,
    ImageDelta,
    ToolCallFragment,
    Usage,
)

logger = logging.getLogger(__name__)


class ChunkDecodeError(ValueError):
    """A single frame could not be decoded.  Never fatal for the stream."""


class ChunkDecoder:
    """Stateless translator from frame payload to ``ChunkDelta``."""

    def decode(self, payload: str) -> ChunkDelta:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ChunkDecodeError(f"invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ChunkDecodeError(f"expected object, got {type(data).__name__}")

        raw_choices = data.get("choices")
        choices = [
            self._decode_choice(raw)
            for raw in (raw_choices if isinstance(raw_choices, list) else [])
            if isinstance(raw, dict)
        ]
        return ChunkDelta(choices=choices, usage=self._decode_usage(data.get("usage")))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _decode_choice(self, raw: dict[str, Any]) -> ChoiceDelta:
        delta = _mapping(raw.get("delta"))
        finish = raw.get("finish_reason")
        if not isinstance(finish, str) or finish in ("", "null"):
            finish = None

        return ChoiceDelta(
            content=_text(delta.get("content")),
            reasoning=_text(delta.get("reasoning") or delta.get("reasoning_content")),
            images=self._decode_images(delta.get("images")),
            tool_calls=self._decode_tool_calls(delta.get("tool_calls")),
            finish_reason=finish,
        )

    @staticmethod
    def _decode_images(raw: Any) -> list[ImageDelta]:
        images: list[ImageDelta] = []
        if not isinstance(raw, list):
            return images
        for item in raw:
            if not isinstance(item, dict):
                continue
            image_url = item.get("image_url") or {}
            url = image_url.get("url") if isinstance(image_url, dict) else image_url
            kind = item.get("type")
            if isinstance(url, str) and url:
                images.append(ImageDelta(url=url, type=kind if isinstance(kind, str) else "image_url"))
        return images

    @staticmethod
    def _decode_tool_calls(raw: Any) -> list[ToolCallFragment]:
        fragments: list[ToolCallFragment] = []
        if not isinstance(raw, list):
            return fragments
        for pos, item in enumerate(raw):
            if not isinstance(item, dict):
                continue
            func = _mapping(item.get("function"))
            index = item.get("index")
            fragments.append(
                ToolCallFragment(
                    index=index if isinstance(index, int) else pos,
                    id=_string(item.get("id")) or None,
                    name=_string(func.get("name")) or None,
                    arguments=_string(func.get("arguments")),
                )
            )
        return fragments

    @staticmethod
    def _decode_usage(raw: Any) -> Usage | None:
        if not isinstance(raw, dict):
            return None
        return Usage(
            prompt_tokens=_count(raw.get("prompt_tokens")),
            completion_tokens=_count(raw.get("completion_tokens")),
            total_tokens=_count(raw.get("total_tokens")),
        )


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _count(value: Any) -> int:
    """Token counts are ints; anything else counts as zero."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return 0


def _text(value: Any) -> str:
    """Content may be a plain string or a list of ``{"text": ...}`` parts."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "".join(
            part.get("text", "")
            for part in value
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return ""

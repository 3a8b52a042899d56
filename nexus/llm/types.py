"""Core types for the streaming chat engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    ERROR = "error"


@dataclass(frozen=True)
class ToolCall:
    """A finalized tool invocation.  ``arguments`` is the raw JSON string."""

    id: str
    name: str
    arguments: str
    type: str = "function"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        func = data.get("function") or {}
        return cls(
            id=data["id"],
            name=func.get("name", ""),
            arguments=func.get("arguments", ""),
            type=data.get("type", "function"),
        )


@dataclass
class ToolCallFragment:
    """
    A partially received tool call, keyed by its stream-local index.

    ``id`` and ``name`` may arrive late; ``arguments`` only ever grows.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class ImageDelta:
    """An image emitted by the model (usually a ``data:`` URL)."""

    url: str
    type: str = "image_url"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "image_url": {"url": self.url}}


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChoiceDelta:
    """The normalized delta of one ``choices[]`` entry."""

    content: str = ""
    reasoning: str = ""
    images: list[ImageDelta] = field(default_factory=list)
    tool_calls: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: str | None = None


@dataclass
class ChunkDelta:
    """One decoded SSE frame."""

    choices: list[ChoiceDelta] = field(default_factory=list)
    usage: Usage | None = None

    @property
    def first(self) -> ChoiceDelta | None:
        return self.choices[0] if self.choices else None


@dataclass
class ConversationTurn:
    """
    A single message in a chat transcript.

    Assistant turns are created empty as placeholders and filled in place
    while streaming.  Tool turns carry ``tool_call_id`` / ``tool_name`` and
    link back to the assistant turn that declared the call.
    """

    role: Role
    content: str | None = None
    reasoning: str | None = None
    chat_id: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    images: list[ImageDelta] = field(default_factory=list)
    image_url: str | None = None
    file_data: str | None = None
    pdf_data: str | None = None
    file_name: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_args_label: str | None = None
    finish_reason: str | None = None
    token_count: int | None = None
    model_name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_visible_content(self) -> bool:
        return bool(self.content)

    def append_content(self, token: str) -> None:
        self.content = (self.content or "") + token

    def append_reasoning(self, token: str) -> None:
        self.reasoning = (self.reasoning or "") + token


class StreamStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class StreamState:
    """
    Lifecycle state of a stream.

    ``detail`` holds the finish reason for ``FINISHED`` (``None`` when the
    server closed without one) and the error message for ``FAILED``.
    """

    status: StreamStatus
    detail: str | None = None

    @classmethod
    def idle(cls) -> StreamState:
        return cls(StreamStatus.IDLE)

    @classmethod
    def connecting(cls) -> StreamState:
        return cls(StreamStatus.CONNECTING)

    @classmethod
    def streaming(cls) -> StreamState:
        return cls(StreamStatus.STREAMING)

    @classmethod
    def finished(cls, reason: str | None = None) -> StreamState:
        return cls(StreamStatus.FINISHED, reason)

    @classmethod
    def cancelled(cls) -> StreamState:
        return cls(StreamStatus.CANCELLED)

    @classmethod
    def failed(cls, message: str) -> StreamState:
        return cls(StreamStatus.FAILED, message)

    @property
    def is_active(self) -> bool:
        return self.status in (StreamStatus.CONNECTING, StreamStatus.STREAMING)

    @property
    def finish_reason(self) -> str | None:
        return self.detail if self.status is StreamStatus.FINISHED else None


def _noop(*_args: Any) -> None:
    return None


@dataclass
class StreamHandlers:
    """
    Callbacks fired by ``StreamTransport``.

    All handlers are optional.  ``on_error`` fires exactly once per failed
    stream and never for cancellation.
    """

    on_token: Callable[[str], None] = _noop
    on_reasoning: Callable[[str], None] = _noop
    on_images: Callable[[list[ImageDelta]], None] = _noop
    on_tool_call_delta: Callable[[ToolCallFragment], None] = _noop
    on_usage: Callable[[Usage], None] = _noop
    on_finish: Callable[[str | None], None] = _noop
    on_error: Callable[[str], None] = _noop
    on_state_change: Callable[[StreamState], None] = _noop

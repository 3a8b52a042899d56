"""
The chat transcript as seen by the orchestrator.

``turns`` is an in-memory mirror that the orchestrator appends to and
mutates in place while streaming; the async methods are the points where a
change becomes durable.  Only the orchestrator writes to a transcript.
"""

from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable

from nexus.llm.types import ConversationTurn, Role, ToolCall


@runtime_checkable
class Transcript(Protocol):
    chat_id: str
    turns: list[ConversationTurn]

    async def append_turn(self, turn: ConversationTurn) -> None: ...

    async def update_turn_content(self, turn_id: str, content: str | None) -> None: ...

    async def update_turn_tool_calls(self, turn_id: str, tool_calls: list[ToolCall]) -> None: ...


class InMemoryTranscript:
    """List-backed transcript with no durable storage."""

    def __init__(
        self,
        chat_id: str | None = None,
        turns: list[ConversationTurn] | None = None,
    ) -> None:
        self.chat_id = chat_id or str(uuid.uuid4())
        self.turns: list[ConversationTurn] = list(turns or [])

    # ------------------------------------------------------------------
    # Persistence interface
    # ------------------------------------------------------------------

    async def append_turn(self, turn: ConversationTurn) -> None:
        if not turn.chat_id:
            turn.chat_id = self.chat_id
        self.turns.append(turn)

    async def update_turn_content(self, turn_id: str, content: str | None) -> None:
        self.require(turn_id).content = content

    async def update_turn_tool_calls(self, turn_id: str, tool_calls: list[ToolCall]) -> None:
        self.require(turn_id).tool_calls = list(tool_calls)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find(self, turn_id: str) -> ConversationTurn | None:
        for turn in reversed(self.turns):
            if turn.id == turn_id:
                return turn
        return None

    def require(self, turn_id: str) -> ConversationTurn:
        turn = self.find(turn_id)
        if turn is None:
            raise KeyError(turn_id)
        return turn

    def __len__(self) -> int:
        return len(self.turns)


def last_user_content(turns: list[ConversationTurn]) -> str | None:
    for turn in reversed(turns):
        if turn.role is Role.USER:
            return turn.content
    return None


def answered_tool_call_ids(turns: list[ConversationTurn]) -> set[str]:
    return {t.tool_call_id for t in turns if t.role is Role.TOOL and t.tool_call_id}

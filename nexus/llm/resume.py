"""
Resume decisions after an interrupted stream.

A dropped connection is never resumed in place; both strategies start a new
request.  Once any token has been received, repeating the identical prompt
would bill and emit the same output twice, so only a continuation request is
allowed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from nexus.llm.errors import ResumeError
from nexus.llm.types import StreamState, StreamStatus

_INTERRUPTED = (StreamStatus.CANCELLED, StreamStatus.FAILED)


class ResumeStrategy(str, Enum):
    CONTINUE_FROM_PARTIAL = "continue_from_partial"
    RETRY_SAME_PROMPT = "retry_same_prompt"


def check_resume_safe(strategy: ResumeStrategy, partial_received: bool) -> None:
    """Raise ``ResumeError`` if *strategy* would duplicate emitted output."""
    if strategy is ResumeStrategy.RETRY_SAME_PROMPT and partial_received:
        raise ResumeError(
            "Unsafe resume: partial tokens were already received; "
            "use continue_from_partial"
        )


def decide_resume(
    state: StreamState,
    *,
    enabled: bool,
    partial_received: bool,
    pending_tool_calls: bool,
    has_previous_request: bool,
) -> ResumeStrategy | None:
    """
    Pick a resume strategy, or ``None`` when no resume should happen.

    Pending tool calls block resuming: the tool runner restarts the stream
    itself once every result is stored.
    """
    if not enabled or not has_previous_request or pending_tool_calls:
        return None
    if state.status not in _INTERRUPTED:
        return None
    if partial_received:
        return ResumeStrategy.CONTINUE_FROM_PARTIAL
    return ResumeStrategy.RETRY_SAME_PROMPT


def default_continuation(
    body: dict[str, Any],
    prompt: str = "Continue.",
    partial: str | None = None,
) -> list[dict[str, Any]]:
    """
    Original messages, the partial assistant output if any, then a synthetic
    user turn asking the model to continue.
    """
    messages = list(body.get("messages") or [])
    if partial:
        messages.append({"role": "assistant", "content": partial})
    messages.append({"role": "user", "content": prompt})
    return messages

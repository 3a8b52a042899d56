"""Tests for the pure resume decision in nexus.llm.resume."""

from __future__ import annotations

import pytest

from nexus.llm.errors import ResumeError
from nexus.llm.resume import (
    ResumeStrategy,
    check_resume_safe,
    decide_resume,
    default_continuation,
)
from nexus.llm.types import StreamState


def _decide(state, **overrides):
    kwargs = dict(
        enabled=True,
        partial_received=False,
        pending_tool_calls=False,
        has_previous_request=True,
    )
    kwargs.update(overrides)
    return decide_resume(state, **kwargs)


class TestDecideResume:
    def test_disabled(self):
        assert _decide(StreamState.failed("x"), enabled=False) is None

    def test_no_previous_request(self):
        assert _decide(StreamState.cancelled(), has_previous_request=False) is None

    def test_pending_tool_calls_block_resume(self):
        assert _decide(StreamState.cancelled(), pending_tool_calls=True) is None

    @pytest.mark.parametrize("state", [
        StreamState.idle(),
        StreamState.connecting(),
        StreamState.streaming(),
        StreamState.finished("stop"),
        StreamState.finished(None),
    ])
    def test_only_interrupted_states(self, state):
        assert _decide(state) is None

    def test_retry_when_nothing_received(self):
        assert _decide(StreamState.failed("Stream stalled")) is ResumeStrategy.RETRY_SAME_PROMPT

    def test_continue_after_partial(self):
        strategy = _decide(StreamState.cancelled(), partial_received=True)
        assert strategy is ResumeStrategy.CONTINUE_FROM_PARTIAL


class TestCheckResumeSafe:
    def test_retry_after_partial_refused(self):
        with pytest.raises(ResumeError, match="Unsafe resume"):
            check_resume_safe(ResumeStrategy.RETRY_SAME_PROMPT, partial_received=True)

    def test_retry_without_partial_allowed(self):
        check_resume_safe(ResumeStrategy.RETRY_SAME_PROMPT, partial_received=False)

    def test_continue_always_allowed(self):
        check_resume_safe(ResumeStrategy.CONTINUE_FROM_PARTIAL, partial_received=True)


class TestDefaultContinuation:
    def test_appends_prompt(self):
        body = {"messages": [{"role": "user", "content": "hi"}]}
        messages = default_continuation(body, "Go on.")
        assert messages[-1] == {"role": "user", "content": "Go on."}
        assert len(body["messages"]) == 1

    def test_includes_partial(self):
        body = {"messages": [{"role": "user", "content": "hi"}]}
        messages = default_continuation(body, partial="Hel")
        assert messages[1:] == [
            {"role": "assistant", "content": "Hel"},
            {"role": "user", "content": "Continue."},
        ]

"""
Streaming transport for OpenAI-compatible ``/chat/completions`` endpoints.

Owns one HTTP/SSE connection at a time and drives it through::

    idle -> connecting -> streaming -> finished(reason) | cancelled | failed(message)

Responsibilities:
  - Force ``stream=true`` and request ``text/event-stream``.
  - Divert the body of a >=400 response into an error buffer and surface the
    provider's ``error.message`` instead of SSE-parsing it.
  - Abort connections that go silent for longer than ``stall_timeout``
    (heartbeat comments count as traffic) or outlive ``resource_timeout``.
  - Close a connection left open more than ``finish_grace`` after the finish
    reason, so tool execution never waits on the server hanging up.
  - Route every failure through a single path that fires ``on_error`` once.
  - Never retry on its own; resuming is the caller's decision.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable

import httpx

from nexus.llm.decoder import ChunkDecodeError, ChunkDecoder
from nexus.llm.errors import ProviderHTTPError, ResumeError
from nexus.llm.resume import ResumeStrategy, check_resume_safe
from nexus.llm.sse import DONE, SSEFrameParser, extract_data_payload
from nexus.llm.tool_call_assembler import ToolCallAccumulator
from nexus.llm.types import (
    ChoiceDelta,
    StreamHandlers,
    StreamState,
    StreamStatus,
    ToolCall,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://openrouter.ai/api/v1"
STALLED_MESSAGE = "Stream stalled"


def force_stream(body: dict[str, Any]) -> dict[str, Any]:
    copy = dict(body)
    copy["stream"] = True
    return copy


class StreamTransport:
    """
    Single-stream SSE client.

    Parameters
    ----------
    api_key_provider:
        Called at every ``start()`` so a rotated key is always picked up.
    url:
        Base URL of the API, e.g. ``"https://openrouter.ai/api/v1"``.
    referer, title:
        Optional OpenRouter attribution headers.
    stall_timeout:
        Seconds without any received byte before the stream is failed.
    watchdog_interval:
        How often the stall watchdog wakes up.
    request_timeout:
        Per-operation HTTP timeout (connect, read, write).
    resource_timeout:
        Upper bound on the lifetime of one stream, live or not.
    finish_grace:
        Seconds the connection may stay open after a finish reason before
        it is closed from this side.
    http_transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        api_key_provider: Callable[[], str | None],
        *,
        url: str = DEFAULT_API_BASE,
        referer: str | None = None,
        title: str | None = None,
        stall_timeout: float = 20.0,
        watchdog_interval: float = 2.0,
        request_timeout: float = 120.0,
        resource_timeout: float = 600.0,
        finish_grace: float = 1.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key_provider = api_key_provider
        self._url = url.rstrip("/")
        self._referer = referer
        self._title = title
        self._stall_timeout = stall_timeout
        self._watchdog_interval = watchdog_interval
        self._request_timeout = request_timeout
        self._resource_timeout = resource_timeout
        self._finish_grace = finish_grace
        self._http_transport = http_transport

        self._decoder = ChunkDecoder()
        self._parser = SSEFrameParser()
        self._accumulator = ToolCallAccumulator()
        self._handlers = StreamHandlers()

        self._state = StreamState.idle()
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None

        self._last_body: dict[str, Any] | None = None
        self._last_finish_reason: str | None = None
        self._last_usage: Usage | None = None
        self._pending_tool_call_ids: list[str] = []
        self._partial_received = False
        self._status_code: int | None = None
        self._error_buffer = bytearray()
        self._started_at = 0.0
        self._last_event_at = 0.0
        self._finished_at = 0.0

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def partial_received(self) -> bool:
        """True once any content, reasoning, image or tool-call delta arrived."""
        return self._partial_received

    @property
    def pending_tool_call_ids(self) -> list[str]:
        return list(self._pending_tool_call_ids)

    @property
    def has_pending_tool_calls(self) -> bool:
        return bool(self._pending_tool_call_ids)

    @property
    def last_body(self) -> dict[str, Any] | None:
        return self._last_body

    @property
    def last_finish_reason(self) -> str | None:
        return self._last_finish_reason

    @property
    def last_usage(self) -> Usage | None:
        return self._last_usage

    @property
    def status_code(self) -> int | None:
        return self._status_code

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        body: dict[str, Any],
        handlers: StreamHandlers | None = None,
    ) -> None:
        """
        Start streaming *body*.  A stream that is still running is cancelled
        first.  Must be called from inside a running event loop.
        """
        self.stop(save_partial=True)
        self._generation += 1
        gen = self._generation

        if handlers is not None:
            self._handlers = handlers
        self._parser = SSEFrameParser()
        self._accumulator.reset()
        self._pending_tool_call_ids = []
        self._partial_received = False
        self._last_finish_reason = None
        self._last_usage = None
        self._status_code = None
        self._error_buffer.clear()
        self._last_body = body

        self._set_state(StreamState.connecting())

        api_key = self._api_key_provider()
        if not api_key:
            self._fail("Missing API key")
            return

        self._started_at = self._last_event_at = time.monotonic()
        self._task = asyncio.create_task(self._run(gen, force_stream(body), api_key))
        self._watchdog_task = asyncio.create_task(self._watchdog(gen))

    async def wait(self) -> StreamState:
        """
        Wait for the current stream to end and return its terminal state.

        A stream superseded by a newer ``start()`` reports ``cancelled``.
        """
        gen = self._generation
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})
        if gen != self._generation:
            return StreamState.cancelled()
        return self._state

    async def stream(
        self,
        body: dict[str, Any],
        handlers: StreamHandlers | None = None,
    ) -> StreamState:
        """Convenience: ``start()`` then ``wait()``."""
        self.start(body, handlers)
        return await self.wait()

    def stop(self, save_partial: bool = True) -> None:
        """
        Abort the current stream.  What happens to partially rendered output
        is up to the caller; *save_partial* is only recorded in the log.
        """
        self._abort()
        if self._state.is_active:
            logger.info("Stream cancelled (save_partial=%s)", save_partial)
            self._set_state(StreamState.cancelled())

    def resume(
        self,
        strategy: ResumeStrategy,
        original_body: dict[str, Any] | None = None,
        continued_messages: list[dict[str, Any]] | None = None,
        handlers: StreamHandlers | None = None,
    ) -> None:
        """
        Start a new request after an interruption.

        ``RETRY_SAME_PROMPT`` is refused once tokens were received;
        ``CONTINUE_FROM_PARTIAL`` requires *continued_messages*.  A refusal
        issues no request; it moves to ``failed`` and fires ``on_error``.
        """
        if handlers is not None:
            self._handlers = handlers
        body = original_body if original_body is not None else self._last_body
        try:
            if body is None:
                raise ResumeError("Nothing to resume")
            check_resume_safe(strategy, self._partial_received)
            if strategy is ResumeStrategy.CONTINUE_FROM_PARTIAL:
                if continued_messages is None:
                    raise ResumeError(
                        "Missing continued messages for continue_from_partial"
                    )
                body = {**body, "messages": continued_messages}
        except ResumeError as exc:
            logger.warning("Resume refused: %s", exc)
            self._refuse(str(exc))
            return

        logger.info("Resuming stream with strategy=%s", strategy.value)
        self.start(body, self._handlers)

    def finalize_tool_calls(self, order: list[int] | None = None) -> list[ToolCall]:
        """Complete tool calls accumulated by the current stream."""
        return self._accumulator.finalize(order)

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def _build_headers(self, api_key: str) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {api_key}",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title
        return headers

    async def _run(self, gen: int, body: dict[str, Any], api_key: str) -> None:
        url = f"{self._url}/chat/completions"
        logger.info(
            "REQUEST: model=%s messages=%d tools=%d",
            body.get("model"),
            len(body.get("messages") or []),
            len(body.get("tools") or []),
        )
        try:
            async with httpx.AsyncClient(
                timeout=self._request_timeout, transport=self._http_transport
            ) as client:
                async with client.stream(
                    "POST", url, json=body, headers=self._build_headers(api_key)
                ) as response:
                    await self._consume(gen, response)
            if self._is_current(gen):
                self._complete()
        except ProviderHTTPError as exc:
            if self._is_current(gen):
                self._fail(exc.message)
        except httpx.HTTPError as exc:
            if self._is_current(gen):
                self._fail(str(exc) or type(exc).__name__)
        except asyncio.CancelledError:
            if self._is_current(gen) and self._state.is_active:
                self._set_state(StreamState.cancelled())
            raise
        except Exception as exc:
            logger.exception("Stream handler failed")
            if self._is_current(gen):
                self._fail(str(exc) or type(exc).__name__)
        finally:
            if self._is_current(gen):
                self._cancel_watchdog()

    async def _consume(self, gen: int, response: httpx.Response) -> None:
        self._status_code = response.status_code
        is_error = response.status_code >= 400
        if not is_error:
            self._set_state(StreamState.streaming())

        async for raw in response.aiter_bytes():
            if not self._is_current(gen):
                return
            self._last_event_at = time.monotonic()
            if is_error:
                self._error_buffer.extend(raw)
                continue
            for frame in self._parser.feed(raw):
                if self._handle_frame(frame):
                    return

        if is_error:
            raise ProviderHTTPError(response.status_code, self._error_message())

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------

    def _handle_frame(self, frame: str) -> bool:
        """Process one frame; return True on the ``[DONE]`` sentinel."""
        payload = extract_data_payload(frame)
        if payload is None:
            return False
        if payload == DONE:
            return True

        logger.debug("Chunk: %s", payload[:500])
        try:
            chunk = self._decoder.decode(payload)
        except ChunkDecodeError as exc:
            logger.warning("Skipping undecodable frame: %s (%s)", exc, payload[:200])
            return False

        if chunk.usage is not None:
            self._last_usage = chunk.usage
            self._handlers.on_usage(chunk.usage)

        choice = chunk.first
        if choice is not None and self._state.status is StreamStatus.STREAMING:
            self._handle_choice(choice)
        return False

    def _handle_choice(self, choice: ChoiceDelta) -> None:
        if choice.images:
            self._partial_received = True
            self._handlers.on_images(choice.images)

        if choice.reasoning:
            self._partial_received = True
            self._handlers.on_reasoning(choice.reasoning)

        if choice.content:
            self._partial_received = True
            self._handlers.on_token(choice.content)

        for fragment in choice.tool_calls:
            self._partial_received = True
            self._handlers.on_tool_call_delta(self._accumulator.ingest(fragment))

        if choice.finish_reason:
            self._finish(choice.finish_reason)

    def _finish(self, reason: str) -> None:
        self._last_finish_reason = reason
        self._finished_at = time.monotonic()
        if reason == "tool_calls":
            # Ids the execution layer must answer before the stream resumes.
            self._pending_tool_call_ids = self._accumulator.ids
        else:
            self._pending_tool_call_ids = []
        self._set_state(StreamState.finished(reason))
        self._handlers.on_finish(reason)

    def _complete(self) -> None:
        """Connection closed cleanly; no finish reason means a normal stop."""
        if self._state.status is StreamStatus.STREAMING:
            self._set_state(StreamState.finished(None))
            self._handlers.on_finish(None)

    def _error_message(self) -> str:
        code = self._status_code
        try:
            obj = json.loads(bytes(self._error_buffer))
        except ValueError:
            return f"HTTP {code}"
        err = obj.get("error") if isinstance(obj, dict) else None
        if not isinstance(err, dict):
            return f"HTTP {code}"
        metadata = err.get("metadata")
        if isinstance(metadata, dict) and metadata.get("raw"):
            # Provider internals: log only, never shown to the user.
            logger.debug("Provider raw error: %s", metadata["raw"])
        message = err.get("message")
        return message if isinstance(message, str) and message else f"HTTP {code}"

    # ------------------------------------------------------------------
    # Watchdog / failure path
    # ------------------------------------------------------------------

    async def _watchdog(self, gen: int) -> None:
        while self._is_current(gen):
            await asyncio.sleep(self._watchdog_interval)
            if not self._is_current(gen):
                return
            now = time.monotonic()
            if self._state.status is StreamStatus.FINISHED:
                # Trailing usage frames may still arrive; the stall clock no longer applies.
                if now - self._finished_at > self._finish_grace:
                    self._close_after_finish()
                    return
                continue
            if now - self._last_event_at > self._stall_timeout:
                logger.warning("No bytes for %.1fs, aborting stream", self._stall_timeout)
                self._fail(STALLED_MESSAGE)
                return
            if now - self._started_at > self._resource_timeout:
                self._fail(f"Stream exceeded {self._resource_timeout:.0f}s")
                return

    def _close_after_finish(self) -> None:
        task = self._task
        if task is not None and not task.done():
            logger.debug("Connection still open %.1fs after finish, closing", self._finish_grace)
            task.cancel()

    def _fail(self, message: str) -> None:
        """
        Single failure path: tear down, move to ``failed`` and fire
        ``on_error`` once.  After a finish reason the teardown is silent.
        """
        self._abort()
        if self._state.status in (StreamStatus.FINISHED, StreamStatus.FAILED):
            return
        logger.warning("Stream failed: %s", message)
        self._set_state(StreamState.failed(message))
        self._handlers.on_error(message)

    def _refuse(self, message: str) -> None:
        """Report a refused request regardless of how the previous one ended."""
        self._abort()
        self._generation += 1
        self._task = None
        self._set_state(StreamState.failed(message))
        self._handlers.on_error(message)

    def _abort(self) -> None:
        self._cancel_watchdog()
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _cancel_watchdog(self) -> None:
        task = self._watchdog_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._watchdog_task = None

    def _is_current(self, gen: int) -> bool:
        return gen == self._generation

    def _set_state(self, state: StreamState) -> None:
        self._state = state
        logger.debug("Stream state -> %s %s", state.status.value, state.detail or "")
        self._handlers.on_state_change(state)

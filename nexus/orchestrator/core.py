"""
Orchestrator core -- drives one chat through stream and tool rounds.

The orchestrator:
1. Appends the user turn and an empty assistant placeholder
2. Builds the request payload from the transcript
3. Streams the reply into the placeholder via ``StreamTransport``
4. On ``finish_reason == "tool_calls"`` runs the tools and streams again
5. Stops on a normal finish, cancellation, failure or the round limit

It is the only writer of the transcript.  Tool tasks hand their result turns
back through ``ToolExecutionCoordinator`` which appends them after all calls
have completed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from nexus.config import ModelConfig, StreamConfig
from nexus.llm.resume import ResumeStrategy, decide_resume, default_continuation
from nexus.llm.transport import StreamTransport
from nexus.llm.types import (
    ConversationTurn,
    ImageDelta,
    Role,
    StreamHandlers,
    StreamState,
    StreamStatus,
)
from nexus.orchestrator.payload import build_payload
from nexus.orchestrator.tool_runner import ToolExecutionCoordinator
from nexus.session.transcript import Transcript
from nexus.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

ContinuationBuilder = Callable[[dict[str, Any]], list[dict[str, Any]] | None]


class ConversationOrchestrator:
    """
    Parameters
    ----------
    transcript : Transcript
        Chat being extended.
    transport : StreamTransport
        SSE client; at most one stream is live at a time.
    registry : ToolRegistry
        Tools offered to the model and executed on its request.
    model : ModelConfig
        Model code and request capabilities.
    stream_config : StreamConfig
        Resume and tool round settings.
    system_prompt : str
        Prepended to every request when non-empty.
    tool_timeout : float
        Max seconds for a single tool execution.
    listener : StreamHandlers
        UI callbacks, invoked after the transcript has been updated.
    continuation_builder : callable
        Builds the messages of a ``continue_from_partial`` request from the
        interrupted body.  Returning ``None`` skips the resume.
    """

    def __init__(
        self,
        transcript: Transcript,
        transport: StreamTransport,
        registry: ToolRegistry,
        model: ModelConfig | None = None,
        stream_config: StreamConfig | None = None,
        system_prompt: str = "",
        tool_timeout: float = 60.0,
        listener: StreamHandlers | None = None,
        continuation_builder: ContinuationBuilder | None = None,
    ) -> None:
        self.transcript = transcript
        self.transport = transport
        self.registry = registry
        self.model = model or ModelConfig()
        self.stream_config = stream_config or StreamConfig()
        self.system_prompt = system_prompt
        self.listener = listener or StreamHandlers()
        self.continuation_builder = continuation_builder or self._default_continuation
        self.coordinator = ToolExecutionCoordinator(registry, transcript, tool_timeout)

        self._placeholder: ConversationTurn | None = None
        self._interrupted: ConversationTurn | None = None
        self._save_partial = True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def placeholder(self) -> ConversationTurn | None:
        """The assistant turn currently receiving tokens, if any."""
        return self._placeholder

    @property
    def state(self) -> StreamState:
        return self.transport.state

    async def send(
        self,
        content: str,
        *,
        image_url: str | None = None,
        file_data: str | None = None,
        pdf_data: str | None = None,
        file_name: str | None = None,
    ) -> StreamState:
        """Append a user turn and stream the reply, including tool rounds."""
        turn = ConversationTurn(
            role=Role.USER,
            content=content,
            chat_id=self.transcript.chat_id,
            image_url=image_url,
            file_data=file_data,
            pdf_data=pdf_data,
            file_name=file_name,
        )
        self._interrupted = None
        await self.transcript.append_turn(turn)
        return await self.stream()

    async def stream(self) -> StreamState:
        """Stream a reply to the transcript as it stands."""
        placeholder = await self._open_placeholder()
        return await self._drive(placeholder)

    def build_payload(self, exclude_id: str | None = None) -> dict[str, Any]:
        return build_payload(
            self.transcript.turns,
            self.model,
            tools=self.registry.function_definitions(),
            system_prompt=self.system_prompt,
            exclude_id=exclude_id,
        )

    def stop(self, save_partial: bool = True) -> None:
        """
        Cancel the live stream.  With *save_partial* the text received so far
        is kept on the assistant turn, otherwise it is discarded.
        """
        self._save_partial = save_partial
        self.transport.stop(save_partial)

    def on_background(self) -> None:
        if self.transport.state.is_active:
            logger.info("Backgrounded with a live stream, cancelling")
            self.stop(save_partial=True)

    async def on_foreground(self) -> StreamState | None:
        """Resume an interrupted stream if auto-resume allows it."""
        strategy = decide_resume(
            self.transport.state,
            enabled=self.stream_config.auto_resume_on_foreground,
            partial_received=self.transport.partial_received,
            pending_tool_calls=self.transport.has_pending_tool_calls,
            has_previous_request=self.transport.last_body is not None,
        )
        if strategy is None:
            return None
        return await self.resume(strategy)

    async def resume(self, strategy: ResumeStrategy) -> StreamState | None:
        """
        Start a new request after an interruption.  The reply goes into a
        fresh assistant turn.  Returns ``None`` when the continuation builder
        declined to produce messages.
        """
        original = self.transport.last_body
        continued = None
        if strategy is ResumeStrategy.CONTINUE_FROM_PARTIAL and original is not None:
            continued = self.continuation_builder(original)
            if continued is None:
                logger.info("Continuation builder declined, not resuming")
                return None

        placeholder = await self._open_placeholder()

        def launch(handlers: StreamHandlers) -> None:
            self.transport.resume(strategy, original, continued, handlers=handlers)

        return await self._drive(placeholder, launch)

    # ------------------------------------------------------------------
    # Stream rounds
    # ------------------------------------------------------------------

    async def _drive(
        self,
        placeholder: ConversationTurn,
        launch: Callable[[StreamHandlers], None] | None = None,
    ) -> StreamState:
        rounds = 0
        while True:
            handlers = self._handlers_for(placeholder)
            if launch is not None:
                launch(handlers)
                launch = None
            else:
                self.transport.start(self.build_payload(exclude_id=placeholder.id), handlers)
            state = await self.transport.wait()

            if state.finish_reason != "tool_calls":
                await self._settle(placeholder, state)
                return state

            tool_calls = self.transport.finalize_tool_calls()
            if not tool_calls:
                logger.warning("finish_reason=tool_calls without any complete tool call")
                await self._settle(placeholder, state)
                return state

            rounds += 1
            if rounds > self.stream_config.max_tool_rounds:
                await self._settle(placeholder, state)
                await self._append_error(
                    f"Stopped after {self.stream_config.max_tool_rounds} tool call rounds"
                )
                return state

            carrier = placeholder
            if placeholder.has_visible_content:
                # Text streamed before the tool calls stays its own turn.
                placeholder.finish_reason = "tool_calls"
                await self.transcript.update_turn_content(placeholder.id, placeholder.content)
                carrier = ConversationTurn(
                    role=Role.ASSISTANT,
                    chat_id=self.transcript.chat_id,
                    model_name=self.model.code,
                )
                await self.transcript.append_turn(carrier)
            self._placeholder = None

            await self.coordinator.run(carrier, tool_calls)
            placeholder = await self._open_placeholder()

    async def _open_placeholder(self) -> ConversationTurn:
        turn = ConversationTurn(
            role=Role.ASSISTANT,
            chat_id=self.transcript.chat_id,
            model_name=self.model.code,
        )
        await self.transcript.append_turn(turn)
        self._placeholder = turn
        self._save_partial = True
        return turn

    def _handlers_for(self, placeholder: ConversationTurn) -> StreamHandlers:
        ui = self.listener

        def on_token(token: str) -> None:
            placeholder.append_content(token)
            ui.on_token(token)

        def on_reasoning(token: str) -> None:
            placeholder.append_reasoning(token)
            ui.on_reasoning(token)

        def on_images(images: list[ImageDelta]) -> None:
            placeholder.images.extend(images)
            ui.on_images(images)

        return StreamHandlers(
            on_token=on_token,
            on_reasoning=on_reasoning,
            on_images=on_images,
            on_tool_call_delta=ui.on_tool_call_delta,
            on_usage=ui.on_usage,
            on_finish=ui.on_finish,
            on_error=ui.on_error,
            on_state_change=ui.on_state_change,
        )

    async def _settle(self, placeholder: ConversationTurn, state: StreamState) -> None:
        """Persist the placeholder according to how its stream ended."""
        self._placeholder = None

        if state.status is StreamStatus.FINISHED:
            self._interrupted = None
            reason = state.finish_reason
            if reason not in (None, "stop", "tool_calls"):
                logger.warning("Stream finished with reason %s", reason)
            placeholder.finish_reason = reason or "stop"
            usage = self.transport.last_usage
            if usage is not None:
                placeholder.token_count = usage.total_tokens
        elif state.status is StreamStatus.CANCELLED and not self._save_partial:
            placeholder.content = None
            placeholder.reasoning = None
            placeholder.images.clear()

        if state.status is not StreamStatus.FINISHED and (
            placeholder.content or placeholder.reasoning or placeholder.images
        ):
            # An empty placeholder (e.g. a refused resume) keeps the earlier partial.
            self._interrupted = placeholder

        await self.transcript.update_turn_content(placeholder.id, placeholder.content)

        if state.status is StreamStatus.FAILED:
            await self._append_error(state.detail or "Stream failed")

    async def _append_error(self, message: str) -> None:
        await self.transcript.append_turn(
            ConversationTurn(role=Role.ERROR, content=message, chat_id=self.transcript.chat_id)
        )

    def _default_continuation(self, body: dict[str, Any]) -> list[dict[str, Any]]:
        partial = self._interrupted.content if self._interrupted is not None else None
        return default_continuation(body, self.stream_config.continue_prompt, partial)

"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import signal

from rich.console import Console
from rich.markup import escape

from nexus.cli.output import OutputFormatter
from nexus.llm.resume import decide_resume
from nexus.llm.types import (
    ImageDelta,
    Role,
    StreamHandlers,
    StreamState,
    StreamStatus,
    ToolCallFragment,
)
from nexus.orchestrator.core import ConversationOrchestrator


class ChatHandler:
    """
    Manages the interactive chat loop.

    Renders streamed tokens as they arrive and handles inline commands.
    Ctrl-C while a reply is streaming stops it and keeps the partial text.
    """

    def __init__(
        self,
        orchestrator: ConversationOrchestrator | None = None,
        console: Console | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self._running = True
        self._announced: set[int] = set()

    # ------------------------------------------------------------------
    # Stream callbacks
    # ------------------------------------------------------------------

    def stream_handlers(self) -> StreamHandlers:
        return StreamHandlers(
            on_token=self._on_token,
            on_reasoning=self._on_reasoning,
            on_images=self._on_images,
            on_tool_call_delta=self._on_tool_call_delta,
            on_error=self._on_error,
            on_state_change=self._on_state_change,
        )

    def _on_token(self, token: str) -> None:
        self.console.print(token, end="", markup=False, highlight=False)

    def _on_reasoning(self, token: str) -> None:
        self.console.print(token, end="", style="dim italic", markup=False, highlight=False)

    def _on_images(self, images: list[ImageDelta]) -> None:
        self.console.print(f"\n[magenta]\\[{len(images)} image(s) generated][/magenta]")

    def _on_tool_call_delta(self, fragment: ToolCallFragment) -> None:
        if fragment.name and fragment.index not in self._announced:
            self._announced.add(fragment.index)
            self.console.print(f"\n[dim]calling {fragment.name}...[/dim]")

    def _on_error(self, message: str) -> None:
        self.console.print(f"\n[red]Error:[/red] {escape(message)}")

    def _on_state_change(self, state: StreamState) -> None:
        if state.status is StreamStatus.CONNECTING:
            self._announced.clear()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        assert self.orchestrator is not None
        cmd = command.strip().split(None, 1)[0].lower()

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/history":
            self.formatter.format_turns(self.orchestrator.transcript.turns)
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.orchestrator.registry.list())
            return True

        if cmd == "/resume":
            transport = self.orchestrator.transport
            strategy = decide_resume(
                transport.state,
                enabled=True,
                partial_received=transport.partial_received,
                pending_tool_calls=transport.has_pending_tool_calls,
                has_previous_request=transport.last_body is not None,
            )
            if strategy is None:
                self.console.print("  [dim]Nothing to resume.[/dim]")
                return True
            self.console.print(f"[dim]assistant ({strategy.value})>[/dim] ", end="")
            await self._run_stream(self.orchestrator.resume(strategy))
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit     - Exit the chat\n"
                "  /history  - Show the transcript\n"
                "  /tools    - List available tools\n"
                "  /resume   - Resume an interrupted reply\n"
                "  /help     - Show this help\n"
                "  Ctrl-C while streaming stops the reply.\n"
            )
            return True

        return False

    # ------------------------------------------------------------------
    # Input loop
    # ------------------------------------------------------------------

    async def handle_input(self, user_input: str) -> None:
        """Send user input through the orchestrator and stream the reply."""
        assert self.orchestrator is not None
        await self._run_stream(self.orchestrator.send(user_input))

    async def _run_stream(self, coro) -> StreamState | None:
        assert self.orchestrator is not None
        turns = self.orchestrator.transcript.turns
        start = len(turns)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.orchestrator.stop)
            installed = True
        except (NotImplementedError, RuntimeError):
            installed = False

        try:
            state = await coro
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

        self.console.print()
        for turn in turns[start:]:
            if turn.role is Role.TOOL:
                self.formatter.format_tool_turn(turn)

        if state is not None and state.status is StreamStatus.CANCELLED:
            self.console.print("[dim](stopped, /resume to continue)[/dim]")
        return state

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]Nexus[/bold] - streaming chat with tools\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)

"""
Concurrent execution of the tool calls announced by one assistant turn.

Every call runs in its own task and produces exactly one ``tool`` turn, with
either the tool's output or a readable error.  A failing tool never cancels
its siblings.  Results are appended to the transcript only after all calls
have finished, in the order the model declared them, so the transcript
keeps a single writer.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time

from nexus.llm.types import ConversationTurn, Role, ToolCall
from nexus.session.transcript import Transcript, answered_tool_call_ids, last_user_content
from nexus.tools.base import ToolError
from nexus.tools.registry import ToolRegistry
from nexus.tools.validation import ToolValidator, parse_arguments

logger = logging.getLogger(__name__)


class ToolExecutionCoordinator:
    """
    Parameters
    ----------
    registry : ToolRegistry
        Tools resolved by name at dispatch time.
    transcript : Transcript
        Chat the results are attached to.
    tool_timeout : float
        Max seconds for a single tool execution.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        transcript: Transcript,
        tool_timeout: float = 60.0,
    ) -> None:
        self.registry = registry
        self.transcript = transcript
        self.tool_timeout = tool_timeout

    async def run(
        self,
        assistant_turn: ConversationTurn,
        tool_calls: list[ToolCall],
    ) -> list[ConversationTurn]:
        """
        Attach *tool_calls* to *assistant_turn*, execute them concurrently and
        store one tool turn per call.  Returns the new tool turns.
        """
        await self.transcript.update_turn_tool_calls(assistant_turn.id, tool_calls)

        answered = answered_tool_call_ids(self.transcript.turns)
        pending = [c for c in tool_calls if c.id not in answered]
        if len(pending) < len(tool_calls):
            logger.info("Skipping %d already answered tool calls", len(tool_calls) - len(pending))

        auxiliary = last_user_content(self.transcript.turns)
        logger.info("Executing %d tool calls: %s", len(pending), ", ".join(c.name for c in pending))

        results = await asyncio.gather(*(self.execute(call, auxiliary) for call in pending))

        for turn in results:
            await self.transcript.append_turn(turn)
        return list(results)

    async def execute(self, call: ToolCall, auxiliary: str | None = None) -> ConversationTurn:
        """Run a single call.  Never raises for tool-level failures."""
        turn = ConversationTurn(
            role=Role.TOOL,
            chat_id=self.transcript.chat_id,
            tool_call_id=call.id,
            tool_name=call.name,
        )

        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning("No handler for tool %s", call.name)
            turn.content = json.dumps({"error": f"No handler for tool: {call.name}"})
            return turn

        start = time.monotonic()
        try:
            try:
                args = parse_arguments(call.arguments)
            except ToolError:
                if not tool.accepts_raw_arguments:
                    raise
                args = {}
            turn.tool_args_label = tool.describe_call(args)
            if not tool.accepts_raw_arguments:
                valid, error_msg = ToolValidator.validate(tool, args)
                if not valid:
                    raise ToolError(f"invalid arguments: {error_msg}")
            result = await asyncio.wait_for(
                tool.execute(call.arguments, auxiliary),
                timeout=self.tool_timeout,
            )
            turn.content = result.strip()
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", call.name, self.tool_timeout)
            turn.content = f"Error executing {tool.display_name}: timed out after {self.tool_timeout:g}s"
        except Exception as e:
            logger.warning("Tool %s failed: %s", call.name, e)
            turn.content = f"Error executing {tool.display_name}: {e}"

        logger.debug(
            "Tool %s (%s) finished in %dms",
            call.name, call.id, int((time.monotonic() - start) * 1000),
        )
        return turn

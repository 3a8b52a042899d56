"""Mock tool implementations for testing."""

import asyncio

from nexus.tools.base import Tool, ToolError, ToolKind
from nexus.tools.validation import parse_arguments


class EchoTool(Tool):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echoes the input message back."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        }

    def describe_call(self, arguments: dict) -> str | None:
        return f"Echoing {arguments.get('message')!r}"

    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        self.calls.append((arguments, auxiliary))
        return f"  {parse_arguments(arguments)['message']}\n"


class FailingTool(Tool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    @property
    def display_name(self) -> str:
        return "web search"

    @property
    def kind(self) -> ToolKind:
        return ToolKind.WEB_SEARCH

    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        raise ToolError("upstream unavailable")


class SlowTool(Tool):
    def __init__(self, delay: float = 5.0) -> None:
        self.delay = delay

    @property
    def name(self) -> str:
        return "sleepy"

    @property
    def description(self) -> str:
        return "Sleeps before answering."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        await asyncio.sleep(self.delay)
        return "finally"

from __future__ import annotations

from typing import Iterable

from nexus.tools.base import Tool, ToolKind


class ToolRegistry:
    """Closed name -> tool map, built once at startup."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def kind_of(self, name: str) -> ToolKind:
        t = self.get(name)
        return t.kind if t else ToolKind.GENERIC

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.list()]

    def function_definitions(self) -> list[dict]:
        return [t.as_function_definition() for t in self.list()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class ToolKind(str, Enum):
    WEB_SEARCH = "web_search"
    CRAWL = "crawl"
    FILE = "file"
    GENERIC = "generic"


class ToolError(Exception):
    """A tool could not produce a result."""


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("additionalProperties", False)
    return s


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def kind(self) -> ToolKind:
        return ToolKind.GENERIC

    @property
    def display_name(self) -> str:
        """Used in error strings, e.g. ``Error executing web search: ...``."""
        return self.name.replace("_", " ")

    @property
    def accepts_raw_arguments(self) -> bool:
        """
        True when the tool parses its own argument string and reports
        argument problems itself.  Such tools skip schema validation.
        """
        return False

    def describe_call(self, arguments: dict[str, Any]) -> str | None:
        """Short human label for an invocation, shown next to the tool turn."""
        return None

    @abstractmethod
    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        """
        Run the tool.

        *arguments* is the raw JSON string produced by the model; *auxiliary*
        carries optional context such as the latest user message.
        """
        ...

    def as_function_definition(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }

from __future__ import annotations

from urllib.parse import urlparse

from nexus.tools.base import Tool, ToolError, ToolKind
from nexus.tools.exa import ExaClient, ExaResult
from nexus.tools.validation import parse_arguments


class WebSearchTool(Tool):
    def __init__(self, client: ExaClient, num_results: int = 5) -> None:
        self._client = client
        self._num_results = num_results

    @property
    def name(self) -> str:
        return "search_web"

    @property
    def description(self) -> str:
        return "Search the web for up-to-date information"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Query to feed to a search engine",
                },
            },
            "required": ["query"],
        }

    @property
    def kind(self) -> ToolKind:
        return ToolKind.WEB_SEARCH

    @property
    def display_name(self) -> str:
        return "web search"

    def describe_call(self, arguments: dict) -> str | None:
        query = arguments.get("query")
        return f'Searching for "{query}"' if query else None

    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        query = str(parse_arguments(arguments).get("query") or "").strip()
        if not query:
            raise ToolError("'query' cannot be empty")
        results = await self._client.search(query, num_results=self._num_results)
        return "\n\n".join(_format_result(r) for r in results)


def _format_result(result: ExaResult) -> str:
    title = (result.title or "").strip()
    if not title:
        title = urlparse(result.url).hostname or result.url
    content = (result.text or "").strip()
    return f"{title} - {result.url}\n{content}"

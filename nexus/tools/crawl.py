from __future__ import annotations

import json

from nexus.tools.base import Tool, ToolKind
from nexus.tools.exa import ExaClient


class CrawlTool(Tool):
    """Fetches the text of one or more web pages."""

    def __init__(self, client: ExaClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "get_webpage_info"

    @property
    def description(self) -> str:
        return "Obtain the content of webpages with the specified urls"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "urls": {
                    "type": "array",
                    "description": "Array of webpage URLs to fetch",
                    "items": {"type": "string", "format": "uri"},
                    "minItems": 1,
                },
            },
            "required": ["urls"],
            "additionalProperties": False,
        }

    @property
    def kind(self) -> ToolKind:
        return ToolKind.CRAWL

    @property
    def display_name(self) -> str:
        return "crawl webpage"

    @property
    def accepts_raw_arguments(self) -> bool:
        return True

    def describe_call(self, arguments: dict) -> str | None:
        urls = arguments.get("urls") or []
        if not urls:
            return None
        return f"Reading {urls[0]}" if len(urls) == 1 else f"Reading {len(urls)} pages"

    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        urls = parse_urls(arguments)
        if not urls:
            return json.dumps({"error": "get_webpage_info: 'urls' cannot be empty."})

        results = await self._client.crawl(urls)
        return "".join(
            f"URL: {r.url} TEXT: {r.text or 'No content available'}\n" for r in results
        )


def parse_urls(arguments: str) -> list[str]:
    """JSON ``{"urls": [...]}`` first, then a legacy ``;``-separated string."""
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError:
        decoded = None
    if isinstance(decoded, dict):
        urls = decoded.get("urls")
        if not isinstance(urls, list):
            return []
        return [str(u).strip() for u in urls if str(u).strip()]
    return [part.strip() for part in arguments.split(";") if part.strip()]

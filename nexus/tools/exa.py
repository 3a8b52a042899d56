"""
Minimal async client for the Exa search API (``/search`` and ``/contents``).

Both endpoints answer ``{"results": [...]}``; only the result list is
returned to callers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

EXA_API_BASE = "https://api.exa.ai"


class ExaClientError(Exception):
    pass


@dataclass(frozen=True)
class ExaResult:
    id: str
    url: str
    title: str | None = None
    published_date: str | None = None
    author: str | None = None
    text: str | None = None
    image: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExaResult:
        return cls(
            id=str(data.get("id") or data.get("url", "")),
            url=data.get("url", ""),
            title=data.get("title"),
            published_date=data.get("publishedDate"),
            author=data.get("author"),
            text=data.get("text"),
            image=data.get("image"),
        )


class ExaClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = EXA_API_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def search(
        self,
        query: str,
        num_results: int = 5,
        search_type: str = "keyword",
        include_text: bool = True,
        include_context: bool = True,
    ) -> list[ExaResult]:
        payload = {
            "query": query,
            "type": search_type,
            "numResults": num_results,
            "contents": {"text": include_text, "context": include_context},
        }
        return await self._post("/search", payload)

    async def crawl(self, ids: list[str], include_text: bool = True) -> list[ExaResult]:
        """Fetch full page contents for URLs or Exa document ids."""
        return await self._post("/contents", {"ids": ids, "text": include_text})

    async def _post(self, path: str, payload: dict[str, Any]) -> list[ExaResult]:
        if not self._api_key:
            raise ExaClientError("Missing Exa API key")
        headers = {"Content-Type": "application/json", "x-api-key": self._api_key}
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.post(f"{self._base_url}{path}", json=payload, headers=headers)

        if not resp.is_success:
            raise ExaClientError(f"HTTP {resp.status_code}: {resp.text[:500]}")
        try:
            data = resp.json()
            results = data["results"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ExaClientError(f"Unable to decode Exa response: {exc}") from exc

        logger.debug("Exa %s returned %d results", path, len(results))
        return [ExaResult.from_dict(r) for r in results if isinstance(r, dict)]

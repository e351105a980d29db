# backend/intel_brief/services/connectors/tavily.py
from __future__ import annotations

import logging
from typing import Any, Dict, List

from .base import MAX_SNIPPET_CHARS, SearchConnector
from ..caching import cached_get
from ...schemas.brief import Snippet

logger = logging.getLogger(__name__)


class TavilyConnector(SearchConnector):
    """
    Tavily /search connector (the default provider).

    Tavily accepts the boolean/`site:` operators our query builder emits, which
    is why it is preferred over Exa's neural search for company-anchored
    queries. Results are normalised into `Snippet`s:

        {"title": ..., "url": ..., "content": ..., "published_at": ...}
    """

    name = "tavily"
    search_url = "https://api.tavily.com/search"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.TAVILY_API_KEY}",
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    def _parse_results(self, data: Dict[str, Any]) -> List[Snippet]:
        results: List[Snippet] = []
        for r in data.get("results", []) or []:
            if not isinstance(r, dict):
                continue
            url = r.get("url")
            if not url:
                continue
            content = r.get("content") or r.get("snippet") or ""
            results.append(
                Snippet(
                    title=r.get("title") or "",
                    url=url,
                    content=str(content)[:MAX_SNIPPET_CHARS],
                    published_at=r.get("published_date") or r.get("publishedDate"),
                )
            )
        return results

    async def search(self, query: str, *, max_results: int, timeout: float) -> List[Snippet]:
        if not self.settings.TAVILY_API_KEY:
            logger.warning(
                "TAVILY_API_KEY not configured; returning no results",
                extra={"provider": self.name, "query": query},
            )
            return []

        cache_key = f"tavily:search|{query}|n:{max_results}"
        cached = await cached_get(self.settings, cache_key)
        if cached is not None:
            return [Snippet(**s) for s in cached]

        payload = {
            "query": query,
            "search_depth": "advanced",
            "max_results": max_results,
        }
        data = await self._post_json(
            self.search_url,
            headers=self._headers(),
            payload=payload,
            timeout=timeout,
        )
        results = self._parse_results(data)

        await cached_get(
            self.settings,
            cache_key,
            set_value=[s.model_dump() for s in results],
            ttl=self.settings.SEARCH_CACHE_TTL_SECONDS,
        )
        return results

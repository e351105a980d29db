# backend/intel_brief/services/connectors/exa.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .base import MAX_SNIPPET_CHARS, SearchConnector
from ..caching import cached_get
from ...schemas.brief import Snippet

logger = logging.getLogger(__name__)

_SITE_OPERATOR = re.compile(r"\bsite:(\S+)")


class ExaConnector(SearchConnector):
    """
    Exa connector implementing the /search API.

    Design goals:
    - Use `type="auto"` so short keyword queries still get neural recall.
    - Translate `site:<domain>` operators from the query builder into Exa's
      `includeDomains` filter, since Exa ignores inline operators.
    - Use the `contents` object with text + highlights tuned for company facts
      (founding, HQ, leadership, headcount, products, customers).
    - Normalise results into `Snippet`s, preferring highlights when present.
    """

    name = "exa"

    def __init__(self, settings) -> None:
        super().__init__(settings)
        self.search_url = "https://api.exa.ai/search"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.settings.EXA_API_KEY or "",
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    @staticmethod
    def _split_site_operator(query: str) -> Tuple[str, Optional[List[str]]]:
        domains = _SITE_OPERATOR.findall(query)
        if not domains:
            return query, None
        stripped = _SITE_OPERATOR.sub("", query)
        return " ".join(stripped.split()), [d.strip("/") for d in domains]

    def _build_search_payload(self, query: str, max_results: int) -> Dict[str, Any]:
        text_query, include_domains = self._split_site_operator(query)
        payload: Dict[str, Any] = {
            "query": text_query,
            "numResults": max_results,
            "type": "auto",
            "contents": {
                "text": {"maxCharacters": MAX_SNIPPET_CHARS},
                "highlights": {
                    "numSentences": 4,
                    "query": (
                        "Founding year, headquarters, CEO and leadership, employee count, "
                        "products and services, industries served, customers, partnerships, "
                        "competitors and recent strategic moves."
                    ),
                },
            },
        }
        if include_domains:
            payload["includeDomains"] = include_domains
        return payload

    def _parse_results(self, data: Dict[str, Any]) -> List[Snippet]:
        """
        Normalise Exa results into `Snippet`s, preferring highlights when present.
        """
        results: List[Snippet] = []

        for r in data.get("results", []) or []:
            if not isinstance(r, dict):
                continue
            url = r.get("url")
            if not url:
                continue

            snippet_parts: List[str] = []

            # Prefer semantic highlights when available
            highlights = r.get("highlights")
            if isinstance(highlights, list):
                snippet_parts.extend(h for h in highlights if isinstance(h, str))

            text_val = r.get("text")
            if isinstance(text_val, str):
                snippet_parts.append(text_val)

            content = " ".join(p for p in snippet_parts if p).strip()

            results.append(
                Snippet(
                    title=r.get("title") or "",
                    url=url,
                    content=content[:MAX_SNIPPET_CHARS],
                    published_at=r.get("publishedDate") or r.get("published_date"),
                )
            )

        return results

    async def search(self, query: str, *, max_results: int, timeout: float) -> List[Snippet]:
        if not self.settings.EXA_API_KEY:
            logger.warning(
                "EXA_API_KEY not configured; returning no results",
                extra={"provider": self.name, "query": query},
            )
            return []

        cache_key = f"exa:search|{query}|n:{max_results}"
        cached = await cached_get(self.settings, cache_key)
        if cached is not None:
            return [Snippet(**s) for s in cached]

        data = await self._post_json(
            self.search_url,
            headers=self._headers(),
            payload=self._build_search_payload(query, max_results),
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

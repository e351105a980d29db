from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from .base import SearchConnector
from .exa import ExaConnector
from .tavily import TavilyConnector
from ..retry import RetryPolicy, with_retry
from ...core.config import Settings
from ...core.errors import ProviderError
from ...schemas.brief import ResearchQuery, Snippet

logger = logging.getLogger(__name__)

_CONNECTORS = {
    "tavily": TavilyConnector,
    "exa": ExaConnector,
}


def get_search_connector(settings: Settings) -> SearchConnector:
    """
    Instantiate the configured search provider.

    Connectors are intentionally modular: a new provider only needs a
    `SearchConnector` subclass and an entry here.
    """
    provider = (settings.SEARCH_PROVIDER or "tavily").strip().lower()
    cls = _CONNECTORS.get(provider)
    if cls is None:
        raise ValueError(
            f"Unknown SEARCH_PROVIDER '{settings.SEARCH_PROVIDER}'. "
            f"Expected one of: {', '.join(sorted(_CONNECTORS))}"
        )
    return cls(settings)


class RetrievalRunner:
    """
    Executes search queries concurrently against one connector.

    - Bounded parallelism via an asyncio.Semaphore (SEARCH_MAX_CONCURRENCY).
    - Each query gets bounded retries with jittered backoff.
    - A query that still fails contributes an empty result; the run goes on.
    - Returns {query_text: [Snippet, ...]}; callers must not depend on
      completion order.
    """

    def __init__(
        self,
        connector: SearchConnector,
        settings: Settings,
        *,
        run_id: Optional[str] = None,
    ) -> None:
        self.connector = connector
        self.settings = settings
        self.run_id = run_id
        self.policy = RetryPolicy.from_settings(settings)
        self._semaphore = asyncio.Semaphore(max(1, settings.SEARCH_MAX_CONCURRENCY))

    async def _run_query(
        self, query: str, max_results: int, timeout: float
    ) -> List[Snippet]:
        async with self._semaphore:
            try:
                results = await with_retry(
                    lambda: self.connector.search(
                        query, max_results=max_results, timeout=timeout
                    ),
                    policy=self.policy,
                    description=f"{self.connector.name}:{query}",
                )
            except ProviderError as exc:
                logger.warning(
                    "Search '%s' failed after retries (%s); contributing no results",
                    query,
                    exc.code,
                    extra={
                        "run_id": self.run_id,
                        "stage": "retrieval",
                        "provider": self.connector.name,
                        "query": query,
                        "error_code": exc.code,
                    },
                )
                return []

        logger.info(
            "Search '%s' returned %d results",
            query,
            len(results),
            extra={
                "run_id": self.run_id,
                "stage": "retrieval",
                "provider": self.connector.name,
                "query": query,
            },
        )
        return results

    async def run(
        self,
        queries: Iterable[ResearchQuery | str],
        *,
        max_results: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, List[Snippet]]:
        max_results = max_results or self.settings.SEARCH_MAX_RESULTS
        timeout = timeout or self.settings.SEARCH_TIMEOUT_SECONDS

        texts: List[str] = []
        for q in queries:
            text = q.text if isinstance(q, ResearchQuery) else q
            if text not in texts:
                texts.append(text)

        results = await asyncio.gather(
            *(self._run_query(t, max_results, timeout) for t in texts)
        )
        return dict(zip(texts, results))

    async def search_all(self, queries: Iterable[ResearchQuery | str], **kwargs) -> List[Snippet]:
        """Flattened form of `run`, ordered by query text for determinism."""
        by_query = await self.run(queries, **kwargs)
        flat: List[Snippet] = []
        for text in sorted(by_query):
            flat.extend(by_query[text])
        return flat

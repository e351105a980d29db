from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

import httpx

from ...core.config import Settings
from ...core.errors import ProviderHttpError, ProviderResponseError, ProviderTimeoutError
from ...schemas.brief import Snippet

# Keep prompt size bounded no matter what the provider returns
MAX_SNIPPET_CHARS = 4000


class SearchConnector(ABC):
    """
    A web-search provider.

    Implementations return normalised `Snippet`s and raise
    ProviderTimeoutError / ProviderHttpError so the retry combinator can tell
    transient failures apart from permanent ones.
    """

    name: str

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    async def search(self, query: str, *, max_results: int, timeout: float) -> List[Snippet]:
        ...

    async def _post_json(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        timeout: float,
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"{self.name} request timed out after {timeout}s", provider=self.name
            ) from exc
        except httpx.HTTPError as exc:
            # Connection resets etc.; status unknown so treated as retryable
            raise ProviderHttpError(
                f"{self.name} transport error: {exc}", provider=self.name
            ) from exc

        if resp.status_code >= 400:
            raise ProviderHttpError(
                f"{self.name} returned HTTP {resp.status_code}",
                provider=self.name,
                status_code=resp.status_code,
                context={"body": resp.text[:500]},
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderResponseError(
                f"{self.name} returned a non-JSON body", provider=self.name
            ) from exc
        if not isinstance(data, dict):
            raise ProviderResponseError(
                f"{self.name} returned an unexpected payload", provider=self.name
            )
        return data

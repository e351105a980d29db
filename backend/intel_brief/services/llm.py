from __future__ import annotations

import asyncio
import json
import logging
import weakref
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import openai
from openai import AsyncOpenAI

from .retry import RetryPolicy, with_retry
from ..core.config import Settings
from ..core.errors import ProviderHttpError, ProviderResponseError, ProviderTimeoutError

logger = logging.getLogger(__name__)

# asyncio primitives are bound to one event loop, and each asyncio.run (one
# per Celery task) creates a new loop, so there is one limiter per loop.
_llm_semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
    weakref.WeakKeyDictionary()
)


def _get_semaphore(limit: int) -> asyncio.Semaphore:
    """
    Lazy-initialised semaphore for limiting concurrent LLM calls on the
    running event loop. The first caller on a loop decides its size.
    """
    loop = asyncio.get_running_loop()
    sem = _llm_semaphores.get(loop)
    if sem is None:
        sem = asyncio.Semaphore(max(1, limit))
        _llm_semaphores[loop] = sem
    return sem


@asynccontextmanager
async def limit_llm_concurrency(limit: int) -> AsyncIterator[None]:
    """
    Bound concurrent calls to the LLM provider.

    Usage:

        async with limit_llm_concurrency(settings.LLM_MAX_CONCURRENCY):
            await client.chat.completions.create(...)

    The slot is released when the awaiting task is cancelled.
    """
    async with _get_semaphore(limit):
        yield


def get_llm_client(settings: Settings) -> AsyncOpenAI:
    """
    Factory for the OpenAI-compatible async client.

    - If OPENROUTER_API_KEY is set, route requests via OpenRouter.
    - Otherwise, fall back to the standard OpenAI API using OPENAI_API_KEY.
    """
    if settings.OPENROUTER_API_KEY:
        return AsyncOpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=settings.OPENROUTER_API_KEY.strip(),
            default_headers={
                "HTTP-Referer": settings.FRONTEND_ORIGIN or "http://localhost:3000",
                "X-Title": "Intel Brief",
            },
        )

    if settings.OPENAI_API_KEY:
        return AsyncOpenAI(api_key=settings.OPENAI_API_KEY.strip())

    raise RuntimeError(
        "No LLM API key configured. Set either OPENAI_API_KEY or OPENROUTER_API_KEY."
    )


def parse_json_object(content: str | None, *, provider: str = "llm") -> Dict[str, Any]:
    """
    Parse a JSON-object completion. Tolerates a ```json fence around the
    object since some OpenRouter models add one despite json_object mode.
    """
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()
    if not text:
        raise ProviderResponseError("LLM returned an empty completion", provider=provider)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(
            "LLM returned non-JSON content", provider=provider
        ) from exc
    if not isinstance(data, dict):
        raise ProviderResponseError("LLM returned a non-object JSON value", provider=provider)
    return data


class LLMClient:
    """
    JSON-mode chat completion collaborator.

    Calls go through the async OpenAI SDK under the per-loop concurrency
    limit, so cancelling the caller (e.g. the run deadline) aborts the HTTP
    request. Transient failures (timeouts, 429/5xx) are retried; everything
    else surfaces as a ProviderError.
    """

    provider = "openai"

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self.policy = RetryPolicy.from_settings(settings)
        if settings.OPENROUTER_API_KEY:
            self.provider = "openrouter"

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_llm_client(self.settings)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this wrapper created it."""
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.close()

    async def _complete(self, system: str, user: str, model: str, timeout: float) -> Dict[str, Any]:
        try:
            async with limit_llm_concurrency(self.settings.LLM_MAX_CONCURRENCY):
                resp = await self.client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    response_format={"type": "json_object"},
                    temperature=0.2,
                    timeout=timeout,
                )
        except openai.APITimeoutError as exc:
            raise ProviderTimeoutError(
                f"LLM call timed out after {timeout}s", provider=self.provider
            ) from exc
        except openai.APIStatusError as exc:
            raise ProviderHttpError(
                f"LLM returned HTTP {exc.status_code}",
                provider=self.provider,
                status_code=exc.status_code,
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderHttpError(
                f"LLM connection failed: {exc}", provider=self.provider
            ) from exc

        if not resp.choices:
            raise ProviderResponseError("LLM returned no choices", provider=self.provider)
        return parse_json_object(resp.choices[0].message.content, provider=self.provider)

    async def complete_json(
        self,
        system: str,
        user: str,
        *,
        model: str | None = None,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        model = model or self.settings.LLM_MODEL
        timeout = timeout or self.settings.LLM_TIMEOUT_SECONDS
        return await with_retry(
            lambda: self._complete(system, user, model, timeout),
            policy=self.policy,
            description=f"llm:{model}",
        )

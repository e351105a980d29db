"""
Bounded retry with jittered exponential backoff.

One combinator shared by every outbound provider instead of a hand-rolled loop
per connector:

    result = await with_retry(
        lambda: connector.search(q, max_results=5, timeout=25),
        policy=RetryPolicy.from_settings(settings),
        description=f"search:{q}",
    )

Retries stop after ``max_attempts``; the last exception is re-raised so the
caller decides whether it degrades to an empty contribution or aborts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from ..core.errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.4
    max_delay: float = 8.0
    retryable: Callable[[BaseException], bool] = is_retryable

    @classmethod
    def from_settings(cls, settings, **overrides) -> "RetryPolicy":
        params = {
            "max_attempts": settings.RETRY_MAX_ATTEMPTS,
            "base_delay": settings.RETRY_BASE_DELAY_SECONDS,
            "max_delay": settings.RETRY_MAX_DELAY_SECONDS,
        }
        params.update(overrides)
        return cls(**params)


def _log_before_sleep(description: str) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Retrying %s after attempt %d: %s",
            description,
            state.attempt_number,
            exc,
            extra={"stage": "retry"},
        )

    return _log


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    description: str = "call",
) -> T:
    """
    Await ``fn()`` until it succeeds, a non-retryable error is raised, or the
    attempt cap is reached. Always bounded; never retries forever.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=wait_random_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_exception(policy.retryable),
        before_sleep=_log_before_sleep(description),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await fn()
    raise RuntimeError("unreachable: retry loop exited without result")  # pragma: no cover

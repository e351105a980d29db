"""
Error taxonomy for the research pipeline.

Every error carries a machine-readable ``code`` so the API boundary can map a
failure to a stable error code without echoing provider text to end users.

Propagation policy:
- InvalidInputError, SchemaValidationError, NoEvidenceError and
  DeadlineExceededError abort the run.
- Provider* errors are retried with backoff and then absorbed per query.
- InsufficientEvidenceError drops a single entity (e.g. one competitor).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class BriefPipelineError(Exception):
    """Base class for all pipeline failures."""

    code: str = "pipeline_error"

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context: Dict[str, Any] = context or {}


class InvalidInputError(BriefPipelineError):
    """Malformed company identifier (empty name, unusable website)."""

    code = "invalid_input"


class ProviderError(BriefPipelineError):
    """An outbound search / LLM call failed."""

    code = "provider_error"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context=context)
        self.provider = provider


class ProviderTimeoutError(ProviderError):
    """Deadline exceeded on an outbound call."""

    code = "provider_timeout"
    retryable = True


class ProviderHttpError(ProviderError):
    """Non-2xx response. Only 429 and 5xx are worth retrying."""

    code = "provider_http"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, provider=provider, context=context)
        self.status_code = status_code
        self.retryable = status_code is None or status_code == 429 or status_code >= 500


class ProviderResponseError(ProviderError):
    """2xx response whose body was empty or could not be parsed."""

    code = "provider_response"


class SchemaValidationError(BriefPipelineError):
    """Model output (or the assembled brief) failed schema validation."""

    code = "schema_validation"

    def __init__(
        self,
        message: str,
        *,
        errors: List[Dict[str, Any]],
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context=context)
        self.errors = errors


class DeadlineExceededError(BriefPipelineError):
    """The whole run exceeded PIPELINE_DEADLINE_SECONDS."""

    code = "deadline_exceeded"


class InsufficientEvidenceError(BriefPipelineError):
    """An entity lacks the minimum evidence to be emitted."""

    code = "insufficient_evidence"


class NoEvidenceError(BriefPipelineError):
    """Retrieval produced zero usable snippets for the whole run."""

    code = "no_evidence"

    def __init__(self, message: str, *, attempted_queries: List[str]):
        super().__init__(message, context={"attempted_queries": attempted_queries})
        self.attempted_queries = attempted_queries


def is_retryable(exc: BaseException) -> bool:
    """Predicate used by the retry combinator."""
    return isinstance(exc, ProviderError) and exc.retryable

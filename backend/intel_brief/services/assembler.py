from __future__ import annotations

import logging
from typing import Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from .extractor import format_validation_errors
from .rollup import compute_rollup, section_confidence
from .urls import dedupe_urls
from ..core.errors import SchemaValidationError
from ..schemas.brief import Brief, Competitor, DraftBrief

logger = logging.getLogger(__name__)


def assemble_brief(
    draft: DraftBrief,
    competitors: Sequence[Competitor],
    citations: Sequence[str],
    *,
    run_id: Optional[str] = None,
) -> Brief:
    """
    Merge the draft, discovered competitors, rollup and confidence into the
    final Brief and validate it as a whole.

    Global citations are the union of the draft's and the selector's, first
    occurrence wins. Raises SchemaValidationError; no partial brief is ever
    returned.
    """
    merged_citations = dedupe_urls(list(draft.citations) + list(citations))
    payload = draft.model_dump()
    payload.update(
        competitors=[c.model_dump() for c in competitors],
        citations=merged_citations,
        roi=compute_rollup(draft.use_cases).model_dump(),
        confidence=section_confidence(draft, competitors, merged_citations).model_dump(),
    )
    try:
        brief = Brief.model_validate(payload)
    except PydanticValidationError as exc:
        errors = format_validation_errors(exc)
        logger.error(
            "Assembled brief failed validation with %d errors",
            len(errors),
            extra={"run_id": run_id, "stage": "assembly", "error_code": "schema_validation"},
        )
        raise SchemaValidationError("assembled brief failed validation", errors=errors) from exc
    return brief

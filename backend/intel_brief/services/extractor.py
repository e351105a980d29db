"""
Structured extraction: selected snippets -> schema-valid DraftBrief.

The LLM is asked for a single JSON object that follows SCHEMA_RULES. Its
output is coerced into shape, validated against DraftBrief, and, if
invalid, sent back once with the concrete validation errors. At most two
LLM calls are made per run.

Only the final attempt pads a short use-case list with labelled synthetic
entries; on the first attempt a short list is a validation error so the
model gets a chance to produce real ones.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ProviderError, SchemaValidationError
from ..schemas.brief import (
    INDUSTRY_SUMMARY_MAX,
    MAX_STRATEGIC_MOVES,
    TEXT_SENTINEL,
    USE_CASE_COUNT,
    DraftBrief,
    ResearchInput,
    Snippet,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2

NUMERIC_FIELDS = ("est_annual_benefit", "est_one_time_cost", "est_ongoing_cost", "payback_months")
TEXT_FIELDS = ("data_requirements", "risks", "next_steps")


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SCHEMA_RULES: List[str] = [
    "Top-level keys: company, industry, strategic_moves, competitors, use_cases, citations",
    "company: { name, website, summary (required, 100+ chars), size?, industry?, headquarters?, "
    "founded?, ceo?, market_position?, latest_news? } (size: employee count as \"X employees\" or "
    "\"X-Y employees\"; industry: primary sector; headquarters: \"City, Country\"; founded: "
    "\"Founded in YYYY\"; ceo: full name of the CEO / managing director)",
    "industry: { summary (required, 20-300 chars), trends: string[] (4-5 items, each at most 200 "
    "chars), citations: string[] }",
    "strategic_moves: [{ title, date_iso?, impact?, citations: string[] }] (0-5 items; omit moves "
    "without evidence)",
    "competitors: [] (ALWAYS an empty array; competitors come from live search only)",
    "use_cases: EXACTLY 5 items; each { title, description, value_driver (one of: "
    "revenue|cost|risk|speed|quality), complexity (integer 1..5), effort (integer 1..5), "
    "est_annual_benefit (number >= 0), est_one_time_cost (number >= 0), est_ongoing_cost "
    "(number >= 0), payback_months (number >= 0), data_requirements (string, \"TBD\" if unknown), "
    "risks (string, \"TBD\" if unknown), next_steps (string, \"TBD\" if unknown), citations: string[] }",
    "citations: string[] of absolute URLs used anywhere in the brief",
    "Return ONLY a JSON object. No markdown, no prose.",
]

SYSTEM_PROMPT = " ".join(
    [
        "You are an analyst writing for CEOs of companies with fewer than 500 employees.",
        "Use plain, directive business language; be concise.",
        "Do NOT invent facts. Only use information present in the provided snippets; if a "
        "section lacks evidence, return an empty array for it.",
        "Company summary: 4-8 sentences covering business model, products and services, target "
        "markets, market position and operational focus.",
        "Company facts: prefer employee counts, register entries and leadership pages; for "
        "German-speaking companies look for Geschäftsführer, Vorstand and Handelsregister.",
        "Industry summary: one paragraph of at most 300 characters on how automation, data and AI "
        "are changing the industry. Trends: 4-5 short, AI- or data-driven trends.",
        "Use-case titles are Verb + Outcome (e.g. \"Cut Scrap with AI QC\").",
        "Produce STRICT JSON matching schema_rules. No extra text.",
    ]
)

EXTRACTION_RULES: List[str] = [
    "Include citations arrays (URLs taken from the snippets) for each claim.",
    "use_cases: return EXACTLY 5 items with ALL numeric fields present (use 0 when uncertain).",
    "value_driver must be exactly one of revenue, cost, risk, speed, quality.",
    "data_requirements, risks and next_steps are strings, never null; use \"TBD\".",
    "competitors: ALWAYS return [].",
    "If a section lacks evidence, return [] for that section (no filler).",
]


def _snippet_payload(snippets: Sequence[Snippet]) -> List[Dict[str, Any]]:
    return [s.model_dump() for s in snippets]


def build_extraction_prompts(
    company: ResearchInput, snippets: Sequence[Snippet]
) -> Tuple[str, str]:
    """Return (system, user) prompts for the first extraction call."""
    user = json.dumps(
        {
            "input": company.model_dump(),
            "snippets": _snippet_payload(snippets),
            "schema_rules": SCHEMA_RULES,
            "rules": EXTRACTION_RULES,
        },
        ensure_ascii=False,
    )
    return SYSTEM_PROMPT, user


def build_repair_prompt(
    company: ResearchInput,
    snippets: Sequence[Snippet],
    prior: Any,
    errors: List[Dict[str, Any]],
) -> str:
    """User prompt for the second call: prior output + concrete validation errors."""
    return json.dumps(
        {
            "input": company.model_dump(),
            "snippets": _snippet_payload(snippets),
            "schema_rules": SCHEMA_RULES,
            "previous_output": prior,
            "fix": {
                "message": "Previous output failed validation. Return valid JSON only.",
                "validation_errors": errors,
                "critical": [
                    "Return a JSON object (no markdown) matching schema_rules.",
                    f"use_cases MUST have exactly {USE_CASE_COUNT} items.",
                    "value_driver MUST be one of revenue|cost|risk|speed|quality.",
                    "complexity and effort are integers 1..5.",
                    "All four numeric fields are present, finite and >= 0 for every use case.",
                    f"industry.summary is at most {INDUSTRY_SUMMARY_MAX} characters.",
                    "competitors is [].",
                ],
            },
        },
        ensure_ascii=False,
        default=str,
    )


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def _coerce_number(value: Any) -> float:
    """Missing, non-numeric, non-finite and negative values all become 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        try:
            value = float(value.replace(",", "").strip())
        except ValueError:
            return 0.0
    if not isinstance(value, (int, float)):
        return 0.0
    value = float(value)
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def _coerce_text(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return TEXT_SENTINEL


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]


def _synthetic_use_case(index: int) -> Dict[str, Any]:
    return {
        "title": f"Placeholder use case {index}",
        "description": "Not enough evidence was found to propose another use case.",
        "value_driver": "cost",
        "complexity": 1,
        "effort": 1,
        "est_annual_benefit": 0.0,
        "est_one_time_cost": 0.0,
        "est_ongoing_cost": 0.0,
        "payback_months": 0.0,
        "data_requirements": TEXT_SENTINEL,
        "risks": TEXT_SENTINEL,
        "next_steps": TEXT_SENTINEL,
        "citations": [],
        "synthetic": True,
    }


def normalize_draft(
    raw: Any,
    *,
    pad_use_cases: bool = False,
    identity: Optional[ResearchInput] = None,
) -> Dict[str, Any]:
    """
    Post-processing of model output before validation.

    Never invents evidence: padding (only when ``pad_use_cases``) produces
    entries marked ``synthetic`` with zeroed financials. With ``identity``,
    a missing or blank company name/website is taken from the research input.
    """
    data: Dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}

    if identity is not None and isinstance(raw, dict):
        company = dict(data["company"]) if isinstance(data.get("company"), dict) else {}
        for key in ("name", "website"):
            value = company.get(key)
            if not isinstance(value, str) or not value.strip():
                company[key] = getattr(identity, key)
        data["company"] = company

    use_cases = [uc for uc in (data.get("use_cases") or []) if isinstance(uc, dict)]
    use_cases = use_cases[:USE_CASE_COUNT]
    normalized_cases: List[Dict[str, Any]] = []
    for uc in use_cases:
        uc = dict(uc)
        for key in NUMERIC_FIELDS:
            uc[key] = _coerce_number(uc.get(key))
        for key in TEXT_FIELDS:
            uc[key] = _coerce_text(uc.get(key))
        uc["citations"] = _string_list(uc.get("citations"))
        # Synthetic entries are only ever produced by padding below
        uc["synthetic"] = False
        normalized_cases.append(uc)
    if pad_use_cases:
        while len(normalized_cases) < USE_CASE_COUNT:
            normalized_cases.append(_synthetic_use_case(len(normalized_cases) + 1))
    data["use_cases"] = normalized_cases

    industry = data.get("industry")
    if isinstance(industry, dict):
        industry = dict(industry)
        summary = industry.get("summary")
        if isinstance(summary, str) and len(summary) > INDUSTRY_SUMMARY_MAX:
            industry["summary"] = summary[: INDUSTRY_SUMMARY_MAX - 3].rstrip() + "..."
        industry["citations"] = _string_list(industry.get("citations"))
        data["industry"] = industry

    moves: List[Dict[str, Any]] = []
    for move in data.get("strategic_moves") or []:
        if not isinstance(move, dict):
            continue
        move = dict(move)
        if "date_iso" not in move and "dateISO" in move:
            move["date_iso"] = move.pop("dateISO")
        move["citations"] = _string_list(move.get("citations"))
        moves.append(move)
    data["strategic_moves"] = moves[:MAX_STRATEGIC_MOVES]

    data["competitors"] = []
    data["citations"] = _string_list(data.get("citations"))
    return data


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def format_validation_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors to JSON-safe {loc, msg, type} dicts."""
    return [
        {
            "loc": [str(p) for p in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]


@dataclass
class ValidationResult:
    """Result of validating one extraction attempt."""
    ok: bool
    draft: Optional[DraftBrief] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)


def validate_draft(obj: Any) -> ValidationResult:
    """Validate a normalised object against DraftBrief. Never raises."""
    if not isinstance(obj, dict):
        return ValidationResult(
            ok=False,
            errors=[{"loc": [], "msg": "expected a JSON object", "type": "type_error"}],
        )
    try:
        draft = DraftBrief.model_validate(obj)
    except PydanticValidationError as exc:
        errors = format_validation_errors(exc)
        return ValidationResult(ok=False, errors=errors)
    return ValidationResult(ok=True, draft=draft)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class StructuredExtractor:
    """
    Validate-repair loop around the LLM collaborator.

    `llm` must expose ``async complete_json(system, user) -> dict``.
    """

    def __init__(self, llm, *, run_id: Optional[str] = None) -> None:
        self.llm = llm
        self.run_id = run_id

    async def _call(self, system: str, user: str, attempt: int) -> Any:
        try:
            return await self.llm.complete_json(system, user)
        except ProviderError as exc:
            # A failed call counts as an attempt that produced no object
            logger.warning(
                "LLM extraction attempt %d failed: %s",
                attempt,
                exc,
                extra={"run_id": self.run_id, "stage": "extraction", "error_code": exc.code},
            )
            return None

    async def extract(self, company: ResearchInput, snippets: Sequence[Snippet]) -> DraftBrief:
        system, user = build_extraction_prompts(company, snippets)
        raw: Any = None
        errors: List[Dict[str, Any]] = []

        for attempt in range(1, MAX_ATTEMPTS + 1):
            if attempt > 1:
                user = build_repair_prompt(company, snippets, raw, errors)
            raw = await self._call(system, user, attempt)
            final = attempt == MAX_ATTEMPTS
            candidate = None
            if raw is not None:
                candidate = normalize_draft(raw, pad_use_cases=final, identity=company)
            result = validate_draft(candidate)
            if result.ok:
                logger.info(
                    "Extraction validated on attempt %d",
                    attempt,
                    extra={"run_id": self.run_id, "stage": "extraction"},
                )
                return result.draft
            errors = result.errors
            logger.warning(
                "Extraction attempt %d failed validation with %d errors",
                attempt,
                len(errors),
                extra={"run_id": self.run_id, "stage": "extraction"},
            )

        raise SchemaValidationError(
            f"model output failed validation after {MAX_ATTEMPTS} attempts",
            errors=errors,
        )

# backend/intel_brief/schemas/brief.py
"""
Pydantic models for the intelligence brief and the evidence it is built from.

`DraftBrief` is what the structured extractor must produce (competitors always
empty); `Brief` is the terminal, frozen record handed to the store.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..services.urls import is_http_url, registrable_domain

ValueDriver = Literal["revenue", "cost", "risk", "speed", "quality"]
ConfidenceLabel = Literal["High", "Medium", "Low"]

VALUE_DRIVERS: tuple[str, ...] = ("revenue", "cost", "risk", "speed", "quality")
USE_CASE_COUNT = 5
INDUSTRY_SUMMARY_MAX = 300
COMPANY_SUMMARY_MIN = 100
MAX_STRATEGIC_MOVES = 5
MAX_COMPETITORS = 6
TEXT_SENTINEL = "TBD"


def _check_urls(values: List[str]) -> List[str]:
    bad = [v for v in values if not is_http_url(v)]
    if bad:
        raise ValueError(f"invalid URL(s): {', '.join(bad[:3])}")
    return values


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------

class QueryIntent(str, Enum):
    company_facts = "company_facts"
    ceo_lookup = "ceo_lookup"
    industry = "industry"
    competitor_discovery = "competitor_discovery"
    evidence = "evidence"


class ResearchQuery(BaseModel):
    text: str
    intent: QueryIntent

    model_config = ConfigDict(frozen=True)


class Snippet(BaseModel):
    """One unit of retrieved web evidence. Identity is the URL."""

    title: str = ""
    url: str
    content: str = ""
    published_at: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ResearchInput(BaseModel):
    name: str
    website: str


# ---------------------------------------------------------------------------
# Brief sections
# ---------------------------------------------------------------------------

class CompanyFacts(BaseModel):
    name: str = Field(min_length=1)
    website: str
    summary: str = Field(min_length=COMPANY_SUMMARY_MIN)
    size: Optional[str] = None
    industry: Optional[str] = None
    headquarters: Optional[str] = None
    founded: Optional[str] = None
    ceo: Optional[str] = None
    market_position: Optional[str] = None
    latest_news: Optional[str] = None


class IndustryOverview(BaseModel):
    summary: str = Field(min_length=20, max_length=INDUSTRY_SUMMARY_MAX)
    trends: List[str] = Field(min_length=4, max_length=5)
    citations: List[str] = Field(default_factory=list)

    @field_validator("trends")
    @classmethod
    def check_trend_length(cls, v: List[str]) -> List[str]:
        for t in v:
            if len(t) > 200:
                raise ValueError("each trend must be at most 200 characters")
        return v

    @field_validator("citations")
    @classmethod
    def check_citations(cls, v: List[str]) -> List[str]:
        return _check_urls(v)


class StrategicMove(BaseModel):
    title: str = Field(min_length=1)
    date_iso: Optional[str] = None
    impact: Optional[str] = None
    citations: List[str] = Field(default_factory=list)

    @field_validator("citations")
    @classmethod
    def check_citations(cls, v: List[str]) -> List[str]:
        return _check_urls(v)


class UseCase(BaseModel):
    title: str = Field(min_length=1)
    description: str
    value_driver: ValueDriver
    complexity: int = Field(ge=1, le=5)
    effort: int = Field(ge=1, le=5)
    est_annual_benefit: float = Field(ge=0)
    est_one_time_cost: float = Field(ge=0)
    est_ongoing_cost: float = Field(ge=0)
    payback_months: float = Field(ge=0)
    data_requirements: str = TEXT_SENTINEL
    risks: str = TEXT_SENTINEL
    next_steps: str = TEXT_SENTINEL
    citations: List[str] = Field(default_factory=list)
    # True for entries padded in to satisfy the five-use-case arity; consumers
    # decide whether to show them.
    synthetic: bool = False

    @field_validator("citations")
    @classmethod
    def check_citations(cls, v: List[str]) -> List[str]:
        return _check_urls(v)

    @field_validator(
        "est_annual_benefit", "est_one_time_cost", "est_ongoing_cost", "payback_months"
    )
    @classmethod
    def check_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v


class Competitor(BaseModel):
    name: str = Field(min_length=1)
    website: str
    positioning: str = Field(min_length=1)
    ai_maturity: str = Field(min_length=1)
    innovation_focus: str = Field(min_length=1)
    employee_band: str = Field(min_length=1)
    geo_fit: str = Field(min_length=1)
    evidence_pages: List[str] = Field(min_length=2)
    citations: List[str] = Field(default_factory=list)

    @field_validator("evidence_pages", "citations")
    @classmethod
    def check_urls(cls, v: List[str]) -> List[str]:
        return _check_urls(v)

    @model_validator(mode="after")
    def check_evidence_on_own_domain(self) -> "Competitor":
        if not is_http_url(self.website):
            raise ValueError("website must be an absolute http(s) URL")
        own = registrable_domain(self.website)
        pages = {p for p in self.evidence_pages if registrable_domain(p) == own}
        if len(pages) < 2:
            raise ValueError(
                "evidence_pages must contain at least 2 distinct pages on the competitor's own domain"
            )
        return self


class RoiRollup(BaseModel):
    total_benefit: float
    total_investment: float
    overall_roi_pct: float = Field(le=250)
    weighted_payback_months: float = Field(ge=0)
    ebitda_estimate: float = 0


class SectionConfidence(BaseModel):
    company: ConfidenceLabel
    industry: ConfidenceLabel
    strategic_moves: ConfidenceLabel
    competitors: ConfidenceLabel
    use_cases: ConfidenceLabel


# ---------------------------------------------------------------------------
# Draft + final brief
# ---------------------------------------------------------------------------

class DraftBrief(BaseModel):
    """Extractor output: everything except competitors, rollup and confidence."""

    company: CompanyFacts
    industry: IndustryOverview
    strategic_moves: List[StrategicMove] = Field(default_factory=list, max_length=MAX_STRATEGIC_MOVES)
    competitors: List[Competitor] = Field(default_factory=list, max_length=0)
    use_cases: List[UseCase] = Field(min_length=USE_CASE_COUNT, max_length=USE_CASE_COUNT)
    citations: List[str] = Field(default_factory=list)

    @field_validator("citations")
    @classmethod
    def check_citations(cls, v: List[str]) -> List[str]:
        return _check_urls(v)


class Brief(BaseModel):
    """The terminal artifact. Frozen: never mutated after assembly."""

    company: CompanyFacts
    industry: IndustryOverview
    strategic_moves: List[StrategicMove] = Field(default_factory=list, max_length=MAX_STRATEGIC_MOVES)
    competitors: List[Competitor] = Field(default_factory=list, max_length=MAX_COMPETITORS)
    use_cases: List[UseCase] = Field(min_length=USE_CASE_COUNT, max_length=USE_CASE_COUNT)
    citations: List[str] = Field(default_factory=list)
    roi: RoiRollup
    confidence: SectionConfidence

    model_config = ConfigDict(frozen=True)

    @field_validator("citations")
    @classmethod
    def check_citations(cls, v: List[str]) -> List[str]:
        return _check_urls(v)

    @model_validator(mode="after")
    def check_competitors_exclude_target(self) -> "Brief":
        target_domain = registrable_domain(self.company.website)
        target_name = self.company.name.strip().lower()
        for comp in self.competitors:
            if target_domain and registrable_domain(comp.website) == target_domain:
                raise ValueError(f"competitor {comp.name!r} shares the target's domain")
            name = comp.name.strip().lower()
            if target_name and (target_name in name or name in target_name):
                raise ValueError(f"competitor {comp.name!r} overlaps the target's name")
        return self

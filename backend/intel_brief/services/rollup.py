"""
Financial rollup and per-section confidence.

Pure functions over already-validated use cases and citations.
"""
from __future__ import annotations

from typing import Iterable, List, Sequence

from .urls import host_from_url
from ..schemas.brief import (
    Competitor,
    DraftBrief,
    RoiRollup,
    SectionConfidence,
    UseCase,
)

ROI_CAP = 250.0
ROI_SOFT_START = 200.0
ROI_SOFT_SLOPE = 0.3
EBITDA_SHARE = 0.25

HIGH_CONFIDENCE_HOSTS = 5
MEDIUM_CONFIDENCE_HOSTS = 2


def clamp_roi(value: float) -> float:
    """Hard cap at ROI_CAP. Idempotent: clamp_roi(clamp_roi(x)) == clamp_roi(x)."""
    return min(value, ROI_CAP)


def calibrate_roi(raw: float) -> float:
    """
    Map a raw ROI percentage to the reported one: raw values in (200, 250]
    are compressed toward 200 (slope 0.3), anything above 250 is capped.

    Applied once, to the raw ratio only. Its output is not a raw ratio, so
    it must not be fed back in; clamp_roi is the re-applicable bound.
    """
    if raw > ROI_CAP:
        return ROI_CAP
    if raw > ROI_SOFT_START:
        return clamp_roi(ROI_SOFT_START + (raw - ROI_SOFT_START) * ROI_SOFT_SLOPE)
    return raw


def compute_rollup(use_cases: Sequence[UseCase]) -> RoiRollup:
    total_benefit = sum(uc.est_annual_benefit for uc in use_cases)
    total_investment = sum(uc.est_one_time_cost + uc.est_ongoing_cost for uc in use_cases)

    if total_investment > 0:
        roi = calibrate_roi((total_benefit - total_investment) / total_investment * 100)
    else:
        roi = 0.0

    weighted = [
        (uc.est_annual_benefit, uc.payback_months)
        for uc in use_cases
        if uc.est_annual_benefit > 0 and uc.payback_months > 0
    ]
    weight = sum(b for b, _ in weighted)
    payback = sum(b * p for b, p in weighted) / weight if weight > 0 else 0.0

    return RoiRollup(
        total_benefit=total_benefit,
        total_investment=total_investment,
        overall_roi_pct=roi,
        weighted_payback_months=payback,
        ebitda_estimate=round(total_benefit * EBITDA_SHARE),
    )


def confidence_label(urls: Iterable[str]) -> str:
    """High for 5+ distinct hosts, Medium for 2+, else Low."""
    hosts = {h for h in (host_from_url(u) for u in urls) if h}
    if len(hosts) >= HIGH_CONFIDENCE_HOSTS:
        return "High"
    if len(hosts) >= MEDIUM_CONFIDENCE_HOSTS:
        return "Medium"
    return "Low"


def _flatten(groups: Iterable[Iterable[str]]) -> List[str]:
    return [u for group in groups for u in group]


def section_confidence(
    draft: DraftBrief,
    competitors: Sequence[Competitor],
    citations: Sequence[str],
) -> SectionConfidence:
    """
    Confidence per section from that section's own citations. The company
    section has no citation list of its own, so it uses the global list.
    """
    return SectionConfidence(
        company=confidence_label(citations),
        industry=confidence_label(draft.industry.citations),
        strategic_moves=confidence_label(_flatten(m.citations for m in draft.strategic_moves)),
        competitors=confidence_label(
            _flatten(list(c.citations) + list(c.evidence_pages) for c in competitors)
        ),
        use_cases=confidence_label(_flatten(uc.citations for uc in draft.use_cases)),
    )

"""
Competitor discovery and ranking.

Competitors are never invented by the LLM. They come from live search:

1. Build locality-tiered queries (city -> country -> size band -> region)
   from the draft's industry, headquarters and size.
2. Have the LLM name the organisations behind each tier's hits, keep the
   ones some hit actually backs, and score them with `score_candidate`
   (junk, negatives, self, industry, geography, size).
3. Shortlist the best candidates (at most COMPETITOR_SHORTLIST_CAP in total)
   and require evidence pages on each one's own domain before emitting it as
   a `Competitor`.
4. Relax to the next tier only while fewer than COMPETITOR_TARGET
   competitors have passed the evidence gate.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from .candidate_extractor import CandidateExtractor, ExtractedCandidate, supporting_hits
from .connectors import RetrievalRunner
from .scoring import (
    GEOGRAPHY_WEIGHTS,
    SMB_EMPLOYEE_CEILING,
    CandidateCompetitor,
    TargetProfile,
    employee_band,
    parse_size_range,
    score_candidate,
    size_tolerance,
)
from .urls import dedupe_urls, registrable_domain
from ..core.config import Settings
from ..core.errors import InsufficientEvidenceError
from ..schemas.brief import Competitor, DraftBrief, QueryIntent, ResearchQuery, Snippet

logger = logging.getLogger(__name__)

HARD_EXCLUSIONS = (
    "-market-research -report -news -press -SaaS -software -agency -advertising -retail "
    "-jobs -recruiting -Wikipedia -LinkedIn -CBInsights -Owler -G2 -ZoomInfo "
    "-Oerlikon -voestalpine -Bühler"
)

TIER_ORDER = ("city", "country", "size", "region")

MIN_EVIDENCE_PAGES = 2
MAX_EVIDENCE_PAGES = 5
EVIDENCE_RESULTS_PER_QUERY = 2

POSITIONING_KEYWORDS = re.compile(
    r"provide|offer|speciali[sz]|produce|manufactur|serves|leistungen|dienstleistungen|anbieter",
    re.I,
)

AI_MATURITY_LADDER: Tuple[Tuple[Pattern[str], str], ...] = (
    (
        re.compile(r"predictive\s+maintenance|digital\s+process\s+monitoring|mes\s+analytics", re.I),
        "Uses digital process monitoring and predictive maintenance",
    ),
    (
        re.compile(r"\bmes\b|manufacturing\s+execution|process\s+monitoring", re.I),
        "Uses MES analytics and process monitoring",
    ),
    (
        re.compile(r"digital\s+process|data\s+analytics|\bai\b|artificial\s+intelligence|machine\s+learning", re.I),
        "Uses digital process monitoring and data analytics",
    ),
    (
        re.compile(r"automation|automatisierung|digital|software", re.I),
        "Some digital transformation initiatives",
    ),
)

INNOVATION_FOCUS_LADDER: Tuple[Tuple[Pattern[str], str], ...] = (
    (
        re.compile(r"quality\s+analytics|customer-specific|custom\s+coatings|tailored", re.I),
        "Quality analytics and customer-specific solutions",
    ),
    (
        re.compile(r"quality|qualität|custom|kundenspezifisch", re.I),
        "Quality and customer-specific solutions",
    ),
    (
        re.compile(r"process\s+efficiency|optimi[sz]ation|productivity", re.I),
        "Process efficiency",
    ),
    (
        re.compile(r"sustainab|environmental|nachhaltig|green", re.I),
        "Sustainability and environmental compliance",
    ),
)

GEO_FIT_LABELS: Dict[float, str] = {
    GEOGRAPHY_WEIGHTS["city"]: "Same city",
    GEOGRAPHY_WEIGHTS["country"]: "Same country",
    GEOGRAPHY_WEIGHTS["dach"]: "DACH region",
    GEOGRAPHY_WEIGHTS["europe"]: "Europe",
}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _quote(term: str) -> str:
    return '"' + term.replace('"', "").strip() + '"'


def _size_terms(size_range: Optional[Tuple[int, int]], german: bool) -> List[str]:
    if size_range is None:
        if german:
            return ['"bis 500 Mitarbeiter"', '"100-500 Mitarbeiter"', "KMU"]
        return ['"under 500 employees"', '"100-500 employees"', "SMB OR SME"]
    avg, tolerance = size_tolerance(size_range)
    low = max(10, avg - tolerance)
    high = min(SMB_EMPLOYEE_CEILING, avg + tolerance)
    if german:
        return [f'"{low}-{high} Mitarbeiter"', f'"bis {high} Mitarbeiter"', "KMU"]
    return [f'"{low}-{high} employees"', f'"under {high} employees"', "SMB OR SME"]


def build_competitor_queries(profile: TargetProfile) -> Dict[str, List[str]]:
    """
    Locality-tiered competitor queries. Every query carries HARD_EXCLUSIONS.
    Returns {tier: [query, ...]} for the tiers that apply to this target.
    """
    tokens = [t for t in profile.industry_tokens if t.lower() not in profile.industry.lower()]
    core = _quote(profile.industry)
    if tokens:
        core = f"{core} AND ({' OR '.join(_quote(t) for t in tokens[:3])})"

    loc = profile.location
    german = loc.is_dach
    country_term = "Schweiz" if loc.country == "Switzerland" else loc.country
    sizes = _size_terms(profile.size_range, german)

    tiers: Dict[str, List[str]] = {}
    if loc.city:
        tiers["city"] = [
            f"({core}) (competitors OR Unternehmen OR Anbieter OR Hersteller) {loc.city} {HARD_EXCLUSIONS}"
        ]
    if country_term:
        tiers["country"] = [
            f"({core}) (competitors OR Unternehmen OR Anbieter) {country_term} {HARD_EXCLUSIONS}"
        ]
        tiers["size"] = [f"({core}) ({' OR '.join(sizes)}) {country_term} {HARD_EXCLUSIONS}"]
    if loc.is_dach:
        region = [
            f"({core}) (Unternehmen OR Anbieter) (Schweiz OR Deutschland OR Österreich) {HARD_EXCLUSIONS}"
        ]
        if loc.country == "Switzerland":
            region.append(
                f"({core}) (Unternehmen OR Anbieter) (Baden-Württemberg OR Bayern OR Vorarlberg) "
                f"({' OR '.join(sizes[:2])}) {HARD_EXCLUSIONS}"
            )
        tiers["region"] = region
    elif loc.is_europe:
        tiers["region"] = [f"({core}) (companies OR manufacturers) Europe {HARD_EXCLUSIONS}"]
    return tiers


def evidence_queries(domain: str) -> List[str]:
    return [
        f'site:{domain} homepage OR start OR "Willkommen" OR "Home"',
        f'site:{domain} ("Über uns" OR "About" OR "Entreprise" OR "Chi siamo" OR "Company")',
        f'site:{domain} ("Leistungen" OR "Services" OR "Solutions" OR "Dienstleistungen")',
        f'site:{domain} (Mitarbeiter OR employees OR team OR "KMU" OR "SME")',
    ]


# ---------------------------------------------------------------------------
# Candidate collection + ranking
# ---------------------------------------------------------------------------

def collect_candidates(
    hits: Sequence[Snippet],
    extracted: Sequence[ExtractedCandidate],
    profile: TargetProfile,
    tier: str,
) -> List[CandidateCompetitor]:
    """
    Score each extracted organisation on the hits that back it. Organisations
    no hit supports, and those failing a gate, are dropped.
    """
    candidates: List[CandidateCompetitor] = []
    for ext in extracted:
        support = supporting_hits(ext, hits)
        if not support:
            logger.debug(
                "Rejected candidate %s (unsupported)", ext.website, extra={"stage": "competitors"}
            )
            continue
        texts = [f"{s.title} {s.content}" for s in support]
        scores = score_candidate(" ".join(texts), ext.website, profile, name=ext.name)
        if not scores.accepted:
            logger.debug(
                "Rejected candidate %s (%s)",
                ext.website,
                scores.rejected,
                extra={"stage": "competitors"},
            )
            continue
        candidates.append(
            CandidateCompetitor(
                name=scores.name,
                website=ext.website,
                snippet=support[0],
                industry_match=scores.industry,
                geography_match=scores.geography,
                size_match=scores.size,
                size_estimate=scores.size_estimate,
                is_reference_major=scores.is_reference_major,
                tier=tier,
                texts=texts,
            )
        )
    return candidates


def rank_candidates(candidates: Sequence[CandidateCompetitor]) -> List[CandidateCompetitor]:
    """
    Dedupe by (name, registrable domain), keeping the best-scored entry and
    merging evidence text, then rank. At most one reference major survives.
    """
    best: Dict[Tuple[str, str], CandidateCompetitor] = {}
    for c in sorted(candidates, key=lambda c: (c.rank_key(), c.snippet.url)):
        key = (c.name.strip().lower(), registrable_domain(c.website))
        kept = best.get(key)
        if kept is None:
            best[key] = c
        else:
            kept.texts.extend(t for t in c.texts if t not in kept.texts)

    ranked: List[CandidateCompetitor] = []
    seen_reference_major = False
    for c in sorted(best.values(), key=lambda c: c.rank_key()):
        if c.is_reference_major:
            if seen_reference_major:
                continue
            seen_reference_major = True
        ranked.append(c)
    return ranked


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

def extract_positioning(text: str) -> Optional[str]:
    for sentence in re.split(r"[.!?]\s+", text):
        sentence = " ".join(sentence.split())
        if 40 < len(sentence) < 200 and POSITIONING_KEYWORDS.search(sentence):
            return sentence[:180].strip()
    return None


def _first_label(text: str, ladder: Tuple[Tuple[Pattern[str], str], ...]) -> Optional[str]:
    for pattern, label in ladder:
        if pattern.search(text):
            return label
    return None


def ai_maturity(text: str) -> Optional[str]:
    return _first_label(text, AI_MATURITY_LADDER)


def innovation_focus(text: str) -> Optional[str]:
    return _first_label(text, INNOVATION_FOCUS_LADDER)


def geo_fit_label(candidate: CandidateCompetitor, profile: TargetProfile) -> str:
    label = GEO_FIT_LABELS.get(candidate.geography_match, "Europe")
    loc = profile.location
    if candidate.geography_match == GEOGRAPHY_WEIGHTS["city"] and loc.city:
        return f"{label} ({loc.city})"
    if candidate.geography_match == GEOGRAPHY_WEIGHTS["country"] and loc.country:
        return f"{label} ({loc.country})"
    return label


def build_competitor(
    candidate: CandidateCompetitor,
    evidence: Sequence[Snippet],
    profile: TargetProfile,
) -> Competitor:
    """
    Turn a shortlisted candidate plus its evidence search results into a
    Competitor. Raises InsufficientEvidenceError when the candidate cannot be
    substantiated from pages on its own domain.
    """
    domain = registrable_domain(candidate.website)
    on_domain = [s for s in evidence if registrable_domain(s.url) == domain]

    urls = [candidate.snippet.url] + sorted(s.url for s in on_domain)
    pages = dedupe_urls([u for u in urls if registrable_domain(u) == domain])
    if len(pages) < MIN_EVIDENCE_PAGES:
        raise InsufficientEvidenceError(
            f"{candidate.name}: only {len(pages)} evidence page(s) on {domain}",
            context={"competitor": candidate.name, "pages": pages},
        )

    text = " ".join(candidate.texts + [f"{s.title} {s.content}" for s in on_domain])

    positioning = extract_positioning(text)
    maturity = ai_maturity(text)
    focus = innovation_focus(text)
    if not positioning or not maturity or not focus:
        raise InsufficientEvidenceError(
            f"{candidate.name}: positioning / AI maturity / innovation focus not evidenced",
            context={"competitor": candidate.name},
        )

    band = employee_band(text)
    if band is None and candidate.size_estimate is not None:
        band = f"{candidate.size_estimate} employees"
    if band is None:
        raise InsufficientEvidenceError(
            f"{candidate.name}: no employee count found", context={"competitor": candidate.name}
        )
    band_range = parse_size_range(band)
    if band_range and band_range[0] > SMB_EMPLOYEE_CEILING and not candidate.is_reference_major:
        raise InsufficientEvidenceError(
            f"{candidate.name}: {band} exceeds the SMB ceiling",
            context={"competitor": candidate.name},
        )

    evidence_pages = pages[:MAX_EVIDENCE_PAGES]
    try:
        return Competitor(
            name=candidate.name,
            website=candidate.website,
            positioning=positioning,
            ai_maturity=maturity,
            innovation_focus=focus,
            employee_band=band,
            geo_fit=geo_fit_label(candidate, profile),
            evidence_pages=evidence_pages,
            citations=dedupe_urls([candidate.snippet.url] + evidence_pages[:4]),
        )
    except PydanticValidationError as exc:
        raise InsufficientEvidenceError(
            f"{candidate.name}: competitor record failed validation",
            context={"competitor": candidate.name, "errors": exc.error_count()},
        ) from exc


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class CompetitorDiscovery:
    def __init__(
        self,
        runner: RetrievalRunner,
        settings: Settings,
        llm,
        *,
        run_id: Optional[str] = None,
    ) -> None:
        self.runner = runner
        self.settings = settings
        self.extractor = CandidateExtractor(llm, run_id=run_id)
        self.run_id = run_id

    def _log_extra(self, **kw) -> dict:
        return {"run_id": self.run_id, "stage": "competitors", **kw}

    async def _search_tier(self, queries: List[str]) -> List[Snippet]:
        research = [ResearchQuery(text=q, intent=QueryIntent.competitor_discovery) for q in queries]
        return await self.runner.search_all(research)

    async def _enrich(
        self, candidate: CandidateCompetitor, profile: TargetProfile
    ) -> Optional[Competitor]:
        domain = registrable_domain(candidate.website)
        queries = [ResearchQuery(text=q, intent=QueryIntent.evidence) for q in evidence_queries(domain)]
        evidence = await self.runner.search_all(
            queries,
            max_results=EVIDENCE_RESULTS_PER_QUERY,
            timeout=self.settings.EVIDENCE_TIMEOUT_SECONDS,
        )
        try:
            return build_competitor(candidate, evidence, profile)
        except InsufficientEvidenceError as exc:
            logger.info(
                "Dropping competitor %s: %s",
                candidate.name,
                exc,
                extra=self._log_extra(error_code=exc.code),
            )
            return None

    async def _discover_tiers(self, profile: TargetProfile) -> Tuple[List[Competitor], int]:
        """
        Walk the tiers in order. After each tier the ranked pool is
        re-shortlisted and candidates not yet tried go through the evidence
        gate; the next tier is searched only while fewer than
        COMPETITOR_TARGET competitors have passed. Returns the accepted
        competitors in rank order and the number of candidates tried.
        """
        tiers = build_competitor_queries(profile)
        cap = self.settings.COMPETITOR_SHORTLIST_CAP
        pool: List[CandidateCompetitor] = []
        tried: set = set()
        accepted: List[Tuple[CandidateCompetitor, Competitor]] = []
        for tier in TIER_ORDER:
            if tier not in tiers:
                continue
            if len(accepted) >= self.settings.COMPETITOR_TARGET or len(tried) >= cap:
                break
            hits = await self._search_tier(tiers[tier])
            extracted = await self.extractor.extract(hits, profile)
            pool.extend(collect_candidates(hits, extracted, profile, tier))

            fresh: List[CandidateCompetitor] = []
            for c in rank_candidates(pool)[:cap]:
                domain = registrable_domain(c.website)
                if domain in tried or len(tried) >= cap:
                    continue
                tried.add(domain)
                fresh.append(c)
            enriched = await asyncio.gather(*(self._enrich(c, profile) for c in fresh))
            accepted.extend((c, comp) for c, comp in zip(fresh, enriched) if comp is not None)
            logger.info(
                "Competitor tier '%s': %d results, %d extracted, %d tried, %d accepted so far",
                tier,
                len(hits),
                len(extracted),
                len(fresh),
                len(accepted),
                extra=self._log_extra(),
            )
        accepted.sort(key=lambda pair: pair[0].rank_key())
        return [comp for _, comp in accepted], len(tried)

    async def discover(
        self,
        draft: DraftBrief,
        selected_snippets: Sequence[Snippet],
        website: str,
    ) -> List[Competitor]:
        company = draft.company
        if not (company.industry and company.industry.strip()) or not (
            company.headquarters and company.headquarters.strip()
        ):
            logger.info(
                "Skipping competitor discovery: industry or headquarters missing",
                extra=self._log_extra(),
            )
            return []

        profile = TargetProfile.build(
            name=company.name,
            website=website,
            industry=company.industry,
            headquarters=company.headquarters,
            size=company.size,
            snippets=selected_snippets,
        )
        competitors, tried = await self._discover_tiers(profile)

        # Self-exclusion also holds for the emitted records
        target_domain = registrable_domain(website)
        competitors = [
            c for c in competitors if registrable_domain(c.website) != target_domain
        ]
        logger.info(
            "Competitor discovery kept %d of %d shortlisted",
            len(competitors),
            tried,
            extra=self._log_extra(),
        )
        return competitors[: self.settings.COMPETITOR_MAX]

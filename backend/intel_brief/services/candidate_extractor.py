"""
Candidate organisations from competitor search hits.

The LLM reads one tier's hits and names the companies behind them with their
own corporate websites, skipping media, associations, distributors and
directories. Its output is only a proposal: a candidate survives only if
some hit is on its website's domain or mentions that domain, and the
deterministic gates in `score_candidate` still run afterwards.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .scoring import TargetProfile, describe_location
from .urls import registrable_domain, to_origin
from ..core.errors import ProviderError
from ..schemas.brief import Snippet

logger = logging.getLogger(__name__)

MAX_HITS = 40
MAX_HIT_CHARS = 400
MAX_NAME_CHARS = 120

CANDIDATE_SYSTEM_PROMPT = """You are a meticulous competitive-intelligence extractor.

From a set of web search hits, list the companies that are direct competitors of the target company.

Rules:
- Do not include the target company itself.
- Only include companies whose own corporate website appears in the hits (as a hit url or written in a hit's text).
- Never include media, news sites, trade associations, member directories, marketplaces, distributors, resellers, PR agencies or job boards.
- Do not invent or guess names or websites. If unsure, leave the company out.
- Deduplicate by brand name and website domain.

Return a JSON object: {"competitors": [{"name": string, "website": string}]}
"name" is the company's legal or brand name. "website" is an absolute http(s) URL on the company's own domain.
Return {"competitors": []} when no hit qualifies."""


@dataclass(frozen=True)
class ExtractedCandidate:
    name: str
    website: str


def _hit_payload(hits: Sequence[Snippet]) -> List[Dict[str, str]]:
    return [
        {"url": h.url, "title": h.title, "snippet": h.content[:MAX_HIT_CHARS]}
        for h in sorted(hits, key=lambda h: h.url)[:MAX_HITS]
    ]


def build_candidate_prompt(hits: Sequence[Snippet], profile: TargetProfile) -> str:
    return json.dumps(
        {
            "target": {
                "name": profile.name,
                "website": profile.website,
                "industry": profile.industry,
                "headquarters": describe_location(profile.location) or "Unknown",
            },
            "search_hits": _hit_payload(hits),
        },
        ensure_ascii=False,
    )


def parse_candidates(raw: Any) -> List[ExtractedCandidate]:
    """Keep entries with a non-empty name and a parseable website; dedupe by name and domain."""
    items = raw.get("competitors") if isinstance(raw, dict) else None
    if not isinstance(items, list):
        return []
    out: List[ExtractedCandidate] = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        name, website = item.get("name"), item.get("website")
        if not isinstance(name, str) or not isinstance(website, str) or not name.strip():
            continue
        origin = to_origin(website)
        domain = registrable_domain(website)
        if not origin or "." not in domain:
            continue
        key = (name.strip().lower(), domain)
        if key in seen:
            continue
        seen.add(key)
        out.append(ExtractedCandidate(name=" ".join(name.split())[:MAX_NAME_CHARS], website=origin))
    return out


def supporting_hits(candidate: ExtractedCandidate, hits: Sequence[Snippet]) -> List[Snippet]:
    """
    Hits that back a candidate: pages on its own domain, or failing that,
    pages whose text names the domain. Sorted by URL.
    """
    domain = registrable_domain(candidate.website)
    own = [h for h in hits if registrable_domain(h.url) == domain]
    if own:
        return sorted(own, key=lambda h: h.url)
    mention = re.compile(r"(?<![\w-])" + re.escape(domain) + r"\b", re.I)
    mentions = [h for h in hits if mention.search(f"{h.title} {h.content}")]
    return sorted(mentions, key=lambda h: h.url)


class CandidateExtractor:
    """
    One LLM call per tier. Provider failures are absorbed: the tier then
    contributes no candidates.
    """

    def __init__(self, llm, *, run_id: Optional[str] = None) -> None:
        self.llm = llm
        self.run_id = run_id

    async def extract(
        self, hits: Sequence[Snippet], profile: TargetProfile
    ) -> List[ExtractedCandidate]:
        if not hits:
            return []
        try:
            raw = await self.llm.complete_json(
                CANDIDATE_SYSTEM_PROMPT, build_candidate_prompt(hits, profile)
            )
        except ProviderError as exc:
            logger.warning(
                "Candidate extraction failed: %s",
                exc,
                extra={"run_id": self.run_id, "stage": "competitors", "error_code": exc.code},
            )
            return []
        candidates = parse_candidates(raw)
        logger.debug(
            "Extracted %d candidates from %d hits",
            len(candidates),
            len(hits),
            extra={"run_id": self.run_id, "stage": "competitors"},
        )
        return candidates

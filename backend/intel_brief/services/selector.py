"""
Snippet scoring and host-diverse selection.

Selection is a pure function of the snippet *set*: input order never changes
the output, so two runs over the same retrieval results prompt the LLM with
the same evidence.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .urls import dedupe_urls, host_from_url, registrable_domain
from ..schemas.brief import Snippet

# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

COMPANY_HOST_WEIGHT = 3
TIER1_PUBLISHER_WEIGHT = 2
PUBLISHED_DATE_WEIGHT = 1
DIRECTORY_PENALTY = -2

TIER1_PUBLISHERS = (
    "reuters.com",
    "bloomberg.com",
    "ft.com",
    "wsj.com",
    "nytimes.com",
    "forbes.com",
    "economist.com",
)

LOW_VALUE_DIRECTORIES = (
    "owler.com",
    "g2.com",
    "softwaresuggest.com",
    "softwareadvice.com",
    "crunchbase.com",
)


def _host_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


def score_snippet(snippet: Snippet, website: str) -> int:
    host = host_from_url(snippet.url)
    score = 0
    company = registrable_domain(website)
    if company and registrable_domain(snippet.url) == company:
        score += COMPANY_HOST_WEIGHT
    if _host_matches(host, TIER1_PUBLISHERS):
        score += TIER1_PUBLISHER_WEIGHT
    if snippet.published_at:
        score += PUBLISHED_DATE_WEIGHT
    if _host_matches(host, LOW_VALUE_DIRECTORIES):
        score += DIRECTORY_PENALTY
    return score


@dataclass
class Selection:
    snippets: List[Snippet] = field(default_factory=list)
    citations: List[str] = field(default_factory=list)


def select_top_snippets(snippets: Iterable[Snippet], website: str, cap: int = 20) -> Selection:
    """
    Dedupe by URL, rank by score (ties broken by URL), then pick with host
    diversity: one snippet per host first, further snippets from an already
    represented host only once every host has one.
    """
    unique: Dict[str, Snippet] = {}
    for s in sorted(snippets, key=lambda s: (s.url, s.title, s.content, s.published_at or "")):
        unique.setdefault(s.url, s)

    ranked = sorted(unique.values(), key=lambda s: (-score_snippet(s, website), s.url))

    picked: List[Snippet] = []
    remaining = ranked
    while remaining and len(picked) < cap:
        seen_hosts: set[str] = set()
        deferred: List[Snippet] = []
        for s in remaining:
            host = host_from_url(s.url)
            if host in seen_hosts or len(picked) >= cap:
                deferred.append(s)
                continue
            seen_hosts.add(host)
            picked.append(s)
        remaining = deferred

    return Selection(snippets=picked, citations=dedupe_urls(s.url for s in picked))

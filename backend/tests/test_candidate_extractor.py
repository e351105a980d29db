"""
Tests for candidate_extractor.py

Parsing of the model's candidate list, the hit-support check, and the
per-tier extraction call against a fake LLM.
"""
import asyncio
import json

from intel_brief.core.errors import ProviderTimeoutError
from intel_brief.services.candidate_extractor import (
    CANDIDATE_SYSTEM_PROMPT,
    MAX_HITS,
    CandidateExtractor,
    ExtractedCandidate,
    build_candidate_prompt,
    parse_candidates,
    supporting_hits,
)
from intel_brief.services.scoring import TargetProfile
from tests.fixtures.brief_fixtures import (
    TARGET_HQ,
    TARGET_INDUSTRY,
    TARGET_NAME,
    TARGET_WEBSITE,
    FakeLLM,
    competitor_candidate_snippets,
    extraction,
    snippet,
)

PROFILE = TargetProfile.build(
    name=TARGET_NAME,
    website=TARGET_WEBSITE,
    industry=TARGET_INDUSTRY,
    headquarters=TARGET_HQ,
)


class TestParseCandidates:
    """Tests for parse_candidates."""

    def test_websites_normalised_to_origin(self):
        """Websites become scheme://host; bare hosts get https."""
        parsed = parse_candidates(
            extraction(("Alphacoat AG", "https://www.alphacoat.ch/de/home"), ("Betacoat", "betacoat.ch"))
        )
        assert parsed == [
            ExtractedCandidate("Alphacoat AG", "https://www.alphacoat.ch"),
            ExtractedCandidate("Betacoat", "https://betacoat.ch"),
        ]

    def test_unusable_entries_dropped(self):
        """Entries without a name or a parseable website are skipped."""
        raw = {
            "competitors": [
                {"name": "", "website": "https://a.ch"},
                {"name": "No Site"},
                {"name": "Bad", "website": "not a url"},
                "Alphacoat",
                {"name": "Gammasurf", "website": "https://gammasurf.ch"},
            ]
        }
        assert [c.name for c in parse_candidates(raw)] == ["Gammasurf"]

    def test_duplicates_collapse(self):
        """The same name on the same domain is listed once."""
        raw = extraction(("Alphacoat", "https://alphacoat.ch"), ("alphacoat", "https://www.alphacoat.ch/x"))
        assert len(parse_candidates(raw)) == 1

    def test_malformed_response(self):
        """A response without a competitors list yields nothing."""
        assert parse_candidates({"competitors": "Alphacoat"}) == []
        assert parse_candidates({}) == []
        assert parse_candidates(None) == []


class TestSupportingHits:
    """Tests for supporting_hits."""

    def test_own_domain_hits(self):
        """Hits on the candidate's domain support it."""
        hits = competitor_candidate_snippets()
        support = supporting_hits(ExtractedCandidate("Alphacoat", "https://alphacoat.ch"), hits)
        assert [h.url for h in support] == ["https://alphacoat.ch/"]

    def test_domain_mentioned_in_text(self):
        """A directory hit that names the domain supports it."""
        hits = [snippet("https://www.kompass.com/c/beta", "Betacoat, www.betacoat.ch, Winterthur")]
        support = supporting_hits(ExtractedCandidate("Betacoat", "https://betacoat.ch"), hits)
        assert len(support) == 1

    def test_mention_must_be_whole_domain(self):
        """'beta.ch' is not mentioned by 'alphabeta.ch'."""
        hits = [snippet("https://www.kompass.com/c/x", "See alphabeta.ch for details")]
        assert supporting_hits(ExtractedCandidate("Beta", "https://beta.ch"), hits) == []


class TestCandidateExtractor:
    """Tests for CandidateExtractor.extract."""

    def test_one_call_per_tier(self):
        """Hits go to the model once; its candidates come back parsed."""
        llm = FakeLLM([extraction(("Alphacoat", "https://alphacoat.ch"))])
        found = asyncio.run(CandidateExtractor(llm).extract(competitor_candidate_snippets(), PROFILE))
        assert found == [ExtractedCandidate("Alphacoat", "https://alphacoat.ch")]
        assert llm.calls[0][0] == CANDIDATE_SYSTEM_PROMPT

    def test_no_hits_no_call(self):
        """An empty tier never reaches the model."""
        llm = FakeLLM([])
        assert asyncio.run(CandidateExtractor(llm).extract([], PROFILE)) == []
        assert llm.calls == []

    def test_provider_error_absorbed(self):
        """A failed call contributes no candidates."""
        llm = FakeLLM([ProviderTimeoutError("slow", provider="openai")])
        assert asyncio.run(CandidateExtractor(llm).extract(competitor_candidate_snippets(), PROFILE)) == []

    def test_prompt_is_bounded_and_ordered(self):
        """The prompt lists at most MAX_HITS hits, sorted by URL, with the target context."""
        hits = [snippet(f"https://peer{i:02d}.ch/", "surface coating") for i in range(MAX_HITS + 5)]
        prompt = json.loads(build_candidate_prompt(list(reversed(hits)), PROFILE))
        urls = [h["url"] for h in prompt["search_hits"]]
        assert len(urls) == MAX_HITS
        assert urls == sorted(urls)
        assert prompt["target"]["headquarters"] == "Winterthur, Switzerland"

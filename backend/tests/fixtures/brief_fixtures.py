"""
Shared test fixtures for the research pipeline tests.

Contains fake collaborators (search connector, LLM client), settings with
retries/caching neutralised, and realistic model payloads for a small Swiss
surface-coating company.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from intel_brief.core.config import Settings
from intel_brief.services.connectors.base import SearchConnector
from intel_brief.schemas.brief import Snippet


TARGET_NAME = "Acme Coatings AG"
TARGET_WEBSITE = "https://acme-coatings.ch"
TARGET_HQ = "Winterthur, Switzerland"
TARGET_INDUSTRY = "Surface coating"


def make_settings(**overrides: Any) -> Settings:
    """Settings for tests: no .env, no Redis, zero retry backoff."""
    params: Dict[str, Any] = {
        "_env_file": None,
        "REDIS_URL": None,
        "DATABASE_URL": "sqlite://",
        "TAVILY_API_KEY": "test-key",
        "EXA_API_KEY": "test-key",
        "OPENAI_API_KEY": "test-key",
        "RETRY_BASE_DELAY_SECONDS": 0.0,
        "RETRY_MAX_DELAY_SECONDS": 0.0,
        "PIPELINE_DEADLINE_SECONDS": 30.0,
    }
    params.update(overrides)
    return Settings(**params)


def snippet(url: str, content: str = "", title: str = "", published_at: Optional[str] = None) -> Snippet:
    return Snippet(title=title, url=url, content=content, published_at=published_at)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

Rule = Tuple[str, Union[List[Snippet], BaseException]]


class FakeSearch(SearchConnector):
    """
    Search connector driven by substring rules: the first rule whose key is
    contained in the query decides the result (a list, or an exception to
    raise). Unmatched queries return [].
    """

    name = "fake"

    def __init__(self, rules: Sequence[Rule] = (), settings: Optional[Settings] = None) -> None:
        super().__init__(settings or make_settings())
        self.rules = list(rules)
        self.calls: List[str] = []

    async def search(self, query: str, *, max_results: int, timeout: float) -> List[Snippet]:
        self.calls.append(query)
        for key, result in self.rules:
            if key in query:
                if isinstance(result, BaseException):
                    raise result
                return list(result)[:max_results] if max_results else list(result)
        return []


class FakeLLM:
    """Returns queued responses in order; an exception in the queue is raised."""

    def __init__(self, responses: Sequence[Any]) -> None:
        self.responses = list(responses)
        self.calls: List[Tuple[str, str]] = []

    async def complete_json(self, system: str, user: str, *, model=None, timeout=None) -> Dict[str, Any]:
        self.calls.append((system, user))
        if not self.responses:
            raise AssertionError("unexpected LLM call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return copy.deepcopy(response)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

def use_case(index: int, **overrides: Any) -> Dict[str, Any]:
    uc = {
        "title": f"Cut Scrap with AI QC {index}",
        "description": "Camera-based inspection flags coating defects before parts leave the line.",
        "value_driver": "cost",
        "complexity": 3,
        "effort": 2,
        "est_annual_benefit": 50000 + index * 1000,
        "est_one_time_cost": 20000,
        "est_ongoing_cost": 5000,
        "payback_months": 6 + index,
        "data_requirements": "Inspection images and defect logs",
        "risks": "Lighting variation on the line",
        "next_steps": "Pilot on one coating line",
        "citations": [f"{TARGET_WEBSITE}/quality"],
    }
    uc.update(overrides)
    return uc


def draft_payload(n_use_cases: int = 5, **overrides: Any) -> Dict[str, Any]:
    payload = {
        "company": {
            "name": TARGET_NAME,
            "website": TARGET_WEBSITE,
            "summary": (
                "Acme Coatings AG is a family-owned PVD coating specialist serving medical, "
                "automotive and tooling customers from its plant in Winterthur. It offers "
                "functional surfaces and contract coating with short lead times."
            ),
            "size": "120 employees",
            "industry": TARGET_INDUSTRY,
            "headquarters": TARGET_HQ,
            "founded": "Founded in 1987",
            "ceo": "Anna Muster",
        },
        "industry": {
            "summary": "Coating shops use process data and AI-driven inspection to cut scrap and energy use.",
            "trends": [
                "AI-driven predictive maintenance reduces furnace downtime",
                "Inline vision inspection catches coating defects early",
                "Energy analytics lower cost per coated part",
                "Digital batch records speed up medical audits",
            ],
            "citations": [
                "https://www.reuters.com/markets/coatings",
                "https://www.ft.com/content/surface-tech",
            ],
        },
        "strategic_moves": [
            {
                "title": "Opened a second PVD line",
                "date_iso": "2024-03-01",
                "impact": "Capacity +30%",
                "citations": [f"{TARGET_WEBSITE}/news/line-2"],
            }
        ],
        "competitors": [],
        "use_cases": [use_case(i) for i in range(1, n_use_cases + 1)],
        "citations": [f"{TARGET_WEBSITE}/about"],
    }
    payload.update(overrides)
    return payload


COMPANY_SNIPPETS = [
    snippet(
        f"{TARGET_WEBSITE}/about",
        "Acme Coatings AG offers PVD coating and surface coating services in Winterthur.",
        title="About Acme",
    ),
    snippet(
        "https://www.reuters.com/markets/coatings",
        "Swiss coating firms invest in automation.",
        title="Coatings market",
        published_at="2024-05-02",
    ),
    snippet("https://www.owler.com/company/acme-coatings", "Acme Coatings competitors and revenue."),
]


def competitor_candidate_snippets() -> List[Snippet]:
    """Two same-city peers, one same-country peer, seven industry misses."""
    return [
        snippet(
            "https://alphacoat.ch/",
            "Alphacoat: PVD surface coating services in Winterthur, 80 employees.",
            title="Alphacoat",
        ),
        snippet(
            "https://betacoat.ch/",
            "Betacoat provides surface coating for medical parts in Winterthur.",
            title="Betacoat",
        ),
        snippet(
            "https://gammasurf.ch/",
            "Gammasurf offers surface coating for industry, based in Basel, Switzerland.",
            title="Gammasurf",
        ),
        snippet("https://deltabake.fr/", "Delta is a bakery in Paris, France.", title="Delta"),
        snippet("https://epsilonfreight.de/", "Epsilon freight forwarding in Hamburg.", title="Epsilon"),
        snippet("https://zetatextile.it/", "Zeta textile mill near Milano, Italy.", title="Zeta"),
        snippet("https://etaplastics.pl/", "Eta injection moulding in Warsaw, Poland.", title="Eta"),
        snippet("https://thetafurniture.es/", "Theta furniture maker in Madrid, Spain.", title="Theta"),
        snippet("https://iotaprint.nl/", "Iota printing house in Amsterdam.", title="Iota"),
        snippet("https://kappaglass.at/", "Kappa glass blowing studio in Wien.", title="Kappa"),
    ]


ALPHA_EVIDENCE = [
    snippet(
        "https://alphacoat.ch/about",
        "Alphacoat provides PVD surface coating services for medical and automotive customers. "
        "Our team of 80 employees works with digital process monitoring.",
        title="About Alphacoat",
    ),
    snippet(
        "https://alphacoat.ch/services",
        "Customer-specific coatings with quality analytics for every batch.",
        title="Services",
    ),
]

GAMMA_EVIDENCE = [
    snippet(
        "https://gammasurf.ch/unternehmen",
        "Gammasurf offers surface coating and heat treatment for machine builders in Switzerland. "
        "Around 45 employees, tailored solutions and automation of our lines.",
        title="Unternehmen",
    ),
]

# Pages on somebody else's domain do not count as evidence
BETA_EVIDENCE = [
    snippet("https://www.kompass.com/betacoat", "Betacoat directory entry, 30 employees."),
]


def extraction(*pairs: Tuple[str, str]) -> Dict[str, Any]:
    """Candidate-extraction response naming (name, website) pairs."""
    return {"competitors": [{"name": name, "website": website} for name, website in pairs]}


# What the model names from competitor_candidate_snippets(); the gates decide
CITY_TIER_EXTRACTION = extraction(
    ("Alphacoat", "https://alphacoat.ch"),
    ("Betacoat", "https://betacoat.ch"),
    ("Gammasurf", "https://gammasurf.ch"),
    ("Delta", "https://deltabake.fr"),
    ("Epsilon", "https://epsilonfreight.de"),
    ("Zeta", "https://zetatextile.it"),
    ("Eta", "https://etaplastics.pl"),
    ("Theta", "https://thetafurniture.es"),
    ("Iota", "https://iotaprint.nl"),
    ("Kappa", "https://kappaglass.at"),
)

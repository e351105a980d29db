"""
Pure scoring primitives for competitor discovery.

Everything here is deterministic and free of I/O so ranking behaviour can be
tested from plain strings:

    profile = TargetProfile.build(name="Acme AG", website="https://acme.ch",
                                  industry="Surface coating",
                                  headquarters="Winterthur, Switzerland",
                                  size="120 employees", snippets=[...])
    scores = score_candidate("... PVD coating in Zurich, 80 employees ...",
                             "https://rival.ch/about", profile)
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from .urls import domain_core, registrable_domain, to_origin
from ..schemas.brief import Snippet

# ---------------------------------------------------------------------------
# Weight tables
# ---------------------------------------------------------------------------

GEOGRAPHY_WEIGHTS: Dict[str, float] = {
    "city": 1.0,
    "country": 0.8,
    "dach": 0.6,
    "europe": 0.4,
}

# Closeness ladder, as multiples of the target's size tolerance
SIZE_LADDER: Tuple[Tuple[float, float], ...] = (
    (0.5, 1.0),
    (1.0, 0.8),
    (2.0, 0.6),
)
SIZE_FAR = 0.3
SIZE_UNKNOWN = 0.5
SIZE_REFERENCE_MAJOR = 0.2

SMB_EMPLOYEE_CEILING = 500
REFERENCE_MAJOR_MIN_MATCH = 0.7
MIN_INDUSTRY_HITS = 2
MAX_INDUSTRY_TOKENS = 6


# ---------------------------------------------------------------------------
# Pattern tables
# ---------------------------------------------------------------------------

# canonical token -> matcher (English + German spellings)
INDUSTRY_TOKEN_PATTERNS: Dict[str, Pattern[str]] = {
    "pvd coating": re.compile(r"\bpvd[\s-]+(coating|beschichtung)", re.I),
    "surface engineering": re.compile(r"\b(surface\s+engineering|oberflächenbeschichtung)", re.I),
    "functional surfaces": re.compile(r"\b(functional\s+surfaces|funktionale\s+oberflächen)", re.I),
    "electroplating": re.compile(r"\b(electroplating|galvanisier\w*|galvanotechnik)", re.I),
    "coating": re.compile(r"\b(coating|beschichtung)", re.I),
    "surface treatment": re.compile(r"\b(surface\s+treatment|oberflächenbehandlung)", re.I),
    "thin film": re.compile(r"\b(thin[\s-]+film|dünnschicht)", re.I),
    "mobility": re.compile(r"\b(mobility|mobilität)", re.I),
    "energy": re.compile(r"\b(energy|energie)\b", re.I),
    "semiconductor": re.compile(r"\b(semiconductor|halbleiter)", re.I),
    "manufacturing": re.compile(r"\b(manufacturing|fertigung)", re.I),
    "industrial": re.compile(r"\b(industrial|industriell)", re.I),
    "machining": re.compile(r"\b(machining|zerspanung|cnc)\b", re.I),
    "automation": re.compile(r"\b(automation|automatisierung)", re.I),
    "logistics": re.compile(r"\b(logistics|logistik)", re.I),
    "medical devices": re.compile(r"\b(medical\s+devices?|medizintechnik)", re.I),
}

INDUSTRY_STOPWORDS = {
    "and", "the", "for", "with", "services", "service", "solutions", "company",
    "companies", "industry", "industries", "other", "general", "und", "sector",
}

COUNTRY_PATTERNS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"switzerland|schweiz|suisse", re.I), "Switzerland"),
    (re.compile(r"germany|deutschland", re.I), "Germany"),
    (re.compile(r"austria|österreich", re.I), "Austria"),
    (re.compile(r"liechtenstein", re.I), "Liechtenstein"),
    (re.compile(r"france", re.I), "France"),
    (re.compile(r"italy|italia", re.I), "Italy"),
    (re.compile(r"spain|españa", re.I), "Spain"),
    (re.compile(r"united\s+kingdom|\buk\b|britain", re.I), "United Kingdom"),
    (re.compile(r"poland|polska", re.I), "Poland"),
    (re.compile(r"netherlands|nederland", re.I), "Netherlands"),
)

# Words that indicate the same country in candidate text, and its ccTLD
COUNTRY_VARIANTS: Dict[str, Tuple[Tuple[str, ...], str]] = {
    "Switzerland": (("switzerland", "schweiz", "suisse", "swiss", "zurich", "zürich", "bern", "basel"), ".ch"),
    "Germany": (("germany", "deutschland", "german", "berlin", "munich", "münchen", "hamburg"), ".de"),
    "Austria": (("austria", "österreich", "austrian", "vienna", "wien"), ".at"),
    "Liechtenstein": (("liechtenstein", "vaduz"), ".li"),
    "France": (("france", "french", "paris", "lyon"), ".fr"),
    "Italy": (("italy", "italia", "italian", "rome", "milan", "milano"), ".it"),
    "Spain": (("spain", "españa", "spanish", "madrid", "barcelona"), ".es"),
    "United Kingdom": (("united kingdom", "britain", "british", "london", "england"), ".uk"),
    "Poland": (("poland", "polska", "polish", "warsaw"), ".pl"),
    "Netherlands": (("netherlands", "nederland", "dutch", "amsterdam"), ".nl"),
}

DACH_COUNTRIES = {"Switzerland", "Germany", "Austria", "Liechtenstein"}
DACH_TEXT = re.compile(r"\b(dach|switzerland|schweiz|germany|deutschland|austria|österreich)\b", re.I)
EUROPE_TEXT = re.compile(r"\b(europe|europa|european|eu)\b", re.I)
NON_EUROPE_HQ = re.compile(r"usa|united\s+states|america|canada|mexico|asia|china|japan|india", re.I)

# Directories, press aggregators and job boards: never competitors
JUNK_DOMAINS: Tuple[Pattern[str], ...] = (
    re.compile(
        r"market-research|report|news|press|saas|software|agency|advertising|retail|jobs|"
        r"recruiting|wikipedia|linkedin|cbinsights|owler|zoominfo|directories",
        re.I,
    ),
    re.compile(r"(^|\.)g2\.com$", re.I),
    re.compile(r"crunchbase\.com|softwaresuggest\.com|softwareadvice\.com", re.I),
    re.compile(r"indeed\.|glassdoor\.|kompass\.|europages\.|dnb\.com|yelp\.", re.I),
)

NEGATIVE_PATTERNS: Tuple[Pattern[str], ...] = (
    # Global incumbents that are not peers of an SMB
    re.compile(r"oerlikon|voestalpine|bühler", re.I),
    re.compile(r"advertising|marketing\s+agency|restaurant", re.I),
    re.compile(r"consulting|consultant|advisory", re.I),
    re.compile(r"analytics\s+tools?|data\s+broker|software\s+platform", re.I),
    re.compile(r"global\s+group|holding\s+company|oem\s+manufacturer", re.I),
    # Associations, media and resellers are not peers
    re.compile(
        r"member\s+directory|mitgliederverzeichnis|\b(?:trade|industry)\s+association|\w*verband\b|"
        r"\b(?:magazine?|fachzeitschrift|newspaper|zeitung)\b|\b(?:distributor|reseller|fachhändler)s?\b",
        re.I,
    ),
)

_NUMBER = r"(\d{1,3}(?:[,.'’]\d{3})+|\d+)"
EMPLOYEE_COUNT_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(_NUMBER + r"[\s-]*(?:\+\s*)?(?:employees|staff|workforce|people|headcount|mitarbeiter(?:innen)?)", re.I),
    re.compile(r"workforce\s+of\s+" + _NUMBER, re.I),
    re.compile(r"team\s+of\s+" + _NUMBER, re.I),
)
SIZE_RANGE_PATTERN = re.compile(
    _NUMBER + r"(?:\s*(?:-|–|to|bis)\s*" + _NUMBER + r")?\s*(?:\+\s*)?(?:employees?|mitarbeiter\w*|staff|people)",
    re.I,
)


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocationProfile:
    city: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None  # "DACH" | "Europe" | None
    is_dach: bool = False
    is_europe: bool = False


def extract_location(headquarters: Optional[str]) -> LocationProfile:
    """City is the first comma-separated part; country and region by pattern."""
    hq = (headquarters or "").strip()
    if not hq:
        return LocationProfile()

    first = hq.split(",")[0].strip()
    country: Optional[str] = None
    for pattern, name in COUNTRY_PATTERNS:
        if pattern.search(hq):
            country = name
            break

    # "Switzerland" alone is a country, not a city
    city: Optional[str] = first or None
    if city and any(p.fullmatch(city) for p, _ in COUNTRY_PATTERNS):
        city = None

    is_dach = country in DACH_COUNTRIES
    is_europe = is_dach or country is not None or not NON_EUROPE_HQ.search(hq)
    region = "DACH" if is_dach else ("Europe" if is_europe else None)
    return LocationProfile(city=city, country=country, region=region, is_dach=is_dach, is_europe=is_europe)


def describe_location(location: LocationProfile) -> str:
    if location.city and location.country:
        return f"{location.city}, {location.country}"
    return location.country or location.city or location.region or ""


# ---------------------------------------------------------------------------
# Size
# ---------------------------------------------------------------------------

def _to_int(raw: str) -> int:
    return int(re.sub(r"[,.'’]", "", raw))


def parse_employee_count(text: str) -> Optional[int]:
    """First employee count mentioned in free text, if any."""
    for pattern in EMPLOYEE_COUNT_PATTERNS:
        m = pattern.search(text or "")
        if m:
            return _to_int(m.group(1))
    return None


def parse_size_range(size: Optional[str]) -> Optional[Tuple[int, int]]:
    """'50-200 employees' -> (50, 200); '120 Mitarbeiter' -> (120, 120)."""
    m = SIZE_RANGE_PATTERN.search(size or "")
    if not m:
        return None
    low = _to_int(m.group(1))
    high = _to_int(m.group(2)) if m.group(2) else low
    return (min(low, high), max(low, high))


def employee_band(text: str) -> Optional[str]:
    """Employee band phrase for display ('50-200 employees' / '80 employees')."""
    rng = parse_size_range(text)
    if rng is None:
        count = parse_employee_count(text)
        if count is None:
            return None
        rng = (count, count)
    low, high = rng
    return f"{low}-{high} employees" if low != high else f"{low} employees"


def size_tolerance(target_range: Tuple[int, int]) -> Tuple[int, int]:
    """(average, tolerance) used by the size ladder and size-banded queries."""
    avg = round(sum(target_range) / 2)
    return avg, max(50, round(avg * 0.5))


def size_match(estimate: Optional[int], target_range: Optional[Tuple[int, int]]) -> float:
    if estimate is None or target_range is None:
        return SIZE_UNKNOWN
    avg, tolerance = size_tolerance(target_range)
    diff = abs(estimate - avg)
    for factor, score in SIZE_LADDER:
        if diff <= tolerance * factor:
            return score
    return SIZE_FAR


# ---------------------------------------------------------------------------
# Industry
# ---------------------------------------------------------------------------

def _industry_words(industry: Optional[str]) -> List[str]:
    words = re.split(r"[^\wäöüß-]+", (industry or "").lower())
    return [w for w in words if len(w) > 3 and w not in INDUSTRY_STOPWORDS]


def extract_industry_tokens(
    snippets: Iterable[Snippet], website: str, industry: Optional[str]
) -> List[str]:
    """
    Tokens describing what the target does: its own industry words first,
    then keyword-table hits over company-site snippets and the industry string.
    """
    own = registrable_domain(website)
    text = " ".join(
        f"{s.title} {s.content}" for s in snippets if own and registrable_domain(s.url) == own
    )
    text = f"{text} {industry or ''}"

    tokens: List[str] = []
    for word in _industry_words(industry):
        if word not in tokens:
            tokens.append(word)
    for token, pattern in INDUSTRY_TOKEN_PATTERNS.items():
        if token not in tokens and pattern.search(text):
            tokens.append(token)
    return tokens[:MAX_INDUSTRY_TOKENS]


def _token_matcher(token: str) -> Pattern[str]:
    pattern = INDUSTRY_TOKEN_PATTERNS.get(token)
    if pattern is not None:
        return pattern
    return re.compile(r"\b" + re.escape(token), re.I)


def industry_hits(text: str, tokens: Iterable[str]) -> int:
    return sum(1 for t in tokens if len(t) > 3 and _token_matcher(t).search(text))


# ---------------------------------------------------------------------------
# Target + candidates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TargetProfile:
    name: str
    website: str
    industry: str
    industry_tokens: Tuple[str, ...]
    location: LocationProfile
    size_range: Optional[Tuple[int, int]] = None

    @classmethod
    def build(
        cls,
        *,
        name: str,
        website: str,
        industry: str,
        headquarters: str,
        size: Optional[str] = None,
        snippets: Iterable[Snippet] = (),
    ) -> "TargetProfile":
        return cls(
            name=name,
            website=website,
            industry=industry,
            industry_tokens=tuple(extract_industry_tokens(snippets, website, industry)),
            location=extract_location(headquarters),
            size_range=parse_size_range(size),
        )


@dataclass
class CandidateScores:
    name: str
    industry: float = 0.0
    geography: float = 0.0
    size: float = SIZE_UNKNOWN
    size_estimate: Optional[int] = None
    is_reference_major: bool = False
    rejected: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.rejected is None


@dataclass
class CandidateCompetitor:
    """Provisional competitor; becomes a Competitor only after the evidence gate."""
    name: str
    website: str
    snippet: Snippet
    industry_match: float
    geography_match: float
    size_match: float
    size_estimate: Optional[int] = None
    is_reference_major: bool = False
    tier: str = ""
    texts: List[str] = field(default_factory=list)

    def rank_key(self) -> tuple:
        return (
            -self.geography_match,
            -self.size_match,
            -self.industry_match,
            self.name.lower(),
            self.website,
        )


def candidate_name_from_url(url: str) -> str:
    core = domain_core(url)
    return core[:1].upper() + core[1:] if core else ""


def is_self(name: str, url: str, target_name: str, target_website: str) -> bool:
    """Same registrable domain, or either name contains the other."""
    target_domain = registrable_domain(target_website)
    if target_domain and registrable_domain(url) == target_domain:
        return True
    a = (name or "").strip().lower()
    b = (target_name or "").strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def geography_match(text: str, url: str, location: LocationProfile) -> float:
    text_l = text.lower()
    url_l = url.lower()
    host = registrable_domain(url)
    if location.city and (location.city.lower() in text_l or location.city.lower() in url_l):
        return GEOGRAPHY_WEIGHTS["city"]
    if location.country:
        words, tld = COUNTRY_VARIANTS.get(location.country, ((location.country.lower(),), ""))
        if any(w in text_l for w in words) or (tld and host.endswith(tld)):
            return GEOGRAPHY_WEIGHTS["country"]
    if location.is_dach and DACH_TEXT.search(text):
        return GEOGRAPHY_WEIGHTS["dach"]
    if location.is_europe and EUROPE_TEXT.search(text):
        return GEOGRAPHY_WEIGHTS["europe"]
    return 0.0


def score_candidate(
    evidence_text: str,
    url: str,
    profile: TargetProfile,
    *,
    name: Optional[str] = None,
) -> CandidateScores:
    """
    Score one candidate against the target. `url` is the candidate's website
    and `name` its extracted organisation name (derived from the domain when
    omitted). Gates run in order and the first failing gate sets `rejected`;
    later scores are then not computed.
    """
    name = (name or "").strip() or candidate_name_from_url(url)
    scores = CandidateScores(name=name)
    host = registrable_domain(url)

    if not host or not to_origin(url):
        scores.rejected = "unparseable_url"
        return scores
    if any(p.search(host) for p in JUNK_DOMAINS):
        scores.rejected = "junk_domain"
        return scores
    if any(p.search(evidence_text) for p in NEGATIVE_PATTERNS):
        scores.rejected = "negative_pattern"
        return scores
    if is_self(name, url, profile.name, profile.website):
        scores.rejected = "self"
        return scores

    hits = industry_hits(evidence_text, profile.industry_tokens)
    if hits < MIN_INDUSTRY_HITS:
        scores.rejected = "industry"
        return scores
    scores.industry = min(1.0, hits / max(2, len(profile.industry_tokens)))

    scores.geography = geography_match(evidence_text, url, profile.location)
    if scores.geography <= 0:
        scores.rejected = "geography"
        return scores

    scores.size_estimate = parse_employee_count(evidence_text)
    scores.size = size_match(scores.size_estimate, profile.size_range)
    if scores.size_estimate is not None and scores.size_estimate > SMB_EMPLOYEE_CEILING:
        if scores.industry > REFERENCE_MAJOR_MIN_MATCH and scores.geography > REFERENCE_MAJOR_MIN_MATCH:
            scores.is_reference_major = True
            scores.size = SIZE_REFERENCE_MAJOR
        else:
            scores.rejected = "size"
    return scores

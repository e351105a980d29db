"""
Search query construction for a single research run.

Queries are emitted in a fixed order so retrieval, logging and tests are
reproducible:

1. company-anchored, site-restricted queries (`site:<domain>`)
2. company facts (founding, leadership, headcount)
3. CEO lookup (German register vocabulary for DACH targets)
4. industry / operations, using the industry and headquarters hints
5. strategy / customers
6. a placeholder competitor query; focused competitor search happens later
   in competitor discovery once the draft knows the industry and HQ.
"""
from __future__ import annotations

from typing import List, Optional

from .urls import host_from_url, normalize_website
from ..core.errors import InvalidInputError
from ..schemas.brief import QueryIntent, ResearchQuery

FOUNDING_TERMS = "founded OR established OR incorporated OR registered OR since"

DACH_TLDS = (".ch", ".de", ".at")


def infer_dach(website: str) -> bool:
    """Germany/Austria/Switzerland inferred from the website's TLD."""
    host = host_from_url(website)
    return host.endswith(DACH_TLDS)


def _ceo_queries(name: str, dach: bool) -> List[str]:
    if dach:
        return [
            f"{name} LinkedIn CEO OR Geschäftsführer OR Vorstand",
            f'{name} "Handelsregister" OR "Commercial Register" CEO OR Geschäftsführer',
            f'{name} "Unternehmensregister" OR "Company Register" leadership',
            f'{name} site:linkedin.com/in/ CEO OR "Chief Executive" OR Geschäftsführer',
        ]
    return [
        f'{name} LinkedIn CEO OR "Chief Executive Officer"',
        f"{name} site:linkedin.com/in/ CEO OR executive",
        f"{name} site:linkedin.com/company/ leadership OR management",
        f'{name} "company register" OR "commercial register" CEO OR director',
    ]


def _industry_queries(name: str, industry: Optional[str], headquarters: Optional[str]) -> List[str]:
    if industry:
        where = f" {headquarters}" if headquarters else ""
        return [
            f"{name} {industry} operations capabilities",
            f"{industry} industry trends{where}",
            f"{industry} market outlook automation digitalisation",
        ]
    # Default SMB / industrial bias when nothing is known yet
    return [
        f"{name} manufacturing operations capabilities quality control",
        f"{name} industry trends manufacturing OR industrial automation",
        f"{name} sustainability energy efficiency supply chain",
    ]


def build_company_queries(
    name: str,
    website: str,
    *,
    industry: Optional[str] = None,
    headquarters: Optional[str] = None,
    size: Optional[str] = None,
) -> List[ResearchQuery]:
    """
    Build the ordered, de-duplicated query list for a company.

    Raises InvalidInputError when the name is empty or the website has no
    usable host.
    """
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("company name must not be empty")
    normalized = normalize_website(website)
    if not normalized:
        raise InvalidInputError(
            "website must be a host name or URL", context={"website": website}
        )
    domain = host_from_url(normalized)

    planned: List[tuple[str, QueryIntent]] = [
        (f"{name} site:{domain} company overview OR about", QueryIntent.company_facts),
        (f"{name} site:{domain} products OR solutions OR industries", QueryIntent.company_facts),
        (f"{name} site:{domain} press OR news OR media", QueryIntent.company_facts),
        (f"{name} {FOUNDING_TERMS}", QueryIntent.company_facts),
        (
            f'{name} CEO OR "Chief Executive Officer" OR founder OR leadership OR management team',
            QueryIntent.company_facts,
        ),
        (
            f'{name} employees OR "number of employees" OR "employee count" OR workforce OR headcount',
            QueryIntent.company_facts,
        ),
    ]
    planned.extend((q, QueryIntent.ceo_lookup) for q in _ceo_queries(name, infer_dach(normalized)))
    planned.extend(
        (q, QueryIntent.industry) for q in _industry_queries(name, industry, headquarters)
    )
    planned.append((f"{name} partnerships clients investments expansion", QueryIntent.industry))
    planned.append((f"{name} customer case study", QueryIntent.industry))
    if size:
        planned.append((f"{name} {size} growth hiring", QueryIntent.industry))
    planned.append(
        (f"{name} competitors peers alternatives comparison", QueryIntent.competitor_discovery)
    )

    seen: set[str] = set()
    queries: List[ResearchQuery] = []
    for text, intent in planned:
        key = " ".join(text.lower().split())
        if key in seen:
            continue
        seen.add(key)
        queries.append(ResearchQuery(text=text, intent=intent))
    return queries

"""
Host / domain helpers shared by the selector, competitor discovery and the
brief schema.

All helpers are tolerant of scheme-less input ("acme.ch/about") because
search providers and LLM output are inconsistent about it.
"""
from __future__ import annotations

from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

# Second-level public suffixes we see in practice; the last-two-labels rule
# is wrong for these ("acme.co.uk" must not collapse to "co.uk").
MULTI_LABEL_SUFFIXES = {
    "co.uk", "org.uk", "ac.uk", "gov.uk", "ltd.uk", "plc.uk",
    "com.au", "net.au", "org.au",
    "co.nz", "co.jp", "co.za", "co.in", "co.kr",
    "com.br", "com.cn", "com.mx", "com.tr", "com.sg", "com.hk",
    "gv.at", "or.at", "co.at",
}


def _parse(url: str):
    url = (url or "").strip()
    if not url:
        return None
    if "://" not in url:
        url = "https://" + url
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.hostname:
        return None
    return parsed


def host_from_url(url: str | None) -> str:
    """Lower-cased hostname without a leading ``www.``; "" if unparseable."""
    parsed = _parse(url or "")
    if parsed is None:
        return ""
    host = parsed.hostname.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def registrable_domain(url: str | None) -> str:
    """
    eTLD+1 of a URL or bare host.

        registrable_domain("https://shop.acme.co.uk/x") -> "acme.co.uk"
        registrable_domain("www.acme.ch")              -> "acme.ch"
    """
    host = host_from_url(url)
    if not host:
        return ""
    parts = host.split(".")
    if len(parts) <= 2:
        return host
    if ".".join(parts[-2:]) in MULTI_LABEL_SUFFIXES:
        return ".".join(parts[-3:])
    return ".".join(parts[-2:])


def domain_core(url: str | None) -> str:
    """First label of the registrable domain ("acme.co.uk" -> "acme")."""
    dom = registrable_domain(url)
    return dom.split(".")[0] if dom else ""


def to_origin(url: str | None) -> Optional[str]:
    """scheme://host for a URL, None when it cannot be parsed."""
    parsed = _parse(url or "")
    if parsed is None:
        return None
    scheme = parsed.scheme if parsed.scheme in ("http", "https") else "https"
    return f"{scheme}://{parsed.hostname.lower()}"


def normalize_website(url: str | None) -> str:
    """
    Normalise user-supplied website input: trim, add https://, drop trailing
    slashes. Returns "" when the value has no usable host.
    """
    raw = (url or "").strip().rstrip("/")
    if not raw:
        return ""
    parsed = _parse(raw)
    if parsed is None or "." not in parsed.hostname:
        return ""
    if "://" not in raw:
        raw = "https://" + raw
    return raw


def is_http_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_citation(url: str) -> str:
    """Strip fragments and sort query params so equal pages compare equal."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url
    query = urlencode(sorted(parse_qsl(parsed.query, keep_blank_values=True)))
    return urlunparse(parsed._replace(fragment="", query=query))


def dedupe_urls(urls: Iterable[str]) -> List[str]:
    """Order-preserving de-duplication on the normalised form."""
    seen: set[str] = set()
    result: List[str] = []
    for u in urls:
        if not u:
            continue
        n = normalize_citation(u)
        if n not in seen:
            seen.add(n)
            result.append(n)
    return result

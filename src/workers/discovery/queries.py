"""
Search query generation and candidate filtering for competitor discovery.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from core.ai.base import BaseAIProvider
from core.ai.parsing import Malformed, Ok, parse_json_array
from core.errors import CapabilityUnavailableError
from workers.discovery.search import SearchMode, SearchResult, hostname

logger = logging.getLogger(__name__)

MAX_QUERIES = 4

# Marketplaces, travel aggregators, review sites, search engines and social networks
AGGREGATOR_DENYLIST = frozenset({
    "booking.com", "expedia.com", "hotels.com", "trivago.com", "kayak.com", "priceline.com",
    "agoda.com", "airbnb.com", "vrbo.com", "orbitz.com", "travelocity.com", "hostelworld.com",
    "tripadvisor.com", "tripadvisor.co.uk", "yelp.com", "trustpilot.com", "foursquare.com",
    "amazon.com", "amazon.co.uk", "amazon.de", "amazon.ca", "ebay.com", "ebay.co.uk",
    "etsy.com", "walmart.com", "target.com", "bestbuy.com", "aliexpress.com", "alibaba.com",
    "temu.com", "shein.com", "wish.com", "mercadolibre.com",
    "google.com", "bing.com", "yahoo.com", "duckduckgo.com",
    "facebook.com", "instagram.com", "twitter.com", "x.com", "linkedin.com", "pinterest.com",
    "tiktok.com", "youtube.com", "reddit.com", "quora.com", "wikipedia.org",
    "yellowpages.com", "bbb.org", "angi.com", "thumbtack.com", "groupon.com",
})

_QUERY_PROMPT = """Based on this business information, generate 2 to {max_queries} diverse search queries \
to find its competitors. Combine the business type, the locality suggested by the domain, and the top \
product names or features.

Domain: {domain}
Business Type: {business_type}
Features: {features}
Products: {products}

Return ONLY a JSON array of search query strings optimized for shopping, local and organic search."""


@dataclass(frozen=True, slots=True)
class QueryPlan:
    queries: list[str]
    used_fallback: bool


def domain_label(domain: str) -> str:
    """``www.acme-hotels.com`` -> ``acme-hotels``."""
    host = domain.strip().lower().removeprefix("https://").removeprefix("http://").split("/", 1)[0]
    return host.removeprefix("www.").split(".", 1)[0]


def fallback_queries(business_type: str, domain: str, product_names: Sequence[str] = ()) -> list[str]:
    """Templated queries; always at least one."""
    name = domain_label(domain) or domain
    queries = [f"{business_type} near {name} area", f"similar services to {name}"]
    product = next((p.strip() for p in product_names if p and p.strip()), None)
    if product:
        queries.append(f"{product} {business_type}".strip())
    return queries


def search_modes(business_type: str) -> list[SearchMode]:
    """Shopping and organic, plus local search for local businesses and maps otherwise."""
    third = SearchMode.LOCAL if "local" in business_type.lower() else SearchMode.MAPS
    return [SearchMode.SHOPPING, SearchMode.ORGANIC, third]


async def generate_queries(
    ai: BaseAIProvider | None,
    *,
    domain: str,
    business_type: str,
    features: Sequence[str],
    product_names: Sequence[str],
) -> QueryPlan:
    fallback = QueryPlan(fallback_queries(business_type, domain, product_names), used_fallback=True)
    if ai is None:
        return fallback

    prompt = _QUERY_PROMPT.format(
        max_queries=MAX_QUERIES,
        domain=domain,
        business_type=business_type,
        features=json.dumps(list(features)[:15]),
        products=json.dumps(list(product_names)[:10]),
    )
    try:
        raw = await ai.complete(prompt)
    except (CapabilityUnavailableError, TimeoutError) as exc:
        logger.warning("Query generation unavailable, using templated queries: %s", exc)
        return fallback

    match parse_json_array(raw):
        case Ok(value=items):
            queries = list(dict.fromkeys(q.strip() for q in items if isinstance(q, str) and q.strip()))
            if queries:
                return QueryPlan(queries[:MAX_QUERIES], used_fallback=False)
            logger.warning("Query generation returned no usable queries, using templated queries")
        case Malformed(reason=reason):
            logger.warning("Malformed query generation answer (%s), using templated queries", reason)
    return fallback


def is_denylisted(host: str) -> bool:
    host = host.lower().removeprefix("www.")
    return any(host == entry or host.endswith("." + entry) for entry in AGGREGATOR_DENYLIST)


def normalize_host(value: str) -> str | None:
    """Hostname of a URL or bare domain, lowercased without ``www.``; ``None`` if malformed."""
    value = value.strip()
    if not value:
        return None
    if "://" not in value:
        value = f"https://{value}"
    return hostname(value)


def collect_candidates(
    results: Iterable[SearchResult],
    own_domain: str,
    known_competitors: Iterable[str] = (),
    limit: int | None = None,
) -> tuple[list[str], dict[str, SearchResult]]:
    """
    Candidate competitor hosts in order of first discovery.

    Known competitors come first. The caller's own domain, denylisted
    aggregators and malformed entries are dropped. Also returns the first
    search result seen per host, for its rating/price metadata.
    """
    own = normalize_host(own_domain)
    candidates: dict[str, None] = {}
    first_result: dict[str, SearchResult] = {}

    def consider(host: str | None) -> None:
        if not host or host == own or is_denylisted(host):
            return
        candidates.setdefault(host, None)

    for known in known_competitors:
        consider(normalize_host(known))
    for result in results:
        host = normalize_host(result.domain or result.url)
        consider(host)
        if host and host in candidates:
            first_result.setdefault(host, result)

    hosts = list(candidates)
    if limit is not None:
        hosts = hosts[:limit]
    return hosts, {h: r for h, r in first_result.items() if h in hosts}

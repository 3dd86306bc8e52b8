"""
Smart Crawler
=============
Bounded breadth-first crawl of one domain:

  depth 0  the homepage
  depth 1  sitemap entries (LLM-prioritized when the sitemap is large)
  depth n  same-site URLs found in depth n-1 structured data and product/service links

Each depth is trimmed to ``max_pages_per_depth`` (LLM ranking, keyword
scoring when that fails), robots-disallowed paths are skipped, and every
URL is fetched at most once per crawl. Pages of one depth are fetched
concurrently unless robots.txt asks for a crawl delay, in which case they
are fetched one at a time with the delay after each page.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any
from urllib.parse import urlparse

from core.ai.base import BaseAIProvider
from core.ai.parsing import Malformed, Ok, parse_json_array
from core.errors import CapabilityUnavailableError, PipelineError
from workers.crawler.fetcher import PageSource
from workers.crawler.models import RobotsData, SiteContent, SiteMetadata, SitemapEntry

logger = logging.getLogger(__name__)

PRIORITY_KEYWORDS = ("product", "service", "pricing", "price", "about", "contact", "location", "store")

_PRIORITIZE_PROMPT = """Analyze these URLs and select the top {limit} most likely to contain valuable \
competitor information like products, services, pricing, or business details.

URLs to analyze:
{urls}

Consider these factors:
1. Product/category pages
2. Service description pages
3. Pricing pages
4. About/Company pages
5. Contact/Location pages

Return ONLY a JSON array of the top {limit} most relevant URLs.
Example: ["https://example.com/products", "https://example.com/services"]"""


# ── Pure helpers ───────────────────────────────────────────────────────

def keyword_score(url: str, keywords: Iterable[str] = PRIORITY_KEYWORDS) -> int:
    lowered = url.lower()
    return sum(1 for keyword in keywords if keyword in lowered)


def prioritize_by_keywords(
    urls: Sequence[str],
    limit: int,
    keywords: Iterable[str] = PRIORITY_KEYWORDS,
) -> list[str]:
    """Top ``limit`` URLs by keyword hits; ties keep their original order."""
    keywords = tuple(keywords)
    return sorted(urls, key=lambda url: -keyword_score(url, keywords))[:limit]


def bare_domain(domain: str) -> str:
    """``https://www.Shop.example/x`` -> ``www.shop.example``."""
    domain = domain.strip().lower()
    if "://" in domain:
        domain = urlparse(domain).hostname or ""
    return domain.split("/", 1)[0]


def canonical_url(url: str) -> str:
    """Crawl identity of a URL: lowercased scheme and host without fragment or trailing slash."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}{query}"


def same_site(host: str | None, domain: str) -> bool:
    if not host:
        return False
    host = host.lower().removeprefix("www.")
    domain = bare_domain(domain).removeprefix("www.")
    return host == domain or host.endswith("." + domain)


def _walk_strings(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _walk_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _walk_strings(item)


def extract_next_urls(content: SiteContent, domain: str) -> list[str]:
    """Same-site URLs referenced by a page's structured data and offerings."""
    found: dict[str, None] = {}
    for block in content.metadata.structured_data:
        for value in _walk_strings(block):
            if value.startswith("http"):
                try:
                    host = urlparse(value).hostname
                except ValueError:
                    continue
                if same_site(host, domain):
                    found[value] = None
    for item in [*content.products, *content.services]:
        if item.url:
            try:
                host = urlparse(item.url).hostname
            except ValueError:
                continue
            if same_site(host, domain):
                found[item.url] = None
    return list(found)


def _unique(items: Iterable[Any]) -> list[Any]:
    return list(dict.fromkeys(items))


def merge_site_contents(pages: Sequence[SiteContent]) -> SiteContent:
    """
    Merge per-page content into one record.

    The first page supplies url/title/description and contact info; lists
    are unioned in order, structured data and prices concatenated.
    """
    if not pages:
        return SiteContent()

    first = pages[0]
    return SiteContent(
        url=first.url,
        title=first.title,
        description=first.description,
        products=_unique(item for page in pages for item in page.products),
        services=_unique(item for page in pages for item in page.services),
        categories=_unique(c for page in pages for c in page.categories),
        keywords=_unique(k for page in pages for k in page.keywords),
        main_content="\n".join(page.main_content for page in pages),
        metadata=SiteMetadata(
            structured_data=[block for page in pages for block in page.metadata.structured_data],
            contact_info=first.metadata.contact_info,
            prices=[price for page in pages for price in page.metadata.prices],
        ),
    )


def _is_disallowed(robots: RobotsData, url: str) -> bool:
    """Prefix match of the URL path against the disallowed paths."""
    path = urlparse(url).path or "/"
    return any(path.startswith(rule) for rule in robots.disallowed_paths)


# ── Crawler ────────────────────────────────────────────────────────────

class SmartCrawler:
    """Depth-bounded, robots-aware crawler producing one merged SiteContent."""

    def __init__(
        self,
        pages: PageSource,
        ai: BaseAIProvider | None = None,
        *,
        max_depth: int = 3,
        max_pages_per_depth: int = 10,
        llm_url_threshold: int = 50,
        concurrency: int = 4,
    ) -> None:
        self.pages = pages
        self.ai = ai
        self.max_depth = max_depth
        self.max_pages_per_depth = max_pages_per_depth
        self.llm_url_threshold = llm_url_threshold
        self.concurrency = max(1, concurrency)

    async def prioritize_urls(self, urls: Sequence[str]) -> list[str]:
        """Rank URLs with the completion provider, keyword scoring on any failure."""
        limit = self.max_pages_per_depth
        if self.ai is None:
            return prioritize_by_keywords(urls, limit)

        prompt = _PRIORITIZE_PROMPT.format(limit=limit, urls=json.dumps(list(urls), indent=2))
        try:
            raw = await self.ai.complete(prompt)
        except (CapabilityUnavailableError, TimeoutError) as exc:
            logger.warning("URL prioritization unavailable, using keyword scoring: %s", exc)
            return prioritize_by_keywords(urls, limit)

        match parse_json_array(raw):
            case Ok(value=ranked):
                offered = set(urls)
                selected = _unique(u for u in ranked if isinstance(u, str) and u in offered)
                if selected:
                    return selected[:limit]
                logger.warning("URL prioritization returned no usable URLs, using keyword scoring")
            case Malformed(reason=reason):
                logger.warning("Malformed URL prioritization (%s), using keyword scoring", reason)
        return prioritize_by_keywords(urls, limit)

    async def _fetch_page(
        self,
        url: str,
        depth: int,
        semaphore: asyncio.Semaphore,
        crawl_delay: float | None,
    ) -> SiteContent | None:
        async with semaphore:
            logger.debug("Crawling %s at depth %d", url, depth)
            try:
                content = await self.pages.discover_site_content(url)
            except (PipelineError, TimeoutError, ValueError) as exc:
                logger.warning("Failed to crawl %s: %s", url, exc)
                return None
            if crawl_delay:
                await asyncio.sleep(crawl_delay)
            return content

    def _accept(self, url: str, visited: set[str], robots: RobotsData | None) -> bool:
        if url in visited:
            return False
        try:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ValueError("not an absolute http(s) URL")
        except ValueError as exc:
            logger.warning("Skipping invalid URL %s: %s", url, exc)
            return False
        if robots is not None and _is_disallowed(robots, url):
            logger.debug("Skipping disallowed path: %s", url)
            return False
        return True

    async def crawl(
        self,
        domain: str,
        robots: RobotsData | None = None,
        sitemap_entries: Sequence[SitemapEntry] = (),
    ) -> SiteContent:
        host = bare_domain(domain)
        logger.info("Starting smart crawl for %s", host)

        frontier: dict[int, dict[str, None]] = {0: {canonical_url(f"https://{host}"): None}}
        sitemap_urls = [entry.loc for entry in sitemap_entries if entry.loc]
        if len(sitemap_urls) > self.llm_url_threshold:
            sitemap_urls = await self.prioritize_urls(sitemap_urls)
        frontier[1] = dict.fromkeys(canonical_url(url) for url in sitemap_urls)

        crawl_delay = robots.crawl_delay if robots else None
        semaphore = asyncio.Semaphore(1 if crawl_delay else self.concurrency)
        visited: set[str] = set()
        results: list[SiteContent] = []

        for depth in range(self.max_depth + 1):
            urls = list(frontier.get(depth, {}))
            logger.info("Crawling depth %d with %d URLs", depth, len(urls))

            if len(urls) > self.max_pages_per_depth:
                urls = urls[:1] if depth == 0 else await self.prioritize_urls(urls)

            batch = []
            for url in urls:
                if self._accept(url, visited, robots):
                    visited.add(url)
                    batch.append(url)

            pages = await asyncio.gather(
                *(self._fetch_page(url, depth, semaphore, crawl_delay) for url in batch)
            )
            for page in pages:
                if page is None:
                    continue
                results.append(page)
                if depth < self.max_depth:
                    next_level = frontier.setdefault(depth + 1, {})
                    for url in extract_next_urls(page, host):
                        next_level[canonical_url(url)] = None

        logger.info("Smart crawl for %s fetched %d pages", host, len(results))
        return merge_site_contents(results)

"""
robots.txt and sitemap reader.

Parses the ``User-agent: *`` rules of a domain into ``RobotsData`` and
collects candidate URLs from its sitemaps. Everything is cached per
domain for the lifetime of the reader.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from core.errors import FetchError
from workers.crawler.fetcher import PageSource, normalize_url
from workers.crawler.models import RobotsData, SitemapEntry

logger = logging.getLogger(__name__)

COMMON_SITEMAP_PATHS = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap/sitemap.xml",
    "/sitemaps/sitemap.xml",
    "/product-sitemap.xml",
    "/products-sitemap.xml",
    "/category-sitemap.xml",
)


def parse_robots_txt(text: str) -> RobotsData:
    """Rules for the ``*`` user agent plus every ``Sitemap:`` line."""
    disallowed: list[str] = []
    sitemaps: list[str] = []
    crawl_delay: float | None = None

    group_agents: list[str] = []
    in_rules = False
    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, value = (part.strip() for part in line.split(":", 1))
        key = key.lower()

        if key == "sitemap":
            if value:
                sitemaps.append(value)
            continue
        if key == "user-agent":
            # A user-agent line after rules starts a new group
            if in_rules:
                group_agents = []
                in_rules = False
            group_agents.append(value)
            continue

        in_rules = True
        if "*" not in group_agents:
            continue
        if key == "disallow" and value:
            disallowed.append(value)
        elif key == "crawl-delay":
            try:
                crawl_delay = float(value)
            except ValueError:
                logger.debug("Ignoring invalid Crawl-delay %r", value)

    return RobotsData(disallowed_paths=disallowed, crawl_delay=crawl_delay, sitemaps=sitemaps)


def _rule_matches(rule: str, path: str) -> bool:
    pattern = re.escape(rule).replace(r"\*", ".*")
    if pattern.endswith(r"\$"):
        pattern = pattern[:-2] + "$"
    return re.match(pattern, path) is not None


def is_path_allowed(robots: RobotsData | None, url: str) -> bool:
    """Wildcard-aware robots check (``*`` and trailing ``$``)."""
    if robots is None:
        return True
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return not any(_rule_matches(rule, path) for rule in robots.disallowed_paths)


def parse_sitemap_xml(xml: str) -> tuple[list[SitemapEntry], list[str]]:
    """
    Split one sitemap document into (url entries, nested sitemap URLs).

    Entries without a ``<loc>`` are skipped.
    """
    soup = BeautifulSoup(xml, "html.parser")
    nested = [
        loc.get_text(strip=True)
        for sitemap in soup.find_all("sitemap")
        if (loc := sitemap.find("loc")) is not None and loc.get_text(strip=True)
    ]

    entries: list[SitemapEntry] = []
    for url in soup.find_all("url"):
        loc = url.find("loc")
        if loc is None or not loc.get_text(strip=True):
            continue
        lastmod = url.find("lastmod")
        priority = url.find("priority")
        try:
            priority_value = float(priority.get_text(strip=True)) if priority is not None else None
        except ValueError:
            priority_value = None
        entries.append(
            SitemapEntry(
                loc=loc.get_text(strip=True),
                lastmod=lastmod.get_text(strip=True) if lastmod is not None else None,
                priority=priority_value,
            )
        )
    return entries, nested


class RobotsReader:
    """Fetches and caches robots.txt rules and sitemap entries per domain."""

    def __init__(self, pages: PageSource) -> None:
        self.pages = pages
        self._robots: dict[str, RobotsData | None] = {}

    @staticmethod
    def _origin(domain_or_url: str) -> str:
        parsed = urlparse(normalize_url(domain_or_url))
        return f"{parsed.scheme}://{parsed.netloc}"

    async def parse_robots(self, domain: str) -> RobotsData | None:
        """Rules for ``domain``; ``None`` when robots.txt is unreachable."""
        origin = self._origin(domain)
        if origin in self._robots:
            return self._robots[origin]

        try:
            text = await self.pages.fetch(urljoin(origin, "/robots.txt"))
        except FetchError as exc:
            logger.info("robots.txt unavailable for %s: %s", origin, exc.reason)
            robots = None
        else:
            robots = parse_robots_txt(text)
            logger.info(
                "robots.txt loaded for %s: %d disallow rules, crawl-delay=%s",
                origin,
                len(robots.disallowed_paths),
                robots.crawl_delay,
            )
        self._robots[origin] = robots
        return robots

    async def is_allowed(self, url: str) -> bool:
        return is_path_allowed(await self.parse_robots(url), url)

    async def _fetch_sitemap(self, url: str) -> tuple[list[SitemapEntry], list[str]]:
        try:
            xml = await self.pages.fetch(url)
        except FetchError:
            logger.debug("No sitemap at %s", url)
            return [], []
        return parse_sitemap_xml(xml)

    async def parse_sitemap(self, domain: str) -> list[SitemapEntry]:
        """
        Entries from robots-declared and common sitemap locations.

        Sitemap index files are followed one level deep; results are
        deduplicated by ``loc`` in discovery order.
        """
        origin = self._origin(domain)
        robots = await self.parse_robots(origin)

        candidates = list(robots.sitemaps) if robots else []
        candidates += [urljoin(origin, path) for path in COMMON_SITEMAP_PATHS]

        entries: dict[str, SitemapEntry] = {}
        processed: set[str] = set()
        for sitemap_url in candidates:
            if sitemap_url in processed:
                continue
            processed.add(sitemap_url)

            found, nested = await self._fetch_sitemap(sitemap_url)
            for nested_url in nested:
                if nested_url in processed:
                    continue
                processed.add(nested_url)
                nested_found, _ = await self._fetch_sitemap(nested_url)
                found.extend(nested_found)

            for entry in found:
                entries.setdefault(entry.loc, entry)

        logger.info("Sitemaps for %s yielded %d URLs", origin, len(entries))
        return list(entries.values())

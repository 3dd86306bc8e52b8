"""
Competitor Discovery Orchestrator
=================================
One discovery run for a caller's domain:

1. Read the caller's own site (and product catalog) for products and features
2. Generate 2-4 search queries (templated queries when the LLM gives nothing usable)
3. Fan out every query over shopping, organic and local/maps search
4. Collect candidate hosts, dropping the caller's own domain and aggregators
5. Analyze every candidate concurrently; a failed branch is counted, never fatal
6. Rank insights, ask for recommended data sources, assemble the result

The whole fan-out runs under one deadline; branches still running when it
expires are cancelled and counted as failed analyses.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from core.ai.base import BaseAIProvider
from core.ai.parsing import Malformed, Ok, parse_json_array
from core.config import Settings, settings as default_settings
from core.errors import AllBranchesFailedError, CapabilityUnavailableError, InvalidRequestError, PipelineError
from workers.analysis.engine import CompetitorAnalyzer
from workers.analysis.models import BusinessContext, CompetitorInsight, SearchMetadata, UserProduct
from workers.analysis.tools import AnalysisTools
from workers.crawler.fetcher import PageSource
from workers.crawler.models import SiteContent, SiteItem
from workers.crawler.robots import RobotsReader
from workers.crawler.smart_crawler import SmartCrawler
from workers.discovery import queries as query_tools
from workers.discovery.models import DiscoveryResult, DiscoveryStats
from workers.discovery.search import SearchMode, SearchResult, WebSearch

logger = logging.getLogger(__name__)

_SOURCES_PROMPT = """A {business_type} business at {domain} wants to monitor its competitors.
Search queries used: {queries}

Suggest up to 5 additional online data sources (marketplaces, directories, review sites)
where its competitors are likely listed.

Return ONLY a JSON array of domains, e.g. ["example-directory.com", "example-reviews.com"]"""


def _user_product(item: SiteItem) -> UserProduct:
    return UserProduct(name=item.name, url=item.url, price=item.price, currency=item.currency)


class CompetitorDiscovery:
    """Drives search, candidate filtering and per-competitor analysis."""

    def __init__(
        self,
        pages: PageSource,
        search: WebSearch,
        analyzer: CompetitorAnalyzer,
        tools: AnalysisTools,
        *,
        ai: BaseAIProvider | None = None,
        crawler: SmartCrawler | None = None,
        robots: RobotsReader | None = None,
        settings: Settings = default_settings,
    ) -> None:
        self.pages = pages
        self.search = search
        self.analyzer = analyzer
        self.tools = tools
        self.ai = ai
        self.crawler = crawler
        self.robots = robots
        self.settings = settings

    # ── Own site ───────────────────────────────────────────────────────

    async def _own_site(self, domain: str) -> SiteContent:
        try:
            return await self.pages.discover_site_content(domain)
        except (PipelineError, TimeoutError) as exc:
            logger.warning("Could not read own site %s: %s", domain, exc)
            return SiteContent()

    async def _match_targets(
        self,
        own: SiteContent,
        product_catalog_url: str | None,
        user_products: Sequence[UserProduct],
    ) -> list[UserProduct]:
        targets = list(user_products) + [_user_product(item) for item in own.products]
        if not product_catalog_url:
            return targets

        try:
            catalog = await self.pages.discover_site_content(product_catalog_url)
        except (PipelineError, TimeoutError) as exc:
            if not targets:
                raise InvalidRequestError(
                    f"Product catalog {product_catalog_url} could not be analyzed: {exc}"
                ) from exc
            logger.warning("Product catalog %s unavailable: %s", product_catalog_url, exc)
            return targets
        return targets + [_user_product(item) for item in catalog.products]

    # ── Search fan-out ─────────────────────────────────────────────────

    async def _run_searches(
        self,
        search_queries: Sequence[str],
        modes: Sequence[SearchMode],
    ) -> tuple[list[SearchResult], int]:
        semaphore = asyncio.Semaphore(self.settings.discovery_concurrency)

        async def one(query: str, mode: SearchMode) -> list[SearchResult]:
            async with semaphore:
                return await self.search.search(query, mode)

        outcomes = await asyncio.gather(
            *(one(query, mode) for query in search_queries for mode in modes),
            return_exceptions=True,
        )
        results: list[SearchResult] = []
        failed = 0
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failed += 1
                logger.warning("Search branch failed: %s", outcome)
                continue
            results.extend(outcome)
        return results, failed

    # ── Analysis fan-out ───────────────────────────────────────────────

    async def _deep_pass(
        self,
        host: str,
        insight: CompetitorInsight,
        context: BusinessContext,
        metadata: SearchMetadata | None,
    ) -> CompetitorInsight:
        if self.crawler is None or insight.products or insight.match_score < self.settings.deep_crawl_min_score:
            return insight

        logger.info("No products for %s but match score %d, starting deep crawl", host, insight.match_score)
        try:
            robots_data = await self.robots.parse_robots(host) if self.robots else None
            sitemap = await self.robots.parse_sitemap(host) if self.robots else []
            content = await self.crawler.crawl(host, robots_data, sitemap)
            deeper = await self.analyzer.analyze_competitor(host, context, metadata, additional_content=content)
        except (PipelineError, TimeoutError) as exc:
            logger.warning("Deep crawl failed for %s, keeping first analysis: %s", host, exc)
            return insight
        logger.info("Deep crawl for %s found %d products", host, len(deeper.products))
        return deeper

    async def _analyze(
        self,
        host: str,
        context: BusinessContext,
        metadata: SearchMetadata | None,
    ) -> CompetitorInsight:
        insight = await self.analyzer.analyze_competitor(host, context, metadata)
        return await self._deep_pass(host, insight, context, metadata)

    async def _analyze_all(
        self,
        hosts: Sequence[str],
        context: BusinessContext,
        first_results: dict[str, SearchResult],
        deadline: float | None,
    ) -> tuple[list[CompetitorInsight], int]:
        semaphore = asyncio.Semaphore(self.settings.discovery_concurrency)
        insights: dict[str, CompetitorInsight] = {}

        async def branch(host: str) -> None:
            async with semaphore:
                result = first_results.get(host)
                try:
                    insights[host] = await self._analyze(host, context, result.metadata if result else None)
                except (PipelineError, TimeoutError) as exc:
                    logger.warning("Failed to analyze competitor %s: %s", host, exc)
                except Exception:
                    logger.exception("Unexpected error analyzing competitor %s", host)

        try:
            async with asyncio.timeout(deadline):
                await asyncio.gather(*(branch(host) for host in hosts))
        except TimeoutError:
            logger.warning(
                "Discovery deadline of %ss reached, %d of %d analyses finished",
                deadline, len(insights), len(hosts),
            )

        ordered = [insights[host] for host in hosts if host in insights]
        return ordered, len(hosts) - len(ordered)

    # ── Recommended sources ────────────────────────────────────────────

    async def recommend_sources(self, domain: str, business_type: str, search_queries: Sequence[str]) -> list[str]:
        if self.ai is None:
            return []
        prompt = _SOURCES_PROMPT.format(business_type=business_type, domain=domain, queries=", ".join(search_queries))
        try:
            raw = await self.ai.complete(prompt)
        except (CapabilityUnavailableError, TimeoutError) as exc:
            logger.warning("Recommended sources unavailable: %s", exc)
            return []
        match parse_json_array(raw):
            case Ok(value=items):
                hosts = (query_tools.normalize_host(i) for i in items if isinstance(i, str))
                return list(dict.fromkeys(h for h in hosts if h))
            case Malformed(reason=reason):
                logger.warning("Malformed recommended sources answer: %s", reason)
                return []

    # ── Entry point ────────────────────────────────────────────────────

    async def discover_competitors(
        self,
        domain: str,
        user_id: str,
        business_type: str,
        known_competitors: Sequence[str] = (),
        product_catalog_url: str | None = None,
        user_products: Sequence[UserProduct] = (),
        deadline_seconds: float | None = None,
    ) -> DiscoveryResult:
        """
        Run one discovery.

        Raises InvalidRequestError for unusable input and
        AllBranchesFailedError when candidates were found but every
        analysis failed. Everything else degrades per branch.
        """
        if not domain or not domain.strip():
            raise InvalidRequestError("domain is required")
        if not business_type or not business_type.strip():
            raise InvalidRequestError("businessType is required")

        domain = domain.strip().lower()
        deadline = deadline_seconds if deadline_seconds is not None else self.settings.discovery_deadline_seconds
        logger.info("Starting competitor discovery for %s (user %s)", domain, user_id)

        own = await self._own_site(domain)
        targets = await self._match_targets(own, product_catalog_url, user_products)
        features = await self.tools.extract_features(own.main_content) if own.main_content else []

        plan = await query_tools.generate_queries(
            self.ai,
            domain=domain,
            business_type=business_type,
            features=features,
            product_names=[p.name for p in targets],
        )
        modes = query_tools.search_modes(business_type)
        logger.info("Searching with %d queries over %s", len(plan.queries), ", ".join(modes))

        results, failed_searches = await self._run_searches(plan.queries, modes)
        hosts, first_results = query_tools.collect_candidates(
            results,
            domain,
            known_competitors,
            limit=self.settings.discovery_max_candidates,
        )
        logger.info("Found %d candidate competitors for %s", len(hosts), domain)

        context = BusinessContext(business_type=business_type, user_products=tuple(targets))
        insights, failed = await self._analyze_all(hosts, context, first_results, deadline)
        if hosts and not insights:
            raise AllBranchesFailedError(len(hosts))

        ranked = sorted(insights, key=lambda insight: insight.match_score, reverse=True)
        known = {query_tools.normalize_host(k) for k in known_competitors}
        existing = sum(1 for insight in ranked if insight.domain in known)

        strategy: dict[str, Any] = {
            "queries": plan.queries,
            "modes": [str(mode) for mode in modes],
            "businessType": business_type,
            "usedFallbackQueries": plan.used_fallback,
            "failedSearches": failed_searches,
        }
        stats = DiscoveryStats(
            total_discovered=len(ranked),
            new_competitors=len(ranked) - existing,
            existing_competitors=existing,
            failed_analyses=failed,
        )
        logger.info(
            "🏁 Discovery for %s finished: %d competitors, %d failed analyses",
            domain, stats.total_discovered, stats.failed_analyses,
        )
        return DiscoveryResult(
            competitors=ranked,
            recommended_sources=await self.recommend_sources(domain, business_type, plan.queries),
            search_strategy=strategy,
            stats=stats,
        )

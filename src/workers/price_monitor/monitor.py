"""
Price Monitor
=============
Periodic re-checks of a competitor's prices against the caller's products.

The simple matcher (case-insensitive containment either way) runs first;
when it finds nothing the full offering matcher of the analysis engine
gets a deeper pass. Results are always oriented the same way: one
``ProductMatch`` per user product, its ``matched_products`` being the
competitor items with their current prices.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from core.errors import PipelineError
from workers.analysis import matching
from workers.analysis.engine import CompetitorAnalyzer
from workers.analysis.models import MatchedProduct, Offering, Pricing, ProductMatch, UserProduct
from workers.crawler.fetcher import PageSource
from workers.crawler.models import SiteContent, SiteItem
from workers.crawler.robots import RobotsReader
from workers.crawler.smart_crawler import SmartCrawler
from workers.price_monitor.models import PriceHistory, PriceHistoryEntry, PriceRecord
from workers.price_monitor.store import TaskStore

logger = logging.getLogger(__name__)


def _contains_either_way(a: str, b: str) -> bool:
    a, b = matching.normalize_name(a), matching.normalize_name(b)
    return bool(a and b) and (a in b or b in a)


def simple_matches(user_products: Sequence[UserProduct], items: Sequence[SiteItem]) -> list[ProductMatch]:
    """One ProductMatch per user product with every competitor item whose name contains it, or vice versa."""
    if not user_products or not items:
        return []

    now = datetime.now(timezone.utc).isoformat()
    results = []
    for product in user_products:
        hits = [item for item in items if _contains_either_way(product.name, item.name)]
        if not hits:
            continue
        results.append(
            ProductMatch(
                name=product.name,
                url=product.url,
                price=product.price,
                currency=product.currency or "USD",
                matched_products=[
                    MatchedProduct(
                        name=item.name,
                        url=item.url,
                        match_score=matching.simple_match_score(product.name, item.name),
                        price_diff=matching.price_diff(product.price, item.price),
                        price=item.price,
                        currency=item.currency,
                    )
                    for item in hits
                ],
                last_updated=now,
            )
        )
    return results


def _as_offering(item: SiteItem) -> Offering:
    return Offering(
        type="product",
        category=item.category or "unknown",
        name=item.name,
        pricing=Pricing(value=item.price, currency=item.currency),
        source_url=item.url or "",
    )


def reorient(engine_matches: Sequence[ProductMatch], user_products: Sequence[UserProduct]) -> list[ProductMatch]:
    """Group offering-oriented engine matches under the user products they matched."""
    by_name = {p.name: p for p in user_products}
    grouped: dict[str, list[MatchedProduct]] = {}
    stamps: dict[str, str] = {}
    for offering in engine_matches:
        for matched in offering.matched_products:
            grouped.setdefault(matched.name, []).append(
                MatchedProduct(
                    name=offering.name,
                    url=offering.url,
                    match_score=matched.match_score,
                    price_diff=matched.price_diff,
                    price=offering.price,
                    currency=offering.currency,
                )
            )
            stamps.setdefault(matched.name, offering.last_updated)

    results = []
    for name, competitor_items in grouped.items():
        product = by_name.get(name, UserProduct(name=name))
        results.append(
            ProductMatch(
                name=product.name,
                url=product.url,
                price=product.price,
                currency=product.currency or "USD",
                matched_products=competitor_items,
                last_updated=stamps[name],
            )
        )
    return results


def build_history(records: Sequence[PriceRecord]) -> list[PriceHistoryEntry]:
    """Oldest first; ``change`` is the percent move against the previous entry."""
    entries: list[PriceHistoryEntry] = []
    previous: float | None = None
    for record in records:
        if record.price is None:
            continue
        entries.append(
            PriceHistoryEntry(
                date=record.recorded_at.date().isoformat(),
                price=record.price,
                change=matching.price_diff(previous, record.price),
            )
        )
        previous = record.price
    return entries


class PriceMonitor:
    """Re-fetches a competitor and matches its current items against user products."""

    def __init__(
        self,
        pages: PageSource,
        *,
        analyzer: CompetitorAnalyzer | None = None,
        crawler: SmartCrawler | None = None,
        robots: RobotsReader | None = None,
        store: TaskStore | None = None,
    ) -> None:
        self.pages = pages
        self.analyzer = analyzer
        self.crawler = crawler
        self.robots = robots
        self.store = store

    async def competitor_items(self, competitor_domain: str) -> list[SiteItem]:
        content = await self.pages.discover_site_content(competitor_domain)
        if content.products or self.crawler is None:
            return list(content.products)

        logger.info("No products on %s root page, crawling", competitor_domain)
        robots_data = await self.robots.parse_robots(competitor_domain) if self.robots else None
        sitemap = await self.robots.parse_sitemap(competitor_domain) if self.robots else []
        crawled: SiteContent = await self.crawler.crawl(competitor_domain, robots_data, sitemap)
        return list(crawled.products)

    async def monitor_competitor_prices(
        self,
        competitor_domain: str,
        user_products: Sequence[UserProduct],
    ) -> list[ProductMatch]:
        logger.info("Monitoring prices for %s", competitor_domain)
        try:
            items = await self.competitor_items(competitor_domain)
        except (PipelineError, TimeoutError) as exc:
            logger.error("Failed to monitor prices for %s: %s", competitor_domain, exc)
            return []
        logger.info("Found %d products on %s", len(items), competitor_domain)

        matches = simple_matches(user_products, items)
        if matches or self.analyzer is None:
            return matches

        logger.info("No simple matches for %s, using the full offering matcher", competitor_domain)
        engine_matches = self.analyzer.match_offerings(
            [_as_offering(item) for item in items],
            user_products,
            competitor_domain,
        )
        return reorient(engine_matches, user_products)

    async def track_price_history(self, product_url: str) -> PriceHistory:
        current: float | None = None
        name = product_url
        try:
            content = await self.pages.discover_site_content(product_url)
        except (PipelineError, TimeoutError) as exc:
            logger.error("Failed to read current price for %s: %s", product_url, exc)
        else:
            if content.products:
                current, name = content.products[0].price, content.products[0].name
            elif content.metadata.prices:
                current = content.metadata.prices[0].value

        records = await self.store.price_history(product_url) if self.store else []
        now = datetime.now(timezone.utc)
        if current is not None and (not records or records[-1].recorded_at.date() != now.date()):
            previous = records[-1].price if records else None
            record = PriceRecord(
                product_name=name,
                product_url=product_url,
                price=current,
                recorded_at=now,
                change_percentage=matching.price_diff(previous, current),
                previous_price=previous,
            )
            if self.store is not None:
                await self.store.add_price_record(record)
            records.append(record)
        return PriceHistory(current=current, history=build_history(records))

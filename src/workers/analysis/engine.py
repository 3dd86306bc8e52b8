"""
Competitor Analyzer
===================
Turns one competitor domain into a ``CompetitorInsight``:

1. Fetch the root page (text, meta tags, JSON-LD)
2. Detect the business type (caller's declared type wins)
3. Business-type-aware price points, search-result price range as fallback
4. Find relevant sub-pages, chunk their text and classify each chunk into an Offering
5. Deduplicate offerings and match them against the caller's products
6. Composite score, reasons, listing platforms and data gaps
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from core.config import Settings, settings as default_settings
from core.errors import PipelineError
from workers.analysis import matching
from workers.analysis.models import (
    BusinessContext,
    CompetitorInsight,
    ListingPlatform,
    MatchedProduct,
    Offering,
    ProductMatch,
    SearchMetadata,
    UserProduct,
)
from workers.analysis.offerings import analysis_chunks, deduplicate_offerings
from workers.analysis.tools import AnalysisTools
from workers.crawler import extraction
from workers.crawler.fetcher import PageSource, normalize_url
from workers.crawler.models import PricePoint, SiteContent
from workers.crawler.robots import RobotsReader

logger = logging.getLogger(__name__)

# ── Data gaps ──────────────────────────────────────────────────────────

GAP_META_DESCRIPTION = "missing meta description"
GAP_STRUCTURED_DATA = "lack of structured data"
GAP_PRICING = "missing pricing information"
GAP_OFFERINGS = "no clearly identified products/services"

# ── Listing platforms ──────────────────────────────────────────────────

LISTING_PLATFORMS: tuple[tuple[str, str], ...] = (
    ("Booking.com", "booking.com"),
    ("Expedia", "expedia"),
    ("TripAdvisor", "tripadvisor"),
    ("Hotels.com", "hotels.com"),
    ("Airbnb", "airbnb"),
    ("Agoda", "agoda"),
    ("Yelp", "yelp"),
    ("Google Travel", "google.com/travel"),
    ("Amazon", "amazon."),
    ("eBay", "ebay."),
    ("Etsy", "etsy.com"),
)

APPROACH_VALUE = "Compete on value: this competitor undercuts you on matched products"
APPROACH_PREMIUM = "Emphasize premium positioning: this competitor prices matched products higher"
APPROACH_DEFAULT = "Analyze pricing strategy and unique selling points"


def domain_name(url: str) -> str:
    """Hostname without ``www.``; bare domains are returned as-is."""
    try:
        host = urlparse(normalize_url(url)).hostname
    except ValueError:
        host = None
    return (host or url.split("/", 1)[0]).removeprefix("www.")


def _rating(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _count(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def extract_listing_platforms(
    structured_data: Sequence[dict[str, Any]],
    search_metadata: SearchMetadata | None = None,
) -> list[ListingPlatform]:
    platforms: list[ListingPlatform] = []
    for block in structured_data:
        same_as = block.get("sameAs")
        if isinstance(same_as, str):
            same_as = [same_as]
        if not isinstance(same_as, list):
            continue
        rating = block.get("aggregateRating") if isinstance(block.get("aggregateRating"), dict) else {}
        for url in same_as:
            if not isinstance(url, str):
                continue
            for name, pattern in LISTING_PLATFORMS:
                if pattern in url.lower():
                    platforms.append(
                        ListingPlatform(
                            platform=name,
                            url=url,
                            rating=_rating(rating.get("ratingValue")),
                            review_count=_count(rating.get("reviewCount")),
                        )
                    )
                    break

    if search_metadata and (search_metadata.rating is not None or search_metadata.review_count is not None):
        platforms.append(
            ListingPlatform(
                platform="Google",
                url=None,
                rating=search_metadata.rating,
                review_count=search_metadata.review_count,
                price_range=search_metadata.price_range,
            )
        )
    return platforms


def suggest_approach(products: Sequence[ProductMatch]) -> str:
    diffs = [m.price_diff for p in products for m in p.matched_products if m.price_diff is not None]
    if not diffs:
        return APPROACH_DEFAULT
    average = sum(diffs) / len(diffs)
    if average < 0:
        return APPROACH_VALUE
    if average > 0:
        return APPROACH_PREMIUM
    return APPROACH_DEFAULT


def find_data_gaps(
    description: str,
    structured_data: Sequence[dict[str, Any]],
    prices: Sequence[PricePoint],
    products: Sequence[ProductMatch],
) -> list[str]:
    gaps = []
    if not description:
        gaps.append(GAP_META_DESCRIPTION)
    if not structured_data:
        gaps.append(GAP_STRUCTURED_DATA)
    if not prices:
        gaps.append(GAP_PRICING)
    if not products:
        gaps.append(GAP_OFFERINGS)
    return gaps


class CompetitorAnalyzer:
    """Offering extraction and matching for a single competitor domain."""

    def __init__(
        self,
        pages: PageSource,
        tools: AnalysisTools,
        robots: RobotsReader | None = None,
        *,
        settings: Settings = default_settings,
    ) -> None:
        self.pages = pages
        self.tools = tools
        self.robots = robots
        self.settings = settings

    # ── Matching ───────────────────────────────────────────────────────

    def match_offerings(
        self,
        offerings: Sequence[Offering],
        user_products: Sequence[UserProduct],
        default_url: str = "",
    ) -> list[ProductMatch]:
        """One ProductMatch per offering whose best user product clears the floor."""
        now = datetime.now(timezone.utc).isoformat()
        products = []
        for offering in offerings:
            candidate = matching.best_match(offering.name, user_products, self.settings.match_acceptance_floor)
            if candidate is None:
                continue
            products.append(
                ProductMatch(
                    name=offering.name,
                    url=offering.source_url or default_url,
                    price=offering.pricing.value,
                    currency=offering.pricing.currency,
                    matched_products=[
                        MatchedProduct(
                            name=candidate.product.name,
                            url=candidate.product.url,
                            match_score=candidate.score,
                            price_diff=matching.price_diff(candidate.product.price, offering.pricing.value),
                            price=candidate.product.price,
                            currency=candidate.product.currency,
                        )
                    ],
                    last_updated=now,
                )
            )
        return products

    # ── Offering extraction ────────────────────────────────────────────

    async def _page_offerings(self, page_url: str, business_type: str, semaphore: asyncio.Semaphore) -> list[Offering]:
        if self.robots is not None and not await self.robots.is_allowed(page_url):
            logger.debug("Skipping disallowed URL: %s", page_url)
            return []
        try:
            html = await self.pages.fetch(page_url)
        except (PipelineError, TimeoutError) as exc:
            logger.warning("Failed to analyze page %s: %s", page_url, exc)
            return []

        chunks = analysis_chunks(
            extraction.extract_text(html),
            self.settings.chunk_max_chars,
            self.settings.chunk_min_chars,
        )

        async def categorize(chunk: str) -> Offering | None:
            async with semaphore:
                return await self.tools.categorize_offering(chunk, business_type, page_url)

        results = await asyncio.gather(*(categorize(chunk) for chunk in chunks))
        return [offering for offering in results if offering is not None]

    async def extract_offerings(
        self,
        pages: Sequence[str],
        business_type: str,
        offerings: list[Offering] | None = None,
    ) -> list[Offering]:
        """Classify the pages in order, appending to ``offerings`` as each page finishes."""
        semaphore = asyncio.Semaphore(self.settings.crawl_concurrency)
        offerings = [] if offerings is None else offerings
        for page_url in pages:
            offerings.extend(await self._page_offerings(page_url, business_type, semaphore))
        return offerings

    # ── Entry point ────────────────────────────────────────────────────

    async def analyze_competitor(
        self,
        domain: str,
        business_context: BusinessContext | None = None,
        search_metadata: SearchMetadata | None = None,
        additional_content: SiteContent | None = None,
        deadline_seconds: float | None = None,
    ) -> CompetitorInsight:
        """
        Analyze one competitor domain.

        Raises FetchError when the root page cannot be fetched; every
        sub-page failure is logged and skipped. ``deadline_seconds`` bounds
        the sub-page pass; offerings from pages finished by then are kept.
        """
        context = business_context or BusinessContext()
        url = normalize_url(domain)
        logger.info("Analyzing competitor %s", url)

        html = await self.pages.fetch(url)
        text = extraction.extract_text(html)
        meta = extraction.extract_meta_tags(html)
        structured_data = extraction.extract_structured_data(html)

        info = await self.tools.detect_business_type(text, url)
        business_type = context.business_type.strip().lower() if context.business_type else info.business_type
        logger.info("Business type for %s: %s (%s)", url, business_type, info.specific_type or "-")

        prices = extraction.extract_prices(html, business_type)
        if additional_content is not None:
            prices.extend(additional_content.metadata.prices)
        if not prices and search_metadata and search_metadata.price_range:
            price_range = search_metadata.price_range
            prices.append(
                PricePoint(value=price_range.midpoint, currency=price_range.currency, source="serp", unit="per item")
            )

        relevant = await self.tools.find_relevant_pages(url, html, self.settings.max_relevant_pages)
        if additional_content is not None:
            relevant += [item.url for item in [*additional_content.products, *additional_content.services] if item.url]
        pages = [page for page in dict.fromkeys(relevant) if page.rstrip("/") != url.rstrip("/")]
        logger.info("Found %d relevant pages for %s", len(pages), url)

        extracted: list[Offering] = []
        try:
            async with asyncio.timeout(deadline_seconds):
                await self.extract_offerings(pages, business_type, extracted)
        except TimeoutError:
            logger.warning(
                "Analysis deadline of %ss reached for %s, keeping %d offerings",
                deadline_seconds, url, len(extracted),
            )
        offerings = deduplicate_offerings(extracted)
        logger.info("Extracted %d unique offerings for %s", len(offerings), url)

        products = self.match_offerings(offerings, context.user_products, url)
        score = matching.composite_match_score(
            business_type,
            context.business_type,
            len(products),
            base=self.settings.match_base_score,
            business_type_bonus=self.settings.match_business_type_bonus,
            per_offering=self.settings.match_density_per_offering,
            density_cap=self.settings.match_density_cap,
        )

        reasons = [f"{business_type} business", f"offering {info.specific_type or 'products/services'}"]
        if products:
            reasons.append(f"{len(products)} matching products")

        return CompetitorInsight(
            domain=domain_name(url),
            match_score=score,
            match_reasons=reasons,
            suggested_approach=suggest_approach(products),
            data_gaps=find_data_gaps(meta["description"], structured_data, prices, products),
            listing_platforms=extract_listing_platforms(structured_data, search_metadata),
            products=products,
        )

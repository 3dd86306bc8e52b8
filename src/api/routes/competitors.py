"""Competitor API — discovery runs and single-competitor analysis."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field

from api.dependencies import get_services
from api.schemas import CamelModel, ProductMatchOut, UserProductIn
from core.errors import InvalidRequestError
from workers.analysis.models import BusinessContext, PriceRange, SearchMetadata
from workers.services import PipelineServices

router = APIRouter(prefix="/api/competitors", tags=["competitors"])


# ── Request schemas ───────────────────────────────────────────────────

class DiscoverRequest(CamelModel):
    domain: str
    user_id: str
    business_type: str
    known_competitors: list[str] = Field(default_factory=list)
    product_catalog_url: str | None = None
    user_products: list[UserProductIn] = Field(default_factory=list)
    deadline_seconds: float | None = Field(default=None, gt=0)


class PriceRangeIn(CamelModel):
    min: float
    max: float
    currency: str = "USD"


class SearchMetadataIn(CamelModel):
    rating: float | None = None
    review_count: int | None = None
    price_range: PriceRangeIn | None = None

    def to_domain(self) -> SearchMetadata:
        price_range = None
        if self.price_range is not None:
            price_range = PriceRange(self.price_range.min, self.price_range.max, self.price_range.currency)
        return SearchMetadata(rating=self.rating, review_count=self.review_count, price_range=price_range)


class BusinessContextIn(CamelModel):
    business_type: str | None = None
    user_products: list[UserProductIn] = Field(default_factory=list)


class AnalyzeRequest(CamelModel):
    competitor_domain: str
    business_context: BusinessContextIn = Field(default_factory=BusinessContextIn)
    search_metadata: SearchMetadataIn | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


# ── Response schemas ──────────────────────────────────────────────────

class PriceRangeOut(CamelModel):
    min: float
    max: float
    currency: str


class ListingPlatformOut(CamelModel):
    platform: str
    url: str | None
    rating: float | None
    review_count: int | None
    price_range: PriceRangeOut | None


class CompetitorInsightOut(CamelModel):
    domain: str
    match_score: int
    match_reasons: list[str]
    suggested_approach: str
    data_gaps: list[str]
    listing_platforms: list[ListingPlatformOut]
    products: list[ProductMatchOut]


class DiscoveryStatsOut(CamelModel):
    total_discovered: int
    new_competitors: int
    existing_competitors: int
    failed_analyses: int


class DiscoveryResultOut(CamelModel):
    competitors: list[CompetitorInsightOut]
    recommended_sources: list[str]
    search_strategy: dict[str, Any]
    stats: DiscoveryStatsOut


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/discover", response_model=DiscoveryResultOut)
async def discover_competitors(body: DiscoverRequest, services: PipelineServices = Depends(get_services)):
    """Search for competitors of ``domain`` and analyze each candidate."""
    result = await services.discovery.discover_competitors(
        body.domain,
        body.user_id,
        body.business_type,
        known_competitors=body.known_competitors,
        product_catalog_url=body.product_catalog_url,
        user_products=[p.to_domain() for p in body.user_products],
        deadline_seconds=body.deadline_seconds,
    )
    return DiscoveryResultOut.model_validate(result)


@router.post("/analyze", response_model=CompetitorInsightOut)
async def analyze_competitor(body: AnalyzeRequest, services: PipelineServices = Depends(get_services)):
    """Analyze one competitor domain against the caller's products."""
    if not body.competitor_domain.strip():
        raise InvalidRequestError("competitorDomain is required")
    context = BusinessContext(
        business_type=body.business_context.business_type,
        user_products=tuple(p.to_domain() for p in body.business_context.user_products),
    )
    insight = await services.analyzer.analyze_competitor(
        body.competitor_domain,
        context,
        body.search_metadata.to_domain() if body.search_metadata else None,
        deadline_seconds=body.deadline_seconds,
    )
    return CompetitorInsightOut.model_validate(insight)

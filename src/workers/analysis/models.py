"""Data models for offering extraction, product matching and competitor insights."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Pricing:
    value: float | None = None
    currency: str = "USD"
    unit: str | None = None


@dataclass(frozen=True, slots=True)
class Offering:
    """A product or service record classified from one chunk of page text."""

    type: str
    category: str
    name: str
    features: tuple[str, ...] = ()
    pricing: Pricing = field(default_factory=Pricing)
    source_url: str = ""


@dataclass(frozen=True, slots=True)
class UserProduct:
    """One entry of the caller's own catalog."""

    name: str
    url: str | None = None
    price: float | None = None
    currency: str | None = None


@dataclass(frozen=True, slots=True)
class MatchedProduct:
    name: str
    url: str | None
    match_score: int                   # 0 – 100
    price_diff: float | None           # percent, competitor vs. user
    price: float | None = None         # price of the matched item
    currency: str | None = None


@dataclass(frozen=True, slots=True)
class ProductMatch:
    """A competitor offering (or monitored product) with its matched counterparts."""

    name: str
    url: str | None
    price: float | None
    currency: str
    matched_products: list[MatchedProduct]
    last_updated: str                  # ISO-8601


@dataclass(frozen=True, slots=True)
class PriceRange:
    min: float
    max: float
    currency: str = "USD"

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2


@dataclass(frozen=True, slots=True)
class ListingPlatform:
    """Presence of a competitor on a third-party marketplace or review site."""

    platform: str
    url: str | None
    rating: float | None = None
    review_count: int | None = None
    price_range: PriceRange | None = None


@dataclass(frozen=True, slots=True)
class BusinessTypeInfo:
    business_type: str = "other"
    specific_type: str = ""
    main_offerings: tuple[str, ...] = ()
    key_pages: tuple[str, ...] = ("products", "services", "pricing")
    offering_nomenclature: str = "products"
    pricing_terms: tuple[str, ...] = ("price", "cost", "rate")


@dataclass(frozen=True, slots=True)
class BusinessContext:
    """What the caller knows about its own business."""

    business_type: str | None = None
    user_products: tuple[UserProduct, ...] = ()


@dataclass(frozen=True, slots=True)
class SearchMetadata:
    """Rich-snippet data attached to the search result that surfaced a competitor."""

    rating: float | None = None
    review_count: int | None = None
    price_range: PriceRange | None = None


@dataclass(frozen=True, slots=True)
class CompetitorInsight:
    domain: str
    match_score: int
    match_reasons: list[str]
    suggested_approach: str
    data_gaps: list[str]
    listing_platforms: list[ListingPlatform]
    products: list[ProductMatch]

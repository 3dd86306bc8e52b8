"""Data models for crawled site content (pages, robots rules, sitemap entries)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class PricePoint:
    """A price found in page markup."""

    value: float
    currency: str = "$"
    source: str = ""                   # selector or regex that produced it
    unit: str | None = None            # per night, per month, ...


@dataclass(frozen=True, slots=True)
class SiteItem:
    """A product or service listed on a site."""

    name: str
    url: str | None = None
    price: float | None = None
    currency: str = "$"
    description: str | None = None
    category: str | None = None


@dataclass(frozen=True, slots=True)
class ContactInfo:
    address: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True, slots=True)
class SiteMetadata:
    structured_data: list[dict[str, Any]] = field(default_factory=list)
    contact_info: ContactInfo = field(default_factory=ContactInfo)
    prices: list[PricePoint] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SiteContent:
    """
    Everything extracted from one page, or merged across a crawl.

    Read-only once built: the crawler builds a new instance when merging.
    """

    url: str = ""
    title: str = ""
    description: str = ""
    products: list[SiteItem] = field(default_factory=list)
    services: list[SiteItem] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    main_content: str = ""
    metadata: SiteMetadata = field(default_factory=SiteMetadata)

    @property
    def is_empty(self) -> bool:
        return not self.url and not self.main_content and not self.products and not self.services


@dataclass(frozen=True, slots=True)
class RobotsData:
    """Rules parsed from robots.txt for the ``*`` user agent."""

    disallowed_paths: list[str] = field(default_factory=list)
    crawl_delay: float | None = None
    sitemaps: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SitemapEntry:
    loc: str
    lastmod: str | None = None
    priority: float | None = None

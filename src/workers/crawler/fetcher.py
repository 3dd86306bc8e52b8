"""
Content Fetcher
===============
Downloads pages with curl_cffi (browser impersonation) and turns one page
into a ``SiteContent``:

1. Fetch HTML (HTTPS first, one HTTP retry on failure)
2. Meta tags, JSON-LD, contact info and price points
3. Optional products/services pass through the text-completion provider

The crawler and the price monitor only depend on the ``PageSource``
protocol, so tests swap in an in-memory fake.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from curl_cffi.requests import AsyncSession as CurlSession, RequestsError

from core.ai.base import BaseAIProvider
from core.ai.parsing import Malformed, Ok, parse_json_object
from core.errors import CapabilityUnavailableError, FetchError
from core.retry import NO_RETRY, RetryPolicy
from workers.crawler import extraction
from workers.crawler.models import SiteContent, SiteItem, SiteMetadata

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
MAX_TEXT_LENGTH = 8000
_PROMPT_STRUCTURED_DATA_CHARS = 4000

_SITE_OFFERINGS_PROMPT = """Analyze this website content and extract products and services.

Structured Data Available:
{structured_data}

Guidelines:
1. Look for clear product/service offerings with names and prices
2. Categorize items appropriately
3. Extract URLs when available
4. Include descriptions that explain the value proposition

Return ONLY a JSON object with this structure:
{{
  "products": [{{"name": "...", "url": "URL or null", "price": number or null,
                "currency": "USD", "description": "... or null", "category": "... or null"}}],
  "services": [{{"name": "...", "url": "URL or null", "price": number or null,
                "currency": "USD", "description": "... or null", "category": "... or null"}}]
}}

Website Content:
{content}"""


class PageSource(Protocol):
    async def fetch(self, url: str) -> str: ...

    async def discover_site_content(self, url: str) -> SiteContent: ...


def normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").lstrip("$€£ "))
        except ValueError:
            return None
    return None


def _site_items(raw: Any) -> list[SiteItem]:
    """Validate the items of one LLM list; entries without a name are dropped."""
    if not isinstance(raw, list):
        return []
    items = []
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str) or not entry["name"].strip():
            continue
        currency = entry.get("currency") if isinstance(entry.get("currency"), str) else "USD"
        items.append(
            SiteItem(
                name=entry["name"].strip(),
                url=entry["url"] if isinstance(entry.get("url"), str) and entry["url"].startswith("http") else None,
                price=_to_float(entry.get("price")),
                currency=extraction.CURRENCY_SYMBOLS.get(currency, currency),
                description=entry.get("description") if isinstance(entry.get("description"), str) else None,
                category=entry.get("category") if isinstance(entry.get("category"), str) else None,
            )
        )
    return items


class ContentFetcher:
    """Fetches pages over HTTP and builds per-page ``SiteContent``."""

    def __init__(
        self,
        ai: BaseAIProvider | None = None,
        *,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        impersonate: str = "chrome120",
    ) -> None:
        self.ai = ai
        self.timeout = timeout
        self.retry_policy = retry_policy or NO_RETRY
        self.impersonate = impersonate

    async def _get(self, url: str) -> str:
        async with CurlSession(
            headers=DEFAULT_HEADERS,
            timeout=self.timeout,
            impersonate=self.impersonate,
        ) as client:
            try:
                response = await client.get(url, allow_redirects=True)
            except RequestsError as exc:
                raise FetchError(url, str(exc)) from exc
        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)
        return response.text

    async def _get_with_fallback(self, url: str) -> str:
        try:
            return await self._get(url)
        except FetchError:
            if not url.startswith("https://"):
                raise
            http_url = "http://" + url.removeprefix("https://")
            logger.debug("HTTPS fetch failed for %s, retrying over HTTP", url)
            return await self._get(http_url)

    async def fetch(self, url: str) -> str:
        """
        Return raw HTML for ``url``.

        Bare domains are fetched over HTTPS. Raises FetchError once the
        retry policy is exhausted.
        """
        url = normalize_url(url)
        return await self.retry_policy.call(lambda: self._get_with_fallback(url))

    async def discover_site_content(self, url: str) -> SiteContent:
        """Fetch one page and extract everything the crawler merges."""
        url = normalize_url(url)
        html = await self.fetch(url)

        meta = extraction.extract_meta_tags(html)
        structured_data = extraction.extract_structured_data(html)
        text = extraction.extract_text(html)[:MAX_TEXT_LENGTH]

        products: list[SiteItem] = []
        services: list[SiteItem] = []
        if self.ai is not None and text:
            products, services = await self._extract_offerings(url, text, structured_data)

        categories = sorted({item.category for item in products + services if item.category})
        return SiteContent(
            url=url,
            title=meta["title"],
            description=meta["description"],
            products=products,
            services=services,
            categories=categories,
            keywords=meta["keywords"],
            main_content=text,
            metadata=SiteMetadata(
                structured_data=structured_data,
                contact_info=extraction.extract_contact_info(html, structured_data),
                prices=extraction.extract_prices(html),
            ),
        )

    async def _extract_offerings(
        self,
        url: str,
        text: str,
        structured_data: list[dict[str, Any]],
    ) -> tuple[list[SiteItem], list[SiteItem]]:
        prompt = _SITE_OFFERINGS_PROMPT.format(
            structured_data=json.dumps(structured_data, default=str)[:_PROMPT_STRUCTURED_DATA_CHARS],
            content=text,
        )
        try:
            raw = await self.ai.complete(prompt)
        except (CapabilityUnavailableError, TimeoutError) as exc:
            logger.warning("Offering extraction unavailable for %s: %s", url, exc)
            return [], []

        match parse_json_object(raw):
            case Ok(value=data):
                return _site_items(data.get("products")), _site_items(data.get("services"))
            case Malformed(reason=reason):
                logger.warning("Malformed offering extraction for %s: %s", url, reason)
                return [], []

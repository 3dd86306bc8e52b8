"""
Web Search — ValueSERP client
=============================
``search(query, mode)`` returns ranked result URLs with rating / review /
price-range metadata parsed from rich snippets.

Modes map onto ValueSERP parameters:

  maps, local  -> tbm=lcl, num=20
  shopping     -> tbm=shop, num=15
  organic      -> num=20
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx

from core.errors import CapabilityUnavailableError
from core.retry import NO_RETRY, RetryPolicy
from workers.analysis.models import PriceRange, SearchMetadata

logger = logging.getLogger(__name__)

_RATING_RE = re.compile(r"(\d+\.?\d*)\s*\((\d[\d,]*)\)")


class SearchMode(StrEnum):
    SHOPPING = "shopping"
    MAPS = "maps"
    LOCAL = "local"
    ORGANIC = "organic"


@dataclass(frozen=True, slots=True)
class SearchResult:
    url: str
    domain: str                        # hostname without www.
    title: str | None = None
    snippet: str | None = None
    rating: float | None = None
    review_count: int | None = None
    price_range: PriceRange | None = None

    @property
    def metadata(self) -> SearchMetadata:
        return SearchMetadata(rating=self.rating, review_count=self.review_count, price_range=self.price_range)


class WebSearch(Protocol):
    async def search(self, query: str, mode: SearchMode) -> list[SearchResult]: ...


_MODE_PARAMS: dict[SearchMode, dict[str, str]] = {
    SearchMode.MAPS: {"tbm": "lcl", "num": "20"},
    SearchMode.LOCAL: {"tbm": "lcl", "num": "20"},
    SearchMode.SHOPPING: {"tbm": "shop", "num": "15"},
    SearchMode.ORGANIC: {"num": "20"},
}

_RESULT_KEYS: dict[SearchMode, tuple[str, str]] = {
    SearchMode.MAPS: ("local_results", "website"),
    SearchMode.SHOPPING: ("shopping_results", "link"),
    SearchMode.LOCAL: ("organic_results", "link"),
    SearchMode.ORGANIC: ("organic_results", "link"),
}


def hostname(url: str) -> str | None:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host.removeprefix("www.") if host else None


def _float(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").lstrip("$€£ "))
        except ValueError:
            return None
    return None


def parse_result_item(item: dict[str, Any], link_key: str) -> SearchResult | None:
    """One ValueSERP result; ``None`` when it carries no usable link."""
    link = item.get(link_key)
    if not isinstance(link, str):
        return None
    domain = hostname(link)
    if not domain:
        return None

    rating = _float(item.get("rating"))
    reviews = item.get("reviews")
    review_count = int(reviews) if isinstance(reviews, int) and not isinstance(reviews, bool) else None
    price_range = None

    top = (item.get("rich_snippet") or {}).get("top") or {}
    detected = top.get("detected_extensions") or {}
    price = _float(detected.get("price"))
    currency = detected.get("currency")
    if price is not None and currency:
        code = currency.get("code") or currency.get("symbol") if isinstance(currency, dict) else currency
        price_range = PriceRange(min=price, max=price, currency=str(code or "USD"))

    extensions = top.get("extensions") or []
    if extensions and isinstance(extensions[0], str):
        match = _RATING_RE.search(extensions[0])
        if match:
            rating = float(match.group(1))
            review_count = int(match.group(2).replace(",", ""))

    if price_range is None and (shop_price := _float(item.get("extracted_price") or item.get("price"))):
        price_range = PriceRange(min=shop_price, max=shop_price)

    return SearchResult(
        url=link,
        domain=domain,
        title=item.get("title"),
        snippet=item.get("snippet"),
        rating=rating,
        review_count=review_count,
        price_range=price_range,
    )


def parse_search_response(data: dict[str, Any], mode: SearchMode) -> list[SearchResult]:
    results_key, link_key = _RESULT_KEYS[mode]
    results = []
    for item in data.get(results_key) or []:
        if isinstance(item, dict) and (result := parse_result_item(item, link_key)) is not None:
            results.append(result)
    return results


class ValueSerpClient:
    """Web-search capability backed by the ValueSERP API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.valueserp.com",
        location: str | None = None,
        timeout: float = 20.0,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.location = location
        self.timeout = timeout
        self.retry_policy = retry_policy or NO_RETRY
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, params: dict[str, str], mode: SearchMode) -> list[SearchResult]:
        try:
            response = await self._client.get(
                f"{self.base_url}/search",
                params=params,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise CapabilityUnavailableError("search", str(exc)) from exc

        if response.status_code in (401, 403):
            raise CapabilityUnavailableError("search", "invalid API key or unauthorized access")
        if response.status_code == 429:
            raise CapabilityUnavailableError("search", "rate limit exceeded")
        if response.status_code >= 400:
            raise CapabilityUnavailableError("search", f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise CapabilityUnavailableError("search", "response is not JSON") from exc
        return parse_search_response(data if isinstance(data, dict) else {}, mode)

    async def search(self, query: str, mode: SearchMode) -> list[SearchResult]:
        if not self.api_key:
            raise CapabilityUnavailableError("search", "VALUESERP_API_KEY is not configured")

        mode = SearchMode(mode)
        params = {
            "api_key": self.api_key,
            "google_domain": "google.com",
            "gl": "us",
            "hl": "en",
            "q": query,
            **_MODE_PARAMS[mode],
        }
        if self.location:
            params["location"] = self.location

        results = await self.retry_policy.call(lambda: self._request(params, mode), timeout=self.timeout)
        logger.info("Search %r (%s) returned %d results", query, mode, len(results))
        return results

"""
Page Extraction Helpers
=======================
Pure functions over raw HTML used by the content fetcher and the
analysis tools:

  - extract_text: visible body text, whitespace collapsed
  - extract_meta_tags: title / description / keywords with og: and twitter: fallbacks
  - extract_structured_data: every JSON-LD block, top-level lists flattened
  - extract_prices: price points outside nav/header/footer, business-type aware
  - extract_contact_info: address / email / phone from JSON-LD or page text
  - extract_links: same-host anchors

Nothing here raises on odd markup; malformed blocks are logged and skipped.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urljoin, urlparse, urldefrag

from bs4 import BeautifulSoup, Tag

from workers.crawler.models import ContactInfo, PricePoint

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")

# ── Price patterns ─────────────────────────────────────────────────────

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}

_PRICE_RE = re.compile(
    r"(?<!\S)(?P<currency>[$€£]|USD|EUR|GBP)?\s*(?P<amount>[\d,.]*?\d+[\d,.]*)"
    r"(?:\s*(?P<suffix>[$€£]|USD|EUR|GBP))?(?!\S)"
)

_BASE_PRICE_SELECTORS = [
    '[itemprop="price"]',
    ".price",
    "[data-price]",
    '[class*="price"]',
    '[id*="price"]',
    'span:-soup-contains("$"), span:-soup-contains("€"), span:-soup-contains("£")',
    'div:-soup-contains("USD"), div:-soup-contains("EUR"), div:-soup-contains("GBP")',
]

_BUSINESS_PRICE_SELECTORS: dict[str, list[str]] = {
    "hospitality": [
        '[class*="rate"]',
        '[class*="tariff"]',
        '[class*="room-price"]',
        '[class*="booking"]',
        'span:-soup-contains("per night"), div:-soup-contains("per night")',
    ],
    "software": [
        '[class*="plan"]',
        '[class*="subscription"]',
        '[class*="pricing"]',
        'span:-soup-contains("per month"), div:-soup-contains("per month")',
        'span:-soup-contains("per user"), div:-soup-contains("per user")',
    ],
}

_BUSINESS_PRICE_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "hospitality": [
        re.compile(r"(\d+[\d,.]*)\s*(?:per night|per room|/night|/room)", re.IGNORECASE),
        re.compile(r"(?:rate|price)[^\d]*?(\d+[\d,.]*)", re.IGNORECASE),
    ],
    "software": [
        re.compile(r"(\d+[\d,.]*)\s*(?:per month|per user|/month|/user)", re.IGNORECASE),
        re.compile(r"(?:plan|subscription)[^\d]*?(\d+[\d,.]*)", re.IGNORECASE),
    ],
}

# Elements matched by text containment include every wrapper above the price
_MAX_PRICE_TEXT = 120
_MAX_PRICE = 1_000_000

_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def sanitize_text(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def extract_text(html: str) -> str:
    """Visible text of the page body."""
    soup = _soup(html)
    for tag in soup(["script", "style", "noscript", "iframe"]):
        tag.decompose()
    root = soup.body or soup
    return sanitize_text(root.get_text(separator=" "))


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str:
    tag = soup.find("meta", attrs=attrs)
    if isinstance(tag, Tag):
        content = tag.get("content")
        if isinstance(content, str):
            return content
    return ""


def extract_meta_tags(html: str) -> dict[str, Any]:
    soup = _soup(html)
    title = (
        (soup.title.get_text() if soup.title else "")
        or _meta_content(soup, property="og:title")
        or _meta_content(soup, name="twitter:title")
    )
    description = (
        _meta_content(soup, name="description")
        or _meta_content(soup, property="og:description")
        or _meta_content(soup, name="twitter:description")
    )
    keywords = [k.strip() for k in _meta_content(soup, name="keywords").split(",") if k.strip()]
    return {
        "title": sanitize_text(title),
        "description": sanitize_text(description),
        "keywords": keywords,
    }


def extract_structured_data(html: str) -> list[dict[str, Any]]:
    """All JSON-LD objects on the page; top-level arrays are flattened."""
    soup = _soup(html)
    blocks: list[dict[str, Any]] = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("Skipping malformed JSON-LD block: %s", exc)
            continue
        items = data if isinstance(data, list) else [data]
        blocks.extend(item for item in items if isinstance(item, dict))
    return blocks


# ── Prices ─────────────────────────────────────────────────────────────

def _parse_amount(raw: str) -> float | None:
    try:
        value = float(raw.replace(",", "").rstrip("."))
    except ValueError:
        return None
    if 0 < value < _MAX_PRICE:
        return round(value, 2)
    return None


def _pricing_unit(text: str, business_type: str | None) -> str:
    lowered = text.lower()
    if business_type == "hospitality":
        return "per night" if ("per night" in lowered or "/night" in lowered) else "per stay"
    if business_type == "software":
        if "per month" in lowered or "/month" in lowered:
            return "per month"
        if "per year" in lowered or "/year" in lowered:
            return "per year"
        if "per user" in lowered or "/user" in lowered:
            return "per user"
        return "one-time"
    return "per item"


def _is_excluded(el: Tag) -> bool:
    if el.find_parent(["nav", "footer", "header", "script", "style"]):
        return True
    style = (el.get("style") or "").replace(" ", "").lower()
    return "display:none" in style or "visibility:hidden" in style


def _match_price(text: str, business_type: str | None) -> tuple[float, str] | None:
    match = _PRICE_RE.search(text)
    if match:
        value = _parse_amount(match.group("amount"))
        if value is not None:
            symbol = match.group("currency") or match.group("suffix") or "$"
            return value, CURRENCY_SYMBOLS.get(symbol, symbol)
    for pattern in _BUSINESS_PRICE_PATTERNS.get(business_type or "", []):
        match = pattern.search(text)
        if match:
            value = _parse_amount(match.group(1))
            if value is not None:
                return value, "$"
    return None


def extract_prices(html: str, business_type: str | None = None) -> list[PricePoint]:
    """
    Price points found under the known price selectors.

    ``business_type`` adds selectors and patterns for hospitality
    (nightly rates) and software (plans) and decides the pricing unit.
    """
    soup = _soup(html)
    selectors = _BASE_PRICE_SELECTORS + _BUSINESS_PRICE_SELECTORS.get(business_type or "", [])
    seen: set[int] = set()
    prices: list[PricePoint] = []

    for selector in selectors:
        for el in soup.select(selector):
            if id(el) in seen:
                continue
            seen.add(id(el))

            text = sanitize_text(el.get_text(separator=" "))
            if not text or "@" in text or len(text) > _MAX_PRICE_TEXT or _is_excluded(el):
                continue
            found = _match_price(text, business_type)
            if found is None:
                continue

            value, currency = found
            anchor = el if el.get("id") else el.find_parent(id=True)
            prices.append(
                PricePoint(
                    value=value,
                    currency=currency,
                    source=str(anchor.get("id")) if anchor is not None else selector,
                    unit=_pricing_unit(text, business_type),
                )
            )
    return prices


# ── Contact info ───────────────────────────────────────────────────────

def _address_from(data: dict[str, Any]) -> str | None:
    address = data.get("address")
    if isinstance(address, str):
        return address
    if isinstance(address, dict):
        if isinstance(address.get("streetAddress"), str):
            return address["streetAddress"]
        parts = [v for k, v in address.items() if isinstance(v, str) and not k.startswith("@")]
        return ", ".join(parts) or None
    if isinstance(data.get("streetAddress"), str):
        return data["streetAddress"]
    return None


def extract_contact_info(html: str, structured_data: list[dict[str, Any]] | None = None) -> ContactInfo:
    if structured_data is None:
        structured_data = extract_structured_data(html)

    address = email = phone = None
    for data in structured_data:
        if data.get("@type") in ("PostalAddress", "LocalBusiness") or "address" in data:
            address = address or _address_from(data)
        if isinstance(data.get("email"), str):
            email = email or data["email"]
        if isinstance(data.get("telephone"), str):
            phone = phone or data["telephone"]

    if not (address and email and phone):
        text = extract_text(html)
        if not address:
            idx = text.find("Address:")
            if idx != -1:
                candidate = text[idx + len("Address:"):idx + 120].strip()
                if len(candidate) > 10 and "," in candidate:
                    address = candidate
        if not email:
            match = _EMAIL_RE.search(text)
            email = match.group(0) if match else None
        if not phone:
            match = _PHONE_RE.search(text)
            phone = match.group(0).strip() if match else None

    return ContactInfo(address=address, email=email, phone=phone)


# ── Links ──────────────────────────────────────────────────────────────

def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute same-host links, in document order, without fragments."""
    base_host = urlparse(base_url).hostname
    links: dict[str, None] = {}
    for anchor in _soup(html).find_all("a", href=True):
        href = anchor["href"]
        if not isinstance(href, str):
            continue
        try:
            absolute, _ = urldefrag(urljoin(base_url, href))
            parsed = urlparse(absolute)
        except ValueError:
            continue
        if parsed.scheme in ("http", "https") and parsed.hostname == base_host:
            links[absolute] = None
    return list(links)

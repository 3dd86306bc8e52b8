"""
Analysis Tools — LLM-backed helpers with deterministic fallbacks
================================================================
Every method here asks the text-completion provider for a JSON answer
and has a keyword/regex fallback used when the provider is missing,
fails, or returns something that does not parse:

  - detect_business_type: hospitality keywords, else ``other``
  - categorize_offering: keyword heuristics per business type + price regex
  - extract_features: quoted / bulleted fragments of the raw answer
  - find_relevant_pages: URLs quoted in the answer, else the first same-host links
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

from core.ai.base import BaseAIProvider
from core.ai.parsing import Malformed, Ok, parse_json_array, parse_json_object
from core.errors import CapabilityUnavailableError
from workers.analysis.models import BusinessTypeInfo, Offering, Pricing
from workers.crawler.extraction import extract_links

logger = logging.getLogger(__name__)

# ── Business-type vocabularies ─────────────────────────────────────────

OFFERING_TYPES: dict[str, tuple[str, ...]] = {
    "hospitality": ("room", "package", "service"),
    "software": ("subscription", "license", "service"),
    "restaurant": ("food", "drink", "service"),
}
DEFAULT_OFFERING_TYPES = ("product", "service")

DEFAULT_PRICING_UNITS = {
    "hospitality": "per night",
    "software": "per month",
    "restaurant": "per item",
}

_CATEGORY_HINTS = {
    "hospitality": ('room type (e.g., "standard", "deluxe", "suite") or service category',
                    "amenities, features, or benefits"),
    "software": ("plan tier or product category", "features, capabilities, or benefits"),
    "restaurant": ('menu category (e.g., "appetizer", "entree", "dessert")',
                   "ingredients, preparation style, or special attributes"),
}

_EXAMPLES = {
    "hospitality": '{"type": "room", "category": "deluxe", "features": ["ocean view", "king size bed"], '
                   '"name": "Deluxe Ocean View", "pricing": {"value": 250, "currency": "USD", "unit": "per night"}}',
    "software": '{"type": "subscription", "category": "premium", "features": ["unlimited users", "24/7 support"], '
                '"name": "Premium Plan", "pricing": {"value": 49.99, "currency": "USD", "unit": "per month"}}',
    "restaurant": '{"type": "food", "category": "entree", "features": ["grass-fed beef", "locally sourced"], '
                  '"name": "Angus Beef Burger", "pricing": {"value": 15.99, "currency": "USD", "unit": "per item"}}',
}
_DEFAULT_EXAMPLE = ('{"type": "product", "category": "electronics", "features": ["wireless", "long battery life"], '
                    '"name": "Wireless Headphones", "pricing": {"value": 99.99, "currency": "USD", "unit": "per item"}}')

_PRICE_IN_TEXT_RE = re.compile(r"\$(\d+(?:\.\d+)?)|(\d+(?:\.\d+)?)\s*(?:usd|dollars|€|euro|£|gbp)", re.IGNORECASE)
_FEATURE_RE = re.compile(r'"([^"]+)"|\'([^\']+)\'|-\s*([^,\n]+)|•\s*([^,\n]+)')
_URL_RE = re.compile(r"https?://[^\s\"'\]]+")

# ── Prompts ────────────────────────────────────────────────────────────

_BUSINESS_TYPE_PROMPT = """Analyze this website content and URL to determine the business type.

URL: {url}
Content: {content}...

Classify the business into one of these categories:
- ecommerce: Online store selling physical products
- software: SaaS, applications, or digital products
- hospitality: Hotels, accommodations, or lodging
- restaurant: Food service business
- professional_service: Consulting, legal, financial services
- healthcare: Medical services or products
- education: Educational institutions or services
- marketplace: Platform connecting buyers and sellers
- media: Content, news, or entertainment
- other

Return ONLY a JSON object with:
{{
  "businessType": "one of the categories above",
  "specificType": "more specific description",
  "mainOfferings": ["offering1", "offering2"],
  "extractionStrategy": {{
    "keyPages": ["about", "products", "services", "pricing"],
    "offeringNomenclature": "what offerings are called (e.g., rooms, plans, products)",
    "pricingTerms": ["terms to look for when finding pricing"]
  }}
}}"""

_CATEGORIZE_PROMPT = """Categorize this offering for a {business_type} business:
{text}
Return ONLY a JSON object with:
{{
  "type": {type_options},
  "category": "{category_hint}",
  "features": ["{features_hint}"],
  "name": "specific name of the offering",
  "pricing": {{"value": number or null, "currency": "USD", "unit": "per unit (e.g. per night, per month, one-time)"}}
}}

Example of correct format for a {business_type} business:
{example}"""

_FEATURES_PROMPT = """Extract key features from this text:
{text}
Return ONLY a JSON array of feature strings.

Example of correct format:
["feature1", "feature2", "feature3"]"""

_RELEVANT_PAGES_PROMPT = """Given these URLs from {base_url}, identify which are most likely to contain \
valuable competitor information (products, services, pricing, etc).
URLs: {urls}
Return ONLY a JSON array of the most relevant URLs (max {limit}).

Example of correct format:
["https://example.com/products", "https://example.com/pricing"]"""


def _str(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value.strip() else default


def _str_tuple(value: Any, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    if not isinstance(value, list):
        return default
    return tuple(v for v in value if isinstance(v, str) and v.strip())


def validate_offering_type(value: Any, business_type: str) -> str:
    allowed = OFFERING_TYPES.get(business_type, DEFAULT_OFFERING_TYPES)
    if isinstance(value, str) and value.lower() in allowed:
        return value.lower()
    return allowed[0]


def default_pricing_unit(business_type: str) -> str:
    return DEFAULT_PRICING_UNITS.get(business_type, "per item")


def guess_business_type(text: str, url: str) -> BusinessTypeInfo:
    lowered = text.lower()
    if "hotel" in url.lower() or any(word in lowered for word in ("room", "accommodation", "stay")):
        return BusinessTypeInfo(
            business_type="hospitality",
            specific_type="hotel",
            main_offerings=("rooms", "accommodations"),
            key_pages=("rooms", "accommodations", "booking", "rates"),
            offering_nomenclature="rooms",
            pricing_terms=("rate", "per night", "booking"),
        )
    return BusinessTypeInfo()


def guess_offering(text: str, business_type: str, source_url: str = "") -> Offering:
    """Keyword classification of one chunk when the provider gives nothing usable."""
    lowered = text.lower()
    category = "general"
    if business_type == "hospitality":
        if any(word in lowered for word in ("room", "suite", "accommodation")):
            kind, unit = "room", "per night"
            category = next((c for c in ("deluxe", "suite", "standard") if c in lowered), "room")
        elif "package" in lowered or "deal" in lowered:
            kind, unit, category = "package", "per package", "package"
        else:
            kind, unit, category = "service", "per service", "service"
    elif business_type == "software":
        if "subscription" in lowered or "plan" in lowered:
            kind, unit = "subscription", "per month"
        else:
            kind, unit = "service", "per service"
    else:
        kind = "service" if "service" in lowered else "product"
        unit = "per service" if kind == "service" else "per item"

    match = _PRICE_IN_TEXT_RE.search(lowered)
    price = float(match.group(1) or match.group(2)) if match else None
    return Offering(
        type=kind,
        category=category,
        name=category,
        pricing=Pricing(value=price, currency="USD", unit=unit),
        source_url=source_url,
    )


def _offering_from_json(data: dict[str, Any], business_type: str, source_url: str) -> Offering:
    category = _str(data.get("category"), "general")
    pricing = data.get("pricing") if isinstance(data.get("pricing"), dict) else {}
    value = pricing.get("value")
    return Offering(
        type=validate_offering_type(data.get("type"), business_type),
        category=category,
        name=_str(data.get("name"), category),
        features=_str_tuple(data.get("features")),
        pricing=Pricing(
            value=float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None,
            currency=_str(pricing.get("currency"), "USD"),
            unit=_str(pricing.get("unit"), default_pricing_unit(business_type)),
        ),
        source_url=source_url,
    )


class AnalysisTools:
    """LLM-backed extraction steps used by the competitor analyzer."""

    def __init__(self, ai: BaseAIProvider | None) -> None:
        self.ai = ai

    async def _complete(self, prompt: str, purpose: str) -> str | None:
        if self.ai is None:
            return None
        try:
            return await self.ai.complete(prompt)
        except (CapabilityUnavailableError, TimeoutError) as exc:
            logger.warning("%s unavailable, using fallback: %s", purpose, exc)
            return None

    async def detect_business_type(self, text: str, url: str) -> BusinessTypeInfo:
        raw = await self._complete(_BUSINESS_TYPE_PROMPT.format(url=url, content=text[:1500]), "Business type detection")
        if raw is None:
            return guess_business_type(text, url)

        match parse_json_object(raw):
            case Ok(value=data):
                strategy = data.get("extractionStrategy") if isinstance(data.get("extractionStrategy"), dict) else {}
                defaults = BusinessTypeInfo()
                return BusinessTypeInfo(
                    business_type=_str(data.get("businessType"), "other").lower(),
                    specific_type=_str(data.get("specificType"), ""),
                    main_offerings=_str_tuple(data.get("mainOfferings")),
                    key_pages=_str_tuple(strategy.get("keyPages"), defaults.key_pages),
                    offering_nomenclature=_str(strategy.get("offeringNomenclature"), defaults.offering_nomenclature),
                    pricing_terms=_str_tuple(strategy.get("pricingTerms"), defaults.pricing_terms),
                )
            case Malformed(reason=reason):
                logger.warning("Malformed business type answer for %s: %s", url, reason)
                return guess_business_type(text, url)

    async def categorize_offering(self, text: str, business_type: str, source_url: str = "") -> Offering | None:
        """Classify one chunk; ``None`` when neither a name nor a category came out."""
        category_hint, features_hint = _CATEGORY_HINTS.get(business_type, ("specific category", "general features"))
        type_options = " or ".join(f'"{t}"' for t in OFFERING_TYPES.get(business_type, DEFAULT_OFFERING_TYPES))
        prompt = _CATEGORIZE_PROMPT.format(
            business_type=business_type,
            text=text,
            type_options=type_options,
            category_hint=category_hint,
            features_hint=features_hint,
            example=_EXAMPLES.get(business_type, _DEFAULT_EXAMPLE),
        )
        raw = await self._complete(prompt, "Offering categorization")
        if raw is None:
            offering = guess_offering(text, business_type, source_url)
        else:
            match parse_json_object(raw):
                case Ok(value=data):
                    offering = _offering_from_json(data, business_type, source_url)
                case Malformed(reason=reason):
                    logger.debug("Malformed categorization (%s), using keyword heuristics", reason)
                    offering = guess_offering(text, business_type, source_url)

        if offering.name == "unknown" and offering.category == "unknown":
            return None
        return offering

    async def extract_features(self, text: str) -> list[str]:
        raw = await self._complete(_FEATURES_PROMPT.format(text=text[:3000]), "Feature extraction")
        if raw is None:
            return []
        match parse_json_array(raw):
            case Ok(value=items):
                return [item.strip() for item in items if isinstance(item, str) and item.strip()]
            case Malformed():
                fragments = (next((g for g in m.groups() if g), "") for m in _FEATURE_RE.finditer(raw))
                return [f.strip() for f in fragments if f.strip()]

    async def find_relevant_pages(self, base_url: str, html: str, limit: int = 10) -> list[str]:
        links = extract_links(html, base_url)
        if not links:
            return []
        host = urlparse(base_url).hostname

        def same_host(urls: Sequence[Any]) -> list[str]:
            kept: dict[str, None] = {}
            for url in urls:
                if isinstance(url, str) and url.startswith("http"):
                    try:
                        if urlparse(url).hostname == host:
                            kept[url] = None
                    except ValueError:
                        continue
            return list(kept)[:limit]

        prompt = _RELEVANT_PAGES_PROMPT.format(base_url=base_url, urls=json.dumps(links), limit=limit)
        raw = await self._complete(prompt, "Relevant page discovery")
        if raw is not None:
            match parse_json_array(raw):
                case Ok(value=urls) if same_host(urls):
                    return same_host(urls)
                case _:
                    quoted = same_host(_URL_RE.findall(raw))
                    if quoted:
                        return quoted
        return links[:limit]

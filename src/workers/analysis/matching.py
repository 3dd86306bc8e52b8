"""
Product Matching
================
Name-similarity scoring between competitor offerings and the caller's
products, plus price deltas and the composite competitor score.

Two scorers live here and are deliberately separate:

  - ``match_score``: the engine matcher (100 exact / 90 substring /
    token overlap capped at 95, stop words removed)
  - ``simple_match_score``: the price monitor's cheap re-check
    (100 / 90 / raw word overlap capped at 85)
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from workers.analysis.models import UserProduct

_PUNCT_RE = re.compile(r"[^\w\s]")

STOP_WORDS = frozenset({
    # articles / conjunctions
    "a", "an", "the", "and", "or", "but",
    # prepositions
    "of", "for", "with", "without", "in", "on", "at", "to", "from", "by", "per", "into", "over", "under",
    # units that say nothing about the offering itself
    "night", "nights", "person", "persons", "people", "occupancy", "guest", "guests",
    "unit", "units", "item", "items", "each",
})

EXACT_SCORE = 100
SUBSTRING_SCORE = 90
TOKEN_SCORE_CAP = 95
SIMPLE_TOKEN_SCORE_CAP = 85


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def normalize_name(name: str) -> str:
    return name.strip().lower()


def tokenize(name: str) -> set[str]:
    words = _PUNCT_RE.sub(" ", normalize_name(name)).split()
    return {w for w in words if len(w) > 2 and w not in STOP_WORDS}


def match_score(name_a: str, name_b: str) -> int:
    a, b = normalize_name(name_a), normalize_name(name_b)
    if not a or not b:
        return 0
    if a == b:
        return EXACT_SCORE
    if a in b or b in a:
        return SUBSTRING_SCORE

    tokens_a, tokens_b = tokenize(a), tokenize(b)
    if not tokens_a or not tokens_b:
        return 0
    matching = sum(1 for ta in tokens_a if any(ta in tb or tb in ta for tb in tokens_b))
    score = int(_round_half_up(matching / max(len(tokens_a), len(tokens_b)) * 100))
    return min(score, TOKEN_SCORE_CAP)


def simple_match_score(name_a: str, name_b: str) -> int:
    a, b = normalize_name(name_a), normalize_name(name_b)
    if a == b:
        return EXACT_SCORE
    if a in b or b in a:
        return SUBSTRING_SCORE

    words_a, words_b = a.split(), b.split()
    matching = sum(
        1 for wa in words_a
        if len(wa) >= 3 and any(wb in wa or wa in wb for wb in words_b)
    )
    score = int(_round_half_up(matching / max(len(words_a), 1) * 100))
    return min(score, SIMPLE_TOKEN_SCORE_CAP)


def price_diff(user_price: float | None, competitor_price: float | None) -> float | None:
    """Percent difference of the competitor price relative to the user's, one decimal."""
    if user_price is None or competitor_price is None or user_price == 0:
        return None
    return _round_half_up((competitor_price - user_price) / user_price * 100, 1)


@dataclass(frozen=True, slots=True)
class Candidate:
    product: UserProduct
    score: int


def best_match(
    offering_name: str,
    user_products: Sequence[UserProduct],
    floor: int = 30,
) -> Candidate | None:
    """The single highest-scoring user product strictly above ``floor``."""
    best: Candidate | None = None
    for product in user_products:
        score = match_score(offering_name, product.name)
        if score > floor and (best is None or score > best.score):
            best = Candidate(product, score)
    return best


def composite_match_score(
    detected_type: str,
    declared_type: str | None,
    matched_offerings: int,
    *,
    base: int = 60,
    business_type_bonus: int = 15,
    per_offering: int = 5,
    density_cap: int = 25,
) -> int:
    score = base
    if declared_type and declared_type.strip().lower() == detected_type.strip().lower():
        score += business_type_bonus
    if matched_offerings > 0:
        score += min(density_cap, matched_offerings * per_offering)
    return min(100, score)

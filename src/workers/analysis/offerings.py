"""Text chunking and offering deduplication."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import replace

from workers.analysis.models import Offering

_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")


def _split_long(sentence: str, max_chars: int) -> list[str]:
    """Break one oversized sentence on whitespace, hard-cutting single long words."""
    parts: list[str] = []
    current = ""
    for word in sentence.split(" "):
        while len(word) > max_chars:
            if current:
                parts.append(current)
                current = ""
            parts.append(word[:max_chars])
            word = word[max_chars:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        else:
            parts.append(current)
            current = word
    if current:
        parts.append(current)
    return parts


def split_text_into_chunks(text: str, max_chars: int = 500) -> list[str]:
    """Sentence-bounded chunks, each at most ``max_chars`` long."""
    sentences = [s for s in _SENTENCE_RE.findall(text) if s.strip()]
    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        if len(current) + len(sentence) <= max_chars:
            current += sentence
            continue
        if current:
            chunks.append(current)
        if len(sentence) > max_chars:
            *full, current = _split_long(sentence, max_chars)
            chunks.extend(full)
        else:
            current = sentence
    if current:
        chunks.append(current)
    return [chunk.strip() for chunk in chunks if chunk.strip()]


def analysis_chunks(text: str, max_chars: int = 500, min_chars: int = 50) -> list[str]:
    return [chunk for chunk in split_text_into_chunks(text, max_chars) if len(chunk) >= min_chars]


def _union(first: Iterable[str], second: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys([*first, *second]))


def deduplicate_offerings(offerings: Sequence[Offering]) -> list[Offering]:
    """
    Collapse offerings sharing a normalized name.

    The first record keeps its name, type and category; a later record
    only fills a missing price, and feature lists are unioned in order.
    """
    merged: dict[str, Offering] = {}
    for offering in offerings:
        key = offering.name.strip().lower()
        existing = merged.get(key)
        if existing is None:
            merged[key] = replace(offering, features=_union(offering.features, ()))
            continue

        pricing = existing.pricing
        if pricing.value is None and offering.pricing.value is not None:
            pricing = offering.pricing
        merged[key] = replace(
            existing,
            pricing=pricing,
            features=_union(existing.features, offering.features),
        )
    return list(merged.values())

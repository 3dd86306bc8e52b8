"""
tests/test_offerings.py

Text chunking and offering deduplication.
"""

from __future__ import annotations

from workers.analysis.models import Offering, Pricing
from workers.analysis.offerings import analysis_chunks, deduplicate_offerings, split_text_into_chunks


class TestChunking:
    def test_sentences_are_packed_up_to_the_limit(self) -> None:
        assert split_text_into_chunks("One. Two. Three.", max_chars=10) == ["One. Two.", "Three."]

    def test_oversized_sentence_is_split_on_words(self) -> None:
        chunks = split_text_into_chunks("word " * 50, max_chars=20)
        assert chunks
        assert all(len(chunk) <= 20 for chunk in chunks)
        assert " ".join(chunks).split() == ["word"] * 50

    def test_single_huge_word_is_hard_cut(self) -> None:
        chunks = split_text_into_chunks("x" * 45, max_chars=20)
        assert chunks == ["x" * 20, "x" * 20, "x" * 5]

    def test_short_chunks_are_dropped_for_analysis(self) -> None:
        assert analysis_chunks("Short. Tiny.", max_chars=500, min_chars=50) == []

    def test_empty_text(self) -> None:
        assert split_text_into_chunks("") == []


def _offering(name: str, price: float | None = None, features: tuple[str, ...] = ()) -> Offering:
    return Offering(type="room", category="deluxe", name=name, features=features, pricing=Pricing(value=price))


class TestDeduplication:
    def test_same_normalized_name_is_merged(self) -> None:
        merged = deduplicate_offerings([
            _offering("Deluxe Room", None, ("sea view",)),
            _offering(" deluxe room", 200.0, ("king bed", "sea view")),
        ])
        assert len(merged) == 1
        assert merged[0].name == "Deluxe Room"
        assert merged[0].pricing.value == 200.0
        assert merged[0].features == ("sea view", "king bed")

    def test_first_price_wins(self) -> None:
        merged = deduplicate_offerings([_offering("Suite", 300.0), _offering("SUITE", 350.0)])
        assert merged[0].pricing.value == 300.0

    def test_idempotent(self) -> None:
        offerings = [
            _offering("Deluxe Room", None, ("a",)),
            _offering("Suite", 300.0),
            _offering("deluxe room", 200.0, ("b", "a")),
        ]
        once = deduplicate_offerings(offerings)
        assert deduplicate_offerings(once) == once

    def test_distinct_names_keep_order(self) -> None:
        merged = deduplicate_offerings([_offering("B"), _offering("A")])
        assert [o.name for o in merged] == ["B", "A"]

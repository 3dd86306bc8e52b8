"""
tests/test_search.py

ValueSERP response parsing and client error mapping.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from core.errors import CapabilityUnavailableError
from workers.discovery.search import SearchMode, ValueSerpClient, parse_search_response


def _client(handler) -> ValueSerpClient:
    return ValueSerpClient("test-key", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestParsing:
    def test_shopping_results(self) -> None:
        data = {"shopping_results": [
            {"link": "https://www.rival.example/p/1", "title": "Wireless Headphones", "extracted_price": 54.99},
            {"title": "no link"},
            "garbage",
        ]}
        [item] = parse_search_response(data, SearchMode.SHOPPING)

        assert item.domain == "rival.example"
        assert item.price_range.min == item.price_range.max == 54.99

    def test_maps_results_use_the_website(self) -> None:
        data = {"local_results": [{"website": "https://cafe.example/", "rating": "4.5", "reviews": 120}]}
        [item] = parse_search_response(data, SearchMode.MAPS)

        assert item.url == "https://cafe.example/"
        assert (item.rating, item.review_count) == (4.5, 120)

    def test_rich_snippet_rating_and_price(self) -> None:
        data = {"organic_results": [{
            "link": "https://rival.example/",
            "rich_snippet": {"top": {
                "extensions": ["4.6 (1,234)"],
                "detected_extensions": {"price": "89.00", "currency": {"code": "EUR"}},
            }},
        }]}
        [item] = parse_search_response(data, SearchMode.ORGANIC)

        assert item.rating == 4.6
        assert item.review_count == 1234
        assert item.price_range.currency == "EUR"
        assert item.metadata.price_range.midpoint == 89.0

    def test_missing_result_key(self) -> None:
        assert parse_search_response({}, SearchMode.LOCAL) == []


class TestClient:
    def test_mode_parameters(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"shopping_results": [{"link": "https://rival.example/p"}]})

        results = asyncio.run(_client(handler).search("wireless headphones", SearchMode.SHOPPING))

        assert [r.domain for r in results] == ["rival.example"]
        params = seen[0].url.params
        assert params["q"] == "wireless headphones"
        assert (params["tbm"], params["num"]) == ("shop", "15")

    @pytest.mark.parametrize("status", [401, 429, 500])
    def test_http_errors(self, status) -> None:
        client = _client(lambda request: httpx.Response(status))
        with pytest.raises(CapabilityUnavailableError):
            asyncio.run(client.search("headphones", SearchMode.ORGANIC))

    def test_missing_api_key(self) -> None:
        with pytest.raises(CapabilityUnavailableError):
            asyncio.run(ValueSerpClient("").search("headphones", SearchMode.ORGANIC))

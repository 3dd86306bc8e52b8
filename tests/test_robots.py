"""
tests/test_robots.py

robots.txt rules, sitemap parsing and the caching reader.
"""

from __future__ import annotations

import asyncio

from fakes import FakePages
from workers.crawler.models import RobotsData
from workers.crawler.robots import RobotsReader, is_path_allowed, parse_robots_txt, parse_sitemap_xml

ROBOTS = """
User-agent: Googlebot
Disallow: /google-only

User-agent: *
Disallow: /admin
Disallow: /cart/*.json$   # cart exports
Disallow:
Crawl-delay: 2
Sitemap: https://shop.example/sitemap.xml
"""

SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://shop.example/sitemap-products.xml</loc></sitemap>
</sitemapindex>"""

PRODUCT_SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://shop.example/products/headphones</loc><lastmod>2024-01-02</lastmod><priority>0.8</priority></url>
  <url><loc>https://shop.example/products/speakers</loc></url>
  <url><lastmod>2024-01-02</lastmod></url>
</urlset>"""

LEGACY_SITEMAP = """<urlset><url><loc>https://shop.example/products/speakers</loc></url>
<url><loc>https://shop.example/about</loc></url></urlset>"""


class TestParseRobots:
    def test_only_the_star_group_applies(self) -> None:
        robots = parse_robots_txt(ROBOTS)
        assert robots.disallowed_paths == ["/admin", "/cart/*.json$"]
        assert robots.crawl_delay == 2.0
        assert robots.sitemaps == ["https://shop.example/sitemap.xml"]

    def test_empty_file(self) -> None:
        assert parse_robots_txt("") == RobotsData()


class TestIsPathAllowed:
    robots = RobotsData(disallowed_paths=["/admin", "/cart/*.json$"])

    def test_prefix_rule(self) -> None:
        assert not is_path_allowed(self.robots, "https://shop.example/admin/users")

    def test_wildcard_with_end_anchor(self) -> None:
        assert not is_path_allowed(self.robots, "https://shop.example/cart/items.json")
        assert is_path_allowed(self.robots, "https://shop.example/cart/items.json?page=2")

    def test_allowed_path(self) -> None:
        assert is_path_allowed(self.robots, "https://shop.example/products")

    def test_no_rules(self) -> None:
        assert is_path_allowed(None, "https://shop.example/admin")


class TestParseSitemapXml:
    def test_index(self) -> None:
        entries, nested = parse_sitemap_xml(SITEMAP_INDEX)
        assert entries == []
        assert nested == ["https://shop.example/sitemap-products.xml"]

    def test_urlset_skips_entries_without_loc(self) -> None:
        entries, nested = parse_sitemap_xml(PRODUCT_SITEMAP)
        assert nested == []
        assert [e.loc for e in entries] == [
            "https://shop.example/products/headphones",
            "https://shop.example/products/speakers",
        ]
        assert entries[0].lastmod == "2024-01-02"
        assert entries[0].priority == 0.8


class TestRobotsReader:
    def _pages(self) -> FakePages:
        return FakePages(html={
            "https://shop.example/robots.txt": ROBOTS,
            "https://shop.example/sitemap.xml": SITEMAP_INDEX,
            "https://shop.example/sitemap-products.xml": PRODUCT_SITEMAP,
            "https://shop.example/product-sitemap.xml": LEGACY_SITEMAP,
        })

    def test_robots_are_cached_per_origin(self) -> None:
        pages = self._pages()
        reader = RobotsReader(pages)

        async def scenario() -> None:
            await reader.parse_robots("shop.example")
            await reader.is_allowed("https://shop.example/admin")

        asyncio.run(scenario())
        assert pages.fetched.count("https://shop.example/robots.txt") == 1

    def test_missing_robots_means_no_rules(self) -> None:
        reader = RobotsReader(FakePages())
        assert asyncio.run(reader.parse_robots("nowhere.example")) is None
        assert asyncio.run(reader.is_allowed("https://nowhere.example/admin"))

    def test_sitemap_follows_index_and_deduplicates(self) -> None:
        reader = RobotsReader(self._pages())
        entries = asyncio.run(reader.parse_sitemap("shop.example"))
        assert [e.loc for e in entries] == [
            "https://shop.example/products/headphones",
            "https://shop.example/products/speakers",
            "https://shop.example/about",
        ]

"""
tests/test_extraction.py

Pure HTML extraction helpers used by the fetcher and the analyzer.
"""

from __future__ import annotations

from workers.crawler.extraction import (
    extract_contact_info,
    extract_links,
    extract_meta_tags,
    extract_prices,
    extract_structured_data,
    extract_text,
)

PAGE = """
<html>
<head>
  <title>Rival Audio</title>
  <meta property="og:description" content="Headphones and speakers">
  <meta name="keywords" content="audio, headphones , ">
  <script type="application/ld+json">
    [{"@type": "Organization", "email": "hello@rival.example", "telephone": "+1 555 010 2000",
      "address": {"@type": "PostalAddress", "streetAddress": "1 Main St"}}]
  </script>
  <script type="application/ld+json">{not json</script>
  <style>.x { color: red }</style>
</head>
<body>
  <nav><span class="price">$10</span><a href="/about">About</a></nav>
  <h1>Wireless   Headphones</h1>
  <div class="price">$54.99</div>
  <a href="/products#top">Products</a>
  <a href="https://rival.example/pricing">Pricing</a>
  <a href="https://elsewhere.example/x">Partner</a>
  <a href="mailto:hello@rival.example">Mail</a>
  <script>var tracking = true;</script>
</body>
</html>
"""


def test_text_drops_scripts_and_collapses_whitespace() -> None:
    text = extract_text(PAGE)
    assert "Wireless Headphones" in text
    assert "tracking" not in text
    assert "color" not in text


def test_meta_tags_with_og_fallback() -> None:
    meta = extract_meta_tags(PAGE)
    assert meta == {
        "title": "Rival Audio",
        "description": "Headphones and speakers",
        "keywords": ["audio", "headphones"],
    }


def test_meta_tags_missing() -> None:
    assert extract_meta_tags("<html><body>hi</body></html>") == {"title": "", "description": "", "keywords": []}


def test_structured_data_flattens_and_skips_malformed() -> None:
    blocks = extract_structured_data(PAGE)
    assert len(blocks) == 1
    assert blocks[0]["@type"] == "Organization"


def test_prices_outside_navigation_only() -> None:
    prices = extract_prices(PAGE)
    assert [(p.value, p.currency) for p in prices] == [(54.99, "$")]
    assert prices[0].unit == "per item"


def test_hospitality_rates_get_nightly_unit() -> None:
    html = '<html><body><div class="rate">From 120 per night</div></body></html>'
    prices = extract_prices(html, "hospitality")
    assert [(p.value, p.unit) for p in prices] == [(120.0, "per night")]


def test_no_prices() -> None:
    assert extract_prices("<html><body><p>Welcome to our shop</p></body></html>") == []


def test_contact_info_from_structured_data() -> None:
    contact = extract_contact_info(PAGE)
    assert contact.email == "hello@rival.example"
    assert contact.phone == "+1 555 010 2000"
    assert contact.address == "1 Main St"


def test_links_are_same_host_without_fragments() -> None:
    links = extract_links(PAGE, "https://rival.example")
    assert links == [
        "https://rival.example/about",
        "https://rival.example/products",
        "https://rival.example/pricing",
    ]

"""In-process fakes for the pipeline's collaborators."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from core.errors import CapabilityUnavailableError, FetchError
from workers.crawler.fetcher import normalize_url
from workers.crawler.models import SiteContent
from workers.discovery.search import SearchMode, SearchResult, hostname


class FakePages:
    """HTML and SiteContent served from dicts keyed by absolute URL."""

    def __init__(
        self,
        html: dict[str, str] | None = None,
        contents: dict[str, SiteContent] | None = None,
        failing: Iterable[str] = (),
    ) -> None:
        self.html = dict(html or {})
        self.contents = dict(contents or {})
        self.failing = set(failing)
        self.fetched: list[str] = []
        self.discovered: list[str] = []

    async def fetch(self, url: str) -> str:
        url = normalize_url(url)
        self.fetched.append(url)
        if url in self.failing or url not in self.html:
            raise FetchError(url, "HTTP 404", 404)
        return self.html[url]

    async def discover_site_content(self, url: str) -> SiteContent:
        url = normalize_url(url)
        self.discovered.append(url)
        if url in self.failing:
            raise FetchError(url, "connection refused")
        return self.contents.get(url, SiteContent(url=url))


class FakeAI:
    """Text completion answered by ``handler(prompt)``, or always raising ``error``."""

    def __init__(self, handler: Callable[[str], str] | None = None, error: Exception | None = None) -> None:
        self.handler = handler
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str, system_prompt: str | None = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.handler(prompt) if self.handler else ""


class FakeSearch:
    """Returns the same results for every query; ``failing_modes`` raise."""

    def __init__(self, results: Iterable[SearchResult] = (), failing_modes: Iterable[SearchMode] = ()) -> None:
        self.results = list(results)
        self.failing_modes = set(failing_modes)
        self.calls: list[tuple[str, SearchMode]] = []

    async def search(self, query: str, mode: SearchMode) -> list[SearchResult]:
        self.calls.append((query, mode))
        if mode in self.failing_modes:
            raise CapabilityUnavailableError("search", "rate limit exceeded")
        return list(self.results)


class FakeAlerts:
    def __init__(self) -> None:
        self.sent: list[tuple] = []

    async def price_alert(self, competitor_domain, product_name, product_url, previous_price, current_price, change):
        self.sent.append((competitor_domain, product_name, previous_price, current_price, change))
        return True


def result(url: str, **kwargs) -> SearchResult:
    return SearchResult(url=url, domain=hostname(url) or "", **kwargs)

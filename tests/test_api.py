"""
tests/test_api.py

HTTP surface: camelCase payloads, status codes and error mapping.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_services
from api.main import app
from fakes import FakeAI, FakeAlerts, FakePages, FakeSearch, result
from scenarios import RIVAL_HOME_HTML, RIVAL_PRODUCTS_HTML, rival_ai
from workers.analysis.engine import CompetitorAnalyzer
from workers.analysis.tools import AnalysisTools
from workers.crawler.models import SiteContent, SiteItem
from workers.discovery.orchestrator import CompetitorDiscovery
from workers.price_monitor.monitor import PriceMonitor
from workers.price_monitor.store import InMemoryTaskStore
from workers.price_monitor.tasks import MonitoringTaskService

RIVAL = "https://rival.example"
PRODUCT_URL = "https://rival.example/p/headphones"
HEADPHONES = {"name": "Headphones", "url": "https://shop.example/headphones", "price": 49.99, "currency": "USD"}


@pytest.fixture
def pages() -> FakePages:
    return FakePages(
        html={f"{RIVAL}": RIVAL_HOME_HTML, f"{RIVAL}/products": RIVAL_PRODUCTS_HTML},
        contents={
            RIVAL: SiteContent(url=RIVAL, products=[SiteItem("Wireless Headphones", PRODUCT_URL, 54.99)]),
            PRODUCT_URL: SiteContent(url=PRODUCT_URL, products=[SiteItem("Wireless Headphones", PRODUCT_URL, 54.99)]),
        },
    )


@pytest.fixture
def client(pages):
    tools = AnalysisTools(FakeAI(rival_ai))
    analyzer = CompetitorAnalyzer(pages, tools)
    search = FakeSearch([result(f"{RIVAL}/products"), result("https://down.example")])
    store = InMemoryTaskStore()
    monitor = PriceMonitor(pages, analyzer=analyzer, store=store)
    services = SimpleNamespace(
        analyzer=analyzer,
        discovery=CompetitorDiscovery(pages, search, analyzer, tools),
        monitor=monitor,
        tasks=MonitoringTaskService(monitor, store, alerts=FakeAlerts()),
    )
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "competitor-discovery"}


class TestCompetitorRoutes:
    def test_discover(self, client) -> None:
        response = client.post("/api/competitors/discover", json={
            "domain": "shop.example",
            "userId": "user-1",
            "businessType": "ecommerce",
            "userProducts": [HEADPHONES],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["stats"] == {"totalDiscovered": 1, "newCompetitors": 1, "existingCompetitors": 0, "failedAnalyses": 1}
        competitor = body["competitors"][0]
        assert competitor["domain"] == "rival.example"
        assert competitor["matchScore"] == 80
        matched = competitor["products"][0]["matchedProducts"][0]
        assert matched["matchScore"] >= 85
        assert matched["priceDiff"] == pytest.approx(10.0)
        assert body["searchStrategy"]["usedFallbackQueries"] is True

    def test_discover_requires_business_type(self, client) -> None:
        response = client.post("/api/competitors/discover", json={
            "domain": "shop.example", "userId": "user-1", "businessType": " ",
        })
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequestError"

    def test_discover_rejects_non_positive_deadline(self, client) -> None:
        response = client.post("/api/competitors/discover", json={
            "domain": "shop.example", "userId": "user-1", "businessType": "ecommerce", "deadlineSeconds": 0,
        })
        assert response.status_code == 422

    def test_analyze(self, client) -> None:
        response = client.post("/api/competitors/analyze", json={
            "competitorDomain": "rival.example",
            "businessContext": {"businessType": "ecommerce", "userProducts": [HEADPHONES]},
            "searchMetadata": {"rating": 4.6, "reviewCount": 87},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["listingPlatforms"][0]["platform"] == "Google"
        assert body["listingPlatforms"][0]["reviewCount"] == 87
        assert body["products"][0]["name"] == "Wireless Headphones"

    def test_analyze_with_deadline(self, client) -> None:
        response = client.post("/api/competitors/analyze", json={
            "competitorDomain": "rival.example",
            "businessContext": {"businessType": "ecommerce", "userProducts": [HEADPHONES]},
            "deadlineSeconds": 30,
        })
        assert response.status_code == 200
        assert response.json()["products"][0]["matchedProducts"][0]["currency"] == "USD"

    def test_analyze_rejects_non_positive_deadline(self, client) -> None:
        response = client.post("/api/competitors/analyze", json={"competitorDomain": "rival.example", "deadlineSeconds": -1})
        assert response.status_code == 422

    def test_unreachable_competitor_is_a_bad_gateway(self, client) -> None:
        response = client.post("/api/competitors/analyze", json={"competitorDomain": "down.example"})
        assert response.status_code == 502
        assert response.json()["error"] == "FetchError"


class TestMonitoringRoutes:
    def test_prices(self, client) -> None:
        response = client.post("/api/monitoring/prices", json={
            "competitorDomain": "rival.example", "userProducts": [HEADPHONES],
        })

        assert response.status_code == 200
        [match] = response.json()
        assert match["name"] == "Headphones"
        assert match["matchedProducts"][0]["price"] == 54.99
        assert match["matchedProducts"][0]["priceDiff"] == pytest.approx(10.0)

    def test_price_history(self, client) -> None:
        response = client.get("/api/monitoring/price-history", params={"product_url": PRODUCT_URL})

        assert response.status_code == 200
        body = response.json()
        assert body["current"] == 54.99
        assert [entry["price"] for entry in body["history"]] == [54.99]

    def test_price_history_requires_url(self, client) -> None:
        assert client.get("/api/monitoring/price-history").status_code == 422

    def test_task_lifecycle(self, client) -> None:
        created = client.post("/api/monitoring/tasks", json={
            "userId": "user-1",
            "competitorDomain": "rival.example",
            "productUrls": [HEADPHONES],
            "frequency": "0 */6 * * *",
        })
        assert created.status_code == 201
        task = created.json()
        assert task["status"] == "active"
        assert task["frequency"] == "0 */6 * * *"
        assert task["productUrls"][0]["name"] == "Headphones"
        assert task["lastRun"] is not None

        listed = client.get("/api/monitoring/tasks", params={"user_id": "user-1"})
        assert [t["id"] for t in listed.json()] == [task["id"]]

        patched = client.patch(f"/api/monitoring/tasks/{task['id']}", json={"enabled": False})
        assert patched.status_code == 200
        assert patched.json()["status"] == "paused"

        assert client.delete(f"/api/monitoring/tasks/{task['id']}").status_code == 204
        missing = client.delete(f"/api/monitoring/tasks/{task['id']}")
        assert missing.status_code == 404
        assert missing.json()["error"] == "TaskNotFoundError"

    def test_invalid_frequency(self, client) -> None:
        response = client.post("/api/monitoring/tasks", json={
            "userId": "user-1", "competitorDomain": "rival.example", "frequency": "weekly",
        })
        assert response.status_code == 400

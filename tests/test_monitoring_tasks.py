"""
tests/test_monitoring_tasks.py

Monitoring task CRUD and scheduled runs over an in-memory store.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.errors import FetchError, InvalidRequestError, TaskNotFoundError
from fakes import FakeAlerts, FakePages
from workers.crawler.models import SiteContent, SiteItem
from workers.price_monitor.models import Frequency, MonitoringTask, TaskStatus, TrackedProduct
from workers.price_monitor.monitor import PriceMonitor
from workers.price_monitor.store import InMemoryTaskStore
from workers.price_monitor.tasks import MonitoringTaskService, parse_frequency

RIVAL = "https://rival.example"
PRODUCT_URL = "https://rival.example/p/headphones"
TRACKED = [TrackedProduct(name="Headphones", url="https://shop.example/headphones", price=49.99, currency="USD")]


class BrokenMonitor:
    async def monitor_competitor_prices(self, competitor_domain, user_products):
        raise FetchError(competitor_domain, "connection reset")


class FullDiskStore(InMemoryTaskStore):
    async def add_price_record(self, record):
        raise RuntimeError("disk full")


class StuckTaskStore(InMemoryTaskStore):
    """Cannot save task ``stuck``."""

    async def update(self, task):
        if task.id == "stuck":
            raise RuntimeError("row locked")
        return await super().update(task)


def _rival(price: float) -> SiteContent:
    return SiteContent(url=RIVAL, products=[SiteItem("Wireless Headphones", PRODUCT_URL, price)])


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def pages() -> FakePages:
    return FakePages(contents={RIVAL: _rival(54.99)})


@pytest.fixture
def alerts() -> FakeAlerts:
    return FakeAlerts()


@pytest.fixture
def service(pages, store, alerts) -> MonitoringTaskService:
    return MonitoringTaskService(PriceMonitor(pages, store=store), store, alerts=alerts)


def _create(service: MonitoringTaskService, frequency: str = "0 * * * *") -> MonitoringTask:
    return asyncio.run(service.create("user-1", "Rival.example", TRACKED, frequency))


class TestCrud:
    def test_create_runs_a_baseline_pass(self, service, store) -> None:
        task = _create(service)

        assert task.competitor_domain == "rival.example"
        assert task.frequency == Frequency.HOURLY
        assert task.status == TaskStatus.ACTIVE
        assert task.next_run - task.last_run == timedelta(hours=1)
        assert asyncio.run(store.latest_price(task.id, PRODUCT_URL)) == 54.99

    def test_invalid_frequency(self, service) -> None:
        with pytest.raises(InvalidRequestError):
            _create(service, "every tuesday")

    def test_blank_user(self, service) -> None:
        with pytest.raises(InvalidRequestError):
            asyncio.run(service.create(" ", "rival.example", TRACKED, "0 * * * *"))

    def test_disable_pauses_and_enable_resumes(self, service) -> None:
        task = _create(service)

        paused = asyncio.run(service.update(task.id, enabled=False))
        assert paused.status == TaskStatus.PAUSED
        assert not paused.enabled

        resumed = asyncio.run(service.update(task.id, enabled=True, frequency="0 0 * * *"))
        assert resumed.status == TaskStatus.ACTIVE
        assert resumed.frequency == Frequency.DAILY

    def test_update_unknown_task(self, service) -> None:
        with pytest.raises(TaskNotFoundError):
            asyncio.run(service.update("missing", enabled=False))

    def test_remove(self, service) -> None:
        task = _create(service)
        asyncio.run(service.remove(task.id))

        with pytest.raises(TaskNotFoundError):
            asyncio.run(service.get(task.id))
        with pytest.raises(TaskNotFoundError):
            asyncio.run(service.remove(task.id))

    def test_list_newest_first(self, service, store) -> None:
        now = datetime.now(timezone.utc)
        for i, age in enumerate((3, 1, 2)):
            asyncio.run(store.create(MonitoringTask(
                id=f"t{i}", user_id="user-1", competitor_domain="rival.example", product_urls=[],
                frequency=Frequency.DAILY, created_at=now - timedelta(hours=age),
            )))
        asyncio.run(store.create(MonitoringTask(
            id="other", user_id="user-2", competitor_domain="rival.example", product_urls=[],
            frequency=Frequency.DAILY, created_at=now,
        )))

        assert [t.id for t in asyncio.run(service.list_by_user("user-1"))] == ["t1", "t2", "t0"]

    def test_parse_frequency(self) -> None:
        assert parse_frequency(" 0 */6 * * * ") == Frequency.SIX_HOURLY


class TestRuns:
    def test_price_move_over_threshold_alerts(self, service, pages, store, alerts) -> None:
        task = _create(service)
        pages.contents[RIVAL] = _rival(64.99)

        asyncio.run(service.run_task(task))

        assert len(alerts.sent) == 1
        domain, name, previous, current, change = alerts.sent[0]
        assert (domain, name, previous, current) == ("rival.example", "Wireless Headphones", 54.99, 64.99)
        assert change == pytest.approx(18.2)

    def test_small_move_is_recorded_without_alert(self, service, pages, store, alerts) -> None:
        task = _create(service)
        pages.contents[RIVAL] = _rival(56.0)

        asyncio.run(service.run_task(task))

        assert alerts.sent == []
        assert asyncio.run(store.latest_price(task.id, PRODUCT_URL)) == 56.0

    def test_failing_monitor_marks_the_task_failed(self, store) -> None:
        service = MonitoringTaskService(BrokenMonitor(), store)
        task = asyncio.run(service.create("user-1", "rival.example", TRACKED, Frequency.DAILY))

        assert task.status == TaskStatus.FAILED
        assert task.last_run is None

    def test_run_due_only_runs_due_active_tasks(self, service, store) -> None:
        now = datetime.now(timezone.utc)
        tasks = [
            MonitoringTask(id="due", user_id="u", competitor_domain="rival.example", product_urls=TRACKED,
                           frequency=Frequency.HOURLY),
            MonitoringTask(id="later", user_id="u", competitor_domain="rival.example", product_urls=TRACKED,
                           frequency=Frequency.HOURLY, next_run=now + timedelta(minutes=30)),
            MonitoringTask(id="paused", user_id="u", competitor_domain="rival.example", product_urls=TRACKED,
                           frequency=Frequency.HOURLY, enabled=False, status=TaskStatus.PAUSED),
            MonitoringTask(id="daily", user_id="u", competitor_domain="rival.example", product_urls=TRACKED,
                           frequency=Frequency.DAILY),
        ]
        for task in tasks:
            asyncio.run(store.create(task))

        assert asyncio.run(service.run_due("0 * * * *")) == 1
        assert asyncio.run(store.get("due")).last_run is not None
        assert asyncio.run(store.get("later")).last_run is None
        assert asyncio.run(service.run_due(Frequency.HOURLY)) == 0

    def test_store_error_marks_the_task_failed(self, pages) -> None:
        store = FullDiskStore()
        service = MonitoringTaskService(PriceMonitor(pages, store=store), store)
        task = asyncio.run(service.create("user-1", "rival.example", TRACKED, Frequency.DAILY))

        assert task.status == TaskStatus.FAILED
        assert task.last_run is None
        assert asyncio.run(store.get(task.id)).status == TaskStatus.FAILED

    def test_run_due_keeps_going_after_a_task_blows_up(self, pages) -> None:
        store = StuckTaskStore()
        service = MonitoringTaskService(PriceMonitor(pages, store=store), store)
        for task_id in ("stuck", "fine"):
            asyncio.run(store.create(MonitoringTask(
                id=task_id, user_id="u", competitor_domain="rival.example", product_urls=TRACKED,
                frequency=Frequency.HOURLY,
            )))

        assert asyncio.run(service.run_due(Frequency.HOURLY)) == 2
        assert asyncio.run(store.get("stuck")).last_run is None
        assert asyncio.run(store.get("fine")).last_run is not None


class TestPriceHistoryKeys:
    def test_items_without_url_keep_separate_histories(self, service, pages, store, alerts) -> None:
        pages.contents[RIVAL] = SiteContent(url=RIVAL, products=[
            SiteItem("Budget Headphones", None, 10.0),
            SiteItem("Studio Speakers", None, 100.0),
        ])
        tracked = [TrackedProduct(name="Headphones", price=12.0), TrackedProduct(name="Speakers", price=95.0)]

        task = asyncio.run(service.create("user-1", "rival.example", tracked, Frequency.DAILY))

        assert alerts.sent == []
        assert asyncio.run(store.latest_price(task.id, "", "Budget Headphones")) == 10.0
        assert asyncio.run(store.latest_price(task.id, "", " studio speakers")) == 100.0

        pages.contents[RIVAL] = SiteContent(url=RIVAL, products=[
            SiteItem("Budget Headphones", None, 10.0),
            SiteItem("Studio Speakers", None, 130.0),
        ])
        asyncio.run(service.run_task(task))

        assert [(name, previous, current) for _, name, previous, current, _ in alerts.sent] == [
            ("Studio Speakers", 100.0, 130.0),
        ]

    def test_record_carries_the_competitor_currency(self, service, pages, store) -> None:
        pages.contents[RIVAL] = SiteContent(url=RIVAL, products=[
            SiteItem("Wireless Headphones", PRODUCT_URL, 51.0, currency="EUR"),
        ])
        _create(service)

        [record] = asyncio.run(store.price_history(PRODUCT_URL))
        assert record.currency == "EUR"

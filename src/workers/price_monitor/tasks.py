"""
Monitoring Tasks
================
CRUD over ``MonitoringTask`` plus the scheduled run of a single task:

1. Re-check the competitor through the price monitor
2. For every matched competitor product, compare with the last recorded price
3. Store a price record and alert on Slack when the move crosses the threshold
4. Stamp ``last_run`` / ``next_run``; any failure marks the task ``failed``
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from core.config import Settings, settings as default_settings
from core.errors import InvalidRequestError, PipelineError, TaskNotFoundError
from workers.analysis import matching
from workers.analysis.models import UserProduct
from workers.price_monitor.models import (
    Frequency,
    MonitoringTask,
    PriceRecord,
    TaskStatus,
    TrackedProduct,
)
from workers.price_monitor.monitor import PriceMonitor
from workers.price_monitor.store import TaskStore

logger = logging.getLogger(__name__)


class PriceAlerts(Protocol):
    async def price_alert(
        self,
        competitor_domain: str,
        product_name: str,
        product_url: str | None,
        previous_price: float,
        current_price: float,
        change: float,
    ) -> bool: ...


def parse_frequency(value: str | Frequency) -> Frequency:
    try:
        return Frequency(value.strip() if isinstance(value, str) else value)
    except ValueError:
        supported = ", ".join(f"'{f.value}'" for f in Frequency)
        raise InvalidRequestError(f"Unsupported frequency {value!r}; expected one of {supported}") from None


def _user_products(task: MonitoringTask) -> list[UserProduct]:
    return [UserProduct(name=p.name, url=p.url, price=p.price, currency=p.currency) for p in task.product_urls]


class MonitoringTaskService:
    """Creates, updates and runs price-monitoring tasks."""

    def __init__(
        self,
        monitor: PriceMonitor,
        store: TaskStore,
        *,
        alerts: PriceAlerts | None = None,
        settings: Settings = default_settings,
    ) -> None:
        self.monitor = monitor
        self.store = store
        self.alerts = alerts
        self.settings = settings

    # ── CRUD ───────────────────────────────────────────────────────────

    async def create(
        self,
        user_id: str,
        competitor_domain: str,
        product_urls: Sequence[TrackedProduct],
        frequency: str | Frequency,
        *,
        enabled: bool = True,
        discovery_source: str = "discovery",
    ) -> MonitoringTask:
        if not user_id.strip():
            raise InvalidRequestError("userId is required")
        if not competitor_domain.strip():
            raise InvalidRequestError("competitorDomain is required")

        now = datetime.now(timezone.utc)
        task = await self.store.create(
            MonitoringTask(
                id=uuid.uuid4().hex,
                user_id=user_id,
                competitor_domain=competitor_domain.strip().lower(),
                product_urls=list(product_urls),
                frequency=parse_frequency(frequency),
                enabled=enabled,
                status=TaskStatus.ACTIVE if enabled else TaskStatus.PAUSED,
                discovery_source=discovery_source or "discovery",
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Added monitoring task %s for %s", task.id, task.competitor_domain)

        # Baseline prices for the new task
        return await self.run_task(task)

    async def get(self, task_id: str) -> MonitoringTask:
        task = await self.store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def update(
        self,
        task_id: str,
        *,
        enabled: bool | None = None,
        frequency: str | Frequency | None = None,
        product_urls: Sequence[TrackedProduct] | None = None,
        status: str | TaskStatus | None = None,
    ) -> MonitoringTask:
        task = await self.get(task_id)
        changes: dict = {"updated_at": datetime.now(timezone.utc)}
        if frequency is not None:
            changes["frequency"] = parse_frequency(frequency)
        if product_urls is not None:
            changes["product_urls"] = list(product_urls)
        if status is not None:
            try:
                changes["status"] = TaskStatus(status)
            except ValueError:
                raise InvalidRequestError(f"Unsupported status {status!r}") from None
        if enabled is not None:
            changes["enabled"] = enabled
            if not enabled:
                changes["status"] = TaskStatus.PAUSED
            elif status is None and task.status == TaskStatus.PAUSED:
                changes["status"] = TaskStatus.ACTIVE

        updated = await self.store.update(replace(task, **changes))
        logger.info("Updated monitoring task %s", task_id)
        return updated

    async def remove(self, task_id: str) -> None:
        if not await self.store.delete(task_id):
            raise TaskNotFoundError(task_id)
        logger.info("Removed monitoring task %s", task_id)

    async def list_by_user(self, user_id: str) -> list[MonitoringTask]:
        return await self.store.list_by_user(user_id)

    # ── Runs ───────────────────────────────────────────────────────────

    async def _record(self, task: MonitoringTask, product_name: str, product_url: str | None, price: float | None,
                      currency: str | None) -> None:
        url = product_url or ""
        previous = await self.store.latest_price(task.id, url, product_name)
        change = matching.price_diff(previous, price)
        await self.store.add_price_record(
            PriceRecord(
                product_name=product_name,
                product_url=url,
                price=price,
                recorded_at=datetime.now(timezone.utc),
                monitoring_task_id=task.id,
                currency=currency,
                change_percentage=change,
                previous_price=previous,
                extraction_method="direct_crawl",
            )
        )

        if change is None or abs(change) < self.settings.price_alert_threshold_pct:
            return
        logger.info("Price of %s at %s moved %.1f%%", product_name, task.competitor_domain, change)
        if self.alerts is not None:
            await self.alerts.price_alert(task.competitor_domain, product_name, product_url, previous, price, change)

    async def _mark_failed(self, task: MonitoringTask) -> MonitoringTask:
        return await self.store.update(replace(task, status=TaskStatus.FAILED, updated_at=datetime.now(timezone.utc)))

    async def run_task(self, task: MonitoringTask) -> MonitoringTask:
        """Run one monitoring pass; failures are logged and mark the task failed."""
        logger.info("Running monitoring task %s for %s", task.id, task.competitor_domain)
        try:
            results = await self.monitor.monitor_competitor_prices(task.competitor_domain, _user_products(task))
            for result in results:
                for competitor_item in result.matched_products:
                    await self._record(task, competitor_item.name, competitor_item.url, competitor_item.price,
                                       competitor_item.currency or result.currency)
        except (PipelineError, TimeoutError) as exc:
            logger.error("Monitoring task %s for %s failed: %s", task.id, task.competitor_domain, exc)
            return await self._mark_failed(task)
        except Exception:
            logger.exception("Monitoring task %s for %s failed unexpectedly", task.id, task.competitor_domain)
            return await self._mark_failed(task)

        now = datetime.now(timezone.utc)
        logger.info("Monitoring task %s completed: %d products processed", task.id, len(results))
        return await self.store.update(
            replace(
                task,
                last_run=now,
                next_run=now + task.frequency.interval,
                status=TaskStatus.ACTIVE if task.enabled else task.status,
                updated_at=now,
            )
        )

    async def run_due(self, frequency: str | Frequency) -> int:
        """Run every enabled, active task of ``frequency`` whose next run is due."""
        frequency = parse_frequency(frequency)
        tasks = await self.store.due_tasks(frequency, datetime.now(timezone.utc))
        logger.info("Running %d monitoring tasks with frequency %s", len(tasks), frequency)
        for task in tasks:
            try:
                await self.run_task(task)
            except Exception:
                logger.exception("Monitoring task %s could not be run", task.id)
        return len(tasks)

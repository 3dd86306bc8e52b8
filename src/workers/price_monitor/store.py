"""
Monitoring task persistence.

``TaskStore`` is what the task service and the price monitor depend on.
``InMemoryTaskStore`` backs tests and deployments without a database;
``workers.price_monitor.sql_store.SqlTaskStore`` backs PostgreSQL.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from workers.analysis.matching import normalize_name
from workers.price_monitor.models import Frequency, MonitoringTask, PriceRecord


def history_key(product_url: str | None, product_name: str) -> str:
    """Identity of a product's price series: its URL, else its normalized name."""
    return product_url or f"name:{normalize_name(product_name)}"


class TaskStore(Protocol):
    async def create(self, task: MonitoringTask) -> MonitoringTask: ...

    async def get(self, task_id: str) -> MonitoringTask | None: ...

    async def update(self, task: MonitoringTask) -> MonitoringTask: ...

    async def delete(self, task_id: str) -> bool: ...

    async def list_by_user(self, user_id: str) -> list[MonitoringTask]: ...

    async def due_tasks(self, frequency: Frequency, now: datetime) -> list[MonitoringTask]: ...

    async def add_price_record(self, record: PriceRecord) -> None: ...

    async def latest_price(self, task_id: str, product_url: str, product_name: str = "") -> float | None: ...

    async def price_history(self, product_url: str) -> list[PriceRecord]: ...


class InMemoryTaskStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self) -> None:
        self._tasks: dict[str, MonitoringTask] = {}
        self._records: list[PriceRecord] = []

    async def create(self, task: MonitoringTask) -> MonitoringTask:
        self._tasks[task.id] = task
        return task

    async def get(self, task_id: str) -> MonitoringTask | None:
        return self._tasks.get(task_id)

    async def update(self, task: MonitoringTask) -> MonitoringTask:
        self._tasks[task.id] = task
        return task

    async def delete(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    async def list_by_user(self, user_id: str) -> list[MonitoringTask]:
        tasks = [t for t in self._tasks.values() if t.user_id == user_id]
        return sorted(tasks, key=lambda t: t.created_at.timestamp() if t.created_at else 0.0, reverse=True)

    async def due_tasks(self, frequency: Frequency, now: datetime) -> list[MonitoringTask]:
        return [t for t in self._tasks.values() if t.frequency == frequency and t.is_due(now)]

    async def add_price_record(self, record: PriceRecord) -> None:
        self._records.append(record)

    async def latest_price(self, task_id: str, product_url: str, product_name: str = "") -> float | None:
        key = history_key(product_url, product_name)
        for record in reversed(self._records):
            if record.monitoring_task_id == task_id and history_key(record.product_url, record.product_name) == key:
                return record.price
        return None

    async def price_history(self, product_url: str) -> list[PriceRecord]:
        records = [r for r in self._records if r.product_url == product_url and r.price is not None]
        return sorted(records, key=lambda r: r.recorded_at)

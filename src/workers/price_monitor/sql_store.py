"""PostgreSQL-backed ``TaskStore`` (tables ``monitoring_tasks`` and ``price_history``)."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.models import MonitoringTaskRow, PriceHistoryRow
from workers.price_monitor.models import (
    Frequency,
    MonitoringTask,
    PriceRecord,
    TaskStatus,
    TrackedProduct,
)
from workers.price_monitor.store import history_key


def _float(value) -> float | None:
    return float(value) if value is not None else None


def _to_task(row: MonitoringTaskRow) -> MonitoringTask:
    return MonitoringTask(
        id=row.id,
        user_id=row.user_id,
        competitor_domain=row.competitor_domain,
        product_urls=[TrackedProduct(**item) for item in row.product_urls or []],
        frequency=Frequency(row.frequency),
        enabled=row.enabled,
        status=TaskStatus(row.status),
        discovery_source=row.discovery_source,
        last_run=row.last_run,
        next_run=row.next_run,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply(row: MonitoringTaskRow, task: MonitoringTask) -> None:
    row.user_id = task.user_id
    row.competitor_domain = task.competitor_domain
    row.product_urls = [asdict(p) for p in task.product_urls]
    row.frequency = task.frequency.value
    row.enabled = task.enabled
    row.status = task.status.value
    row.discovery_source = task.discovery_source
    row.last_run = task.last_run
    row.next_run = task.next_run
    if task.created_at is not None:
        row.created_at = task.created_at
    if task.updated_at is not None:
        row.updated_at = task.updated_at


def _to_record(row: PriceHistoryRow) -> PriceRecord:
    return PriceRecord(
        product_name=row.product_name,
        product_url=row.product_url,
        price=_float(row.price),
        recorded_at=row.recorded_at,
        monitoring_task_id=row.monitoring_task_id,
        currency=row.currency,
        change_percentage=_float(row.change_percentage),
        previous_price=_float(row.previous_price),
        extraction_method=row.extraction_method,
    )


class SqlTaskStore:
    """One short-lived session per call; every write commits."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create(self, task: MonitoringTask) -> MonitoringTask:
        async with self.session_factory() as session:
            row = MonitoringTaskRow(id=task.id)
            _apply(row, task)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _to_task(row)

    async def get(self, task_id: str) -> MonitoringTask | None:
        async with self.session_factory() as session:
            row = await session.get(MonitoringTaskRow, task_id)
            return _to_task(row) if row else None

    async def update(self, task: MonitoringTask) -> MonitoringTask:
        async with self.session_factory() as session:
            row = await session.get(MonitoringTaskRow, task.id)
            if row is None:
                row = MonitoringTaskRow(id=task.id)
                session.add(row)
            _apply(row, task)
            await session.commit()
            await session.refresh(row)
            return _to_task(row)

    async def delete(self, task_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(MonitoringTaskRow).where(MonitoringTaskRow.id == task_id))
            await session.commit()
            return result.rowcount > 0

    async def list_by_user(self, user_id: str) -> list[MonitoringTask]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MonitoringTaskRow)
                .where(MonitoringTaskRow.user_id == user_id)
                .order_by(MonitoringTaskRow.created_at.desc())
            )
            return [_to_task(row) for row in result.scalars().all()]

    async def due_tasks(self, frequency: Frequency, now: datetime) -> list[MonitoringTask]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MonitoringTaskRow).where(
                    MonitoringTaskRow.frequency == frequency.value,
                    MonitoringTaskRow.enabled.is_(True),
                    MonitoringTaskRow.status == TaskStatus.ACTIVE.value,
                    or_(MonitoringTaskRow.next_run.is_(None), MonitoringTaskRow.next_run <= now),
                )
            )
            return [_to_task(row) for row in result.scalars().all()]

    async def add_price_record(self, record: PriceRecord) -> None:
        async with self.session_factory() as session:
            session.add(
                PriceHistoryRow(
                    monitoring_task_id=record.monitoring_task_id,
                    product_name=record.product_name,
                    product_url=record.product_url,
                    price=record.price,
                    currency=record.currency,
                    change_percentage=record.change_percentage,
                    previous_price=record.previous_price,
                    extraction_method=record.extraction_method,
                    recorded_at=record.recorded_at,
                )
            )
            await session.commit()

    async def latest_price(self, task_id: str, product_url: str, product_name: str = "") -> float | None:
        async with self.session_factory() as session:
            if product_url:
                result = await session.execute(
                    select(PriceHistoryRow.price)
                    .where(PriceHistoryRow.monitoring_task_id == task_id, PriceHistoryRow.product_url == product_url)
                    .order_by(PriceHistoryRow.recorded_at.desc())
                    .limit(1)
                )
                return _float(result.scalar_one_or_none())

            # URL-less items are told apart by name
            key = history_key(product_url, product_name)
            result = await session.execute(
                select(PriceHistoryRow.product_name, PriceHistoryRow.price)
                .where(PriceHistoryRow.monitoring_task_id == task_id, PriceHistoryRow.product_url == "")
                .order_by(PriceHistoryRow.recorded_at.desc())
            )
            for name, price in result.all():
                if history_key(None, name) == key:
                    return _float(price)
            return None

    async def price_history(self, product_url: str) -> list[PriceRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PriceHistoryRow)
                .where(PriceHistoryRow.product_url == product_url, PriceHistoryRow.price.is_not(None))
                .order_by(PriceHistoryRow.recorded_at.asc())
            )
            return [_to_record(row) for row in result.scalars().all()]

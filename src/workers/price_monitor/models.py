"""Data models for price monitoring tasks and the price history they record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum


class TaskStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    FAILED = "failed"


class Frequency(StrEnum):
    """Supported schedules, as cron expressions."""

    HOURLY = "0 * * * *"
    SIX_HOURLY = "0 */6 * * *"
    DAILY = "0 0 * * *"

    @property
    def interval(self) -> timedelta:
        return _INTERVALS[self]


_INTERVALS = {
    Frequency.HOURLY: timedelta(hours=1),
    Frequency.SIX_HOURLY: timedelta(hours=6),
    Frequency.DAILY: timedelta(days=1),
}


@dataclass(frozen=True, slots=True)
class TrackedProduct:
    """A user product a monitoring task keeps an eye on."""

    name: str
    url: str | None = None
    price: float | None = None
    currency: str | None = None
    id: str | None = None


@dataclass(frozen=True, slots=True)
class MonitoringTask:
    id: str
    user_id: str
    competitor_domain: str
    product_urls: list[TrackedProduct]
    frequency: Frequency
    enabled: bool = True
    status: TaskStatus = TaskStatus.ACTIVE
    discovery_source: str = "discovery"
    last_run: datetime | None = None
    next_run: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.enabled and self.status == TaskStatus.ACTIVE and (self.next_run is None or self.next_run <= now)


@dataclass(frozen=True, slots=True)
class PriceRecord:
    """One observed price of a competitor product."""

    product_name: str
    product_url: str
    price: float | None
    recorded_at: datetime
    monitoring_task_id: str | None = None   # None for ad hoc history lookups
    currency: str | None = "USD"
    change_percentage: float | None = None
    previous_price: float | None = None
    extraction_method: str = "direct_crawl"


@dataclass(frozen=True, slots=True)
class PriceHistoryEntry:
    date: str                               # YYYY-MM-DD
    price: float
    change: float | None                    # percent vs. previous entry


@dataclass(frozen=True, slots=True)
class PriceHistory:
    current: float | None = None
    history: list[PriceHistoryEntry] = field(default_factory=list)

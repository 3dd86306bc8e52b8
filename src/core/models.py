"""
SQLAlchemy 2.0 ORM Models — Price Monitoring
============================================

  - snake_case names
  - String (uuid hex) PK for tasks, BIGINT auto-increment PK for price records
  - Explicit FKs
  - created_at / updated_at on tasks
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class MonitoringTaskRow(Base):
    """A scheduled price re-check of one competitor for one user."""
    __tablename__ = "monitoring_tasks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    competitor_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    product_urls: Mapped[list] = mapped_column(JSONB, default=list)  # [{id, name, url, price, currency}]
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)  # cron expression
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    discovery_source: Mapped[str] = mapped_column(String(50), default="discovery")

    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class PriceHistoryRow(Base):
    """One observed competitor price."""
    __tablename__ = "price_history"
    __table_args__ = (Index("ix_price_history_product_url_recorded_at", "product_url", "recorded_at"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    monitoring_task_id: Mapped[str | None] = mapped_column(
        ForeignKey("monitoring_tasks.id", ondelete="SET NULL")
    )
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    product_url: Mapped[str] = mapped_column(String(2000), nullable=False)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2))
    currency: Mapped[str | None] = mapped_column(String(10))
    change_percentage: Mapped[float | None] = mapped_column(Numeric(8, 2))
    previous_price: Mapped[float | None] = mapped_column(Numeric(12, 2))
    extraction_method: Mapped[str] = mapped_column(String(50), default="direct_crawl")
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

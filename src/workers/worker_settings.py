"""
ARQ Worker Settings — Registers the price-monitoring jobs.

Usage:
    arq workers.worker_settings.WorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from core.config import settings
from workers.price_monitor.models import Frequency
from workers.services import PipelineServices, configure_logging

logger = logging.getLogger(__name__)


async def _run_due(ctx: dict, frequency: Frequency) -> int:
    services: PipelineServices = ctx["services"]
    count = await services.tasks.run_due(frequency)
    logger.info("⏱️  %d %s monitoring tasks run", count, frequency.name.lower())
    return count


async def run_hourly_monitoring(ctx: dict) -> int:
    """ARQ job: due tasks scheduled every hour."""
    return await _run_due(ctx, Frequency.HOURLY)


async def run_six_hourly_monitoring(ctx: dict) -> int:
    """ARQ job: due tasks scheduled every 6 hours."""
    return await _run_due(ctx, Frequency.SIX_HOURLY)


async def run_daily_monitoring(ctx: dict) -> int:
    """ARQ job: due tasks scheduled daily."""
    return await _run_due(ctx, Frequency.DAILY)


async def startup(ctx: dict) -> None:
    """Called on worker startup."""
    configure_logging(settings)
    ctx["services"] = await PipelineServices.from_settings(settings)


async def shutdown(ctx: dict) -> None:
    """Called on worker shutdown."""
    services: PipelineServices | None = ctx.get("services")
    if services is not None:
        await services.aclose()


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        run_hourly_monitoring,
        run_six_hourly_monitoring,
        run_daily_monitoring,
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.redis_url)

    # Cron schedule
    cron_jobs = [
        # Hourly, on the hour
        cron(run_hourly_monitoring, minute={0}),
        # Every 6 hours
        cron(run_six_hourly_monitoring, hour={0, 6, 12, 18}, minute={0}),
        # Daily at midnight
        cron(run_daily_monitoring, hour={0}, minute={0}),
    ]

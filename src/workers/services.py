"""
Pipeline Services
=================
Every client the pipeline talks through, built once per process (API
lifespan or arq worker startup) from ``Settings`` and passed down
explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from core.ai.base import BaseAIProvider
from core.ai.factory import AIFactory
from core.config import Settings
from core.database import create_engine, create_session_factory, create_tables
from core.notifications.slack import SlackNotifier
from core.retry import RetryPolicy
from workers.analysis.engine import CompetitorAnalyzer
from workers.analysis.tools import AnalysisTools
from workers.crawler.fetcher import ContentFetcher
from workers.crawler.robots import RobotsReader
from workers.crawler.smart_crawler import SmartCrawler
from workers.discovery.orchestrator import CompetitorDiscovery
from workers.discovery.search import ValueSerpClient
from workers.price_monitor.monitor import PriceMonitor
from workers.price_monitor.sql_store import SqlTaskStore
from workers.price_monitor.store import InMemoryTaskStore, TaskStore
from workers.price_monitor.tasks import MonitoringTaskService

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_ai(settings: Settings) -> BaseAIProvider | None:
    model = settings.llm_model.lower()
    key = settings.openai_api_key if ("gpt" in model or "o1" in model) else settings.gemini_api_key
    if not key:
        logger.warning("No API key for %s, LLM steps fall back to heuristics", settings.llm_model)
        return None
    return AIFactory.from_settings(settings)


@dataclass
class PipelineServices:
    settings: Settings
    ai: BaseAIProvider | None
    fetcher: ContentFetcher
    robots: RobotsReader
    search: ValueSerpClient
    crawler: SmartCrawler
    tools: AnalysisTools
    analyzer: CompetitorAnalyzer
    discovery: CompetitorDiscovery
    monitor: PriceMonitor
    tasks: MonitoringTaskService
    engine: AsyncEngine | None = None

    @classmethod
    async def from_settings(cls, settings: Settings) -> PipelineServices:
        retry_policy = RetryPolicy(settings.retry_attempts, settings.retry_backoff_seconds)
        ai = _build_ai(settings)

        fetcher = ContentFetcher(ai, timeout=settings.request_timeout, retry_policy=retry_policy)
        robots = RobotsReader(fetcher)
        search = ValueSerpClient(
            settings.valueserp_api_key,
            base_url=settings.valueserp_base_url,
            location=settings.search_location or None,
            timeout=settings.search_timeout,
            retry_policy=retry_policy,
        )
        crawler = SmartCrawler(
            fetcher,
            ai,
            max_depth=settings.crawl_max_depth,
            max_pages_per_depth=settings.crawl_max_pages_per_depth,
            llm_url_threshold=settings.crawl_llm_url_threshold,
            concurrency=settings.crawl_concurrency,
        )
        tools = AnalysisTools(ai)
        analyzer = CompetitorAnalyzer(fetcher, tools, robots, settings=settings)
        discovery = CompetitorDiscovery(
            fetcher, search, analyzer, tools, ai=ai, crawler=crawler, robots=robots, settings=settings
        )

        engine = None
        store: TaskStore
        if settings.database_url:
            engine = create_engine(settings.database_url)
            await create_tables(engine)
            store = SqlTaskStore(create_session_factory(engine))
        else:
            logger.warning("DATABASE_URL not configured, monitoring tasks are kept in memory")
            store = InMemoryTaskStore()

        monitor = PriceMonitor(fetcher, analyzer=analyzer, crawler=crawler, robots=robots, store=store)
        tasks = MonitoringTaskService(
            monitor, store, alerts=SlackNotifier(settings.slack_webhook_url), settings=settings
        )
        return cls(
            settings=settings,
            ai=ai,
            fetcher=fetcher,
            robots=robots,
            search=search,
            crawler=crawler,
            tools=tools,
            analyzer=analyzer,
            discovery=discovery,
            monitor=monitor,
            tasks=tasks,
            engine=engine,
        )

    async def aclose(self) -> None:
        await self.search.aclose()
        if self.engine is not None:
            await self.engine.dispose()

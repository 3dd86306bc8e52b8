"""
Configuration management with pydantic-settings.

Every environment variable is validated when the process starts.
Crawl budgets, matching constants and retry policy live here so the
pipeline never hard-codes them.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO")

    # ── Database ──────────────────────────────────────────────────────
    database_url: str = Field(
        default="",
        description="Async connection string (postgresql+asyncpg://...). "
        "Empty keeps monitoring tasks in memory.",
    )

    # ── Redis / ARQ ───────────────────────────────────────────────────
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for ARQ workers.",
    )

    # ── Notifications ─────────────────────────────────────────────────
    slack_webhook_url: str = Field(
        default="",
        description="Slack incoming webhook URL for price-change alerts.",
    )

    # ── LLM ───────────────────────────────────────────────────────────
    llm_model: str = Field(
        default="gemini-1.5-flash",
        description="LLM model identifier.",
    )
    llm_temperature: float = Field(default=0.2)
    gemini_api_key: str = Field(default="")
    openai_api_key: str = Field(default="")

    # ── Web search (ValueSERP) ────────────────────────────────────────
    valueserp_api_key: str = Field(default="")
    valueserp_base_url: str = Field(default="https://api.valueserp.com")
    search_location: str = Field(default="United States")

    # ── HTTP / retry policy ───────────────────────────────────────────
    request_timeout: float = Field(default=30.0)
    llm_timeout: float = Field(default=60.0)
    search_timeout: float = Field(default=20.0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)

    # ── Smart crawler ─────────────────────────────────────────────────
    crawl_max_depth: int = Field(default=3, ge=0)
    crawl_max_pages_per_depth: int = Field(default=10, ge=1)
    crawl_llm_url_threshold: int = Field(default=50, ge=1)
    crawl_concurrency: int = Field(default=4, ge=1)

    # ── Offering extraction & matching ────────────────────────────────
    match_base_score: int = Field(default=60)
    match_business_type_bonus: int = Field(default=15)
    match_density_per_offering: int = Field(default=5)
    match_density_cap: int = Field(default=25)
    match_acceptance_floor: int = Field(default=30)
    chunk_max_chars: int = Field(default=500)
    chunk_min_chars: int = Field(default=50)
    max_relevant_pages: int = Field(default=10)

    # ── Discovery ─────────────────────────────────────────────────────
    discovery_concurrency: int = Field(default=5, ge=1)
    discovery_deadline_seconds: float = Field(default=600.0)
    discovery_max_candidates: int = Field(default=25, ge=1)
    deep_crawl_min_score: int = Field(default=70)

    # ── Price monitoring ──────────────────────────────────────────────
    price_alert_threshold_pct: float = Field(default=10.0)


# Configuration only; clients are built from it in workers.services
settings = Settings()

"""
src/core/ai/factory.py
======================
Factory for AI providers.
"""

from __future__ import annotations
from typing import Any

from core.config import Settings
from core.ai.base import BaseAIProvider
from core.ai.gemini import GeminiProvider
from core.ai.openai import OpenAIProvider
from core.retry import RetryPolicy


class AIFactory:
    """
    Static factory to create the correct AI provider.
    """

    @staticmethod
    def create(
        model_name: str,
        api_key: str | None = None,
        *,
        settings: Settings,
        **kwargs: Any,
    ) -> BaseAIProvider:
        """
        Create a provider based on model name.
        """
        retry_policy = RetryPolicy(settings.retry_attempts, settings.retry_backoff_seconds)
        kwargs.setdefault("temperature", settings.llm_temperature)
        m = model_name.lower()

        if "gpt" in m or "o1" in m:
            return OpenAIProvider(
                api_key=api_key or settings.openai_api_key or "",
                model_name=model_name,
                settings=kwargs,
                retry_policy=retry_policy,
                timeout=settings.llm_timeout,
            )
        # Gemini for "gemini*" and as the default
        return GeminiProvider(
            api_key=api_key or settings.gemini_api_key or "",
            model_name=model_name,
            settings=kwargs,
            retry_policy=retry_policy,
            timeout=settings.llm_timeout,
        )

    @staticmethod
    def from_settings(settings: Settings) -> BaseAIProvider:
        return AIFactory.create(settings.llm_model, settings=settings)

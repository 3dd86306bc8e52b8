"""
src/core/ai/base.py
===================
Abstract base class for all text-completion providers.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any

from core.retry import NO_RETRY, RetryPolicy


class BaseAIProvider(ABC):
    """
    Standard interface for generating content via LLMs.

    ``complete`` is what the pipeline calls: it applies the retry policy
    and per-call timeout around ``generate_text``. Providers raise
    CapabilityUnavailableError instead of returning error strings.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str,
        settings: dict[str, Any] | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.settings = settings or {}
        self.retry_policy = retry_policy or NO_RETRY
        self.timeout = timeout

    async def complete(self, prompt: str, system_prompt: str | None = None) -> str:
        return await self.retry_policy.call(
            lambda: self.generate_text(prompt, system_prompt),
            timeout=self.timeout,
        )

    @abstractmethod
    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        """
        Generate a text response given a prompt and optional system prompt.
        """
        pass

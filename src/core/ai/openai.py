"""
src/core/ai/openai.py
=====================
OpenAI implementation.
"""

from __future__ import annotations
from typing import Any

import openai
from openai import AsyncOpenAI

from core.ai.base import BaseAIProvider
from core.errors import CapabilityUnavailableError


class OpenAIProvider(BaseAIProvider):
    """
    Provider for OpenAI (GPT-4, etc.) models.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o",
        settings: dict | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model_name, settings, **kwargs)
        self.client = AsyncOpenAI(api_key=self.api_key)

    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        if not self.api_key:
            raise CapabilityUnavailableError("openai", "API key not configured")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.settings.get("temperature", 0.2),
            )
        except openai.OpenAIError as e:
            raise CapabilityUnavailableError("openai", str(e)) from e
        return response.choices[0].message.content or ""

"""
src/core/ai/gemini.py
=====================
Google Gemini implementation.
"""

from __future__ import annotations
from typing import Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from core.ai.base import BaseAIProvider
from core.errors import CapabilityUnavailableError


class GeminiProvider(BaseAIProvider):
    """
    Provider for Google Gemini models.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-pro",
        settings: dict | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model_name, settings, **kwargs)
        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config={"temperature": self.settings.get("temperature", 0.2)},
        )

    async def generate_text(self, prompt: str, system_prompt: str | None = None) -> str:
        if not self.api_key:
            raise CapabilityUnavailableError("gemini", "API key not configured")

        if system_prompt:
            model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=system_prompt,
                generation_config={"temperature": self.settings.get("temperature", 0.2)},
            )
        else:
            model = self.model

        try:
            response = await model.generate_content_async(prompt)
            return response.text
        except (google_exceptions.GoogleAPIError, ValueError) as e:
            # ValueError: response blocked / no text candidates
            raise CapabilityUnavailableError("gemini", str(e)) from e

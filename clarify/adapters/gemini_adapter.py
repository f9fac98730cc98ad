from __future__ import annotations

import asyncio
import logging
import os
import random
from typing import List

from google import genai
from google.genai import types

from clarify.config import Settings
from clarify.errors import ProcessingError

from .llm_base import CompletionRequest, LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMAdapter):
    def __init__(self, settings: Settings) -> None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set.")

        self.client = genai.Client(api_key=api_key)

        self.fallback_models: List[str] = [
            "gemini-pro",
            "gemini-1.5-pro",
        ]

        self.max_attempts = settings.max_attempts
        self.base_delay = float(os.getenv("GEMINI_BASE_DELAY_SECONDS", "1.0"))

    def _is_transient(self, err: Exception) -> bool:
        msg = str(err).lower()
        return any(s in msg for s in ["503", "unavailable", "429", "too many", "timeout", "temporarily"])

    def _candidates(self, requested: str) -> List[str]:
        return [requested] + [model for model in self.fallback_models if model != requested]

    async def complete(self, request: CompletionRequest) -> LLMResponse:
        last_err: Exception | None = None
        config = types.GenerateContentConfig(
            system_instruction=request.system_text or None,
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
        )

        for model in self._candidates(request.model):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    logger.debug("[gemini] model=%s attempt=%s/%s", model, attempt, self.max_attempts)
                    response = await self.client.aio.models.generate_content(
                        model=model,
                        contents=request.user_text,
                        config=config,
                    )
                    text = getattr(response, "text", None)
                    if not text:
                        raise ProcessingError("Gemini returned empty content.")
                    return LLMResponse(raw_text=text)

                except Exception as e:
                    last_err = e
                    if not self._is_transient(e):
                        break

                    delay = self.base_delay * (2 ** (attempt - 1)) + random.random() * 0.5
                    logger.warning("[gemini] transient error on %s, sleeping %.2fs", model, delay)
                    await asyncio.sleep(delay)

            logger.warning("[gemini] switching model after failures: %s", model)

        raise ProcessingError(
            "Gemini generate_content failed for all candidate models."
        ) from last_err

from __future__ import annotations

import asyncio
import logging
import os

from openai import AsyncOpenAI
from openai import APIConnectionError, APITimeoutError, RateLimitError, InternalServerError

from clarify.config import Settings
from clarify.errors import ProcessingError

from .llm_base import CompletionRequest, LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMAdapter):
    def __init__(self, settings: Settings) -> None:
        self.api_key = os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is not set.")
        self.max_attempts = settings.max_attempts
        self.client = AsyncOpenAI(
            api_key=self.api_key,
            timeout=settings.timeout_seconds,
            max_retries=0,
        )

    async def complete(self, request: CompletionRequest) -> LLMResponse:
        attempt = 0
        backoff = 1.0
        while True:
            attempt += 1
            try:
                response = await self.client.chat.completions.create(
                    model=request.model,
                    messages=[message.as_dict() for message in request.messages],
                    max_tokens=request.max_tokens,
                    temperature=request.temperature,
                )
                content = response.choices[0].message.content
                if content is None:
                    raise ProcessingError("OpenAI returned empty content.")
                usage = getattr(response, "usage", None)
                usage_payload = None
                if usage:
                    usage_payload = {
                        "prompt_tokens": getattr(usage, "prompt_tokens", None),
                        "completion_tokens": getattr(usage, "completion_tokens", None),
                        "total_tokens": getattr(usage, "total_tokens", None),
                    }
                    logger.info(
                        "[openai] model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
                        request.model,
                        usage_payload["prompt_tokens"],
                        usage_payload["completion_tokens"],
                        usage_payload["total_tokens"],
                    )
                else:
                    logger.debug("[openai] usage not provided by SDK")
                return LLMResponse(raw_text=content, usage=usage_payload)
            except RateLimitError as exc:
                error = getattr(exc, "error", None)
                code = getattr(error, "code", None)
                if code == "insufficient_quota":
                    raise ProcessingError(
                        "OpenAI API quota exceeded. Please enable billing in your OpenAI account."
                    ) from exc
                if attempt >= self.max_attempts:
                    raise ProcessingError("OpenAI rate limit retries exhausted.") from exc
            except (APITimeoutError, APIConnectionError, InternalServerError) as exc:
                if attempt >= self.max_attempts:
                    raise ProcessingError("OpenAI completion failed after retries.") from exc
            logger.warning("[openai] transient error on attempt %s, sleeping %.1fs", attempt, backoff)
            await asyncio.sleep(backoff)
            backoff *= 2

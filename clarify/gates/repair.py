from __future__ import annotations

import asyncio
import logging

from clarify.adapters.llm_base import CompletionRequest, LLMAdapter, Message
from clarify.config import Settings
from clarify.gates.parsers import ParseResult, parse_json_response
from clarify.prompts import load_prompt, render_prompt

logger = logging.getLogger(__name__)


class RepairRequester:
    """Single zero-temperature round-trip that asks the model to re-emit bare JSON."""

    def __init__(self, adapter: LLMAdapter, settings: Settings) -> None:
        self.adapter = adapter
        self.settings = settings

    async def repair(self, instruction: str, raw_text: str) -> str:
        request = CompletionRequest(
            model=self.settings.model,
            messages=[
                Message("system", load_prompt("json_repair_system")),
                Message(
                    "user",
                    render_prompt("json_repair", {"INSTRUCTION": instruction, "CONTENT": raw_text}),
                ),
            ],
            max_tokens=self.settings.budget("repair"),
            temperature=0.0,
        )
        response = await asyncio.wait_for(
            self.adapter.complete(request), timeout=self.settings.timeout_seconds
        )
        return response.raw_text

    async def parse_with_repair(self, raw_text: str, instruction: str) -> ParseResult:
        parsed = parse_json_response(raw_text)
        if parsed.ok:
            return parsed
        logger.warning("Completion was not valid JSON (%s); requesting one repair.", parsed.error)
        fixed = await self.repair(instruction, raw_text)
        reparsed = parse_json_response(fixed)
        if not reparsed.ok:
            logger.warning("Repair response was not valid JSON either; using stage default.")
        return reparsed

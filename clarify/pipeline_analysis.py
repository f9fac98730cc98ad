from __future__ import annotations

import asyncio
import json
import logging
import re
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional

from clarify.adapters.llm_base import CompletionRequest, LLMAdapter, Message
from clarify.analytics import AnalyticsEmitter, AnalyticsRecorder
from clarify.config import Settings
from clarify.contracts.normalizer import enforce
from clarify.contracts.tables import (
    NARRATIVE_LOOP,
    NEEDS,
    QUESTIONS_INSTRUCTION,
    SPIESS_MAP,
    SUMMARY,
    Contract,
)
from clarify.gates.repair import RepairRequester
from clarify.gates.safety import SafetyCheck, validate_input
from clarify.models import (
    AnalysisResult,
    CrisisOutcome,
    PipelineOutcome,
    PipelineState,
    ProcessingFailure,
    QuestionsOutcome,
    ValidationFailure,
)
from clarify.prompts import render_prompt
from clarify.tagging import detect_tags

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 3
SUMMARY_WORD_LIMIT = 250
_WORD = re.compile(r"\S+")


def merge_answers(answers: Any) -> str:
    if not isinstance(answers, (list, tuple)):
        return ""
    parts: List[str] = []
    for answer in answers:
        if isinstance(answer, Mapping):
            answer = answer.get("answer")
        if isinstance(answer, str) and answer.strip():
            parts.append(answer.strip())
    return " ".join(parts)


def truncate_words(text: str, limit: int = SUMMARY_WORD_LIMIT) -> str:
    words = list(_WORD.finditer(text))
    if len(words) <= limit:
        return text
    return text[: words[limit - 1].end()]


class AnalysisPipeline:
    def __init__(
        self,
        adapter: LLMAdapter,
        settings: Optional[Settings] = None,
        recorder: Optional[AnalyticsRecorder] = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or Settings()
        self.analytics = AnalyticsEmitter(recorder)
        self.repairer = RepairRequester(adapter, self.settings)

    async def analyze(
        self,
        raw_input: Any,
        storage_opt_in: bool = False,
        redact_names: bool = True,
        user_id: Optional[str] = None,
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> PipelineOutcome:
        session_id = uuid.uuid4().hex
        started = time.monotonic()
        analytics = self.analytics.bind(user_id, request_context)
        states: List[PipelineState] = [PipelineState.START]
        await analytics.session_started(session_id)

        try:
            check = validate_input(raw_input, storage_opt_in, redact_names)
            if not check.is_valid:
                return await self._safe_exit(session_id, check, states, analytics)

            processed = check.processed_input or ""
            states.append(PipelineState.SAFETY_CHECKED)
            await analytics.input_received(session_id, len(processed))

            if await self.needs_clarifying_questions(processed):
                questions = await self.generate_clarifying_questions(processed)
                states.append(PipelineState.QUESTIONS_NEEDED)
                await analytics.questions_asked(session_id, questions)
                return QuestionsOutcome(
                    session_id=session_id, questions=tuple(questions), states=tuple(states)
                )

            return await self._process_stages(processed, session_id, started, states, analytics)
        except Exception:
            logger.exception("Analysis error for session %s", session_id)
            return await self._processing_failure(
                session_id, "Analysis failed due to processing error", states, analytics
            )

    async def process_answers(
        self,
        session_id: str,
        answers: Any,
        storage_opt_in: bool = False,
        redact_names: bool = True,
        user_id: Optional[str] = None,
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> PipelineOutcome:
        started = time.monotonic()
        analytics = self.analytics.bind(user_id, request_context)
        states: List[PipelineState] = [PipelineState.START]

        try:
            check = validate_input(merge_answers(answers), storage_opt_in, redact_names)
            if not check.is_valid:
                return await self._safe_exit(session_id, check, states, analytics)

            processed = check.processed_input or ""
            states.append(PipelineState.SAFETY_CHECKED)
            await analytics.input_received(session_id, len(processed))
            return await self._process_stages(processed, session_id, started, states, analytics)
        except Exception:
            logger.exception("Answer processing error for session %s", session_id)
            return await self._processing_failure(
                session_id, "Answer processing failed", states, analytics
            )

    async def needs_clarifying_questions(self, text: str) -> bool:
        prompt = render_prompt("clarity_check", {"INPUT": text})
        try:
            answer = await self._complete(prompt, "decision", self.settings.decision_temperature)
        except Exception:
            logger.warning("Clarifying-question check failed; continuing without questions.", exc_info=True)
            return False
        return answer.strip().upper() == "YES"

    async def generate_clarifying_questions(self, text: str) -> List[str]:
        prompt = render_prompt("clarifying_questions", {"INPUT": text})
        try:
            raw = await self._complete(prompt, "questions", self.settings.extraction_temperature)
            parsed = await self.repairer.parse_with_repair(raw, QUESTIONS_INSTRUCTION)
        except Exception:
            logger.warning("Generating clarifying questions failed.", exc_info=True)
            return []
        if not parsed.ok or not isinstance(parsed.data, list):
            return []
        questions = [item.strip() for item in parsed.data if isinstance(item, str) and item.strip()]
        return questions[:MAX_QUESTIONS]

    async def build_narrative_loop(self, text: str) -> Dict[str, Any]:
        prompt = render_prompt("narrative_loop", {"INPUT": text})
        payload = await self._extract(NARRATIVE_LOOP, prompt)
        return self._enforce(NARRATIVE_LOOP, payload)

    async def build_spiess_map(self, narrative_loop: Dict[str, Any]) -> Dict[str, Any]:
        prompt = render_prompt(
            "spiess_map",
            {
                "NEEDS": ", ".join(NEEDS),
                "NARRATIVE_LOOP": json.dumps(narrative_loop, ensure_ascii=False),
            },
        )
        payload = await self._extract(SPIESS_MAP, prompt)
        return self._enforce(SPIESS_MAP, payload)

    async def build_summary(
        self, narrative_loop: Dict[str, Any], spiess_map: Dict[str, Any]
    ) -> Dict[str, Any]:
        prompt = render_prompt(
            "summary",
            {
                "NARRATIVE_LOOP": json.dumps(narrative_loop, ensure_ascii=False),
                "SPIESS_MAP": json.dumps(spiess_map, ensure_ascii=False),
            },
        )
        payload = await self._extract(SUMMARY, prompt)
        summary = self._enforce(SUMMARY, payload)
        summary["content"] = truncate_words(summary["content"])
        return summary

    async def _process_stages(
        self,
        text: str,
        session_id: str,
        started: float,
        states: List[PipelineState],
        analytics: AnalyticsEmitter,
    ) -> AnalysisResult:
        states.append(PipelineState.PROCESSING)

        narrative_loop = await self.build_narrative_loop(text)
        states.append(PipelineState.NARRATIVE_BUILT)
        await analytics.loop_built(session_id, narrative_loop)

        spiess_map = await self.build_spiess_map(narrative_loop)
        states.append(PipelineState.SPIESS_BUILT)
        await analytics.spiess_built(session_id, spiess_map)

        summary = await self.build_summary(narrative_loop, spiess_map)
        states.append(PipelineState.SUMMARY_BUILT)
        await analytics.summary_built(session_id, summary)

        tags = detect_tags(narrative_loop, spiess_map)
        states.append(PipelineState.TAGGED)

        states.append(PipelineState.COMPLETED)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("Analysis completed in %sms for session %s", elapsed_ms, session_id)
        return AnalysisResult(
            session_id=session_id,
            narrative_loop=narrative_loop,
            spiess_map=spiess_map,
            summary=summary,
            tags=tuple(tags),
            processing_time_ms=elapsed_ms,
            states=tuple(states),
        )

    async def _safe_exit(
        self,
        session_id: str,
        check: SafetyCheck,
        states: List[PipelineState],
        analytics: AnalyticsEmitter,
    ) -> PipelineOutcome:
        if check.is_crisis:
            states.append(PipelineState.CRISIS_EXIT)
            await analytics.safe_exit(session_id, "crisis_detected")
            return CrisisOutcome(
                session_id=session_id, response=dict(check.response or {}), states=tuple(states)
            )
        states.append(PipelineState.VALIDATION_EXIT)
        await analytics.safe_exit(session_id, "invalid_input")
        return ValidationFailure(
            session_id=session_id,
            message=check.error or "Invalid input provided",
            states=tuple(states),
        )

    async def _processing_failure(
        self,
        session_id: str,
        message: str,
        states: List[PipelineState],
        analytics: AnalyticsEmitter,
    ) -> ProcessingFailure:
        states.append(PipelineState.FAILED)
        await analytics.safe_exit(session_id, "processing_error")
        return ProcessingFailure(session_id=session_id, message=message, states=tuple(states))

    async def _extract(self, contract: Contract, prompt: str) -> Any:
        raw = await self._complete(prompt, contract.name, self.settings.extraction_temperature)
        parsed = await self.repairer.parse_with_repair(raw, contract.repair_instruction)
        return parsed.data if parsed.ok else {}

    def _enforce(self, contract: Contract, payload: Any) -> Dict[str, Any]:
        value, notes = enforce(contract, payload)
        for note in notes:
            logger.info("[%s] %s", contract.name, note)
        return value

    async def _complete(self, prompt: str, budget_key: str, temperature: float) -> str:
        request = CompletionRequest(
            model=self.settings.model,
            messages=[Message("user", prompt)],
            max_tokens=self.settings.budget(budget_key),
            temperature=temperature,
        )
        response = await asyncio.wait_for(
            self.adapter.complete(request), timeout=self.settings.timeout_seconds
        )
        return response.raw_text

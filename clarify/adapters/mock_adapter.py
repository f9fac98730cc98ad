from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List

from .llm_base import CompletionRequest, LLMAdapter, LLMResponse

SHORT_INPUT_WORDS = 12


@dataclass
class MockAdapter(LLMAdapter):
    scenario: str = "default"

    async def complete(self, request: CompletionRequest) -> LLMResponse:
        prompt = request.user_text
        if request.system_text:
            return LLMResponse(raw_text="{}")
        if "TASK: clarity_check" in prompt:
            return LLMResponse(raw_text=self._clarity_answer(prompt))
        return LLMResponse(raw_text=json.dumps(self._build_payload(prompt)))

    def _clarity_answer(self, prompt: str) -> str:
        if self.scenario == "always_clear":
            return "NO"
        narrative = prompt.rsplit("Input:", 1)[-1]
        return "YES" if len(narrative.split()) < SHORT_INPUT_WORDS else "NO"

    def _build_payload(self, prompt: str) -> Any:
        if "TASK: clarifying_questions" in prompt:
            return self._questions()
        if "TASK: narrative_loop" in prompt:
            return self._narrative_loop()
        if "TASK: spiess_map" in prompt:
            return self._spiess_map()
        if "TASK: summary" in prompt:
            return self._summary()
        return {}

    def _questions(self) -> List[str]:
        return [
            "What happened right before you started feeling this way?",
            "What are you most worried will happen next?",
            "How did your body and mood react in the moment?",
        ]

    def _narrative_loop(self) -> Dict[str, Any]:
        return {
            "trigger": "Manager criticized a report in front of the team",
            "fear": "Colleagues will see me as incompetent and I will face rejection",
            "emotion": "Shame and anxiety",
            "outcome": "Expecting to be passed over for the next project",
            "whyItFeelsReal": "Past feedback was also critical and the room went quiet",
            "hiddenLogic": "If my work is not perfect, I am not worth keeping on the team",
            "breakingActions": [
                "Ask the manager for one specific improvement",
                "Share the revised draft with a trusted colleague",
            ],
            "mechanisms": ["rejection sensitivity", "perfectionism", "mind reading"],
        }

    def _spiess_map(self) -> Dict[str, Any]:
        return {
            "sensations": ["Tight chest", "Hot face"],
            "emotions": ["Shame", "Anxiety"],
            "needs": ["competence", "belonging"],
            "confirmationBias": (
                "Because I expect rejection, I read neutral silence as disapproval, "
                "which confirms the fear."
            ),
            "microTest": {
                "description": "Ask one colleague for honest feedback on the revised report",
                "timeframe": "Within 24 hours",
                "successCriteria": "Receive at least one concrete, neutral or positive comment",
            },
            "toolAction": {
                "protocol": "STOP",
                "steps": [
                    "Stop and notice the urge to redo everything",
                    "Take a breath",
                    "Observe what was actually said",
                    "Proceed with one small fix",
                ],
                "example": "Pause before rewriting the whole report and fix the single point raised.",
            },
        }

    def _summary(self) -> Dict[str, Any]:
        return {
            "content": (
                "Public criticism at work set off a familiar loop: fear of rejection drives "
                "a perfectionism standard, and neutral reactions get read as proof of failure. "
                "A small, time-boxed feedback test can loosen that loop."
            ),
            "mechanisms": ["rejection sensitivity", "perfectionism"],
            "nextStep": "Ask one colleague for feedback on the revised report within 24 hours.",
        }

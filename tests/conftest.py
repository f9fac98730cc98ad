from __future__ import annotations

import json
from typing import Any, List, Union

import pytest

from clarify.adapters.llm_base import CompletionRequest, LLMResponse
from clarify.analytics import InMemoryAnalyticsRecorder
from clarify.config import Settings

Reply = Union[str, dict, list, BaseException]


class ScriptedAdapter:
    """Replays queued replies in call order; exceptions in the queue are raised."""

    def __init__(self, *replies: Reply) -> None:
        self.replies: List[Reply] = list(replies)
        self.requests: List[CompletionRequest] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    async def complete(self, request: CompletionRequest) -> LLMResponse:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError("ScriptedAdapter ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return LLMResponse(raw_text=reply)


class FailingRecorder:
    async def record(self, *args: Any, **kwargs: Any) -> None:
        raise ConnectionError("analytics store unavailable")


NARRATIVE_LOOP_PAYLOAD = {
    "trigger": "Manager criticized my report in a meeting",
    "fear": "Being seen as incompetent",
    "emotion": "Shame",
    "outcome": "Losing the next project",
    "whyItFeelsReal": "It happened before",
    "hiddenLogic": "Mistakes mean I do not belong",
    "breakingActions": ["Ask for specific feedback"],
    "mechanisms": ["mind reading"],
}

SPIESS_MAP_PAYLOAD = {
    "sensations": ["Tight chest"],
    "emotions": ["Shame"],
    "needs": ["competence"],
    "confirmationBias": "Because I expect criticism, I notice only criticism.",
    "microTest": {
        "description": "Ask a colleague for feedback",
        "timeframe": "Within 24 hours",
        "successCriteria": "One neutral comment",
    },
    "toolAction": {
        "protocol": "Values First",
        "steps": ["Name the value", "Act on it"],
        "example": "Share the draft anyway.",
    },
}

SUMMARY_PAYLOAD = {
    "content": "Criticism at work triggered a shame loop.",
    "mechanisms": ["mind reading"],
    "nextStep": "Ask one colleague for feedback.",
}


@pytest.fixture
def settings() -> Settings:
    return Settings(timeout_seconds=1.0)


@pytest.fixture
def recorder() -> InMemoryAnalyticsRecorder:
    return InMemoryAnalyticsRecorder()


@pytest.fixture
def scripted() -> ScriptedAdapter:
    return ScriptedAdapter()

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple, Union

from clarify.errors import ErrorCode
from clarify.utils.time import utc_iso


class Stage(str, Enum):
    CLARIFYING_QUESTIONS = "clarifying_questions"
    COMPLETED = "completed"


class PipelineState(str, Enum):
    START = "START"
    SAFETY_CHECKED = "SAFETY_CHECKED"
    QUESTIONS_NEEDED = "QUESTIONS_NEEDED"
    PROCESSING = "PROCESSING"
    NARRATIVE_BUILT = "NARRATIVE_BUILT"
    SPIESS_BUILT = "SPIESS_BUILT"
    SUMMARY_BUILT = "SUMMARY_BUILT"
    TAGGED = "TAGGED"
    COMPLETED = "COMPLETED"
    CRISIS_EXIT = "CRISIS_EXIT"
    VALIDATION_EXIT = "VALIDATION_EXIT"
    FAILED = "FAILED"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class AnalysisResult:
    session_id: str
    narrative_loop: Mapping[str, Any]
    spiess_map: Mapping[str, Any]
    summary: Mapping[str, Any]
    tags: Tuple[str, ...]
    processing_time_ms: int = 0
    states: Tuple[PipelineState, ...] = ()

    success = True
    stage = Stage.COMPLETED

    def __post_init__(self) -> None:
        for name in ("narrative_loop", "spiess_map", "summary"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "sessionId": self.session_id,
            "stage": self.stage.value,
            "narrativeLoop": _thaw(self.narrative_loop),
            "spiessMap": _thaw(self.spiess_map),
            "summary": _thaw(self.summary),
            "tags": list(self.tags),
            "processingTime": self.processing_time_ms,
        }


@dataclass(frozen=True)
class QuestionsOutcome:
    session_id: str
    questions: Tuple[str, ...]
    states: Tuple[PipelineState, ...] = ()

    success = True
    stage = Stage.CLARIFYING_QUESTIONS
    needs_answers = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "sessionId": self.session_id,
            "stage": self.stage.value,
            "questions": list(self.questions),
            "needsAnswers": True,
        }


@dataclass(frozen=True)
class CrisisOutcome:
    session_id: str
    response: Dict[str, Any]
    states: Tuple[PipelineState, ...] = ()

    success = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "sessionId": self.session_id,
            "response": copy.deepcopy(self.response),
        }


@dataclass(frozen=True)
class _ErrorOutcome:
    session_id: str
    message: str
    states: Tuple[PipelineState, ...] = ()
    timestamp: str = field(default_factory=utc_iso)

    success = False
    code: ErrorCode = ErrorCode.AI_PROCESSING_ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "sessionId": self.session_id,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "timestamp": self.timestamp,
            },
        }


@dataclass(frozen=True)
class ValidationFailure(_ErrorOutcome):
    code: ErrorCode = ErrorCode.VALIDATION_ERROR


@dataclass(frozen=True)
class ProcessingFailure(_ErrorOutcome):
    code: ErrorCode = ErrorCode.AI_PROCESSING_ERROR


PipelineOutcome = Union[AnalysisResult, QuestionsOutcome, CrisisOutcome, ValidationFailure, ProcessingFailure]

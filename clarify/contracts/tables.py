from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class FieldKind(str, Enum):
    TEXT = "text"
    TEXT_LIST = "text_list"
    ENUM_LIST = "enum_list"
    CHOICE = "choice"
    OBJECT = "object"


@dataclass(frozen=True)
class FieldRule:
    kind: FieldKind
    max_length: Optional[int] = None
    min_count: int = 1
    max_count: Optional[int] = None
    allowed: Tuple[str, ...] = ()
    fallback: Union[str, Tuple[str, ...], None] = None
    fields: Dict[str, "FieldRule"] = field(default_factory=dict)


@dataclass(frozen=True)
class Contract:
    name: str
    schema_name: str
    fields: Dict[str, FieldRule]
    repair_instruction: str


NEEDS: Tuple[str, ...] = (
    "safety",
    "belonging",
    "autonomy",
    "competence",
    "purpose",
    "connection",
    "recognition",
    "control",
    "predictability",
    "growth",
    "contribution",
    "meaning",
)

PROTOCOLS: Tuple[str, ...] = ("STOP", "Values First", "Bridge Belief")


def _text(max_length: int, placeholder: str) -> FieldRule:
    return FieldRule(FieldKind.TEXT, max_length=max_length, fallback=placeholder)


def _text_list(max_count: int, max_length: int, placeholder: str) -> FieldRule:
    return FieldRule(
        FieldKind.TEXT_LIST, max_length=max_length, max_count=max_count, fallback=(placeholder,)
    )


NARRATIVE_LOOP = Contract(
    name="narrative_loop",
    schema_name="narrative_loop.schema.json",
    fields={
        "trigger": _text(1000, "Hypothesis: Trigger not clearly identified"),
        "fear": _text(1000, "Hypothesis: Fear not clearly identified"),
        "emotion": _text(1000, "Hypothesis: Emotion not clearly identified"),
        "outcome": _text(1000, "Hypothesis: Outcome not clearly identified"),
        "whyItFeelsReal": _text(1000, "Hypothesis: Why it feels real not clearly identified"),
        "hiddenLogic": _text(1000, "Hypothesis: Hidden logic not clearly identified"),
        "breakingActions": _text_list(5, 500, "Hypothesis: Breaking action not clearly identified"),
        "mechanisms": _text_list(10, 200, "Hypothesis: Mechanism not clearly identified"),
    },
    repair_instruction=(
        "a JSON object with keys: trigger, fear, emotion, outcome, whyItFeelsReal, hiddenLogic, "
        "breakingActions (array of strings), mechanisms (array of strings)"
    ),
)

SPIESS_MAP = Contract(
    name="spiess_map",
    schema_name="spiess_map.schema.json",
    fields={
        "sensations": _text_list(5, 200, "Hypothesis: Sensation not clearly identified"),
        "emotions": _text_list(5, 200, "Hypothesis: Emotion not clearly identified"),
        "needs": FieldRule(FieldKind.ENUM_LIST, max_count=3, allowed=NEEDS, fallback=("safety",)),
        "confirmationBias": _text(1000, "Hypothesis: Confirmation bias not clearly identified"),
        "microTest": FieldRule(
            FieldKind.OBJECT,
            fields={
                "description": _text(500, "Hypothesis: Micro test not clearly identified"),
                "timeframe": _text(100, "Within 24 hours"),
                "successCriteria": _text(300, "Hypothesis: Success criteria not clearly identified"),
            },
        ),
        "toolAction": FieldRule(
            FieldKind.OBJECT,
            fields={
                "protocol": FieldRule(FieldKind.CHOICE, allowed=PROTOCOLS, fallback="STOP"),
                "steps": _text_list(5, 300, "Hypothesis: Tool action step not clearly identified"),
                "example": _text(500, "Hypothesis: Tool action example not clearly identified"),
            },
        ),
    },
    repair_instruction=(
        "a JSON object with keys: sensations (array of strings), emotions (array of strings), "
        "needs (array of strings), confirmationBias (string), microTest (object with description, "
        "timeframe, successCriteria), toolAction (object with protocol, steps array, example)"
    ),
)

SUMMARY = Contract(
    name="summary",
    schema_name="summary.schema.json",
    fields={
        "content": FieldRule(
            FieldKind.TEXT, fallback="Unable to generate summary due to processing error."
        ),
        "mechanisms": _text_list(5, 100, "Unable to identify mechanisms"),
        "nextStep": _text(200, "Please try again or contact support if the issue persists."),
    },
    repair_instruction="a JSON object with keys: content (string), mechanisms (array of strings), nextStep (string)",
)

QUESTIONS_INSTRUCTION = "a JSON array of up to 3 strings"

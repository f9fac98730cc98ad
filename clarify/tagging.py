from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

TAG_GROUPS: List[Tuple[str, Tuple[str, ...]]] = [
    ("confirmation_bias", ("confirmation bias", "confirmation_bias")),
    ("fear_of_rejection", ("rejection", "rejection_sensitivity")),
    ("autonomy_threat", ("control", "autonomy")),
    ("perfectionism", ("perfect", "perfectionism")),
    ("people_pleasing", ("people pleas", "approval")),
    ("boundary_signaling", ("boundary", "limit")),
    ("attention_testing", ("attention", "test")),
    ("vulnerability_avoidance", ("vulnerable", "vulnerability")),
]

TAXONOMY: Tuple[str, ...] = tuple(tag for tag, _ in TAG_GROUPS)


def _textual_form(*structures: Dict[str, Any]) -> str:
    return " ".join(json.dumps(item, ensure_ascii=False) for item in structures).lower()


def detect_tags(narrative_loop: Dict[str, Any], spiess_map: Dict[str, Any]) -> List[str]:
    text = _textual_form(narrative_loop, spiess_map)
    return [tag for tag, keywords in TAG_GROUPS if any(keyword in text for keyword in keywords)]

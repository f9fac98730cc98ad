from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

from clarify.errors import ParseFailure

_LABELED_FENCE = re.compile(r"```json\s*(.*?)\s*```", flags=re.DOTALL | re.IGNORECASE)
_BARE_FENCE = re.compile(r"```\s*(.*?)\s*```", flags=re.DOTALL)


@dataclass(frozen=True)
class ParseResult:
    ok: bool
    data: Any = None
    error: Optional[ParseFailure] = None

    @classmethod
    def success(cls, data: Any) -> "ParseResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: ParseFailure) -> "ParseResult":
        return cls(ok=False, error=error)


def _try_parse(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return False, None


def _fenced_block(text: str) -> Optional[str]:
    match = _LABELED_FENCE.search(text) or _BARE_FENCE.search(text)
    if match and match.group(1):
        return match.group(1)
    return None


def _balanced_region(text: str) -> Optional[str]:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last <= first:
        return None
    candidate = text[first : last + 1]
    depth = 0
    for index, char in enumerate(candidate):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return candidate[: index + 1]
    # No balanced close for the first brace; fall back to the naive span.
    return candidate


def parse_json_response(text: Any) -> ParseResult:
    if not isinstance(text, str):
        return ParseResult.failure(ParseFailure("Completion text is not a string."))

    try:
        return ParseResult.success(json.loads(text))
    except (ValueError, RecursionError) as exc:
        original = exc

    fenced = _fenced_block(text)
    if fenced is not None:
        ok, data = _try_parse(fenced)
        if ok:
            return ParseResult.success(data)

    region = _balanced_region(text)
    if region is not None:
        ok, data = _try_parse(region)
        if ok:
            return ParseResult.success(data)

    reason = getattr(original, "msg", type(original).__name__)
    error = ParseFailure(f"No JSON document found in response: {reason}")
    error.__cause__ = original
    return ParseResult.failure(error)

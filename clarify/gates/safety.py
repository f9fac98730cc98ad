from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

from clarify.errors import CrisisDetected, ErrorCode, InputValidationError
from clarify.utils.time import utc_iso

warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

MAX_INPUT_CHARS = 10000

CRISIS_KEYWORDS: List[str] = [
    "suicide", "kill myself", "end it all", "not worth living", "better off dead",
    "hurt myself", "self harm", "cutting", "overdose", "jump off", "hang myself",
    "want to die", "death wish", "no point", "hopeless", "worthless", "burden",
    "crisis", "emergency", "help me", "can't go on", "give up", "final solution",
]

CRISIS_PATTERNS: List[re.Pattern[str]] = [
    re.compile(r"i want to (die|kill myself|end it all)", re.IGNORECASE),
    re.compile(r"i should (die|kill myself|end it all)", re.IGNORECASE),
    re.compile(r"i'm going to (die|kill myself|end it all)", re.IGNORECASE),
    re.compile(r"i can't (go on|take it anymore|handle this)", re.IGNORECASE),
    re.compile(r"i'm (hopeless|worthless|a burden)", re.IGNORECASE),
    re.compile(r"there's no (point|hope|reason)", re.IGNORECASE),
    re.compile(r"i (hate|despise) myself", re.IGNORECASE),
    re.compile(r"i (wish|want) i was (dead|never born)", re.IGNORECASE),
]

INJECTION_PATTERNS: List[re.Pattern[str]] = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ignore previous instructions",
        r"forget everything",
        r"you are now",
        r"pretend to be",
        r"act as if",
        r"roleplay as",
        r"system prompt",
        r"jailbreak",
        r"override",
        r"bypass",
    )
]

# Applied in this order; names last and only when requested.
PII_PATTERNS: List[tuple[str, re.Pattern[str], str]] = [
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"), "[EMAIL_REDACTED]"),
    (
        "phone",
        re.compile(r"\b(?:\+?1[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})\b"),
        "[PHONE_REDACTED]",
    ),
    ("ssn", re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b"), "[SSN_REDACTED]"),
    ("credit_card", re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CARD_REDACTED]"),
]
NAME_PATTERN = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")
URL_PATTERN = re.compile(r"https?://[^\s]+")

CRISIS_MESSAGE = (
    "We detected content that suggests you may be in crisis. Please reach out to a mental "
    "health professional or crisis hotline immediately. In the US: 988 Suicide & Crisis "
    "Lifeline. In the UK: 116 123 Samaritans. In Canada: 1-833-456-4566 Crisis Services Canada."
)
CRISIS_RESOURCES: List[str] = [
    "988 Suicide & Crisis Lifeline (US)",
    "116 123 Samaritans (UK)",
    "1-833-456-4566 Crisis Services Canada",
    "International Association for Suicide Prevention: https://www.iasp.info/resources/Crisis_Centres/",
]


@dataclass(frozen=True)
class SafetyCheck:
    is_valid: bool
    is_crisis: bool = False
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    processed_input: Optional[str] = None
    original_length: int = 0
    sanitized_length: int = 0


def _fold_apostrophes(text: str) -> str:
    return text.replace("’", "'").replace("‘", "'")


def detect_crisis(text: Any) -> bool:
    if not text or not isinstance(text, str):
        return False
    folded = _fold_apostrophes(text)
    lowered = folded.lower()
    if any(keyword in lowered for keyword in CRISIS_KEYWORDS):
        return True
    return any(pattern.search(folded) for pattern in CRISIS_PATTERNS)


def detect_prompt_injection(text: Any) -> bool:
    if not text or not isinstance(text, str):
        return False
    return any(pattern.search(text) for pattern in INJECTION_PATTERNS)


def strip_markup(text: str) -> str:
    soup = BeautifulSoup(text, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text()


def sanitize_input(text: Any) -> str:
    if not text or not isinstance(text, str):
        return ""
    sanitized = strip_markup(text)
    sanitized = URL_PATTERN.sub("[URL_REMOVED]", sanitized)
    for pattern in INJECTION_PATTERNS:
        sanitized = pattern.sub("[INJECTION_ATTEMPT_REMOVED]", sanitized)
    return sanitized.strip()[:MAX_INPUT_CHARS]


def redact_pii(text: str, redact_names: bool = True) -> str:
    if not text or not isinstance(text, str):
        return ""
    redacted = text
    for _name, pattern, token in PII_PATTERNS:
        redacted = pattern.sub(token, redacted)
    if redact_names:
        redacted = NAME_PATTERN.sub("[NAME_REDACTED]", redacted)
    return redacted


def crisis_response() -> Dict[str, Any]:
    return {
        "code": ErrorCode.CRISIS_DETECTED.value,
        "message": CRISIS_MESSAGE,
        "resources": list(CRISIS_RESOURCES),
        "timestamp": utc_iso(),
    }


def _screen(raw_input: Any) -> str:
    if not raw_input or not isinstance(raw_input, str):
        raise InputValidationError("Invalid input provided")
    if detect_crisis(raw_input):
        raise CrisisDetected()
    if detect_prompt_injection(raw_input):
        raise InputValidationError("Invalid input detected")
    sanitized = sanitize_input(raw_input)
    # Markup stripping decodes entities, so screen the decoded text as well.
    if detect_crisis(sanitized):
        raise CrisisDetected()
    if not sanitized:
        raise InputValidationError("Input is empty after sanitization")
    return sanitized


def validate_input(
    raw_input: Any, storage_opt_in: bool = False, redact_names: bool = True
) -> SafetyCheck:
    try:
        sanitized = _screen(raw_input)
    except CrisisDetected:
        return SafetyCheck(is_valid=False, is_crisis=True, response=crisis_response())
    except InputValidationError as exc:
        return SafetyCheck(is_valid=False, error=str(exc))

    # Names stay only when the caller both opted into storage and disabled name redaction.
    keep_names = storage_opt_in and not redact_names
    processed = redact_pii(sanitized, redact_names=not keep_names)
    return SafetyCheck(
        is_valid=True,
        processed_input=processed,
        original_length=len(raw_input),
        sanitized_length=len(sanitized),
    )

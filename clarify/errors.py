from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    CRISIS_DETECTED = "CRISIS_DETECTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AI_PROCESSING_ERROR = "AI_PROCESSING_ERROR"


class ClarifyError(Exception):
    code: ErrorCode = ErrorCode.AI_PROCESSING_ERROR


class CrisisDetected(ClarifyError):
    code = ErrorCode.CRISIS_DETECTED


class InputValidationError(ClarifyError):
    code = ErrorCode.VALIDATION_ERROR


class ParseFailure(ClarifyError):
    """No strategy could recover a JSON document from completion text."""


class SchemaViolation(ClarifyError):
    def __init__(self, schema_name: str, violations: list[str]) -> None:
        self.schema_name = schema_name
        self.violations = violations
        super().__init__(f"{schema_name}: {'; '.join(violations)}")


class ProcessingError(ClarifyError, RuntimeError):
    """Completion-service or stage failure; the message is never shown to users."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

DEFAULT_TOKEN_BUDGETS: Dict[str, int] = {
    "decision": 10,
    "questions": 300,
    "narrative_loop": 2000,
    "spiess_map": 2000,
    "summary": 500,
    "repair": 2000,
}


@dataclass
class Settings:
    provider: str = "openai"
    openai_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-flash-latest"
    timeout_seconds: float = 15.0
    max_attempts: int = 3
    extraction_temperature: float = 0.3
    decision_temperature: float = 0.1
    log_level: str = "INFO"
    token_budgets: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TOKEN_BUDGETS))

    @property
    def model(self) -> str:
        if self.provider == "gemini":
            return self.gemini_model
        return self.openai_model

    def budget(self, key: str) -> int:
        return self.token_budgets.get(key, DEFAULT_TOKEN_BUDGETS["repair"])

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        load_dotenv(env_file)
        budgets = dict(DEFAULT_TOKEN_BUDGETS)
        for key in budgets:
            override = os.getenv(f"CLARIFY_MAX_TOKENS_{key.upper()}")
            if override:
                budgets[key] = int(override)
        return cls(
            provider=os.getenv("CLARIFY_PROVIDER", "openai").strip().lower(),
            openai_model=os.getenv("CLARIFY_OPENAI_MODEL", "gpt-4o-mini"),
            gemini_model=os.getenv("CLARIFY_GEMINI_MODEL", "gemini-flash-latest"),
            timeout_seconds=float(os.getenv("CLARIFY_TIMEOUT_SECONDS", "15")),
            max_attempts=int(os.getenv("CLARIFY_MAX_ATTEMPTS", "3")),
            extraction_temperature=float(os.getenv("CLARIFY_EXTRACTION_TEMPERATURE", "0.3")),
            decision_temperature=float(os.getenv("CLARIFY_DECISION_TEMPERATURE", "0.1")),
            log_level=os.getenv("CLARIFY_LOG_LEVEL", "INFO").upper(),
            token_budgets=budgets,
        )

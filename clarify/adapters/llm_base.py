from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CompletionRequest:
    model: str
    messages: List[Message]
    max_tokens: int
    temperature: float

    @property
    def system_text(self) -> str:
        return "\n\n".join(m.content for m in self.messages if m.role == "system")

    @property
    def user_text(self) -> str:
        return "\n\n".join(m.content for m in self.messages if m.role != "system")


@dataclass
class LLMResponse:
    raw_text: str
    usage: Optional[Dict[str, Optional[int]]] = field(default=None)


class LLMAdapter(Protocol):
    async def complete(self, request: CompletionRequest) -> LLMResponse:
        raise NotImplementedError

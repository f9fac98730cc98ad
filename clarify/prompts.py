from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Mapping

from clarify.utils.io import read_text

PROMPTS_DIR = Path(__file__).resolve().parent / "configs" / "prompts"
_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    return read_text(PROMPTS_DIR / f"{name}.md").strip()


def render_prompt(name: str, values: Mapping[str, str]) -> str:
    # Single pass: substituted values are never scanned for placeholders again.
    return _PLACEHOLDER.sub(
        lambda match: values.get(match.group(1), match.group(0)), load_prompt(name)
    )

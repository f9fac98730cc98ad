"""Normalize, validate and repair stage payloads against their field tables.

All three phases read the same ``FieldRule`` table, so the shape produced by
``normalize`` is exactly what ``repair`` knows how to fix.  ``validate`` checks
the strict JSON Schema for the stage; only when it reports violations does
``repair`` run, and its output always satisfies that schema.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

from jsonschema import Draft7Validator

from clarify.contracts.tables import Contract, FieldKind, FieldRule
from clarify.errors import SchemaViolation
from clarify.utils.io import read_text

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _clean_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    cleaned = (_clean_text(item) for item in value)
    return [item for item in cleaned if item]


def normalize(fields: Mapping[str, FieldRule], payload: Any) -> Dict[str, Any]:
    source = payload if isinstance(payload, dict) else {}
    normalized: Dict[str, Any] = {}
    for name, rule in fields.items():
        value = source.get(name)
        if rule.kind is FieldKind.OBJECT:
            normalized[name] = normalize(rule.fields, value)
        elif rule.kind is FieldKind.TEXT_LIST:
            normalized[name] = _clean_list(value)
        elif rule.kind is FieldKind.ENUM_LIST:
            normalized[name] = [item.lower() for item in _clean_list(value)]
        else:
            normalized[name] = _clean_text(value)
    return normalized


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    return json.loads(read_text(SCHEMAS_DIR / name))


def validate(contract: Contract, value: Any) -> List[str]:
    validator = Draft7Validator(load_schema(contract.schema_name))
    violations: List[str] = []
    for error in sorted(validator.iter_errors(value), key=lambda err: list(err.absolute_path)):
        location = ".".join(str(part) for part in error.absolute_path) or "<root>"
        # Messages echo the offending value; keep user text out of logs.
        violations.append(f"{location}: failed {error.validator}")
    return violations


def _clip(text: str, max_length: int | None) -> str:
    if max_length is None:
        return text
    return text[:max_length]


def repair(
    fields: Mapping[str, FieldRule], payload: Any, prefix: str = ""
) -> Tuple[Dict[str, Any], List[str]]:
    source = payload if isinstance(payload, dict) else {}
    repaired: Dict[str, Any] = {}
    notes: List[str] = []
    for name, rule in fields.items():
        path = f"{prefix}{name}"
        value = source.get(name)

        if rule.kind is FieldKind.OBJECT:
            repaired[name], nested = repair(rule.fields, value, prefix=f"{path}.")
            notes.extend(nested)

        elif rule.kind is FieldKind.TEXT:
            text = _clean_text(value)
            if text:
                repaired[name] = _clip(text, rule.max_length)
                if repaired[name] != text:
                    notes.append(f"Truncated {path} to {rule.max_length} characters.")
            else:
                repaired[name] = rule.fallback
                notes.append(f"Filled missing {path} with placeholder.")

        elif rule.kind is FieldKind.CHOICE:
            text = _clean_text(value)
            if text in rule.allowed:
                repaired[name] = text
            else:
                repaired[name] = rule.fallback
                notes.append(f"Replaced invalid {path} with {rule.fallback!r}.")

        elif rule.kind is FieldKind.ENUM_LIST:
            items = [item.lower() for item in _clean_list(value)]
            kept = [item for item in items if item in rule.allowed][: rule.max_count]
            if len(kept) != len(items):
                notes.append(f"Dropped {len(items) - len(kept)} value(s) from {path}.")
            repaired[name] = kept or list(rule.fallback)

        else:
            items = [_clip(item, rule.max_length) for item in _clean_list(value)]
            if not items:
                repaired[name] = list(rule.fallback)
                notes.append(f"Filled empty {path} with placeholder.")
                continue
            if rule.max_count is not None and len(items) > rule.max_count:
                notes.append(f"Trimmed {path} to {rule.max_count} items.")
                items = items[: rule.max_count]
            repaired[name] = items
    return repaired, notes


def enforce(contract: Contract, payload: Any) -> Tuple[Dict[str, Any], List[str]]:
    normalized = normalize(contract.fields, payload)
    violations = validate(contract, normalized)
    if not violations:
        return normalized, []
    logger.warning("Repairing %s", SchemaViolation(contract.name, violations))
    repaired, notes = repair(contract.fields, normalized)
    return repaired, notes


def default_value(contract: Contract) -> Dict[str, Any]:
    repaired, _ = repair(contract.fields, {})
    return repaired

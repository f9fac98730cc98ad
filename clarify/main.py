from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from clarify.adapters.gemini_adapter import GeminiAdapter
from clarify.adapters.llm_base import LLMAdapter
from clarify.adapters.mock_adapter import MockAdapter
from clarify.adapters.openai_adapter import OpenAIAdapter
from clarify.analytics import InMemoryAnalyticsRecorder
from clarify.artifacts.writers import write_analysis_report
from clarify.config import Settings
from clarify.pipeline_analysis import AnalysisPipeline
from clarify.utils.io import read_text, write_json, write_text
from clarify.utils.time import utc_iso, utc_timestamp

logger = logging.getLogger(__name__)

PROVIDER_KEYS = {"openai": "OPENAI_API_KEY", "gemini": "GEMINI_API_KEY"}
STAGE_BUDGETS = ("narrative_loop", "spiess_map", "summary", "repair")
TRUE_WORDS = {"true", "yes", "on", "1"}
FALSE_WORDS = {"false", "no", "off", "0"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clarify narrative analysis")
    parser.add_argument("--mode", choices=["mock", "live"], required=True)
    parser.add_argument("--input", required=True, help="Narrative file, optional YAML frontmatter")
    parser.add_argument("--provider", choices=sorted(PROVIDER_KEYS), default=None)
    parser.add_argument("--answers", default=None, help="YAML or JSON list of answers")
    parser.add_argument("--storage-opt-in", action="store_true", default=None)
    parser.add_argument("--no-redact-names", dest="redact_names", action="store_false", default=None)
    parser.add_argument("--max-output-tokens", type=int, default=None)
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument("--runs-dir", default="runs")
    return parser


def parse_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    if not content.startswith("---"):
        return {}, content
    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}, content
    body = parts[2].lstrip("\n")
    try:
        meta = yaml.safe_load(parts[1].strip()) or {}
    except yaml.YAMLError:
        logger.warning("Ignoring unreadable frontmatter.")
        meta = {}
    if not isinstance(meta, dict):
        meta = {}
    return meta, body


def load_answers(path: Path) -> List[Any]:
    loaded = yaml.safe_load(read_text(path))
    if isinstance(loaded, dict):
        loaded = loaded.get("answers")
    if not isinstance(loaded, list):
        raise ValueError(f"Answers file must contain a list: {path}")
    return loaded


def _ensure_env(base_dir: Path, provider: str) -> None:
    load_dotenv(base_dir / ".env")
    key = PROVIDER_KEYS.get(provider)
    if key is None:
        raise RuntimeError(f"Unsupported live provider: {provider}")
    if not os.getenv(key):
        raise RuntimeError(
            f"Missing required API key: {key}. Create a .env file from .env.example and set the key."
        )


def _adapter(mode: str, settings: Settings) -> LLMAdapter:
    if mode == "mock":
        return MockAdapter()
    if settings.provider == "gemini":
        return GeminiAdapter(settings)
    return OpenAIAdapter(settings)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.provider:
        settings.provider = args.provider
    if args.max_output_tokens:
        for key in STAGE_BUDGETS:
            settings.token_budgets[key] = args.max_output_tokens
    if args.temperature is not None:
        settings.extraction_temperature = args.temperature
    return settings


def _flag(cli_value: Optional[bool], meta: Dict[str, Any], key: str, default: bool) -> bool:
    if cli_value is not None:
        return cli_value
    value = meta.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in TRUE_WORDS | FALSE_WORDS:
        return value.strip().lower() in TRUE_WORDS
    logger.warning("Frontmatter %s is not a boolean; using %s.", key, default)
    return default


async def run(args: argparse.Namespace, settings: Settings, run_dir: Path) -> Dict[str, Any]:
    meta, narrative = parse_frontmatter(read_text(Path(args.input)))
    storage_opt_in = _flag(args.storage_opt_in, meta, "storage_opt_in", False)
    redact_names = _flag(args.redact_names, meta, "redact_names", True)
    answers = load_answers(Path(args.answers)) if args.answers else meta.get("answers")

    inputs_dir = run_dir / "inputs"
    artifacts_dir = run_dir / "artifacts"
    write_json(
        inputs_dir / "request.json",
        {
            "mode": args.mode,
            "provider": settings.provider,
            "storageOptIn": storage_opt_in,
            "redactNames": redact_names,
            "hasAnswers": bool(answers),
        },
    )
    if storage_opt_in:
        write_text(inputs_dir / "narrative.md", narrative)

    recorder = InMemoryAnalyticsRecorder()
    pipeline = AnalysisPipeline(_adapter(args.mode, settings), settings, recorder)
    if answers:
        session_id = str(meta.get("session_id") or uuid.uuid4().hex)
        outcome = await pipeline.process_answers(
            session_id, answers, storage_opt_in=storage_opt_in, redact_names=redact_names
        )
    else:
        outcome = await pipeline.analyze(
            narrative, storage_opt_in=storage_opt_in, redact_names=redact_names
        )

    result = outcome.to_dict()
    write_json(artifacts_dir / "result.json", result)
    write_analysis_report(artifacts_dir / "analysis.md", result)
    if storage_opt_in:
        write_json(
            artifacts_dir / "session.json",
            {
                "sessionId": outcome.session_id,
                "createdAt": utc_iso(),
                "states": [state.value for state in outcome.states],
                "analytics": recorder.session_summary(outcome.session_id),
                "result": result,
            },
        )
    return result


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    base_dir = Path.cwd()
    load_dotenv(base_dir / ".env")
    settings = _apply_overrides(Settings.from_env(), args)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.mode == "live":
        _ensure_env(base_dir, settings.provider)

    run_dir = Path(args.runs_dir) / utc_timestamp()
    for path in (run_dir / "inputs", run_dir / "artifacts"):
        path.mkdir(parents=True, exist_ok=True)

    result = asyncio.run(run(args, settings, run_dir))
    print(f"Run written to {run_dir}")
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    raise SystemExit(main())

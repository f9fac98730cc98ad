from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from clarify.utils.io import write_text


def _bullets(items: List[str]) -> List[str]:
    return [f"- {item}" for item in items]


def render_analysis_report(outcome: Dict) -> str:
    lines: List[str] = ["# Narrative Analysis", ""]
    lines.append(f"- Session: `{outcome.get('sessionId', '')}`")

    if "error" in outcome:
        error = outcome["error"]
        lines.extend(["", "## Error", "", f"**{error['code']}**: {error['message']}"])
        return "\n".join(lines) + "\n"

    if "response" in outcome:
        response = outcome["response"]
        lines.extend(["", "## Support", "", response["message"], ""])
        lines.extend(_bullets(response.get("resources", [])))
        return "\n".join(lines) + "\n"

    lines.append(f"- Stage: {outcome.get('stage', '')}")
    if outcome.get("needsAnswers"):
        lines.extend(["", "## Clarifying Questions", ""])
        lines.extend(f"{index}. {question}" for index, question in enumerate(outcome["questions"], 1))
        return "\n".join(lines) + "\n"

    loop = outcome["narrativeLoop"]
    spiess = outcome["spiessMap"]
    summary = outcome["summary"]
    lines.append(f"- Processing time: {outcome.get('processingTime', 0)} ms")
    if outcome.get("tags"):
        lines.append(f"- Tags: {', '.join(outcome['tags'])}")

    lines.extend(["", "## Summary", "", summary["content"], ""])
    lines.append(f"**Next step:** {summary['nextStep']}")

    lines.extend(["", "## Narrative Loop", ""])
    for key, label in (
        ("trigger", "Trigger"),
        ("fear", "Fear"),
        ("emotion", "Emotion"),
        ("outcome", "Outcome"),
        ("whyItFeelsReal", "Why it feels real"),
        ("hiddenLogic", "Hidden logic"),
    ):
        lines.append(f"- **{label}:** {loop[key]}")
    lines.extend(["", "### Breaking Actions"])
    lines.extend(_bullets(loop["breakingActions"]))
    lines.extend(["", "### Mechanisms"])
    lines.extend(_bullets(loop["mechanisms"]))

    lines.extend(["", "## SPIESS Map", ""])
    lines.append(f"- **Sensations:** {', '.join(spiess['sensations'])}")
    lines.append(f"- **Emotions:** {', '.join(spiess['emotions'])}")
    lines.append(f"- **Needs:** {', '.join(spiess['needs'])}")
    lines.append(f"- **Confirmation bias:** {spiess['confirmationBias']}")

    micro = spiess["microTest"]
    lines.extend(["", "### Micro Test"])
    lines.append(f"- {micro['description']} ({micro['timeframe']})")
    lines.append(f"- Success: {micro['successCriteria']}")

    tool = spiess["toolAction"]
    lines.extend(["", f"### Tool Action: {tool['protocol']}"])
    lines.extend(f"{index}. {step}" for index, step in enumerate(tool["steps"], 1))
    lines.extend(["", f"Example: {tool['example']}"])
    return "\n".join(lines) + "\n"


def write_analysis_report(path: Path, outcome: Dict) -> None:
    write_text(path, render_analysis_report(outcome))

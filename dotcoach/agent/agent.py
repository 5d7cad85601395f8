# dotcoach/agent/agent.py
from __future__ import annotations

import logging
import os
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..analysis import build_engine_payload, scrub_alerts
from ..providers.anthropic_client import suggest_with_anthropic
from ..providers.local_ollama import suggest_with_ollama
from ..providers.openai_client import suggest_with_openai
from ..utils.schema import AnalysisResult, SafetyAlert, Suggestion

log = logging.getLogger(__name__)

PROVIDERS: Dict[str, Callable[[str, Dict[str, Any]], Dict[str, Any]]] = {
    "local": suggest_with_ollama,
    "openai": suggest_with_openai,
    "anthropic": suggest_with_anthropic,
}

_MODEL_ENV = {
    "local": ("DOTCOACH_LOCAL_MODEL", "llama3.2:1b-instruct"),
    "openai": ("DOTCOACH_OPENAI_MODEL", "gpt-4o-mini"),
    "anthropic": ("DOTCOACH_ANTHROPIC_MODEL", "claude-3-7-sonnet-20250219"),
}

_NAME_RE = re.compile(r"[^A-Za-z0-9_-]+")
_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_]\w*=")


def resolve_model(provider: str, cfg: Optional[Dict[str, Any]] = None, model: Optional[str] = None) -> str:
    """Explicit model, then config.yaml, then environment, then the built-in default."""
    if model:
        return model.strip()
    configured = (((cfg or {}).get("providers") or {}).get(provider) or {}).get("model")
    if configured:
        return str(configured).strip()
    env_key, default = _MODEL_ENV[provider]
    return os.getenv(env_key, default).strip()


def coerce_suggestions(result: Any) -> Tuple[List[Suggestion], List[str]]:
    """
    Turn a provider result into Suggestion models. Items that do not validate
    are dropped with a note; free text is surfaced as a note, never as code.
    """
    if isinstance(result, str):
        return [], [result.strip()] if result.strip() else ["empty_model_response"]
    if not isinstance(result, dict):
        return [], ["empty_model_response"]

    notes = [str(n) for n in result.get("notes") or []]
    suggestions: List[Suggestion] = []
    dropped = 0
    for item in result.get("suggestions") or []:
        if not isinstance(item, dict):
            dropped += 1
            continue
        data = dict(item)
        data["safety"] = data.get("safety") or None
        try:
            suggestions.append(Suggestion(**data))
        except ValidationError:
            dropped += 1
    if dropped:
        notes.append(f"dropped {dropped} malformed suggestion(s)")
    return suggestions, notes


def _command_name(command: str) -> str:
    # first word that is not a VAR=value assignment, without path or extension
    for word in command.split():
        if _ASSIGNMENT_RE.match(word):
            continue
        name = _NAME_RE.sub("", word.rsplit("/", 1)[-1].split(".")[0])
        return name or "cmd"
    return "cmd"


def safety_suggestions(alerts: List[SafetyAlert]) -> List[Suggestion]:
    """A wrapper suggestion per safety alert, built from its canned alternative."""
    out: List[Suggestion] = []
    for a in scrub_alerts(alerts):
        if not a.safer_alternative:
            continue
        out.append(
            Suggestion(
                pattern=a.pattern,
                type="function",
                name="safe-" + _command_name(a.pattern),
                code=a.safer_alternative,
                explanation=f"Safety improvement: {a.risk}",
                safety=a.severity,
            )
        )
    return out


def run_suggest(
    result: AnalysisResult,
    provider: str = "local",
    model: Optional[str] = None,
    cfg: Optional[Dict[str, Any]] = None,
    dry_run: bool = False,
) -> Tuple[List[Suggestion], List[str]]:
    """
    Send the scrubbed analysis to a suggestion engine and collect its answer,
    followed by one safety suggestion per dangerous command.
    """
    if provider not in PROVIDERS:
        raise ValueError(f"unknown provider {provider!r} (expected one of {', '.join(PROVIDERS)})")

    payload = build_engine_payload(result)
    if dry_run:
        raw: Any = {"suggestions": [], "notes": ["dry-run enabled: no model call"]}
    elif not payload["patterns"] and not payload["dangerous_commands"]:
        raw = {"suggestions": [], "notes": ["nothing to send: no repeated patterns or risky commands"]}
    else:
        resolved = resolve_model(provider, cfg, model)
        log.debug("asking %s (%s) about %d pattern(s)", provider, resolved, len(payload["patterns"]))
        raw = PROVIDERS[provider](resolved, payload)

    suggestions, notes = coerce_suggestions(raw)
    suggestions.extend(safety_suggestions(result.safety_alerts))
    return suggestions, notes

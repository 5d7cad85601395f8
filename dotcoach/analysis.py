# dotcoach/analysis.py
"""
The analysis pipeline: raw history bytes in, AnalysisResult out, plus the
scrubbed payload that is the only thing a suggestion engine ever sees.

Nothing here touches the network. Reading the history file is the one piece
of I/O, and its OSError is left to the caller.
"""
from __future__ import annotations

import logging
import os
import pathlib
from typing import Any, Dict, List, Mapping, Optional, Union

from .analyzers.frequency import analyze_with_config
from .analyzers.safety import detect_dangerous_patterns
from .parsers.history import parse_history, resolve_shell
from .utils.redact import scrub_text
from .utils.schema import AnalysisConfig, AnalysisResult, CommandPattern, SafetyAlert

log = logging.getLogger(__name__)

# the suggestion engine gets at most this many patterns per request
ENGINE_PATTERN_LIMIT = 7

ConfigLike = Union[AnalysisConfig, Mapping[str, Any], None]


def _as_config(config: ConfigLike) -> AnalysisConfig:
    if config is None:
        return AnalysisConfig()
    if isinstance(config, AnalysisConfig):
        return config
    return AnalysisConfig(**dict(config))


def load_history(path: Union[str, os.PathLike]) -> bytes:
    """Read a history file as raw bytes. OSError propagates unchanged."""
    p = pathlib.Path(os.path.expanduser(str(path)))
    data = p.read_bytes()
    log.debug("read %d bytes of history", len(data))
    return data


def analyze_history(
    source: Union[str, bytes],
    shell: str = "auto",
    config: ConfigLike = None,
    history_file: Optional[str] = None,
) -> AnalysisResult:
    # a bad config fails here, before any parsing
    cfg = _as_config(config)
    kind = resolve_shell(source, shell)
    entries = parse_history(source, kind)

    patterns = analyze_with_config(entries, cfg)
    alerts = detect_dangerous_patterns(entries)
    log.debug("%d entries -> %d patterns, %d safety alerts", len(entries), len(patterns), len(alerts))

    return AnalysisResult(
        shell=kind,
        history_file=history_file,
        total_commands=len(entries),
        unique_commands=len({e.command for e in entries}),
        patterns=patterns,
        safety_alerts=alerts,
    )


def analyze_file(path: Union[str, os.PathLike], shell: str = "auto", config: ConfigLike = None) -> AnalysisResult:
    cfg = _as_config(config)
    raw = load_history(path)
    return analyze_history(raw, shell=shell, config=cfg, history_file=str(path))


def scrub_patterns(patterns: List[CommandPattern]) -> List[CommandPattern]:
    """Copies of `patterns` with pattern and variation text scrubbed."""
    out: List[CommandPattern] = []
    for p in patterns:
        variations = sorted({scrub_text(v) for v in p.variations})
        out.append(p.model_copy(update={"pattern": scrub_text(p.pattern), "variations": variations}))
    return out


def scrub_alerts(alerts: List[SafetyAlert]) -> List[SafetyAlert]:
    return [
        a.model_copy(update={"pattern": scrub_text(a.pattern), "safer_alternative": scrub_text(a.safer_alternative)})
        for a in alerts
    ]


def build_engine_payload(result: AnalysisResult, limit: int = ENGINE_PATTERN_LIMIT) -> Dict[str, Any]:
    """
    The request body for a suggestion engine. Every text field is scrubbed
    here; the provider clients scrub again before sending.
    """
    patterns = scrub_patterns(result.patterns[:limit])
    alerts = scrub_alerts(result.safety_alerts)
    return {
        "shell": result.shell,
        "patterns": [
            {"pattern": p.pattern, "frequency": p.frequency, "variations": p.variations}
            for p in patterns
        ],
        "dangerous_commands": [
            {
                "command": a.pattern,
                "risk": a.risk,
                "severity": a.severity,
                "safer_alternative": a.safer_alternative,
            }
            for a in alerts
        ],
    }

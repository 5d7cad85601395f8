# dotcoach/parsers/history.py
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Union

from ..utils.schema import HistoryEntry
from .normalize import decode_history, logical_lines, physical_lines

log = logging.getLogger(__name__)

SHELL_KINDS = ("bash", "zsh", "powershell", "auto")

# ": <epoch>:<duration>;<command>"
ZSH_EXTENDED_RE = re.compile(r"^:\s*(\d+):(\d+);(.*)$", re.S)
# anything that starts out like the extended prefix; used to spot broken ones
ZSH_PREFIX_RE = re.compile(r"^:\s*\d")
# bash with HISTTIMEFORMAT writes "#<epoch>" before each command
BASH_TIMESTAMP_RE = re.compile(r"^#(\d{9,})\s*$")
# Verb-Noun cmdlets: Get-ChildItem, Set-Location, ...
PS_CMDLET_RE = re.compile(r"^(?:\$\w+\s*=\s*)?[A-Z][a-z]+-[A-Z][A-Za-z]+\b")

DETECT_SAMPLE = 200


def detect_shell(text: str, sample: int = DETECT_SAMPLE) -> str:
    """
    Guess the history format from the first `sample` non-blank lines.
    zsh wins on any extended-history prefix; PowerShell needs cmdlet-shaped
    commands or backtick continuations; everything else is bash.
    """
    zsh = ps = 0
    seen = 0
    for line in physical_lines(text):
        line = line.strip()
        if not line:
            continue
        seen += 1
        if ZSH_EXTENDED_RE.match(line):
            zsh += 1
        elif PS_CMDLET_RE.match(line) or line.endswith("`"):
            ps += 1
        if seen >= sample:
            break
    if zsh:
        return "zsh"
    if ps:
        return "powershell"
    return "bash"


def _epoch(value: str) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _is_comment(line: str) -> bool:
    return line.startswith("#")


def _iter_bash(text: str) -> Iterator[HistoryEntry]:
    pending_ts: Optional[datetime] = None
    skipped = 0
    for lineno, line in logical_lines(text, "bash"):
        if not line:
            continue
        m = BASH_TIMESTAMP_RE.match(line)
        if m:
            pending_ts = _epoch(m.group(1))
            continue
        if _is_comment(line):
            continue
        if "\x00" in line:
            skipped += 1
            log.debug("skipping malformed bash history line %d", lineno)
            pending_ts = None
            continue
        yield HistoryEntry(command=line, timestamp=pending_ts, line_number=lineno)
        pending_ts = None
    if skipped:
        log.debug("bash parser skipped %d malformed line(s)", skipped)


def _iter_zsh(text: str) -> Iterator[HistoryEntry]:
    skipped = 0
    for lineno, line in logical_lines(text, "zsh"):
        if not line:
            continue
        timestamp = None
        m = ZSH_EXTENDED_RE.match(line)
        if m:
            timestamp = _epoch(m.group(1))
            command = m.group(3).strip()
            if timestamp is None:
                skipped += 1
                log.debug("skipping zsh history line %d: bad epoch", lineno)
                continue
        elif ZSH_PREFIX_RE.match(line):
            skipped += 1
            log.debug("skipping zsh history line %d: broken extended prefix", lineno)
            continue
        else:
            command = line
        if not command or _is_comment(command):
            continue
        if "\x00" in command:
            skipped += 1
            log.debug("skipping malformed zsh history line %d", lineno)
            continue
        yield HistoryEntry(command=command, timestamp=timestamp, line_number=lineno)
    if skipped:
        log.debug("zsh parser skipped %d malformed line(s)", skipped)


def _iter_powershell(text: str) -> Iterator[HistoryEntry]:
    for lineno, line in logical_lines(text, "powershell"):
        if not line:
            continue
        if _is_comment(line):
            continue
        if "\x00" in line:
            log.debug("skipping malformed powershell history line %d", lineno)
            continue
        yield HistoryEntry(command=line, line_number=lineno)


_PARSERS = {
    "bash": _iter_bash,
    "zsh": _iter_zsh,
    "powershell": _iter_powershell,
}


def resolve_shell(source: Union[str, bytes], shell: str = "auto") -> str:
    if shell not in SHELL_KINDS:
        raise ValueError(f"unknown shell kind: {shell!r} (expected one of {', '.join(SHELL_KINDS)})")
    if shell != "auto":
        return shell
    return detect_shell(decode_history(source))


def parse_history(source: Union[str, bytes], shell: str = "auto") -> List[HistoryEntry]:
    """
    Parse raw history text (or bytes) into HistoryEntry records.

    Malformed individual lines are skipped rather than raised; an empty or
    entirely unparseable input gives an empty list.
    """
    kind = resolve_shell(source, shell)
    text = decode_history(source, kind)
    entries = list(_PARSERS[kind](text))
    log.debug("parsed %d %s history entries", len(entries), kind)
    return entries

# dotcoach/analyzers/safety.py
"""
Dangerous-command detection.

RULES is an ordered tuple of plain data: each rule names a predicate over the
normalized command text and the risk / safer-alternative text to report. The
first matching rule wins, so a command that both deletes recursively and
changes permissions is reported once, as a deletion. Adding or removing a
check means editing RULES, nothing else.
"""
from __future__ import annotations

import logging
import re
import shlex
from collections import Counter
from string import Template
from typing import Callable, Iterable, List, NamedTuple, Optional

from ..utils.schema import HistoryEntry, SafetyAlert

log = logging.getLogger(__name__)

_SPACE_RE = re.compile(r"\s+")
_SEGMENT_SPLIT_RE = re.compile(r"\s*(?:&&|\|\||[;|&])\s*")

SHARED_BRANCHES = r"(?:main|master|develop|trunk|production|prod|release[\w./-]*)"


class SafetyRule(NamedTuple):
    name: str
    severity: str  # "warning" | "danger"
    matches: Callable[[str], bool]
    risk: str
    safer_alternative: str


def normalize_command(command: str) -> str:
    return _SPACE_RE.sub(" ", command).strip()


def _regex(pattern: str, flags: int = 0) -> Callable[[str], bool]:
    compiled = re.compile(pattern, flags)
    return lambda text: compiled.search(text) is not None


def _any(*preds: Callable[[str], bool]) -> Callable[[str], bool]:
    return lambda text: any(p(text) for p in preds)


# ---- recursive forced deletion ---------------------------------------------

# wrapper -> its options that take a separate value
_WRAPPERS = {
    "sudo": {"-u", "-g", "-C", "-h", "-p", "-r", "-t", "-U", "-D", "--user", "--group", "--host", "--prompt"},
    "doas": {"-u", "-C"},
    "command": set(),
    "builtin": set(),
    "nice": {"-n", "--adjustment"},
    "nohup": set(),
    "time": {"-f", "-o", "--format", "--output"},
    "env": {"-u", "-C", "-S", "--unset", "--chdir", "--split-string"},
    "xargs": {"-I", "-n", "-P", "-L", "-d", "-a", "-E", "-s", "--max-args", "--max-procs", "--delimiter"},
    "exec": {"-a"},
}


def _split_words(segment: str) -> List[str]:
    try:
        return shlex.split(segment)
    except ValueError:
        # unbalanced quotes; fall back to whitespace words
        log.debug("shlex could not parse a segment, splitting on whitespace")
        return segment.split()


def _program(word: str) -> str:
    # '\rm' bypasses aliases; '/bin/rm' is still rm
    return word.lstrip("\\").rsplit("/", 1)[-1]


def _command_words(segment: str) -> List[str]:
    words = _split_words(segment)
    # skip wrappers (with their options and option values) and VAR=value assignments
    while words:
        wrapper = _WRAPPERS.get(_program(words[0]))
        if wrapper is not None:
            words = words[1:]
            while words and words[0].startswith("-") and words[0] != "--":
                flag = words[0]
                words = words[1:]
                if flag in wrapper and words:
                    words = words[1:]
            if words and words[0] == "--":
                words = words[1:]
        elif re.match(r"^[A-Za-z_]\w*=", words[0]):
            words = words[1:]
        else:
            break
    return words


def _unix_forced_rm(words: List[str]) -> bool:
    if not words or _program(words[0]) != "rm":
        return False
    recursive = force = guarded = False
    for w in words[1:]:
        if w == "--":
            break
        if w.startswith("--"):
            recursive |= w == "--recursive"
            force |= w == "--force"
            guarded |= w.startswith("--interactive")
        elif w.startswith("-") and len(w) > 1:
            letters = w[1:]
            recursive |= "r" in letters or "R" in letters
            force |= "f" in letters
            guarded |= "i" in letters or "I" in letters
    return recursive and force and not guarded


def _powershell_forced_remove(words: List[str]) -> bool:
    if not words or words[0].lower() not in ("remove-item", "ri", "rm", "del", "rmdir", "rd"):
        return False
    flags = {w.lower().split(":", 1)[0] for w in words[1:] if w.startswith("-")}
    recursive = any(f in ("-recurse", "-r") for f in flags)
    force = "-force" in flags
    guarded = any(f in ("-confirm", "-whatif") for f in flags)
    return recursive and force and not guarded


def recursive_forced_delete(text: str) -> bool:
    for segment in _SEGMENT_SPLIT_RE.split(text):
        words = _command_words(segment)
        if _unix_forced_rm(words) or _powershell_forced_remove(words):
            return True
    return False


# ---- the rule table ----------------------------------------------------------

RULES: tuple[SafetyRule, ...] = (
    SafetyRule(
        name="recursive-force-delete",
        severity="danger",
        matches=recursive_forced_delete,
        risk="Recursive forced deletion without confirmation",
        safer_alternative=(
            "List what would be removed first (ls -la <path>), then delete with "
            "confirmation: rm -rI <path>, or move it aside with trash-put <path>."
        ),
    ),
    SafetyRule(
        name="disk-overwrite",
        severity="danger",
        matches=_any(
            _regex(r"\bdd\b[^|;&]*\bof=/dev/(?!null\b|zero\b|stdout\b|stderr\b)"),
            _regex(r"\bmkfs(?:\.\w+)?\b"),
            _regex(r"\b(?:wipefs|sfdisk|fdisk|parted|sgdisk)\b[^|;&]*/dev/"),
            _regex(r"\bshred\b[^|;&]*/dev/"),
            _regex(r">\s*/dev/(?:sd[a-z]|hd[a-z]|vd[a-z]|xvd[a-z]|nvme\d|disk\d|mmcblk\d)"),
            _regex(r"\b(?:Format-Volume|Clear-Disk|Initialize-Disk)\b", re.I),
        ),
        risk="Overwrites or formats a disk device",
        safer_alternative=(
            "Double-check the target with lsblk (or Get-Disk) and write to an image file "
            "first; keep device writes in a reviewed script that asks for confirmation."
        ),
    ),
    SafetyRule(
        name="fork-bomb",
        severity="danger",
        matches=_regex(r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"),
        risk="Fork bomb exhausts process table",
        safer_alternative="Remove this command; set a process limit with ulimit -u before experimenting.",
    ),
    SafetyRule(
        name="pipe-to-shell",
        severity="danger",
        matches=_any(
            _regex(
                r"\b(?:curl|wget|fetch)\b.*\|\s*(?:sudo\s+(?:-\S+\s+)*)?"
                r"(?:ba|z|k|c|tc|da|fi)?sh\b"
            ),
            _regex(r"\b(?:curl|wget)\b.*\|\s*(?:sudo\s+)?(?:python[\d.]*|perl|ruby|node)\b"),
            _regex(r"\b(?:ba|z)?sh\b[^|;&]*(?:<\(|\$\(|`)\s*(?:curl|wget)\b"),
            _regex(r"\b(?:iwr|irm|Invoke-WebRequest|Invoke-RestMethod)\b.*\|\s*(?:iex|Invoke-Expression)\b", re.I),
            _regex(
                r"\b(?:iex|Invoke-Expression)\b.*\b(?:iwr|irm|Invoke-WebRequest|Invoke-RestMethod|DownloadString)\b",
                re.I,
            ),
        ),
        risk="Runs remote content in a shell without inspection",
        safer_alternative=(
            "Download to a file, read it, then run it: "
            "curl -fsSL <url> -o install.sh && less install.sh && sh install.sh"
        ),
    ),
    SafetyRule(
        name="world-writable-permissions",
        severity="warning",
        matches=_regex(
            r"\bchmod\b(?:\s+-\S+)*\s+(?:0?[0-7]?777|0?[0-7]?666|a\+w|a\+rwx|ugo\+rwx|o\+w|o\+rwx)\b"
        ),
        risk="Makes files writable by every user",
        safer_alternative="Grant only what is needed, e.g. chmod 755 <dir> or chmod u+x <file>.",
    ),
    SafetyRule(
        name="recursive-ownership-change",
        severity="warning",
        matches=_regex(r"\b(?:chmod|chown|chgrp)\b[^|;&]*\s(?:-[A-Za-z]*R[A-Za-z]*|--recursive)\b"),
        risk="Recursive permission or ownership change",
        safer_alternative=(
            "Scope the change: find <path> -type f -exec chmod 644 {} + "
            "after reviewing the file list, or drop -R."
        ),
    ),
    SafetyRule(
        name="force-push-shared-branch",
        severity="danger",
        matches=_regex(
            r"\bgit\b(?:\s+-\S+)*\s+push\b(?=.*\s(?:--force|-f)(?:\s|$))"
            r".*\s(?:\S+:)?\+?" + SHARED_BRANCHES + r"(?:\s|$)"
        ),
        risk="Force push rewrites history on a shared branch",
        safer_alternative="Push a new branch and open a pull request, or use git push --force-with-lease on your own branch.",
    ),
    SafetyRule(
        name="force-push",
        severity="warning",
        matches=_any(
            _regex(r"\bgit\b(?:\s+-\S+)*\s+push\b.*\s(?:--force|-f)(?:\s|$)"),
            _regex(r"\bgit\b(?:\s+-\S+)*\s+push\b.*\s\+\S+"),
            _regex(r"\bgit\s+filter-(?:branch|repo)\b"),
        ),
        risk="Force push or history rewrite",
        safer_alternative="Push with a lease so you never overwrite commits you have not fetched: $lease_command",
    ),
    SafetyRule(
        name="plaintext-credentials",
        severity="warning",
        matches=_any(
            _regex(r"(?:^|\s)--?(?:password|passwd|pass|token|api-?key|secret)(?:=|\s+)\S+", re.I),
            _regex(r"\b(?:mysql|mysqldump|mysqladmin|mariadb)\b.*\s-p\S+"),
            _regex(r"\bsshpass\b.*\s-p\s*\S+"),
            _regex(r"\b(?:curl|wget|http)\b.*\s(?:-u|--user)\s+[^\s:]+:\S+"),
            _regex(r"(?:^|\s)(?=[A-Za-z_]*?(?:PASSWORD|PASSWD|SECRET|TOKEN|API_?KEY))[A-Za-z_]+=\S+", re.I),
        ),
        risk="Credentials passed on the command line end up in shell history",
        safer_alternative=(
            "Read the secret from a prompt, an environment file that is not in history, "
            "or a credential helper (e.g. --password-file, MYSQL_PWD from a vault)."
        ),
    ),
)


def _with_lease(command: str) -> str:
    safer = re.sub(r"(\s)(?:--force|-f)(?=\s|$)", r"\1--force-with-lease", command)
    if safer == command or " push" not in safer:
        return "git push --force-with-lease"
    return safer


def render_alternative(rule: SafetyRule, command: str) -> str:
    """Fill in a rule's template; $command is the normalized dangerous command."""
    return Template(rule.safer_alternative).safe_substitute(
        command=command,
        lease_command=_with_lease(command),
    )


def match_rule(command: str, rules: Iterable[SafetyRule] = RULES) -> Optional[SafetyRule]:
    """Return the first rule matching `command`, or None if it looks safe."""
    text = normalize_command(command)
    if not text:
        return None
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def severity_of(command: str) -> str:
    rule = match_rule(command)
    return rule.severity if rule else "safe"


def detect_dangerous_patterns(entries: Iterable[HistoryEntry]) -> List[SafetyAlert]:
    """
    One SafetyAlert per distinct dangerous command text, counted over all
    entries. Ordered by frequency (desc) then command text.
    """
    counts = Counter(e.command for e in entries)
    alerts: List[SafetyAlert] = []
    for command, n in counts.items():
        rule = match_rule(command)
        if rule is None:
            continue
        alerts.append(
            SafetyAlert(
                pattern=command,
                frequency=n,
                risk=rule.risk,
                safer_alternative=render_alternative(rule, normalize_command(command)),
                rule=rule.name,
                severity=rule.severity,
            )
        )
    alerts.sort(key=lambda a: (-a.frequency, a.pattern))
    return alerts


def extract_dangerous_commands(entries: Iterable[HistoryEntry]) -> List[str]:
    return [a.pattern for a in detect_dangerous_patterns(entries)]

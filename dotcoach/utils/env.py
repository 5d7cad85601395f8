# dotcoach/utils/env.py
import os
import pathlib
import re
from typing import Dict

ENV_PATH = "~/.dotcoach/.env"

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env(text: str) -> Dict[str, str]:
    """
    KEY=VALUE pairs from dotenv text, in shell-compatible form: an optional
    `export` prefix, `#` comment lines, and one pair of matching quotes around
    the value. Lines whose key is not a valid variable name are dropped.
    """
    pairs: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if _KEY_RE.match(key):
            pairs[key] = _unquote(value)
    return pairs


def load_env(path: str = ENV_PATH) -> Dict[str, str]:
    """Apply ~/.dotcoach/.env to os.environ; variables already exported win."""
    p = pathlib.Path(os.path.expanduser(path))
    if not p.exists():
        return {}
    pairs = parse_env(p.read_text(encoding="utf-8", errors="ignore"))
    for key, value in pairs.items():
        os.environ.setdefault(key, value)
    return pairs

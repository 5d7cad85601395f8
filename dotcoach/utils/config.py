import copy
import os
import pathlib
from typing import Any, Dict, Mapping, Optional

import yaml

from .schema import AnalysisConfig

CONFIG_PATH = "~/.dotcoach/config.yaml"

DEFAULT_CFG = {
    "analysis": {
        "min_frequency": 5,
        "top": 20,
        "similarity_threshold": 0.2,
        "normalize_numbers": False,
    },
    "providers": {
        "local": {"type": "ollama", "model": "llama3.2:1b-instruct"},
        "openai": {"type": "openai", "model": "gpt-4o-mini"},
        "anthropic": {"type": "anthropic", "model": "claude-3-7-sonnet-20250219"},
    },
    "history": {
        "shell": "auto",
        "file": "",
    },
}

# (section, key) <- variable; values stay raw strings, AnalysisConfig coerces them
ENV_OVERRIDES = {
    ("analysis", "min_frequency"): "DOTCOACH_MIN_FREQUENCY",
    ("analysis", "top"): "DOTCOACH_TOP",
    ("analysis", "similarity_threshold"): "DOTCOACH_SIMILARITY",
    ("analysis", "normalize_numbers"): "DOTCOACH_NORMALIZE_NUMBERS",
    ("history", "shell"): "DOTCOACH_SHELL",
    ("history", "file"): "DOTCOACH_HISTORY_FILE",
}

_MODEL_VARS = {
    "local": "DOTCOACH_LOCAL_MODEL",
    "openai": "DOTCOACH_OPENAI_MODEL",
    "anthropic": "DOTCOACH_ANTHROPIC_MODEL",
}


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """The DOTCOACH_* variables that are set, as a partial config."""
    environ = os.environ if environ is None else environ
    out: Dict[str, Any] = {}
    for (section, key), var in ENV_OVERRIDES.items():
        if environ.get(var):
            out.setdefault(section, {})[key] = environ[var]
    for provider, var in _MODEL_VARS.items():
        if environ.get(var):
            out.setdefault("providers", {})[provider] = {"model": environ[var]}
    return out


def deepmerge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return `base` updated with `override`; nested dicts merge key by key."""
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deepmerge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Defaults, then DOTCOACH_* variables, then the user's config.yaml. The
    file is created with the defaults on first run.
    """
    base = deepmerge(DEFAULT_CFG, env_overrides())
    p = pathlib.Path(os.path.expanduser(path or CONFIG_PATH))
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            user = yaml.safe_load(f) or {}
        if not isinstance(user, dict):
            raise ValueError(f"{p}: expected a mapping at the top level")
        return deepmerge(base, user)

    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        yaml.safe_dump(DEFAULT_CFG, f, sort_keys=False)
    return base


def analysis_config(cfg: Optional[Dict[str, Any]] = None, **overrides: Any) -> AnalysisConfig:
    """
    Build a validated AnalysisConfig from the `analysis` section of `cfg`.
    Keyword overrides that are None are ignored, so CLI flags can be passed
    straight through. Raises pydantic.ValidationError on bad values.
    """
    section = dict((cfg or deepmerge(DEFAULT_CFG, env_overrides())).get("analysis") or {})
    section.update({k: v for k, v in overrides.items() if v is not None})
    return AnalysisConfig(**section)

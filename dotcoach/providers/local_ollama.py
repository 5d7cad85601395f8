# dotcoach/providers/local_ollama.py
from __future__ import annotations

import json
import logging
import os
import subprocess
from typing import Any, Dict, List, Optional

import requests

from ..utils.prompt import build_prompt
from ..utils.redact import redact
from .common import clean_model_tag, empty_result, extract_json, shape_result

log = logging.getLogger(__name__)


def _normalize_base(u: Optional[str]) -> str:
    u = (u or "").strip()
    if not u:
        return "http://127.0.0.1:11434"
    if not u.startswith(("http://", "https://")):
        u = "http://" + u
    return u.rstrip("/")


# OLLAMA_URL wins over OLLAMA_HOST
OLLAMA_URL = _normalize_base(os.environ.get("OLLAMA_URL") or os.environ.get("OLLAMA_HOST"))
HTTP_TIMEOUT = float(os.environ.get("DOTCOACH_OLLAMA_TIMEOUT", "120.0"))


def _http_get(path: str) -> requests.Response:
    return requests.get(f"{OLLAMA_URL}{path}", timeout=HTTP_TIMEOUT)


def _http_post(path: str, data: dict) -> requests.Response:
    return requests.post(f"{OLLAMA_URL}{path}", json=data, timeout=HTTP_TIMEOUT)


def _server_error() -> Optional[str]:
    """None if the server answers, else a note describing why not."""
    try:
        r = _http_get("/api/version")
    except requests.RequestException:
        return "ollama_error:server_unreachable"
    if not r.ok:
        return f"ollama_error:http_{r.status_code}"
    return None


def _installed_models() -> List[str]:
    try:
        r = _http_get("/api/tags")
        if not r.ok:
            return []
        data = r.json()
    except (requests.RequestException, ValueError):
        return []
    # {"models":[{"name":"llama3.2:1b", ...}, ...]}
    return [m.get("name", "") for m in data.get("models", []) if m.get("name")]


def _pull_model(tag: str) -> Optional[str]:
    """Pull `tag` with the ollama CLI. None on success, else an error note."""
    try:
        subprocess.run(
            ["ollama", "pull", tag],
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except FileNotFoundError:
        return "ollama_pull_failed:binary_not_found"
    except subprocess.CalledProcessError as e:
        return f"ollama_pull_failed:{(e.stdout or '').strip() or e}"
    return None


def _generate(model: str, prompt: str) -> requests.Response:
    return _http_post(
        "/api/generate",
        {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0.2, "top_p": 0.9, "num_ctx": 4096},
        },
    )


def _error_text(r: requests.Response) -> str:
    try:
        return json.dumps(r.json())
    except ValueError:
        return r.text


def suggest_with_ollama(model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Ask a local Ollama model for suggestions. Returns {"suggestions", "notes"};
    every failure along the way ends up in notes.
    """
    notes: List[str] = []

    server_err = _server_error()
    if server_err:
        return empty_result(server_err)

    model = clean_model_tag(model or os.environ.get("DOTCOACH_LOCAL_MODEL", "llama3.2:1b"))
    if not model:
        return empty_result("ollama_error:empty_model_tag")

    if model not in _installed_models():
        notes.append(f"ollama_model_missing:'{model}'")
        pull_err = _pull_model(model)
        if pull_err:
            return empty_result(*notes, pull_err)

    prompt = build_prompt(redact(payload))
    try:
        r = _generate(model, prompt)
    except requests.RequestException as e:
        return empty_result(*notes, f"ollama_request_error:{e}")

    if not r.ok:
        return empty_result(*notes, f"ollama_http_error:{r.status_code}", _error_text(r)[:240])

    try:
        raw = r.json().get("response", "") or ""
    except ValueError as e:
        return empty_result(*notes, f"ollama_bad_json:{e}")

    obj = extract_json(raw)
    if obj is None:
        # small models drift into prose
        return empty_result(*notes, "parse_error:response_not_json", raw[:240])

    result = shape_result(obj)
    result["notes"] = result["notes"] + notes
    log.debug("ollama returned %d suggestion(s)", len(result["suggestions"]))
    return result

# dotcoach/providers/anthropic_client.py
from __future__ import annotations

import os
from typing import Any, Dict

import requests

from ..utils.prompt import build_prompt
from ..utils.redact import redact
from .common import clean_model_tag, empty_result, extract_json, shape_result

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = os.environ.get("ANTHROPIC_VERSION", "2023-06-01")
HTTP_TIMEOUT = float(os.environ.get("DOTCOACH_ANTHROPIC_TIMEOUT", "60"))
MAX_TOKENS = 1200


def suggest_with_anthropic(model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    key = os.environ.get("ANTHROPIC_API_KEY", "")
    if not key:
        return empty_result("missing ANTHROPIC_API_KEY")

    model = clean_model_tag(model or os.environ.get("DOTCOACH_ANTHROPIC_MODEL", ""))
    if not model:
        return empty_result("anthropic_error:empty_model")

    prompt = build_prompt(redact(payload))
    headers = {
        "x-api-key": key,
        "anthropic-version": API_VERSION,
        "content-type": "application/json",
    }
    body = {
        "model": model,
        "max_tokens": MAX_TOKENS,
        "temperature": 0.2,
        "messages": [{"role": "user", "content": prompt}],
    }

    try:
        r = requests.post(ANTHROPIC_URL, headers=headers, json=body, timeout=HTTP_TIMEOUT)
    except requests.RequestException as e:
        return empty_result(f"anthropic_request_error:{e}")

    if r.status_code >= 400:
        return empty_result(f"anthropic_error:{r.status_code}", r.text[:200])

    try:
        data = r.json()
    except ValueError as e:
        return empty_result(f"anthropic_bad_json:{e}")

    # content is a list of blocks; only text blocks carry the answer
    text = "".join(
        block.get("text", "")
        for block in (data.get("content") or [])
        if isinstance(block, dict) and block.get("type") == "text"
    )
    obj = extract_json(text)
    if obj is None:
        return empty_result("unparsable_llm_output", text[:300])
    return shape_result(obj)

# dotcoach/providers/openai_client.py
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List

from openai import OpenAI

from ..utils.prompt import SYSTEM_PROMPT, TEMPLATE, compact_payload
from ..utils.redact import redact
from .common import clean_model_tag, empty_result, extract_json, shape_result

log = logging.getLogger(__name__)

DEFAULT_FALLBACKS = ["gpt-4o-mini", "gpt-4o"]


def _want_responses_api(model: str) -> bool:
    m = (model or "").lower()
    return m.startswith(("gpt-5", "o1", "o3", "o4"))


def _user_blob(payload: Dict[str, Any]) -> str:
    return TEMPLATE.format(
        system="",
        shell=payload.get("shell") or "bash",
        input_blob=json.dumps(compact_payload(payload), ensure_ascii=False),
    ).strip()


def _call_responses(client: OpenAI, model: str, user_blob: str) -> Dict[str, Any]:
    r = client.responses.create(
        model=model,
        instructions=SYSTEM_PROMPT,
        input=user_blob,
        text={"format": {"type": "json_object"}},
    )
    return _parse(getattr(r, "output_text", "") or "")


def _call_chat(client: OpenAI, model: str, user_blob: str) -> Dict[str, Any]:
    r = client.chat.completions.create(
        model=model,
        messages=[{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": user_blob}],
        response_format={"type": "json_object"},
        temperature=0.2,
    )
    return _parse((r.choices[0].message.content or "").strip())


def _parse(text: str) -> Dict[str, Any]:
    obj = extract_json(text)
    if obj is None:
        return empty_result(f"openai_error:could_not_parse_json: {text[:180]}")
    return shape_result(obj)


def _model_chain(model: str) -> List[str]:
    chain = [model] if model else []
    env_fallbacks = os.environ.get("DOTCOACH_OPENAI_FALLBACKS")
    if env_fallbacks:
        chain.extend(m.strip() for m in env_fallbacks.split(",") if m.strip())
    else:
        chain.extend(DEFAULT_FALLBACKS)
    # de-duplicate, keep order
    return list(dict.fromkeys(chain))


def suggest_with_openai(model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        return empty_result("openai_error:missing_api_key")

    # always scrubbed, whatever the caller already did
    user_blob = _user_blob(redact(payload))
    client = OpenAI(api_key=api_key)

    models = _model_chain(clean_model_tag(model))
    last_err = None
    for m in models:
        try:
            if _want_responses_api(m):
                return _call_responses(client, m, user_blob)
            return _call_chat(client, m, user_blob)
        except Exception as e:
            log.debug("openai model %s failed: %s", m, e)
            last_err = e

    return empty_result(f"openai_error:{last_err}; model_chain_tried={models}")

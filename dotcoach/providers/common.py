# dotcoach/providers/common.py
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

SUGGESTION_KEYS = ("pattern", "type", "name", "code", "explanation", "safety")


def empty_result(*notes: str) -> Dict[str, Any]:
    return {"suggestions": [], "notes": [n for n in notes if n]}


def clean_model_tag(tag: Optional[str]) -> str:
    """Strip whitespace and stray shell quotes from a model name."""
    if not tag:
        return ""
    return tag.strip().strip('"').strip("'")


def extract_json(text: str) -> Optional[dict]:
    """Parse the outermost {...} block of a model reply, ignoring any prose around it."""
    if not text:
        return None
    text = re.sub(r"```(?:json)?", "", text)
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    try:
        obj = json.loads(text[first : last + 1])
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def shape_result(obj: Any) -> Dict[str, Any]:
    """
    Normalize a model's JSON to {"suggestions": [...], "notes": [...]}.
    Suggestions without code are dropped; every kept field is a string.
    """
    result = empty_result()
    if not isinstance(obj, dict):
        return result

    raw = obj.get("suggestions") or obj.get("aliases") or []
    cleaned: List[Dict[str, str]] = []
    if isinstance(raw, list):
        for s in raw:
            if not isinstance(s, dict):
                continue
            item = {k: str(s.get(k) or "").strip() for k in SUGGESTION_KEYS}
            item["type"] = item["type"].lower() or "alias"
            item["safety"] = item["safety"].lower()
            if item["code"]:
                cleaned.append(item)
    result["suggestions"] = cleaned

    notes = obj.get("notes")
    if isinstance(notes, list):
        result["notes"] = [str(n) for n in notes if n]
    elif isinstance(notes, str) and notes:
        result["notes"] = [notes]
    return result

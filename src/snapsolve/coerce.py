"""JSON coercion of model output.

Models asked for "JSON only" still wrap it in ```json fences, stop before the
closing bracket of an array, or emit several objects back to back. This module
undoes those habits before giving up.

This file implements:
- strip_code_fences(text) -> text without ``` / ```json markers
- repair_json_text(text) -> text with the common structural slips fixed
- coerce_json_text(text) -> (parsed object/array or None, error or None)
"""
from __future__ import annotations

import json
import re
from typing import Any, Optional, Tuple

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_ADJACENT_OBJECTS_RE = re.compile(r"\}\s*\{")

def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()

def repair_json_text(text: str) -> str:
    s = (text or "").strip()

    if s.startswith("[") and not s.endswith("]"):
        s += "]"

    if _ADJACENT_OBJECTS_RE.search(s):
        s = _ADJACENT_OBJECTS_RE.sub("},{", s)
        if not s.startswith("["):
            s = "[" + s + "]"

    return s

def _extract_bracketed(text: str) -> Optional[str]:
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return None
    i = min(starts)
    closer = "}" if text[i] == "{" else "]"
    j = text.rfind(closer)
    if j <= i:
        return None
    return text[i : j + 1]

def coerce_json_text(text: str) -> Tuple[Optional[Any], Optional[str]]:
    if text is None:
        return None, "empty response"

    s = strip_code_fences(str(text))
    if not s:
        return None, "empty response"

    # 1) direct
    try:
        obj = json.loads(s)
        if isinstance(obj, (dict, list)):
            return obj, None
        return None, f"json is not an object or array: {type(obj).__name__}"
    except ValueError:
        pass

    # 2) structural repair
    repaired = repair_json_text(s)
    if repaired != s:
        try:
            obj = json.loads(repaired)
            if isinstance(obj, (dict, list)):
                return obj, None
        except ValueError:
            pass

    # 3) outermost bracketed slice
    extracted = _extract_bracketed(s)
    if not extracted:
        return None, "no JSON object found in text"

    try:
        obj = json.loads(extracted)
    except ValueError as e:
        return None, f"json parse failed after extraction: {e}"
    if isinstance(obj, (dict, list)):
        return obj, None
    return None, "extracted JSON is not an object or array"

# src/atlas_os/llm/parsing.py

"""Helpers that pull structured data out of free-text model replies.

None of these raise: a reply that does not contain the expected shape
yields None (or an empty list) and the caller decides on a fallback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:javascript|typescript|js|ts|python|py)?[ \t]*\n([\s\S]*?)```")
_ANY_FENCE_RE = re.compile(r"```[\s\S]*?```")


def _loads(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """
    Parse the span between the first '{' and the last '}'.

    Models often wrap JSON into prose or ```json fences; this tolerates both.
    """
    if not text:
        return None
    s = text.strip()
    obj = _loads(s)
    if isinstance(obj, dict):
        return obj

    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end <= start:
        return None
    obj = _loads(s[start:end + 1])
    if not isinstance(obj, dict):
        logger.debug("extract_json_object: candidate span is not a JSON object")
        return None
    return obj


def extract_json_array(text: str | None) -> list[Any]:
    if not text:
        return []
    s = text.strip()
    start = s.find("[")
    end = s.rfind("]")
    if start == -1 or end <= start:
        return []
    arr = _loads(s[start:end + 1])
    return arr if isinstance(arr, list) else []


def extract_code_block(text: str | None) -> str | None:
    """First fenced code block (untagged or js/ts/python), stripped."""
    if not text:
        return None
    m = _CODE_BLOCK_RE.search(text)
    if not m:
        return None
    code = m.group(1).strip()
    return code or None


def extract_integration_plan(text: str | None) -> dict[str, Any] | None:
    """JSON object with a "steps" key, searched outside fenced code."""
    if not text:
        return None
    prose = _ANY_FENCE_RE.sub("", text)
    plan = extract_json_object(prose)
    if plan is not None and "steps" in plan:
        return plan

    # The plan itself may be fenced as ```json.
    for block in _ANY_FENCE_RE.findall(text):
        inner = block.strip("`")
        if inner.startswith("json"):
            inner = inner[4:]
        plan = extract_json_object(inner)
        if plan is not None and "steps" in plan:
            return plan
    return None

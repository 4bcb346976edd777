"""Utilities for robustly extracting JSON from completion responses."""

from __future__ import annotations

import json
import re
from typing import Any

from prepflow.core.errors import ResponseValidationError

_JSON_BLOCK = re.compile(r"(\{.*\}|\[.*\])", re.DOTALL)

# Keys a model may wrap a list of records in
ARRAY_KEYS = ("questions", "data")


def _strip_code_fences(text: str) -> str:
    """Remove surrounding ```...``` fences (with or without 'json') if present."""
    t = text.strip()
    if t.startswith("```") and t.endswith("```"):
        t = re.sub(r"^```[A-Za-z0-9_-]*\s*", "", t, flags=re.DOTALL)
        t = re.sub(r"\s*```$", "", t, flags=re.DOTALL)
    return t.strip()


def extract_json(text: str) -> Any:
    """
    Extract and parse the first JSON object/array from a completion.
    - Safely handles code fences and leading/trailing prose.
    - Returns None when nothing parseable is found.
    """
    if not text:
        return None
    t = _strip_code_fences(text)

    try:
        return json.loads(t)
    except ValueError:
        pass

    m = _JSON_BLOCK.search(t)
    if not m:
        return None
    try:
        return json.loads(m.group(1))
    except ValueError:
        return None


def extract_record_list(text: str, keys: tuple[str, ...] = ARRAY_KEYS) -> list[Any]:
    """
    Strict: a bare array, or an object carrying the array under one of `keys`.

    Raises:
        ResponseValidationError: any other shape, or an empty array
    """
    data = extract_json(text)
    if isinstance(data, dict):
        data = next(
            (data[key] for key in keys if isinstance(data.get(key), list)),
            None,
        )
    if not isinstance(data, list):
        raise ResponseValidationError("Response is not in expected format")
    if not data:
        raise ResponseValidationError("No records received from API")
    return data


def extract_object(text: str, keys: tuple[str, ...] = ("evaluation", "data")) -> dict[str, Any]:
    """
    Strict: a JSON object, unwrapped from one of `keys` when the model nested it.

    Raises:
        ResponseValidationError: anything other than a non-empty object
    """
    data = extract_json(text)
    if isinstance(data, dict):
        for key in keys:
            inner = data.get(key)
            if isinstance(inner, dict) and "score" not in data:
                data = inner
                break
    if not isinstance(data, dict) or not data:
        raise ResponseValidationError("Expected a JSON object")
    return data

"""Utility helpers for the AniMuse service."""

from __future__ import annotations

import json
import math
import re
import secrets
from typing import Any


JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", re.DOTALL)
BARE_JSON_RE = re.compile(r"[\[{].*[\]}]", re.DOTALL)


def extract_json_payload(content: str) -> Any:
    """Extract and parse the first JSON object or array from the model response."""

    stripped = content.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    match = JSON_BLOCK_RE.search(content)
    if match:
        payload = match.group(1)
    else:
        match = BARE_JSON_RE.search(content)
        if not match:
            raise ValueError("No JSON payload found in response")
        payload = match.group(0)

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON payload produced by the model: {exc}") from exc


def is_number(value: object) -> bool:
    """Return ``True`` for finite ints and floats, excluding booleans.

    Integers too large to represent as a float are not numbers either.
    """

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def generate_message_id(prefix: str, now_ms: int) -> str:
    """Return an opaque message id used for upstream tracing."""

    return f"{prefix}-{now_ms}-{secrets.token_hex(5)[:9]}"

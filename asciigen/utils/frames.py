"""Frame shape normalisation and decoding of model frame responses."""

from __future__ import annotations

import json
import re
from typing import Optional, Tuple

from ..types import ParsePath

_FENCE_PATTERN = re.compile(r"```[^\n`]*\n(.*?)```", re.DOTALL)


def blank_frame(width: int, height: int) -> str:
    """Return an all-space frame of the requested size."""
    width = max(0, width)
    return "\n".join(" " * width for _ in range(max(0, height)))


def extract_fenced(text: str) -> str:
    """Return the content of the first fenced code block, or ``text`` unchanged."""
    if "```" not in text:
        return text
    match = _FENCE_PATTERN.search(text)
    if not match:
        return text
    return match.group(1).strip("\r\n")


def normalize_frame(raw: Optional[str], width: int, height: int) -> str:
    """Coerce arbitrary model text into exactly ``height`` lines of ``width`` characters.

    Never raises: content is best-effort, shape is guaranteed.
    """
    width = max(0, width)
    height = max(0, height)
    text = raw if isinstance(raw, str) else ""
    text = extract_fenced(text.strip())
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", "    ")

    lines = text.split("\n") if text else []
    lines = lines[:height]
    while len(lines) < height:
        lines.append("")

    return "\n".join(line[:width].ljust(width) for line in lines)


def decode_frame_response(text: str) -> Tuple[str, ParsePath]:
    """Decode a frame response, preferring a structured payload over raw text.

    Structured payloads are a JSON string, a JSON object with a ``frame`` key,
    or a JSON array whose first element is a string. Anything else is treated
    as the raw frame text.
    """
    candidate = extract_fenced(text.strip())
    try:
        payload = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return text, ParsePath.RAW_TEXT

    if isinstance(payload, str):
        return payload, ParsePath.STRUCTURED
    if isinstance(payload, dict) and isinstance(payload.get("frame"), str):
        return payload["frame"], ParsePath.STRUCTURED
    if isinstance(payload, list) and payload and isinstance(payload[0], str):
        return payload[0], ParsePath.STRUCTURED
    return text, ParsePath.RAW_TEXT


def clean_json_text(text: str) -> str:
    """Strip markdown fences and prose around a JSON object or array."""
    s = text.strip()
    if s.startswith("```") and s.endswith("```"):
        lines = s.splitlines()
        if len(lines) >= 3:
            s = "\n".join(lines[1:-1]).strip()
    # prefer array root, fallback to object root
    a_start = s.find("[")
    a_end = s.rfind("]")
    o_start = s.find("{")
    o_end = s.rfind("}")
    if a_start != -1 and a_end > a_start and (o_start == -1 or a_start < o_start):
        return s[a_start : a_end + 1]
    if o_start != -1 and o_end > o_start:
        return s[o_start : o_end + 1]
    return s


__all__ = [
    "blank_frame",
    "clean_json_text",
    "decode_frame_response",
    "extract_fenced",
    "normalize_frame",
]

"""Small helpers shared across the recorder modules."""

from __future__ import annotations

import re

_UNSAFE_FILENAME = re.compile(r"[^\w\-.']+")


def strip_quotes(value: str) -> str:
    """Remove surrounding whitespace and one pair of double quotes."""

    stripped = value.strip()
    if len(stripped) >= 2 and stripped[0] == '"' and stripped[-1] == '"':
        return stripped[1:-1]
    return stripped


def sanitize_component(text: str) -> str:
    """Make ``text`` safe to embed in a file or directory name."""

    cleaned = text.replace(" ", "_").replace(":", "").replace("/", "_")
    cleaned = _UNSAFE_FILENAME.sub("", cleaned)
    return cleaned or "unknown"


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

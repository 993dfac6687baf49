"""String helpers shared across the relay service."""
from __future__ import annotations

import re

_SANITIZE_PATTERN = re.compile(r"[^a-z0-9_]")


def application_name(value: object, *, fallback: str = "relay") -> str:
    """Derive an nginx-rtmp application name from a platform identifier."""

    text = str(value).strip().lower() if value is not None else ""
    sanitized = _SANITIZE_PATTERN.sub("_", text).strip("_")
    return sanitized or fallback


def normalise_label(value: object) -> str:
    """Lower-case ``value`` and drop whitespace (``"Very Fast"`` -> ``"veryfast"``)."""

    return "".join(str(value or "").lower().split())


__all__ = ["application_name", "normalise_label"]

"""Coercion helpers for loosely typed settings values.

Persisted settings, environment variables and JSON payloads all arrive as
strings or mixed types; these helpers normalise them without raising.
"""
from __future__ import annotations

from typing import Any, Optional

_TRUTHY = frozenset({"true", "1", "yes", "on"})
_FALSY = frozenset({"false", "0", "no", "off"})


def to_bool(value: Any, *, default: bool = False) -> bool:
    """Best-effort conversion of common truthy/falsey inputs to ``bool``."""

    parsed = to_optional_bool(value)
    return default if parsed is None else parsed


def to_optional_bool(value: Any) -> Optional[bool]:
    """Variant of :func:`to_bool` that returns ``None`` when indeterminate."""

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
    return None


def to_optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def coerce_int(value: Any, fallback: int) -> int:
    parsed = to_optional_int(value)
    return fallback if parsed is None else parsed


def coerce_float(value: Any, fallback: float) -> float:
    parsed = to_optional_float(value)
    return fallback if parsed is None else parsed


__all__ = [
    "coerce_float",
    "coerce_int",
    "to_bool",
    "to_optional_bool",
    "to_optional_float",
    "to_optional_int",
]

"""Utility helpers shared across the relay service."""
from __future__ import annotations

from .coerce import (
    coerce_float,
    coerce_int,
    to_bool,
    to_optional_bool,
    to_optional_float,
    to_optional_int,
)
from .strings import application_name, normalise_label
from .urls import ensure_trailing_slash, join_stream_key, local_rtmp_url, mask_stream_key

__all__ = [
    "application_name",
    "coerce_float",
    "coerce_int",
    "ensure_trailing_slash",
    "join_stream_key",
    "local_rtmp_url",
    "mask_stream_key",
    "normalise_label",
    "to_bool",
    "to_optional_bool",
    "to_optional_float",
    "to_optional_int",
]
